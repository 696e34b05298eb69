from src.network.database.session import Database, DatabaseMode, database, db

__all__ = ['Database', 'DatabaseMode', 'database', 'db']
