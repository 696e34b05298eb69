import sys
import time
from contextvars import ContextVar
from enum import Enum
from typing import Any, Dict, Optional

from loguru import logger
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import sessionmaker
from sqlalchemy.orm.session import Session as SqlAlchemySession
from sqlalchemy.pool import NullPool, StaticPool

from src import settings


class DatabaseMode(Enum):
    READ_WRITE = 'read_write'
    READ_ONLY = 'read_only'


class DatabaseNotInitialized(Exception):
    def __init__(self) -> None:
        super().__init__('Database handle is not open, call `setup.run()` from the entry point first')


def create_db_engine(url: str) -> Engine:
    """
    Postgres in deployed environments, sqlite for tests and local tinkering.
    A single in-memory sqlite connection is shared so every session
    sees the same database.
    """
    if make_url(url).get_backend_name() == 'sqlite':
        return create_engine(
            url,
            poolclass=StaticPool,
            connect_args={'check_same_thread': False},
        )

    return create_engine(
        url,
        poolclass=NullPool,
        connect_args={
            'options': f'-c timezone=utc -c statement_timeout={settings.DB_STATEMENT_TIMEOUT_MS}',
            'connect_timeout': 10,
        },
        pool_pre_ping=True,
    )


class Database:
    """
    Explicit handle on the storage engines. Opened once by the process
    entry point and disposed of at shutdown.
    """

    def __init__(self) -> None:
        self._rw_engine: Engine | None = None
        self._ro_engine: Engine | None = None
        self._rw_session_maker: sessionmaker[SqlAlchemySession] | None = None
        self._ro_session_maker: sessionmaker[SqlAlchemySession] | None = None

    @property
    def is_open(self) -> bool:
        return self._rw_engine is not None

    @property
    def engine(self) -> Engine:
        if self._rw_engine is None:
            raise DatabaseNotInitialized()
        return self._rw_engine

    def open(self, url: str | None = None, read_only_url: str | None = None) -> None:
        if self.is_open:
            return

        url = url or settings.DATABASE_URL
        read_only_url = read_only_url or settings.DATABASE_URL_RO
        self._rw_engine = create_db_engine(url)
        # Share the engine when there is no replica, sqlite needs this for in-memory databases
        self._ro_engine = self._rw_engine if read_only_url == url else create_db_engine(read_only_url)
        self._rw_session_maker = sessionmaker(autocommit=False, autoflush=False, bind=self._rw_engine)
        self._ro_session_maker = sessionmaker(autocommit=False, autoflush=False, bind=self._ro_engine)

        if settings.DB_LOG_STATEMENTS:
            _listen_for_statement_timing(self._rw_engine)

        logger.info('database handle opened', dialect=self._rw_engine.dialect.name)

    def close(self) -> None:
        if not self.is_open:
            return

        if self._ro_engine is not None and self._ro_engine is not self._rw_engine:
            self._ro_engine.dispose()
        self.engine.dispose()
        self._rw_engine = None
        self._ro_engine = None
        self._rw_session_maker = None
        self._ro_session_maker = None
        logger.info('database handle closed')

    def make_session(self, mode: DatabaseMode = DatabaseMode.READ_WRITE, **session_kwargs: Any) -> SqlAlchemySession:
        session_maker = self._rw_session_maker if mode == DatabaseMode.READ_WRITE else self._ro_session_maker
        if session_maker is None:
            raise DatabaseNotInitialized()
        return session_maker(**session_kwargs)


def _listen_for_statement_timing(engine: Engine) -> None:
    @event.listens_for(engine, 'before_cursor_execute')
    def before_cursor_execute(
        conn: Any, cursor: Any, statement: str, parameters: Any, context: Any, executemany: bool
    ) -> None:
        conn.info.setdefault('query_start_time', []).append(time.time())
        logger.info(f'Start Query: {statement}')

    @event.listens_for(engine, 'after_cursor_execute')
    def after_cursor_execute(
        conn: Any, cursor: Any, statement: str, parameters: Any, context: Any, executemany: bool
    ) -> None:
        total = time.time() - conn.info['query_start_time'].pop(-1)
        logger.info(f'Query Time: {total}')


# The one handle for the process, see setup.run / setup.teardown
database = Database()

# Context variables for session storage and mode
# Should be thread safe as well as coroutine safe!
_session_storage: ContextVar[SqlAlchemySession | None] = ContextVar('_session_storage', default=None)
_session_mode: ContextVar[DatabaseMode] = ContextVar('_session_mode', default=DatabaseMode.READ_WRITE)


class SessionNotAvailable(Exception):
    def __init__(self) -> None:
        msg = """
        Either you are not currently in a request context, or you need to manually
        create a session context by using a `db` instance as a context manager e.g.:
        with db():
            db.session.execute(select(User))
        """
        super().__init__(msg)


class SessionManagerMeta(type):
    """
    Access session as a property on context manager
    without having to init
    """

    @property
    def session(self) -> SqlAlchemySession:
        """
        Make a thread and coroutine safe session
        """
        session = _session_storage.get()
        if session is None:
            raise SessionNotAvailable

        return session

    @property
    def mode(self) -> DatabaseMode:
        return _session_mode.get()


class SessionManager(metaclass=SessionManagerMeta):
    def __init__(
        self,
        session_kwargs: Dict[str, Any] | None = None,
        commit_on_success: bool = False,
        mode: DatabaseMode = DatabaseMode.READ_WRITE,
    ):
        self.session_token: Optional[Any] = None
        self.mode_token: Optional[Any] = None
        self.session_kwargs = session_kwargs or {}
        self.commit_on_success = commit_on_success
        self.mode = mode

    def enter(self) -> Any:
        self.mode_token = _session_mode.set(self.mode)

        # Nested managers share the outermost session, tests rely on
        # this to see their fixtures from inside service code
        if _session_storage.get() is None:
            session = database.make_session(mode=self.mode, **self.session_kwargs)
            self.session_token = _session_storage.set(session)

        if self.mode == DatabaseMode.READ_ONLY:
            ro_session = _session_storage.get()
            if ro_session is None:
                raise SessionNotAvailable()

            @event.listens_for(ro_session, 'before_flush')
            def prevent_write_on_readonly(session: SqlAlchemySession, *args: Any, **kwargs: Any) -> None:
                if len(session.new) > 0 or len(session.deleted) > 0 or len(session.dirty) > 0:
                    raise RuntimeError('Cannot modify database in read-only mode')

        return type(self)

    def exit(self, exception: BaseException | None) -> None:
        exc_type, exc_value, exc_tb = sys.exc_info()
        if exc_value is None and exception is not None:
            exc_type, exc_value, exc_tb = type(exception), exception, exception.__traceback__
        self.__exit__(exc_type, exc_value, exc_tb)

    def cleanup(self) -> None:
        # Only the manager that created the session may close it
        if self.session_token:
            session = _session_storage.get()
            if session is not None:
                session.close()
            _session_storage.reset(self.session_token)
            self.session_token = None
        if self.mode_token:
            _session_mode.reset(self.mode_token)
            self.mode_token = None

    def __enter__(self) -> Any:
        return self.enter()

    def __exit__(self, exc_type: Any, exc_value: Any, traceback: Any) -> None:
        session = _session_storage.get()
        session_mode = _session_mode.get()
        is_success = exc_type is None

        if session is not None and self.session_token:
            if self.commit_on_success and is_success and session_mode == DatabaseMode.READ_WRITE:
                session.commit()
            else:
                session.rollback()

        self.cleanup()


# This is what external callers should access!
db: SessionManagerMeta = SessionManager
