from typing import Any, Callable

from starlette.routing import BaseRoute, Route

from src.network.database.session import DatabaseMode

_ROUTE_DATABASE_MODE_KEY = '_database_mode'


def read_only_route(func: Callable[..., Any]) -> Callable[..., Any]:
    """
    Marks a fastapi route as read-only for database access.
    The session middleware checks the flag before opening a session.

    Example:
        @router.get('/leaderboard')
        @read_only_route
        def get_leaderboard():
            ...
    """
    setattr(func, _ROUTE_DATABASE_MODE_KEY, DatabaseMode.READ_ONLY)
    return func


def route_database_mode_checker(route: BaseRoute) -> DatabaseMode:
    if not isinstance(route, Route):
        return DatabaseMode.READ_WRITE

    return getattr(route.endpoint, _ROUTE_DATABASE_MODE_KEY, DatabaseMode.READ_WRITE)
