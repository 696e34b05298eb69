from threading import local
from typing import Dict, List

from dramatiq.middleware import Middleware
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.routing import BaseRoute, Match
from starlette.types import ASGIApp

from src.common import context
from src.network.database.decorator import route_database_mode_checker
from src.network.database.session import DatabaseMode, db


class HTTPSessionManagerMiddleware(BaseHTTPMiddleware):
    """
    One session per request, committed on success and rolled back
    whenever the response is an error
    """

    def __init__(
        self,
        app: ASGIApp,
        commit_on_success: bool = True,
    ):
        super().__init__(app)
        self.commit_on_success = commit_on_success
        self._route_groups: Dict[str, List[BaseRoute]] = {}

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint):
        database_mode = self._determine_database_mode(request=request)
        with db(commit_on_success=self.commit_on_success, mode=database_mode):
            response = await call_next(request)
            if response.status_code >= 400:
                db.session.rollback()

        return response

    def _determine_database_mode(self, request: Request) -> DatabaseMode:
        """
        Read-only designated routes skip the primary database
        """
        matched_route = self._match_route(request=request)
        if matched_route is None:
            # We should never have an unmatched route but default to read / write
            return DatabaseMode.READ_WRITE

        return route_database_mode_checker(matched_route)

    def _match_route(self, request: Request) -> BaseRoute | None:
        """
        In starlette all route matching occurs after middlewares run
        which is being tracked here: https://github.com/encode/starlette/issues/685
        Routes are grouped by first path segment to cut down the candidates.
        """
        if not self._route_groups:
            self._route_groups = self._group_routes_by_first_path_segment(request.app.routes)

        path_parts = request.url.path.split('/')
        first_part = next((part for part in path_parts if part), '')
        routes_to_check = self._route_groups.get(first_part, []) + self._route_groups.get('_params', [])

        for route in routes_to_check:
            match, _ = route.matches(request.scope)
            if match == Match.FULL:
                return route

        return None

    def _group_routes_by_first_path_segment(self, routes: List[BaseRoute]) -> Dict[str, List[BaseRoute]]:
        grouped: Dict[str, List[BaseRoute]] = {}

        for route in routes:
            path = getattr(route, 'path', '')
            first_part = next((part for part in path.split('/') if part), '')

            # Handle routes with parameter as first segment like /{param}/...
            if first_part.startswith('{'):
                first_part = '_params'

            grouped.setdefault(first_part, []).append(route)

        return grouped


class DramatiqSessionMiddleware(Middleware):
    """
    Manages the default sqlalchemy session for dramatiq
    Similar pattern to dramatiq.middleware.CurrentMessage
    """

    session_manager_storage = local()

    def before_process_message(self, broker, message):
        context.initialize(
            user_type=context.AppContextUserType.SYSTEM,
            breadcrumb=message.actor_name,
        )
        session_manager = db(commit_on_success=True)
        setattr(self.session_manager_storage, 'session_manager', session_manager)
        session_manager.enter()

    def after_process_message(self, broker, message, *, result=None, exception=None):
        session_manager = getattr(self.session_manager_storage, 'session_manager')
        session_manager.exit(exception=exception)
        delattr(self.session_manager_storage, 'session_manager')

    def after_skip_message(self, broker, message):
        self.after_process_message(broker, message)
