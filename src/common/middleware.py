from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request

from src.common import context


class HTTPAppContextMiddleware(BaseHTTPMiddleware):
    """
    Every request starts with a fresh application context, the
    authentication dependencies fill in the user once the token is known
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint):
        token = context.initialize(
            user_type=context.AppContextUserType.UNKNOWN,
            breadcrumb=f'{request.method} {request.url.path}',
        )
        try:
            return await call_next(request)
        finally:
            context.reset(token)
