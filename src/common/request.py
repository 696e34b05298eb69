import time
import uuid

from fastapi import status
from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request

from src.common import context


def get_user_ip_address_from_header(forwarded_header: str | None) -> str:
    """
    Expects the result of "x-forwarded-for" which will be
    a list of IPs separated by a ',' accounting for all
    proxy servers encountered
    """
    user_ip = forwarded_header.split(',')[0] if forwarded_header else ''
    return user_ip.strip()


def _get_additional_request_log_meta(request: Request, start_time: float) -> dict:
    return dict(
        endpoint=request.url.path,
        user_agent=request.headers.get('user-agent', 'unknown'),
        duration=round((time.time() - start_time), 3),
        http_method=request.method,
        user_ip=get_user_ip_address_from_header(request.headers.get('x-forwarded-for')),
        client_host=request.client.host if request.client else 'unknown',
    )


def _get_request_id(request: Request) -> str:
    # This is set by the load balancer in non-local environments
    return request.headers.get('X-Request-ID', str(uuid.uuid4()))


def _describe(request: Request, status_code: int) -> str:
    client = f'{request.client.host}:{request.client.port}' if request.client else 'unknown'
    return f'{client} {request.method.upper()} {request.url.path} {status_code}'


class RequestResponseMiddleware(BaseHTTPMiddleware):
    """
    Inject request to context and to loggers downstream of uvicorn
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint):
        start_time = time.time()
        request_id = _get_request_id(request)

        context.set_request_id(request_id)
        with logger.contextualize(request_id=request_id):
            try:
                response = await call_next(request)
            except Exception:
                logger.bind(
                    http_status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                    **_get_additional_request_log_meta(request, start_time=start_time),
                ).error(_describe(request, status.HTTP_500_INTERNAL_SERVER_ERROR))
                raise

            level = response.status_code // 100
            if level == 4:
                log_level = 'WARNING'
            elif level == 5:
                log_level = 'ERROR'
            else:
                log_level = 'INFO'

            logger.bind(
                http_status_code=response.status_code,
                **_get_additional_request_log_meta(request, start_time=start_time),
            ).log(log_level, _describe(request, response.status_code))

        response.headers['X-Request-ID'] = request_id
        return response
