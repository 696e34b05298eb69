import re
from typing import Any

import sentry_sdk
from fastapi import Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from loguru import logger


class InternalException(Exception):
    """
    All internal exceptions should inherit from this. We are handled
    vaguely publicly, the message is safe to show but the context is not
    """

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = 'Internal failure.'
    default_code = 'internal_failure'

    def __init__(self, message: str | None = None, context: dict[Any, Any] | Any = None):
        self.message = message or self.default_detail
        self.context = context or dict()
        super().__init__(self.message)

    def __str__(self) -> str:
        return f'{self.__class__.__name__}({self.message})'


class APIException(Exception):
    """
    API view layer exceptions
    """

    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'Invalid Request.'
    default_code = 'invalid_request'

    # Match the internal interface message
    def __init__(self, message: str | None = None, code: int | None = None, error_type: str | None = None):
        self.message = message or self.default_detail
        self.code = code or self.status_code
        self.error_type = error_type or self.default_code
        super().__init__(self.message)


async def internal_exception_handler(request: Request, exc: InternalException) -> JSONResponse:
    """
    Registered at the app level, context is logged but never returned
    """
    logger.bind(error_context=exc.context).opt(exception=exc).error(exc.message)
    sentry_sdk.capture_exception(exc)
    return JSONResponse(
        status_code=exc.status_code,
        content=jsonable_encoder({'detail': exc.message}),
    )


async def api_exception_handler(request: Request, exc: APIException) -> JSONResponse:
    """
    Registered at the app level
    """
    content = {'detail': exc.message, 'error_type': exc.error_type}
    return JSONResponse(
        status_code=exc.code,
        content=jsonable_encoder(content),
    )


async def inbound_validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """
    This catches pydantic validation errors and is registered at the app level
    """
    details = exc.errors()

    # Fingerprint on the error locations so list indexes group together
    # e.g. "missing:query.period" rather than one issue per request
    generalized_errors = set()
    for error in details:
        if 'loc' not in error:
            continue
        loc_path = '.'.join(str(part) for part in error['loc'])
        clean_path = re.sub(r'\.[0-9]+(?=\.|$)', '', loc_path)
        generalized_errors.add(f"{error['type']}:{clean_path}")

    if generalized_errors:
        scope = sentry_sdk.get_current_scope()
        transaction_name = scope.transaction.name if scope.transaction else 'unknown'
        scope.fingerprint = [transaction_name] + sorted(generalized_errors)

    # We want to know about these:
    sentry_sdk.capture_exception(exc)

    modified_details = []
    for error in details:
        modified_details.append(
            {
                'loc': error['loc'],
                'message': error['msg'],
                'type': error['type'],
            }
        )
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=jsonable_encoder({'detail': modified_details}),
    )
