from fastapi import status

from src.common.exceptions import APIException, InternalException


class UserNotFound(InternalException):
    ...


class AuthError(APIException):
    """
    Missing, malformed or unknown bearer token
    """

    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = 'Unauthorized'
    default_code = 'unauthorized'


class ForbiddenError(APIException):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = 'Forbidden'
    default_code = 'forbidden'


class ApiTokenLimitReached(APIException):
    default_detail = 'Maximum number of API tokens reached'
    default_code = 'api_token_limit'


class InvalidDeleteType(APIException):
    default_detail = 'Invalid delete type. Use "data" or "account"'
    default_code = 'invalid_delete_type'
