from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from src.app.users.domains import AuthenticatedUser
from src.app.users.exceptions import AuthError, ForbiddenError
from src.app.users.service import UserService
from src.common import context

_bearer_scheme = HTTPBearer(auto_error=False, description='CLI API token, e.g. "Bearer st_..."')


def authenticate_api_token(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer_scheme),
) -> AuthenticatedUser:
    """
    Rejects before any storage mutation happens downstream
    """
    if credentials is None or credentials.scheme.lower() != 'bearer' or not credentials.credentials:
        raise AuthError(message='Missing or invalid authorization header')

    user = UserService.factory().authenticate_token(credentials.credentials.strip())
    context.set_user(
        user_type=context.AppContextUserType.API,
        user_id=user.id,
        api_token_id=user.api_token_id,
    )
    return user


def authorize_path_user(
    user_id: str,
    user: AuthenticatedUser = Depends(authenticate_api_token),
) -> AuthenticatedUser:
    """
    Routes scoped with /user/{user_id} may only be used by that user
    """
    if user.id != user_id:
        raise ForbiddenError(message='Unauthorized')
    return user
