from src.app.users.domains import (
    ApiTokenRead,
    AuthenticatedUser,
    UserCreate,
    UserPreferencesRead,
    UserPreferencesUpdate,
    UserRead,
)
from src.app.users.exceptions import AuthError, ForbiddenError, UserNotFound
from src.app.users.models import ApiToken, User, UserPreferences
from src.app.users.service import UserService

__all__ = [
    # Models
    'ApiToken',
    'User',
    'UserPreferences',
    # Domains
    'ApiTokenRead',
    'AuthenticatedUser',
    'UserCreate',
    'UserPreferencesRead',
    'UserPreferencesUpdate',
    'UserRead',
    # Exceptions
    'AuthError',
    'ForbiddenError',
    'UserNotFound',
    # Services
    'UserService',
]
