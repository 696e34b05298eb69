from loguru import logger

from src import settings
from src.app.users.constants import DEFAULT_API_TOKEN_NAME, DEFAULT_TIMEZONE
from src.app.users.domains import (
    ApiTokenCreate,
    ApiTokenRead,
    AuthenticatedUser,
    UserCreate,
    UserPreferencesCreate,
    UserPreferencesRead,
    UserPreferencesUpdate,
    UserRead,
)
from src.app.users.exceptions import ApiTokenLimitReached, AuthError, UserNotFound
from src.app.users.models import ApiToken, User, UserPreferences
from src.common.nanoid import NanoId, NanoIdType
from src.common.utils import is_valid_timezone, utc_now
from src.network.database.repository.exceptions import RepositoryObjectNotFound


class UserService:
    @classmethod
    def factory(cls) -> 'UserService':
        return cls()

    def create_user(self, user: UserCreate, timezone: str = DEFAULT_TIMEZONE) -> UserRead:
        created = User.create(user)
        UserPreferences.create(UserPreferencesCreate(user_id=created.id, timezone=timezone))
        return created

    def get_user_for_id(self, user_id: NanoIdType) -> UserRead:
        try:
            return User.get(id=user_id)
        except RepositoryObjectNotFound:
            raise UserNotFound(message=f'User not found with id: {user_id}')

    def list_user_ids(self) -> list[NanoIdType]:
        return User.list_attribute('id')

    def delete_account(self, user_id: NanoIdType) -> None:
        """
        Removes the user and everything hanging off of it except stats,
        stats are purged by the stats boundary first
        """
        ApiToken.delete(ApiToken.user_id == user_id)
        UserPreferences.delete(UserPreferences.user_id == user_id)
        User.delete(User.id == user_id)
        logger.info('account deleted', user_id=user_id)

    # API tokens
    def issue_api_token(self, user_id: NanoIdType, name: str = DEFAULT_API_TOKEN_NAME) -> ApiTokenRead:
        token_count = ApiToken.count(user_id=user_id)
        if token_count >= settings.MAX_API_TOKENS_PER_USER:
            raise ApiTokenLimitReached(
                message=f'Maximum of {settings.MAX_API_TOKENS_PER_USER} API tokens reached. '
                'Delete an existing token first.'
            )

        return ApiToken.create(
            ApiTokenCreate(
                user_id=user_id,
                token=NanoId.gen_secret(prefix=settings.API_TOKEN_PREFIX),
                name=name,
            )
        )

    def authenticate_token(self, token: str) -> AuthenticatedUser:
        """
        Resolves a bearer token to its user and records the token use
        """
        if not token or not token.startswith(settings.API_TOKEN_PREFIX):
            raise AuthError(message='Invalid API token')

        api_token = ApiToken.get_or_none(token=token)
        if api_token is None:
            raise AuthError(message='Invalid API token')

        now = utc_now()
        if api_token.expires_at is not None and api_token.expires_at <= now:
            raise AuthError(message='API token expired')

        ApiToken.update(id=api_token.id, last_used_at=now)
        user = User.get_or_none(id=api_token.user_id)
        if user is None:
            raise AuthError(message='Invalid API token')

        return AuthenticatedUser(id=user.id, username=user.username, api_token_id=api_token.id)

    # Preferences
    def get_preferences(self, user_id: NanoIdType) -> UserPreferencesRead:
        preferences = UserPreferences.get_or_none(user_id=user_id)
        if preferences is None:
            preferences = UserPreferences.create(UserPreferencesCreate(user_id=user_id))
        return preferences

    def update_preferences(self, user_id: NanoIdType, update: UserPreferencesUpdate) -> UserPreferencesRead:
        preferences = self.get_preferences(user_id=user_id)
        changes = {key: value for key, value in update.get_provided_fields().items() if value is not None}
        if not changes:
            return preferences
        return UserPreferences.update(id=preferences.id, **changes)

    def get_timezone(self, user_id: NanoIdType) -> str:
        return self.get_preferences(user_id=user_id).timezone

    def resolve_timezone(self, user_id: NanoIdType, override: str | None) -> str:
        """
        A timezone sent with a request wins over the stored one and is
        remembered. Unknown names are ignored and never stored.
        """
        preferences = self.get_preferences(user_id=user_id)
        if not override:
            return preferences.timezone

        if not is_valid_timezone(override):
            logger.warning('ignoring unknown timezone override', user_id=user_id, timezone=override)
            return preferences.timezone

        if override != preferences.timezone:
            UserPreferences.update(id=preferences.id, timezone=override)
            logger.info('timezone preference updated', user_id=user_id, timezone=override)

        return override
