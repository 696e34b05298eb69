from datetime import datetime
from typing import Optional

from pydantic import Field, field_validator

from src.app.users.constants import (
    API_TOKEN_PK_ABBREV,
    DEFAULT_API_TOKEN_NAME,
    DEFAULT_CURRENCY,
    DEFAULT_TIMEZONE,
    USER_PK_ABBREV,
    USER_PREFERENCES_PK_ABBREV,
)
from src.common.domain import BaseDomain
from src.common.nanoid import NanoId, NanoIdType
from src.common.utils import is_valid_timezone


class UserCreate(BaseDomain):
    id: Optional[NanoIdType] = Field(default_factory=lambda: NanoId.gen(abbrev=USER_PK_ABBREV))
    username: str
    display_name: str | None = None


class UserRead(BaseDomain):
    id: NanoIdType
    username: str
    display_name: str | None
    created_at: datetime


class UserPreferencesCreate(BaseDomain):
    id: Optional[NanoIdType] = Field(default_factory=lambda: NanoId.gen(abbrev=USER_PREFERENCES_PK_ABBREV))
    user_id: NanoIdType
    timezone: str = DEFAULT_TIMEZONE
    currency: str = DEFAULT_CURRENCY
    opt_out_public: bool = False


class UserPreferencesRead(BaseDomain):
    id: NanoIdType
    user_id: NanoIdType
    timezone: str
    currency: str
    opt_out_public: bool


class UserPreferencesUpdate(BaseDomain):
    timezone: str | None = None
    currency: str | None = Field(default=None, min_length=3, max_length=3)
    opt_out_public: bool | None = None

    @field_validator('timezone')
    @classmethod
    def validate_timezone(cls, value: str | None) -> str | None:
        if value is not None and not is_valid_timezone(value):
            raise ValueError(f'Unknown timezone: {value}')
        return value

    @field_validator('currency')
    @classmethod
    def upper_currency(cls, value: str | None) -> str | None:
        return value.upper() if value else value


class ApiTokenCreate(BaseDomain):
    id: Optional[NanoIdType] = Field(default_factory=lambda: NanoId.gen(abbrev=API_TOKEN_PK_ABBREV))
    user_id: NanoIdType
    token: str
    name: str = DEFAULT_API_TOKEN_NAME
    expires_at: datetime | None = None


class ApiTokenRead(BaseDomain):
    id: NanoIdType
    user_id: NanoIdType
    token: str
    name: str
    last_used_at: datetime | None
    expires_at: datetime | None
    created_at: datetime


class AuthenticatedUser(BaseDomain):
    """
    Resolved from a bearer token on every authenticated request
    """

    id: NanoIdType
    username: str
    api_token_id: NanoIdType


class DeleteUserResponse(BaseDomain):
    success: bool
    message: str
    messages_deleted: int
    aggregates_deleted: int
