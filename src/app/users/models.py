from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from src.app.users.constants import (
    API_TOKEN_PK_ABBREV,
    DEFAULT_API_TOKEN_NAME,
    DEFAULT_CURRENCY,
    DEFAULT_TIMEZONE,
    USER_PK_ABBREV,
    USER_PREFERENCES_PK_ABBREV,
)
from src.app.users.domains import (
    ApiTokenCreate,
    ApiTokenRead,
    UserCreate,
    UserPreferencesCreate,
    UserPreferencesRead,
    UserRead,
)
from src.common.model import BaseModel


class User(BaseModel[UserRead, UserCreate]):
    username: Mapped[str] = mapped_column(String(length=200), unique=True, nullable=False)
    display_name: Mapped[str | None] = mapped_column(String(length=200), nullable=True)

    __tablename__ = 'users'
    __pk_abbrev__ = USER_PK_ABBREV
    __read_domain__ = UserRead
    __create_domain__ = UserCreate


class UserPreferences(BaseModel[UserPreferencesRead, UserPreferencesCreate]):
    user_id: Mapped[str] = mapped_column(ForeignKey('users.id', ondelete='CASCADE'), unique=True, nullable=False)
    # IANA name, only drives the daily bucket boundary
    timezone: Mapped[str] = mapped_column(String(length=64), default=DEFAULT_TIMEZONE, nullable=False)
    currency: Mapped[str] = mapped_column(String(length=3), default=DEFAULT_CURRENCY, nullable=False)
    opt_out_public: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    __tablename__ = 'user_preferences'
    __pk_abbrev__ = USER_PREFERENCES_PK_ABBREV
    __read_domain__ = UserPreferencesRead
    __create_domain__ = UserPreferencesCreate


class ApiToken(BaseModel[ApiTokenRead, ApiTokenCreate]):
    user_id: Mapped[str] = mapped_column(ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    token: Mapped[str] = mapped_column(String(length=100), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(length=200), default=DEFAULT_API_TOKEN_NAME, nullable=False)
    last_used_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    __tablename__ = 'api_tokens'
    __pk_abbrev__ = API_TOKEN_PK_ABBREV
    __read_domain__ = ApiTokenRead
    __create_domain__ = ApiTokenCreate
