import os
import sys

from sqlalchemy.orm import Session

# Test Environment Overrides will override .env files
# THESE MUST BE IMPORTED BEFORE ANYTHING
BASE_DIR = os.path.dirname(os.path.abspath(__file__))

EXPECTED_DATABASE_URL = 'sqlite:///:memory:'
os.environ.setdefault('ENVIRONMENT', 'testing')
os.environ.setdefault('COMPANY_NAME', 'TestCompany')
os.environ.setdefault('DATABASE_URL', EXPECTED_DATABASE_URL)
os.environ.setdefault('ATOMIC_REQUESTS', 'True')
os.environ.setdefault('UPLOAD_TIMING', 'True')
os.environ.setdefault('USE_MOCK_DRAMATIQ_BROKER', 'True')
os.environ.setdefault('USE_MOCK_SENTRY_CLIENT', 'True')

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
from src import setup

setup.run()

import pytest

# ruff: noqa: E402
from src import settings
from src.app.users import UserRead, UserService
from src.common import context
from src.common.model import BaseModel
from src.network.database import database
from src.network.database.session import db as session_manager

# Add fixtures here
pytest_plugins = [
    'tests.factories.users',
    'tests.factories.stats',
]

# When src files are imported before the above patching, tests will run
# against the configured database instead of the throwaway one.
if settings.DATABASE_URL != EXPECTED_DATABASE_URL:
    raise ValueError(
        'Patching of environment variables failed.\n'
        'This will cause unexpected test failures'
        'Check all src imports are delayed until after patching.\n'
    )

BaseModel.metadata.create_all(database.engine)


@pytest.fixture(scope='function', autouse=True)
def db() -> Session:
    # This needs to be set first for fixtures to be able to create
    context.initialize(
        user_type=context.AppContextUserType.SYSTEM,
        breadcrumb='testing',
    )

    with session_manager(commit_on_success=False):
        session = session_manager.session

        # Production code commits per chunk and per bucket, in tests those
        # commits only flush so everything is rolled back afterwards
        def no_op_commit():
            session.flush()

        session.commit = no_op_commit

        yield session_manager.session

    session.rollback()


@pytest.fixture(scope='function')
def user(user_factory) -> UserRead:
    return UserService.factory().create_user(user_factory.build())


@pytest.fixture(scope='function')
def other_user(user_factory) -> UserRead:
    return UserService.factory().create_user(user_factory.build())


@pytest.fixture(scope='function')
def pacific_user(user_factory) -> UserRead:
    """
    A user whose days start at Los Angeles midnight
    """
    return UserService.factory().create_user(user_factory.build(), timezone='America/Los_Angeles')
