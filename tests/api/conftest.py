import pytest
from fastapi.testclient import TestClient

from src.app.users import UserRead, UserService
from src.app.users.domains import ApiTokenRead
from src.common import context
from src.common.model import BaseModel
from src.network.database import database
from src.network.database.session import db as session_manager


def _reset_tables() -> None:
    BaseModel.metadata.drop_all(database.engine)
    BaseModel.metadata.create_all(database.engine)


@pytest.fixture(scope='function', autouse=True)
def db():
    """
    Requests run their own session through HTTPSessionManagerMiddleware and
    roll back on error responses, so API tests work on committed data and
    start from empty tables instead of sharing a rolled back session.
    """
    context.initialize(
        user_type=context.AppContextUserType.SYSTEM,
        breadcrumb='testing',
    )
    _reset_tables()
    yield
    _reset_tables()


@pytest.fixture(scope='module')
def client() -> TestClient:
    from src.network.http.server import server

    with TestClient(server) as c:
        yield c


def _create_user_with_token(user_factory, **user_kwargs) -> tuple[UserRead, ApiTokenRead]:
    with session_manager(commit_on_success=True):
        service = UserService.factory()
        user = service.create_user(user_factory.build(**user_kwargs))
        token = service.issue_api_token(user.id, name='pytest')
    return user, token


@pytest.fixture(scope='function')
def api_user(user_factory) -> tuple[UserRead, ApiTokenRead]:
    """
    Committed user with a live CLI token
    """
    return _create_user_with_token(user_factory)


@pytest.fixture(scope='function')
def other_api_user(user_factory) -> tuple[UserRead, ApiTokenRead]:
    return _create_user_with_token(user_factory)


@pytest.fixture(scope='function')
def auth_headers(api_user) -> dict[str, str]:
    _, token = api_user
    return {'Authorization': f'Bearer {token.token}'}


@pytest.fixture(scope='function')
def other_auth_headers(other_api_user) -> dict[str, str]:
    _, token = other_api_user
    return {'Authorization': f'Bearer {token.token}'}
