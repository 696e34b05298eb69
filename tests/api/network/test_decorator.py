from fastapi import APIRouter, status
from fastapi.testclient import TestClient

from src.common.exceptions import APIException
from src.network.database.decorator import read_only_route
from src.network.database.session import DatabaseMode
from src.network.http.server import server

api_test_router = APIRouter()


@api_test_router.get('/not-read-only')
def does_not_use_read_only_route():
    from src.network.database.session import db

    if db.mode == DatabaseMode.READ_ONLY:
        raise APIException(message='Using the read only!', code=status.HTTP_500_INTERNAL_SERVER_ERROR)
    return


@api_test_router.get('/read-only')
@read_only_route
def uses_read_only_route():
    from src.network.database.session import db

    if db.mode != DatabaseMode.READ_ONLY:
        raise APIException(message='Not using the read only!', code=status.HTTP_500_INTERNAL_SERVER_ERROR)
    return


@api_test_router.post('/read-only-write')
@read_only_route
def writes_in_read_only_route():
    from src.app.users.domains import UserCreate
    from src.app.users.models import User

    User.create(UserCreate(username='sneaky-writer'))
    return


server.include_router(api_test_router, prefix='/test/network')


def test_decorator_uses_read_only_route(
    client: TestClient,
) -> None:
    """
    If this test passes, it means the session manager would have went for the read only database
    """
    response = client.get('/test/network/read-only')
    assert response.status_code == status.HTTP_200_OK


def test_not_decorated_uses_read_write_route(
    client: TestClient,
) -> None:
    response = client.get('/test/network/not-read-only')
    assert response.status_code == status.HTTP_200_OK


def test_read_only_route_refuses_writes(
    client: TestClient,
) -> None:
    client_without_raise = TestClient(server, raise_server_exceptions=False)
    response = client_without_raise.post('/test/network/read-only-write')
    assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
