from fastapi import status
from fastapi.testclient import TestClient


def test_api_healthcheck(client: TestClient) -> None:
    response = client.get('/healthcheck/api')

    assert response.status_code == status.HTTP_200_OK
    assert 'Stats are flowing' in response.text


def test_database_healthcheck(client: TestClient) -> None:
    response = client.get('/healthcheck/database')

    assert response.status_code == status.HTTP_200_OK
    assert 'Regular DB is happy' in response.text
    assert 'Read-only DB is happy' in response.text
