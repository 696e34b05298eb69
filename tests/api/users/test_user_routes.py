from fastapi import status
from fastapi.testclient import TestClient

from src.app.stats.models import MessageStats, UserStats
from src.app.users.models import ApiToken, User
from src.network.database.session import db as session_manager
from tests.factories.stats import build_message


class TestPreferences:
    def test_defaults(self, client: TestClient, auth_headers, api_user) -> None:
        user, _ = api_user
        response = client.get(f'/api/user/{user.id}/preferences', headers=auth_headers)

        assert response.status_code == status.HTTP_200_OK
        content = response.json()
        assert content['userId'] == user.id
        assert content['timezone'] == 'UTC'
        assert content['currency'] == 'USD'
        assert content['optOutPublic'] is False

    def test_update(self, client: TestClient, auth_headers, api_user) -> None:
        user, _ = api_user
        response = client.put(
            f'/api/user/{user.id}/preferences',
            json={'timezone': 'Europe/Berlin', 'currency': 'eur', 'optOutPublic': True},
            headers=auth_headers,
        )

        assert response.status_code == status.HTTP_200_OK
        content = response.json()
        assert content['timezone'] == 'Europe/Berlin'
        assert content['currency'] == 'EUR'
        assert content['optOutPublic'] is True

        # Committed with the request
        response = client.get(f'/api/user/{user.id}/preferences', headers=auth_headers)
        assert response.json()['timezone'] == 'Europe/Berlin'

    def test_invalid_timezone(self, client: TestClient, auth_headers, api_user) -> None:
        user, _ = api_user
        response = client.put(
            f'/api/user/{user.id}/preferences',
            json={'timezone': 'Mars/Olympus_Mons'},
            headers=auth_headers,
        )

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
        assert response.json()['detail'][0]['loc'] == ['body', 'timezone']

    def test_other_users_preferences_are_forbidden(self, client: TestClient, auth_headers, other_api_user) -> None:
        other_user, _ = other_api_user
        response = client.get(f'/api/user/{other_user.id}/preferences', headers=auth_headers)

        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert response.json()['detail'] == 'Unauthorized'


class TestDeleteUser:
    def _upload(self, client: TestClient, headers: dict[str, str]) -> None:
        response = client.post(
            '/api/upload-stats',
            json=[build_message('2025-06-10T10:00:00Z', input_tokens=4)],
            headers=headers,
        )
        assert response.status_code == status.HTTP_200_OK

    def test_delete_data_keeps_account(self, client: TestClient, auth_headers, api_user) -> None:
        user, _ = api_user
        self._upload(client, auth_headers)

        response = client.delete(f'/api/user/{user.id}', params={'type': 'data'}, headers=auth_headers)

        assert response.status_code == status.HTTP_200_OK
        content = response.json()
        assert content['message'] == 'All user data deleted successfully'
        assert content['messagesDeleted'] == 1
        assert content['aggregatesDeleted'] == 6
        with session_manager():
            assert MessageStats.count(user_id=user.id) == 0
            assert UserStats.count(user_id=user.id) == 0
            assert User.get_or_none(id=user.id) is not None

    def test_delete_account(self, client: TestClient, auth_headers, api_user) -> None:
        user, _ = api_user
        self._upload(client, auth_headers)

        response = client.delete(f'/api/user/{user.id}', params={'type': 'account'}, headers=auth_headers)

        assert response.status_code == status.HTTP_200_OK
        assert response.json()['message'] == 'Account and all data deleted successfully'
        with session_manager():
            assert User.get_or_none(id=user.id) is None
            assert ApiToken.count(user_id=user.id) == 0

        # The token went with the account
        response = client.get(f'/api/user/{user.id}/preferences', headers=auth_headers)
        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_invalid_delete_type(self, client: TestClient, auth_headers, api_user) -> None:
        user, _ = api_user
        response = client.delete(f'/api/user/{user.id}', params={'type': 'everything'}, headers=auth_headers)

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()['error_type'] == 'invalid_delete_type'
