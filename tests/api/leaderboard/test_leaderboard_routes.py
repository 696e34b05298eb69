from fastapi import status
from fastapi.testclient import TestClient

from tests.factories.stats import build_message


def _upload(client: TestClient, headers: dict[str, str], cost: float, input_tokens: int) -> None:
    response = client.post(
        '/api/upload-stats',
        json=[build_message('2025-06-10T10:00:00Z', cost=cost, input_tokens=input_tokens)],
        headers=headers,
    )
    assert response.status_code == status.HTTP_200_OK


class TestLeaderboardRoute:
    def test_public_ranking(self, client: TestClient, api_user, auth_headers, other_api_user, other_auth_headers):
        user, _ = api_user
        other_user, _ = other_api_user
        _upload(client, auth_headers, cost=1.5, input_tokens=10)
        _upload(client, other_auth_headers, cost=4.0, input_tokens=5)

        # No token required
        response = client.get('/api/leaderboard')

        assert response.status_code == status.HTTP_200_OK
        content = response.json()
        assert content['count'] == 2
        assert content['period'] == 'all_time'
        assert [entry['userId'] for entry in content['results']] == [other_user.id, user.id]
        assert content['results'][0]['rank'] == 1
        assert content['results'][0]['cost'] == 4.0
        assert content['results'][1]['tokens'] == 10

        response = client.get('/api/leaderboard', params={'sortBy': 'inputTokens'})
        assert response.json()['results'][0]['userId'] == user.id

    def test_opted_out_user_is_hidden(self, client: TestClient, api_user, auth_headers, other_auth_headers):
        user, _ = api_user
        _upload(client, auth_headers, cost=1.0, input_tokens=1)
        _upload(client, other_auth_headers, cost=2.0, input_tokens=2)
        client.put(f'/api/user/{user.id}/preferences', json={'optOutPublic': True}, headers=auth_headers)

        response = client.get('/api/leaderboard')

        assert response.json()['count'] == 1
        assert user.id not in [entry['userId'] for entry in response.json()['results']]

    def test_invalid_period(self, client: TestClient) -> None:
        response = client.get('/api/leaderboard', params={'period': 'fortnightly'})

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()['error_type'] == 'invalid_query'


class TestUserStatsRoute:
    def test_summary(self, client: TestClient, api_user, auth_headers) -> None:
        user, _ = api_user
        _upload(client, auth_headers, cost=0.25, input_tokens=12)

        response = client.get(f'/api/user/{user.id}/stats', params={'period': 'monthly'}, headers=auth_headers)

        assert response.status_code == status.HTTP_200_OK
        content = response.json()
        assert content['period'] == 'monthly'
        assert len(content['buckets']) == 1
        assert content['buckets'][0]['periodStart'] == '2025-06-01T00:00:00'
        assert content['totals']['claude_code']['inputTokens'] == 12
        assert content['grandTotal']['cost'] == 0.25
        assert content['grandTotal']['conversations'] == 1
        assert content['grandTotal']['daysTracked'] == 1
        assert content['totals']['claude_code']['models'] == ['claude-sonnet-4']

    def test_summary_requires_own_user(self, client: TestClient, auth_headers, other_api_user) -> None:
        other_user, _ = other_api_user
        response = client.get(f'/api/user/{other_user.id}/stats', headers=auth_headers)

        assert response.status_code == status.HTTP_403_FORBIDDEN
