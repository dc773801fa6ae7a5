"""
Tests for the admin API
"""

import asyncio
import threading
import pytest
from unittest.mock import AsyncMock, Mock

import backend
from core.auth_manager import AuthManager
from core.data_manager import MemorySettingsStore
from core.moderation.logger import ModerationLogger
from core.moderation.models import DefenseState
from core.moderation.protection_manager import ProtectionManager
from core.shared_state import SharedState


class TestBackend:

    @pytest.fixture
    def shared(self, monkeypatch):
        shared = SharedState()
        shared.protection_manager = ProtectionManager(MemorySettingsStore())
        monkeypatch.setattr(backend, 'state', shared)
        return shared

    @pytest.fixture
    def auth(self, monkeypatch):
        auth = AuthManager('admin', 'secret', 'test-key')
        monkeypatch.setattr(backend, 'auth_manager', auth)
        return auth

    @pytest.fixture
    def client(self, shared, auth):
        backend.app.config['TESTING'] = True
        backend.limiter.enabled = False
        with backend.app.test_client() as client:
            yield client

    @pytest.fixture
    def headers(self, auth):
        token = auth.create_jwt_token({'username': 'admin', 'role': 'admin'})
        return {'Authorization': f'Bearer {token}'}

    @pytest.fixture
    def bot_loop(self):
        loop = asyncio.new_event_loop()
        thread = threading.Thread(target=loop.run_forever, daemon=True)
        thread.start()
        yield loop
        loop.call_soon_threadsafe(loop.stop)
        thread.join(timeout=1)
        loop.close()

    # Health

    def test_health_without_bot(self, client):
        response = client.get('/api/health')

        assert response.status_code == 200
        assert response.get_json()['status'] == 'ok'
        assert response.get_json()['bot_status'] == 'offline'

    def test_health_reports_moderation(self, client, shared):
        shared.health_checker = Mock()
        shared.health_checker.moderation_health_check.return_value = {'status': 'degraded', 'issues': ['x']}

        body = client.get('/api/health').get_json()

        assert body['status'] == 'degraded'
        assert body['issues'] == ['x']

    def test_health_reports_sessions(self, client, auth):
        auth.create_session({'username': 'admin', 'role': 'admin'})

        body = client.get('/api/health').get_json()

        assert body['sessions']['active_sessions'] == 1
        assert body['sessions']['locked_accounts'] == 0

    def test_login_purges_expired_sessions(self, client, auth):
        stale = auth.create_session({'username': 'admin', 'role': 'admin'})
        auth.sessions[stale]['expires_at'] = 0

        client.post('/api/auth/login', json={'username': 'admin', 'password': 'secret'})

        assert stale not in auth.sessions
        assert len(auth.sessions) == 1

    # Authentication

    def test_login_success_sets_cookie(self, client):
        response = client.post('/api/auth/login', json={'username': 'admin', 'password': 'secret'})

        assert response.status_code == 200
        body = response.get_json()
        assert body['success'] is True
        assert body['token']
        assert 'session_token=' in response.headers['Set-Cookie']

        me = client.get('/api/auth/me')
        assert me.status_code == 200
        assert me.get_json()['user']['username'] == 'admin'

    def test_login_wrong_password(self, client):
        response = client.post('/api/auth/login', json={'username': 'admin', 'password': 'nope'})

        assert response.status_code == 401

    def test_login_missing_credentials(self, client):
        assert client.post('/api/auth/login', json={}).status_code == 400

    def test_login_rate_limited(self, client):
        backend.limiter.enabled = True
        backend.limiter.reset()
        try:
            codes = [
                client.post('/api/auth/login', json={'username': 'x', 'password': 'y'}).status_code
                for _ in range(6)
            ]
        finally:
            backend.limiter.reset()
            backend.limiter.enabled = False

        assert codes[:5] == [401] * 5
        assert codes[5] == 429

    def test_logout_destroys_session(self, client, auth):
        client.post('/api/auth/login', json={'username': 'admin', 'password': 'secret'})

        assert client.post('/api/auth/logout').status_code == 200
        assert auth.sessions == {}
        assert client.get('/api/auth/me').status_code == 401

    def test_bearer_token_accepted(self, client, headers):
        assert client.get('/api/auth/me', headers=headers).status_code == 200

    def test_protected_routes_require_auth(self, client):
        assert client.get('/api/1/moderation').status_code == 401
        assert client.put('/api/1/raid', json={}).status_code == 401
        assert client.post('/api/1/raid/deactivate').status_code == 401
        assert client.get('/api/1/moderation/logs').status_code == 401

    def test_invalid_token_rejected(self, client):
        response = client.get('/api/1/moderation', headers={'Authorization': 'Bearer garbage'})

        assert response.status_code == 401

    # Settings

    def test_get_moderation_defaults(self, client, headers):
        body = client.get('/api/42/moderation', headers=headers).get_json()

        assert body['enabled'] is True
        assert body['spamMaxMsgs'] == 6
        assert body['whitelistDomains'] == []

    def test_put_moderation_merges(self, client, headers):
        response = client.put('/api/42/moderation', headers=headers, json={'whitelistDomains': ['GitHub.com']})

        assert response.status_code == 200
        assert response.get_json()['settings']['whitelistDomains'] == ['github.com']

        body = client.get('/api/42/moderation', headers=headers).get_json()
        assert body['whitelistDomains'] == ['github.com']
        assert body['blockLinks'] is True

    def test_put_raid_settings(self, client, headers):
        response = client.put('/api/42/raid', headers=headers, json={'enabled': True, 'joinThreshold': 5})

        assert response.status_code == 200
        body = client.get('/api/42/raid', headers=headers).get_json()
        assert body['enabled'] is True
        assert body['joinThreshold'] == 5

    def test_put_invalid_value(self, client, headers):
        response = client.put('/api/42/raid', headers=headers, json={'joinThreshold': 'many'})

        assert response.status_code == 400
        assert 'joinThreshold' in response.get_json()['error']

    def test_put_requires_object(self, client, headers):
        assert client.put('/api/42/moderation', headers=headers, json=[1, 2]).status_code == 400

    def test_invalid_guild_id(self, client, headers):
        assert client.get('/api/general/moderation', headers=headers).status_code == 400

    def test_store_rejects_write(self, client, headers, shared):
        store = Mock()
        store.fetch.return_value = None
        store.save.return_value = False
        shared.protection_manager = ProtectionManager(store)

        assert client.put('/api/42/moderation', headers=headers, json={'enabled': False}).status_code == 503

    # Raid defense

    def test_raid_status_idle(self, client, headers, shared):
        shared.raid_detector = Mock()
        shared.raid_detector.get_state.return_value = None
        shared.raid_detector.join_count.return_value = 3

        body = client.get('/api/42/raid/status', headers=headers).get_json()

        assert body == {'active': False, 'recentJoins': 3}

    def test_raid_status_active(self, client, headers, shared):
        shared.raid_detector = Mock()
        shared.raid_detector.get_state.return_value = DefenseState(
            activated_at=1000, active_until=301000, join_count=8, slowmode_seconds=10
        )

        body = client.get('/api/42/raid/status', headers=headers).get_json()

        assert body['active'] is True
        assert body['state']['activeUntil'] == 301000
        shared.raid_detector.get_state.assert_called_once_with(42)

    def test_raid_deactivate_runs_on_bot_loop(self, client, headers, shared, bot_loop):
        shared.raid_detector = Mock()
        shared.raid_detector.deactivate = AsyncMock(return_value=True)
        shared.loop = bot_loop

        response = client.post('/api/42/raid/deactivate', headers=headers)

        assert response.status_code == 200
        shared.raid_detector.deactivate.assert_awaited_once_with(42, reason='manual by admin')

    def test_raid_deactivate_when_idle(self, client, headers, shared, bot_loop):
        shared.raid_detector = Mock()
        shared.raid_detector.deactivate = AsyncMock(return_value=False)
        shared.loop = bot_loop

        assert client.post('/api/42/raid/deactivate', headers=headers).status_code == 404

    def test_raid_deactivate_without_bot(self, client, headers):
        assert client.post('/api/42/raid/deactivate', headers=headers).status_code == 503

    # Audit logs

    def test_moderation_logs(self, client, headers, shared):
        audit_logger = ModerationLogger(Mock())
        for action in ('spam', 'filter_link', 'spam'):
            asyncio.run(audit_logger.log_action(42, action, f"{action} line"))
        shared.audit_logger = audit_logger

        body = client.get('/api/42/moderation/logs?action=spam&limit=1', headers=headers).get_json()

        assert body['count'] == 1
        assert body['logs'][0]['action'] == 'spam'

    def test_moderation_logs_without_bot(self, client, headers):
        assert client.get('/api/42/moderation/logs', headers=headers).get_json() == {'logs': [], 'count': 0}
