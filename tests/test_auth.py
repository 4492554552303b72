"""Unit tests for AuthManager."""
import json
import os
import stat
from unittest.mock import Mock

import pytest
import responses
from responses import matchers

from mobilizon.auth import DEVICE_GRANT_TYPE, SCOPES, AuthManager, AuthorizationError

BASE_URL = 'https://mob.example'


@pytest.fixture
def auth_file(tmp_path):
    path = tmp_path / 'auth.json'
    path.write_text(json.dumps({
        'access_token': 'old-access',
        'refresh_token': 'old-refresh',
        'expires_in': 3600
    }))
    return path


def make_manager(path, **kwargs):
    kwargs.setdefault('client_id', 'client-1')
    kwargs.setdefault('output', Mock())
    kwargs.setdefault('input_func', Mock(return_value=''))
    return AuthManager(BASE_URL, str(path), **kwargs)


class TestRefresh:
    """Test cases for token renewal."""

    @responses.activate
    def test_refresh_success(self, auth_file):
        """Test that renewed tokens are stored with owner-only permissions."""
        responses.add(
            responses.POST,
            BASE_URL + '/api',
            json={'data': {'refreshToken': {'accessToken': 'new-access', 'refreshToken': 'new-refresh'}}}
        )
        manager = make_manager(auth_file)

        assert manager.refresh() is True

        assert manager.current_token() == 'new-access'
        sent = json.loads(responses.calls[0].request.body)
        assert sent['variables'] == {'refreshToken': 'old-refresh'}
        assert 'Authorization' not in responses.calls[0].request.headers
        saved = json.loads(auth_file.read_text())
        assert saved['access_token'] == 'new-access'
        assert saved['refresh_token'] == 'new-refresh'
        assert saved['expires_in'] == 3600
        assert stat.S_IMODE(os.stat(auth_file).st_mode) == 0o600

    @responses.activate
    def test_refresh_graphql_error(self, auth_file):
        """Test that an expired refresh token reports failure."""
        responses.add(
            responses.POST,
            BASE_URL + '/api',
            json={'data': None, 'errors': [{'message': 'Invalid refresh token'}]}
        )
        manager = make_manager(auth_file)

        assert manager.refresh() is False
        assert json.loads(auth_file.read_text())['access_token'] == 'old-access'

    @responses.activate
    def test_refresh_not_retried(self, auth_file):
        """Test that a server error fails the refresh without retrying."""
        responses.add(responses.POST, BASE_URL + '/api', status=502)
        manager = make_manager(auth_file)

        assert manager.refresh() is False
        assert len(responses.calls) == 1

    def test_refresh_without_file(self, tmp_path):
        manager = make_manager(tmp_path / 'missing.json')

        assert manager.refresh() is False


class TestEnsureAuthorized:
    """Test cases for ensure_authorized."""

    def test_non_interactive_failure(self, tmp_path):
        """Test that the device flow is never started unattended."""
        manager = make_manager(tmp_path / 'missing.json')

        with pytest.raises(AuthorizationError, match='--authorize'):
            manager.ensure_authorized()

        manager.input_func.assert_not_called()

    @responses.activate
    def test_refresh_is_enough(self, auth_file):
        responses.add(
            responses.POST,
            BASE_URL + '/api',
            json={'data': {'refreshToken': {'accessToken': 'a2', 'refreshToken': 'r2'}}}
        )
        manager = make_manager(auth_file)

        manager.ensure_authorized()

        assert manager.current_token() == 'a2'

    @responses.activate
    def test_interactive_falls_back_to_device_flow(self, tmp_path):
        responses.add(
            responses.POST,
            BASE_URL + '/login/device/code',
            json={'device_code': 'dev-1', 'user_code': 'ABCD-EFGH', 'verification_uri': BASE_URL + '/login/device'}
        )
        responses.add(
            responses.POST,
            BASE_URL + '/oauth/token',
            json={'access_token': 'a1', 'refresh_token': 'r1', 'expires_in': 3600}
        )
        manager = make_manager(tmp_path / 'auth.json')

        manager.ensure_authorized(interactive=True)

        assert manager.current_token() == 'a1'


class TestDeviceFlow:
    """Test cases for the OAuth2 device authorization grant."""

    @responses.activate
    def test_device_flow_success(self, tmp_path):
        """Test the form posts, user prompts and persisted tokens."""
        responses.add(
            responses.POST,
            BASE_URL + '/login/device/code',
            json={'device_code': 'dev-1', 'user_code': 'ABCD-EFGH', 'verification_uri': BASE_URL + '/login/device'},
            match=[matchers.urlencoded_params_matcher({'client_id': 'client-1', 'scope': SCOPES})]
        )
        responses.add(
            responses.POST,
            BASE_URL + '/oauth/token',
            json={
                'access_token': 'a1',
                'refresh_token': 'r1',
                'expires_in': 28800,
                'refresh_token_expires_in': 15724800,
                'scope': SCOPES,
                'token_type': 'bearer'
            },
            match=[matchers.urlencoded_params_matcher({
                'client_id': 'client-1',
                'device_code': 'dev-1',
                'grant_type': DEVICE_GRANT_TYPE
            })]
        )
        path = tmp_path / 'auth.json'
        manager = make_manager(path)

        manager.authorize_device()

        printed = [c.args[0] for c in manager.output.call_args_list]
        assert any(BASE_URL + '/login/device' in line for line in printed)
        assert 'ABCD-EFGH' in printed
        manager.input_func.assert_called_once()
        saved = json.loads(path.read_text())
        assert saved['access_token'] == 'a1'
        assert saved['refresh_token'] == 'r1'
        assert saved['refresh_token_expires_in'] == 15724800
        assert stat.S_IMODE(os.stat(path).st_mode) == 0o600

    @responses.activate
    def test_device_code_error(self, tmp_path):
        responses.add(
            responses.POST,
            BASE_URL + '/login/device/code',
            json={'error': 'invalid_client'}
        )
        manager = make_manager(tmp_path / 'auth.json')

        with pytest.raises(AuthorizationError, match='invalid_client'):
            manager.authorize_device()

    @responses.activate
    def test_token_error(self, tmp_path):
        """Test that a denied authorization is reported and nothing is saved."""
        responses.add(
            responses.POST,
            BASE_URL + '/login/device/code',
            json={'device_code': 'dev-1', 'user_code': 'X', 'verification_uri': 'u'}
        )
        responses.add(
            responses.POST,
            BASE_URL + '/oauth/token',
            json={'error': 'access_denied'}
        )
        path = tmp_path / 'auth.json'
        manager = make_manager(path)

        with pytest.raises(AuthorizationError, match='access_denied'):
            manager.authorize_device()

        assert not path.exists()

    def test_missing_client_id(self, tmp_path, monkeypatch):
        monkeypatch.delenv('GRAPHQL_CLIENT_ID', raising=False)
        manager = make_manager(tmp_path / 'auth.json', client_id=None)

        with pytest.raises(AuthorizationError, match='GRAPHQL_CLIENT_ID'):
            manager.authorize_device()

    def test_client_id_from_environment(self, tmp_path, monkeypatch):
        monkeypatch.setenv('GRAPHQL_CLIENT_ID', 'env-client')

        manager = make_manager(tmp_path / 'auth.json', client_id=None)

        assert manager.client_id == 'env-client'


class TestRegisterApp:
    """Test cases for OAuth2 application registration."""

    @responses.activate
    def test_register_app(self, tmp_path, monkeypatch):
        monkeypatch.delenv('GRAPHQL_CLIENT_ID', raising=False)
        responses.add(
            responses.POST,
            BASE_URL + '/apps',
            json={'client_id': 'new-client', 'client_secret': 's'}
        )
        manager = make_manager(tmp_path / 'auth.json')

        client_id = manager.register_app()

        assert client_id == 'new-client'
        manager.output.assert_called_once_with('export GRAPHQL_CLIENT_ID=new-client')
        assert os.environ['GRAPHQL_CLIENT_ID'] == 'new-client'
        assert 'scope=' in responses.calls[0].request.body

    @responses.activate
    def test_register_app_failure(self, tmp_path):
        responses.add(responses.POST, BASE_URL + '/apps', json={'error': 'bad request'})
        manager = make_manager(tmp_path / 'auth.json')

        with pytest.raises(AuthorizationError, match='bad request'):
            manager.register_app()
