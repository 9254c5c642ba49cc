"""Tests for the Authenticator token lifecycle

HTTP traffic is mocked with ``responses``; the LST endpoint is served by the
simulated IBKR server from conftest so derivations are real.
"""

import json
import threading
import time

import pytest
import responses
from freezegun import freeze_time

from ibkr_oauth.exceptions import (
    IBKRApiError,
    IBKRAuthenticationError,
    IBKRConnectionError,
    IBKRServerError,
    IBKRServiceUnavailableError,
    IBKRSessionInitializationError,
)
from ibkr_oauth.oauth.authenticator import Authenticator
from ibkr_oauth.oauth.session_token import SessionToken
from ibkr_oauth.oauth.transport import IBKRHttpClient

BASE_URL = "https://api.ibkr.com"
LST_URL = f"{BASE_URL}/v1/api/oauth/live_session_token"
LOGOUT_URL = f"{BASE_URL}/v1/api/logout"
INIT_URL = f"{BASE_URL}/v1/api/iserver/auth/ssodh/init"
TICKLE_URL = f"{BASE_URL}/v1/api/tickle"

NOW_MILLIS = 1762430400000


@pytest.fixture
def authenticator(oauth_config):
    http_client = IBKRHttpClient(oauth_config)
    auth = Authenticator(oauth_config, http_client)
    http_client.authenticator = auth
    return auth


@pytest.fixture
def lst_endpoint(simulated_server):
    """Register the simulated server on the LST endpoint"""
    responses.add_callback(
        responses.POST, LST_URL, callback=simulated_server.lst_callback
    )
    return simulated_server


def _lst_calls():
    return [c for c in responses.calls if c.request.url == LST_URL]


@pytest.mark.unit
class TestAuthenticate:
    @responses.activate
    def test_successful_exchange(self, authenticator, lst_endpoint):
        assert authenticator.authenticate() is True

        assert authenticator.authenticated() is True
        token = authenticator.current_token
        assert token.key_material == lst_endpoint.issued_tokens[0]

        header = lst_endpoint.received_headers[0]
        assert header["oauth_signature_method"] == "RSA-SHA256"
        assert header["realm"] == "test_realm"
        assert header["oauth_consumer_key"] == "TESTCONS"

    @responses.activate
    def test_invalid_signature_still_stores_token(self, authenticator, simulated_server):
        def forged(request):
            status, headers, body = simulated_server.lst_callback(request)
            payload = json.loads(body)
            payload["live_session_token_signature"] = "0" * 40
            return status, headers, json.dumps(payload)

        responses.add_callback(responses.POST, LST_URL, callback=forged)

        assert authenticator.authenticate() is False
        assert authenticator.current_token is not None
        assert authenticator.authenticated() is False

    @responses.activate
    @freeze_time("2025-11-06 12:00:00")
    def test_already_expired_token(self, authenticator, lst_endpoint):
        lst_endpoint.expires_at = NOW_MILLIS - 1000

        assert authenticator.authenticate() is False
        assert authenticator.current_token.expired() is True

    @responses.activate
    def test_rejected_request_keeps_previous_token(self, authenticator, lst_endpoint):
        authenticator.authenticate()
        previous = authenticator.current_token
        responses.replace(
            responses.POST, LST_URL, status=401, json={"error": "token expired"}
        )

        with pytest.raises(IBKRAuthenticationError):
            authenticator.authenticate()

        assert authenticator.current_token is previous

    @responses.activate
    def test_transport_failure_keeps_previous_token(
        self, mocker, authenticator, lst_endpoint
    ):
        authenticator.authenticate()
        previous = authenticator.current_token
        mocker.patch.object(
            authenticator.http_client,
            "post_raw",
            side_effect=IBKRConnectionError("HTTP request failed: refused"),
        )

        with pytest.raises(
            IBKRAuthenticationError, match="Live session token request failed"
        ):
            authenticator.authenticate()

        assert authenticator.current_token is previous

    @responses.activate
    def test_fresh_challenge_per_exchange(self, authenticator, lst_endpoint):
        authenticator.authenticate()
        authenticator.authenticate()

        first, second = lst_endpoint.received_headers
        assert first["diffie_hellman_challenge"] != second["diffie_hellman_challenge"]
        assert first["oauth_nonce"] != second["oauth_nonce"]


@pytest.mark.unit
class TestTokenRefresh:
    @responses.activate
    def test_token_authenticates_when_missing(self, authenticator, lst_endpoint):
        token = authenticator.token()

        assert token is authenticator.current_token
        assert len(_lst_calls()) == 1

    @responses.activate
    def test_valid_token_is_reused(self, authenticator, lst_endpoint):
        authenticator.authenticate()

        authenticator.token()
        authenticator.live_session_token()

        assert len(_lst_calls()) == 1

    @responses.activate
    def test_expired_token_triggers_one_exchange(self, authenticator, lst_endpoint):
        with freeze_time("2025-11-06 12:00:00") as frozen:
            lst_endpoint.expires_at = NOW_MILLIS + 3_600_000
            authenticator.authenticate()

            frozen.move_to("2025-11-06 14:00:00")
            token = authenticator.token()

            assert len(_lst_calls()) == 2
            assert token.key_material == lst_endpoint.issued_tokens[1]

    @responses.activate
    def test_invalid_signature_does_not_refresh(self, authenticator, simulated_server):
        def forged(request):
            status, headers, body = simulated_server.lst_callback(request)
            payload = json.loads(body)
            payload["live_session_token_signature"] = "f" * 40
            return status, headers, json.dumps(payload)

        responses.add_callback(responses.POST, LST_URL, callback=forged)
        authenticator.authenticate()

        authenticator.token()

        assert len(_lst_calls()) == 1

    def test_concurrent_callers_share_one_exchange(
        self, mocker, authenticator, signed_token_factory
    ):
        def slow_exchange():
            time.sleep(0.05)
            return SessionToken(*signed_token_factory())

        exchange = mocker.patch.object(
            authenticator, "_request_live_session_token", side_effect=slow_exchange
        )
        barrier = threading.Barrier(2)
        tokens = []

        def caller():
            barrier.wait()
            tokens.append(authenticator.token())

        threads = [threading.Thread(target=caller) for _ in range(2)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=5)

        exchange.assert_called_once_with()
        assert len(tokens) == 2
        assert tokens[0] is tokens[1]


@pytest.mark.unit
class TestLogout:
    @responses.activate
    def test_not_authenticated_is_noop(self, authenticator):
        assert authenticator.logout() is True
        assert len(responses.calls) == 0

    @responses.activate
    def test_success_discards_token(self, authenticator, lst_endpoint):
        authenticator.authenticate()
        responses.post(LOGOUT_URL, json={"status": True})

        assert authenticator.logout() is True

        assert authenticator.current_token is None
        assert authenticator.authenticated() is False
        logout_request = responses.calls[-1].request
        assert 'oauth_signature_method="HMAC-SHA256"' in logout_request.headers["Authorization"]

    @responses.activate
    def test_failure_keeps_token(self, authenticator, lst_endpoint):
        authenticator.authenticate()
        token = authenticator.current_token
        responses.post(LOGOUT_URL, status=500, body="boom")

        with pytest.raises(IBKRServerError, match="Logout failed"):
            authenticator.logout()

        assert authenticator.current_token is token


@pytest.mark.unit
class TestSessionInitialization:
    def test_requires_authentication(self, authenticator):
        with pytest.raises(IBKRAuthenticationError, match="Not authenticated"):
            authenticator.initialize_session()

    @responses.activate
    def test_success(self, authenticator, lst_endpoint):
        authenticator.authenticate()
        responses.post(INIT_URL, json={"authenticated": True, "connected": True})

        result = authenticator.initialize_session()

        assert result == {"authenticated": True, "connected": True}
        body = json.loads(responses.calls[-1].request.body)
        assert body == {"publish": True, "compete": False}

    @responses.activate
    def test_priority_competes(self, authenticator, lst_endpoint):
        authenticator.authenticate()
        responses.post(INIT_URL, json={"authenticated": True})

        authenticator.initialize_session(priority=True)

        body = json.loads(responses.calls[-1].request.body)
        assert body["compete"] is True

    @responses.activate
    def test_failure(self, authenticator, lst_endpoint):
        authenticator.authenticate()
        responses.post(INIT_URL, status=403, json={"error": "not allowed"})

        with pytest.raises(IBKRSessionInitializationError):
            authenticator.initialize_session()


@pytest.mark.unit
class TestPing:
    def test_requires_authentication(self, authenticator):
        with pytest.raises(IBKRAuthenticationError, match="Not authenticated"):
            authenticator.ping()

    @responses.activate
    def test_success(self, authenticator, lst_endpoint):
        authenticator.authenticate()
        responses.post(TICKLE_URL, json={"session": "abc", "iserver": {}})

        assert authenticator.ping() == {"session": "abc", "iserver": {}}

    @responses.activate
    def test_empty_body(self, authenticator, lst_endpoint):
        authenticator.authenticate()
        responses.post(TICKLE_URL, body="")

        assert authenticator.ping() == {}

    @responses.activate
    def test_failure(self, authenticator, lst_endpoint):
        authenticator.authenticate()
        responses.post(TICKLE_URL, status=503, body="maintenance")

        with pytest.raises(IBKRServiceUnavailableError, match="Ping failed") as exc_info:
            authenticator.ping()

        assert isinstance(exc_info.value, IBKRApiError)


@pytest.mark.unit
class TestHeaders:
    def test_api_header_requires_authentication(self, authenticator):
        with pytest.raises(IBKRAuthenticationError):
            authenticator.header_for_api_request("GET", TICKLE_URL)

    def test_authentication_header_has_challenge(self, authenticator):
        header = authenticator.header_for_authentication()

        assert "diffie_hellman_challenge=" in header
        assert authenticator.realm == "test_realm"
