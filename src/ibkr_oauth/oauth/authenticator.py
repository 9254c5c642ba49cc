"""Authenticator - live session token lifecycle and request signing"""

import threading
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from loguru import logger

from ibkr_oauth.exceptions import (
    IBKRApiError,
    IBKRAuthenticationError,
    IBKRConnectionError,
    IBKRSessionInitializationError,
)

from .headers import HeaderFactory
from .parameters import realm_for
from .response import ResponseParser
from .session_token import SessionToken
from .signature_generator import LIVE_SESSION_TOKEN_PATH, SignatureGenerator

if TYPE_CHECKING:
    from ibkr_oauth.core.config import OAuthConfig

    from .transport import IBKRHttpClient

LOGOUT_PATH = "/v1/api/logout"
SESSION_INIT_PATH = "/v1/api/iserver/auth/ssodh/init"
TICKLE_PATH = "/v1/api/tickle"


class Authenticator:
    """Owns the current live session token and signs requests with it

    Responsibilities:
    - DH + RSA exchange for a new live session token
    - Token validity, refresh on expiry and logout
    - Brokerage session initialisation and keepalive
    - Authorization header values for the LST and API requests

    State is derived: authenticated means a current token exists and is valid.
    Token replacement is a single attribute assignment, so concurrent readers
    see either the old or the new token.
    """

    def __init__(
        self,
        config: "OAuthConfig",
        http_client: "IBKRHttpClient",
        signature_generator: SignatureGenerator | None = None,
    ) -> None:
        self.config = config
        self.http_client = http_client
        self.signature_generator = signature_generator or SignatureGenerator(config)
        self.header_factory = HeaderFactory(config, self.signature_generator)
        self.response_parser = ResponseParser(self.signature_generator)
        self._current_token: SessionToken | None = None
        # Challenge generation through key derivation is not reentrant
        self._exchange_lock = threading.RLock()

    @property
    def current_token(self) -> SessionToken | None:
        return self._current_token

    @property
    def realm(self) -> str:
        return realm_for(self.config)

    def authenticate(self) -> bool:
        """Run the LST exchange and store the resulting token

        The token is stored even when invalid so callers can inspect it.

        Returns:
            True if the new token is valid

        Raises:
            IBKRAuthenticationError: If the request or response parsing fails;
                the previous token is kept
        """
        logger.info("Requesting new live session token...")
        with self._exchange_lock:
            token = self._request_live_session_token()

        self._current_token = token
        is_valid = token.valid(self.config.consumer_key)
        if is_valid:
            logger.info(
                f"Live session token issued, expires at {token.expiration_time()}"
            )
        else:
            logger.warning(
                "Live session token failed validation "
                f"(expired={token.expired()})"
            )
        return is_valid

    def authenticated(self) -> bool:
        token = self._current_token
        return token is not None and token.valid(self.config.consumer_key)

    def token(self) -> SessionToken | None:
        """Current token, re-running the exchange if missing or expired"""
        self._refresh_token_if_needed()
        return self._current_token

    def live_session_token(self) -> SessionToken | None:
        return self.token()

    def logout(self) -> bool:
        """End the session; a no-op when not authenticated

        Raises:
            IBKRApiError: If the server rejects the logout; the token is kept
        """
        if not self.authenticated():
            return True

        response = self._signed_post(LOGOUT_PATH)
        if not _success(response):
            raise IBKRApiError.from_response(response, message="Logout failed")

        self._current_token = None
        logger.info("Logged out, live session token discarded")
        return True

    def initialize_session(self, priority: bool = False) -> Any:
        """POST /iserver/auth/ssodh/init to open the brokerage session

        Args:
            priority: Compete for the session with other logins

        Raises:
            IBKRAuthenticationError: If not authenticated
            IBKRSessionInitializationError: If the server refuses the session
        """
        self._ensure_authenticated()

        body = {"publish": True, "compete": priority}
        response = self._signed_post(SESSION_INIT_PATH, body=body)
        if not _success(response):
            raise IBKRSessionInitializationError.from_response(response)

        logger.info("Brokerage session initialised")
        return _json_body(response)

    def ping(self) -> Any:
        """POST /tickle to keep the session alive

        Raises:
            IBKRAuthenticationError: If not authenticated
            IBKRApiError: If the keepalive fails
        """
        self._ensure_authenticated()

        response = self._signed_post(TICKLE_PATH)
        if not _success(response):
            raise IBKRApiError.from_response(response, message="Ping failed")
        return _json_body(response)

    def header_for_authentication(self) -> str:
        with self._exchange_lock:
            return self.header_factory.create_authentication_header()

    def header_for_api_request(
        self,
        method: str,
        url: str,
        query: Mapping[str, Any] | None = None,
        body: Mapping[str, Any] | None = None,
    ) -> str:
        """HMAC-SHA256 header value for an API request

        Raises:
            IBKRAuthenticationError: If not authenticated
        """
        token = self._ensure_authenticated()
        return self.header_factory.create_api_header(
            method=method,
            url=url,
            live_session_token=token.key_material,
            query=query or {},
            body=body or {},
        )

    def _request_live_session_token(self) -> SessionToken:
        headers = {"Authorization": f"OAuth {self.header_for_authentication()}"}
        try:
            response = self.http_client.post_raw(
                LIVE_SESSION_TOKEN_PATH, headers=headers
            )
        except IBKRConnectionError as e:
            raise IBKRAuthenticationError(
                f"Live session token request failed: {e}"
            ) from e
        return self.response_parser.parse_live_session_token(response)

    def _signed_post(
        self, path: str, body: Mapping[str, Any] | None = None
    ) -> Any:
        url = self.http_client.build_url(path)
        header = self.header_for_api_request("POST", url, body=body)
        return self.http_client.post_raw(
            path, body=body, headers={"Authorization": f"OAuth {header}"}
        )

    def _ensure_authenticated(self) -> SessionToken:
        token = self._current_token
        if token is None or not token.valid(self.config.consumer_key):
            raise IBKRAuthenticationError(
                "Not authenticated. Call authenticate first."
            )
        return token

    def _refresh_token_if_needed(self) -> None:
        token = self._current_token
        if token is not None and not token.expired():
            return
        with self._exchange_lock:
            # Another thread may have refreshed while we waited
            token = self._current_token
            if token is None or token.expired():
                logger.info("Live session token missing or expired, refreshing")
                self.authenticate()


def _success(response: Any) -> bool:
    return 200 <= response.status_code < 300


def _json_body(response: Any) -> Any:
    if not response.text:
        return {}
    return response.json()
