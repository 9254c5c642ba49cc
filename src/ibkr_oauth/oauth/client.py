"""IBKROAuthClient - facade wiring configuration, transport and authenticator"""

from collections.abc import Mapping
from typing import Any

from ibkr_oauth.core.config import OAuthConfig

from .authenticator import Authenticator
from .session_token import SessionToken
from .transport import IBKRHttpClient


class IBKROAuthClient:
    """Entry point for OAuth-authenticated access to the IBKR Web API

    Delegates the token lifecycle to Authenticator and HTTP calls to
    IBKRHttpClient, which signs each request through the authenticator.
    """

    def __init__(
        self, config: OAuthConfig | None = None, live: bool | None = None
    ) -> None:
        """Initialize the client

        Args:
            config: OAuth configuration; loaded from the environment when None
            live: Production mode override; sets config.environment when given,
                otherwise the configured environment is used
        """
        self.config = config or OAuthConfig.from_env()
        if live is not None:
            self.config.environment = "production" if live else "sandbox"
        self.live = self.config.production

        self.http_client = IBKRHttpClient(self.config)
        self.authenticator = Authenticator(self.config, self.http_client)
        self.http_client.authenticator = self.authenticator

    def authenticate(self) -> bool:
        return self.authenticator.authenticate()

    def authenticated(self) -> bool:
        return self.authenticator.authenticated()

    def token(self) -> SessionToken | None:
        return self.authenticator.token()

    def live_session_token(self) -> SessionToken | None:
        return self.authenticator.live_session_token()

    def logout(self) -> bool:
        return self.authenticator.logout()

    def initialize_session(self, priority: bool = False) -> Any:
        return self.authenticator.initialize_session(priority=priority)

    def ping(self) -> Any:
        return self.authenticator.ping()

    def get(
        self,
        path: str,
        params: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> Any:
        return self.http_client.get(path, params=params, headers=headers)

    def post(
        self,
        path: str,
        body: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> Any:
        return self.http_client.post(path, body=body, headers=headers)

    def put(
        self,
        path: str,
        body: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> Any:
        return self.http_client.put(path, body=body, headers=headers)

    def delete(self, path: str, headers: Mapping[str, str] | None = None) -> Any:
        return self.http_client.delete(path, headers=headers)

    def close(self) -> None:
        self.http_client.close()

    @property
    def production(self) -> bool:
        return self.config.production

    @property
    def sandbox(self) -> bool:
        return self.config.sandbox

    @property
    def environment(self) -> str:
        return self.config.environment
