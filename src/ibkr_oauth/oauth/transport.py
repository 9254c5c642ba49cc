"""IBKRHttpClient - synchronous HTTP transport that signs every request"""

import json
import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

import requests
from loguru import logger

from ibkr_oauth.exceptions import (
    IBKRApiError,
    IBKRAuthenticationError,
    IBKRConnectionError,
)

from .signature_generator import LIVE_SESSION_TOKEN_PATH

if TYPE_CHECKING:
    from ibkr_oauth.core.config import OAuthConfig

    from .authenticator import Authenticator


class _LoguruHandler(logging.Handler):
    """Bridge stdlib logging into loguru"""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno
        logger.opt(depth=6, exception=record.exc_info).log(
            level, record.getMessage()
        )


class IBKRHttpClient:
    """HTTP client for the IBKR Web API

    Responsibilities:
    - Authorization header on every request (RSA for the LST endpoint,
      HMAC for everything else)
    - Mapping HTTP failures to the IBKR error hierarchy
    """

    _logging_bridge_installed = False

    def __init__(
        self,
        config: "OAuthConfig",
        authenticator: "Authenticator | None" = None,
        session: requests.Session | None = None,
    ) -> None:
        self.config = config
        self.authenticator = authenticator
        self._session = session or requests.Session()
        self._session.headers.update(
            {
                "User-Agent": config.user_agent,
                "Accept": "application/json",
                "Connection": "keep-alive",
            }
        )
        self.install_logging_bridge()

    @classmethod
    def install_logging_bridge(cls) -> None:
        """Bridge stdlib logging used by requests/urllib3 into loguru once."""
        if cls._logging_bridge_installed:
            return

        handler = _LoguruHandler()
        for name in ("urllib3", "requests"):
            std_logger = logging.getLogger(name)
            std_logger.setLevel(logging.DEBUG)
            std_logger.addHandler(handler)
            std_logger.propagate = False

        cls._logging_bridge_installed = True

    def close(self) -> None:
        self._session.close()

    def get(
        self,
        path: str,
        params: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> Any:
        return self.request("GET", path, params=params, headers=headers)

    def post(
        self,
        path: str,
        body: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> Any:
        return self.request("POST", path, body=body, headers=headers)

    def post_raw(
        self,
        path: str,
        body: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> requests.Response:
        return self.request_raw("POST", path, body=body, headers=headers)

    def put(
        self,
        path: str,
        body: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> Any:
        return self.request("PUT", path, body=body, headers=headers)

    def delete(
        self, path: str, headers: Mapping[str, str] | None = None
    ) -> Any:
        return self.request("DELETE", path, headers=headers)

    def request(
        self,
        method: str,
        path: str,
        params: Mapping[str, Any] | None = None,
        body: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> Any:
        """Send a signed request and return the decoded body

        Returns:
            Parsed JSON, raw text for non-JSON bodies, or None for empty bodies

        Raises:
            IBKRAuthenticationError: On 401
            IBKRApiError: On any other non-2xx status or transport failure
        """
        response = self.request_raw(
            method, path, params=params, body=body, headers=headers
        )
        return self._handle_response(response)

    def request_raw(
        self,
        method: str,
        path: str,
        params: Mapping[str, Any] | None = None,
        body: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> requests.Response:
        """Send a signed request and return the response without inspecting it

        Raises:
            IBKRConnectionError: If the request never got a response
        """
        method = method.upper()
        url = self.build_url(path)
        params = dict(params or {})
        body = dict(body or {})

        request_headers = dict(headers or {})
        if not any(k.lower() == "authorization" for k in request_headers):
            authorization = self._authorization_header(method, url, params, body)
            if authorization is not None:
                request_headers["Authorization"] = authorization

        kwargs: dict[str, Any] = {
            "headers": request_headers,
            "timeout": self.config.timeout,
        }
        if method in ("GET", "DELETE"):
            kwargs["params"] = params
        elif method in ("POST", "PUT"):
            request_headers["Content-Type"] = "application/json"
            if body:
                kwargs["data"] = json.dumps(body)

        logger.debug(f"{method} {url} {self._masked(request_headers)}")
        try:
            response = self._session.request(method, url, **kwargs)
        except requests.RequestException as e:
            logger.warning(f"Network error: {e}")
            raise IBKRConnectionError(f"HTTP request failed: {e}") from e

        logger.debug(
            f"Response: status={response.status_code} url={url} body={response.text}"
        )
        return response

    def build_url(self, path: str) -> str:
        if not path.startswith("/"):
            path = f"/{path}"
        return f"{self.config.base_url}{path}"

    def _authorization_header(
        self,
        method: str,
        url: str,
        params: dict[str, Any],
        body: dict[str, Any],
    ) -> str | None:
        if self.authenticator is None:
            return None

        if LIVE_SESSION_TOKEN_PATH in url:
            return f"OAuth {self.authenticator.header_for_authentication()}"

        query = params if method == "GET" else {}
        request_body = body if method in ("POST", "PUT") else {}
        header = self.authenticator.header_for_api_request(
            method=method,
            url=url.split("?")[0],
            query=query,
            body=request_body,
        )
        return f"OAuth {header}"

    def _handle_response(self, response: requests.Response) -> Any:
        status = response.status_code
        if 200 <= status < 300:
            content = response.text
            if not content:
                return None
            try:
                return response.json()
            except ValueError:
                return content

        logger.error(f"Request failed: {status} - {response.text}")
        if status == 401:
            raise IBKRAuthenticationError.from_response(response)
        raise IBKRApiError.from_response(response)

    @staticmethod
    def _masked(headers: Mapping[str, str]) -> dict[str, str]:
        return {
            k: ("***" if k.lower() == "authorization" else v)
            for k, v in headers.items()
        }
