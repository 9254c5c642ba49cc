"""HeaderFactory - formats OAuth parameters into Authorization header values"""

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from .parameters import ApiParameters, AuthenticationParameters
from .signature_generator import SignatureGenerator
from .signatures import RequestContext

if TYPE_CHECKING:
    from ibkr_oauth.core.config import OAuthConfig


class HeaderFactory:
    """Creates OAuth header values for authentication and API requests

    Output is ``key1="value1", key2="value2"`` sorted by key. The ``OAuth ``
    scheme prefix is added by the transport.
    """

    def __init__(
        self, config: "OAuthConfig", signature_generator: SignatureGenerator
    ) -> None:
        self.config = config
        self.signature_generator = signature_generator

    def create_authentication_header(self) -> str:
        builder = AuthenticationParameters(self.config, self.signature_generator)
        return self.format_oauth_header(builder.build_complete())

    def create_api_header(
        self,
        method: str,
        url: str,
        live_session_token: str | None,
        query: Mapping[str, Any] | None = None,
        body: Mapping[str, Any] | None = None,
    ) -> str:
        context = RequestContext(
            method=method,
            url=url,
            query=query or {},
            body=body or {},
            live_session_token=live_session_token,
        )
        builder = ApiParameters(
            self.config, self.signature_generator, request_context=context
        )
        return self.format_oauth_header(builder.build_complete())

    @staticmethod
    def format_oauth_header(params: Mapping[str, Any]) -> str:
        return ", ".join(
            f'{k}="{_quote_safe(v)}"' for k, v in sorted(params.items())
        )


def _quote_safe(value: Any) -> str:
    return ("" if value is None else str(value)).replace('"', "%22")
