"""OAuth parameter builders

``ParameterBuilder`` accumulates OAuth protocol parameters through chainable
``add_*`` calls. ``AuthenticationParameters`` and ``ApiParameters`` assemble the
complete set for the LST request and for API requests respectively.
"""

from typing import TYPE_CHECKING

from .signature_generator import SignatureGenerator
from .signatures import (
    HmacSignature,
    RequestContext,
    RsaSignature,
    Signature,
    Signatures,
)

if TYPE_CHECKING:
    from ibkr_oauth.core.config import OAuthConfig

PRODUCTION_REALM = "limited_poa"
TEST_REALM = "test_realm"


def realm_for(config: "OAuthConfig") -> str:
    return PRODUCTION_REALM if config.production else TEST_REALM


class ParameterBuilder:
    """Chainable accumulator of OAuth parameters"""

    def __init__(
        self, config: "OAuthConfig", signature_generator: SignatureGenerator
    ) -> None:
        self.config = config
        self.signature_generator = signature_generator
        self._params: dict[str, str] = {}

    def reset(self) -> "ParameterBuilder":
        self._params = {}
        return self

    def add_consumer_key(self) -> "ParameterBuilder":
        self._params["oauth_consumer_key"] = self.config.consumer_key
        return self

    def add_access_token(self) -> "ParameterBuilder":
        self._params["oauth_token"] = self.config.access_token
        return self

    def add_nonce(self) -> "ParameterBuilder":
        self._params["oauth_nonce"] = self.signature_generator.generate_nonce()
        return self

    def add_timestamp(self) -> "ParameterBuilder":
        self._params["oauth_timestamp"] = self.signature_generator.generate_timestamp()
        return self

    def add_realm(self) -> "ParameterBuilder":
        self._params["realm"] = realm_for(self.config)
        return self

    def build(self) -> dict[str, str]:
        """Copy of the accumulated parameters"""
        return dict(self._params)

    def _add_signature_method(self, method: str) -> "ParameterBuilder":
        self._params["oauth_signature_method"] = method
        return self

    def _add_signature(self, signature: str) -> "ParameterBuilder":
        self._params["oauth_signature"] = signature
        return self

    def _sign_with(self, strategy: Signature) -> "ParameterBuilder":
        return self._add_signature(strategy.generate_signature(self.build()))


class AuthenticationParameters(ParameterBuilder):
    """Parameters for the live session token request (RSA-SHA256 + DH challenge)"""

    def __init__(
        self, config: "OAuthConfig", signature_generator: SignatureGenerator
    ) -> None:
        super().__init__(config, signature_generator)
        self.strategy: RsaSignature = Signatures.create_authentication_strategy(
            signature_generator
        )

    def add_diffie_hellman_challenge(self) -> "AuthenticationParameters":
        self._params["diffie_hellman_challenge"] = (
            self.signature_generator.generate_dh_challenge()
        )
        return self

    def add_rsa_signature(self) -> "AuthenticationParameters":
        self._sign_with(self.strategy)
        return self

    def build_complete(self) -> dict[str, str]:
        self.reset()
        self.add_consumer_key().add_access_token().add_nonce().add_timestamp()
        self._add_signature_method(self.strategy.signature_method)
        self.add_diffie_hellman_challenge().add_rsa_signature()
        return self.add_realm().build()


class ApiParameters(ParameterBuilder):
    """Parameters for an API request signed with the live session token"""

    def __init__(
        self,
        config: "OAuthConfig",
        signature_generator: SignatureGenerator,
        request_context: RequestContext | None = None,
    ) -> None:
        super().__init__(config, signature_generator)
        self.request_context = request_context or RequestContext()
        self.strategy: HmacSignature = Signatures.create_api_strategy(
            signature_generator, request_context=self.request_context
        )

    def add_hmac_signature(self) -> "ApiParameters":
        self._sign_with(self.strategy)
        return self

    def build_complete(self) -> dict[str, str]:
        self.reset()
        self.add_consumer_key().add_access_token().add_nonce().add_timestamp()
        self._add_signature_method(self.strategy.signature_method)
        return self.add_hmac_signature().add_realm().build()
