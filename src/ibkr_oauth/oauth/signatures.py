"""OAuth signature strategies

RSA-SHA256 signs the live session token request; HMAC-SHA256 signs every API
request with the live session token. Both return header-ready values.
"""

from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import quote_plus

from .signature_generator import SignatureGenerator


@dataclass(frozen=True)
class RequestContext:
    """The request an HMAC signature is bound to"""

    method: str = ""
    url: str = ""
    query: Mapping[str, Any] = field(default_factory=dict)
    body: Mapping[str, Any] = field(default_factory=dict)
    live_session_token: str | None = field(default=None, repr=False)


class Signature(ABC):
    """Signature strategy contract"""

    def __init__(self, signature_generator: SignatureGenerator) -> None:
        self.signature_generator = signature_generator

    @property
    @abstractmethod
    def signature_method(self) -> str:
        """Value of the ``oauth_signature_method`` parameter"""

    @abstractmethod
    def generate_signature(self, params: Mapping[str, Any]) -> str:
        """Sign the given OAuth parameters, returning a percent-encoded value"""


class RsaSignature(Signature):
    """RSA-SHA256 signature for authentication requests"""

    @property
    def signature_method(self) -> str:
        return "RSA-SHA256"

    def generate_signature(self, params: Mapping[str, Any]) -> str:
        signature = self.signature_generator.generate_rsa_signature(params)
        return quote_plus(signature, safe="")


class HmacSignature(Signature):
    """HMAC-SHA256 signature for API requests"""

    def __init__(
        self,
        signature_generator: SignatureGenerator,
        request_context: RequestContext | None = None,
    ) -> None:
        super().__init__(signature_generator)
        self.request_context = request_context or RequestContext()

    @property
    def signature_method(self) -> str:
        return "HMAC-SHA256"

    def generate_signature(self, params: Mapping[str, Any]) -> str:
        context = self.request_context
        return self.signature_generator.generate_hmac_signature(
            method=context.method,
            url=context.url,
            params=params,
            query=context.query or {},
            body=context.body or {},
            live_session_token=context.live_session_token,
        )


class Signatures:
    """Factory for signature strategies"""

    @staticmethod
    def create_authentication_strategy(
        signature_generator: SignatureGenerator,
    ) -> RsaSignature:
        return RsaSignature(signature_generator)

    @staticmethod
    def create_api_strategy(
        signature_generator: SignatureGenerator,
        request_context: RequestContext | None = None,
    ) -> HmacSignature:
        return HmacSignature(signature_generator, request_context=request_context)
