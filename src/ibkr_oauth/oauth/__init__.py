"""IBKR OAuth 1.0a module

SignatureGenerator - nonces, base strings, RSA/HMAC signatures, DH derivation
Signatures - RSA-SHA256 and HMAC-SHA256 signature strategies
ParameterBuilder - OAuth parameter assembly for LST and API requests
HeaderFactory - Authorization header formatting
ResponseParser - LST response validation and decoding
SessionToken - live session token with validity rules
Authenticator - token lifecycle and request signing
IBKRHttpClient - signed HTTP transport
IBKROAuthClient - facade wiring the pieces together
"""

from .authenticator import Authenticator
from .client import IBKROAuthClient
from .headers import HeaderFactory
from .parameters import (
    PRODUCTION_REALM,
    TEST_REALM,
    ApiParameters,
    AuthenticationParameters,
    ParameterBuilder,
)
from .response import ResponseParser
from .session_token import SessionToken
from .signature_generator import SignatureGenerator
from .signatures import (
    HmacSignature,
    RequestContext,
    RsaSignature,
    Signature,
    Signatures,
)
from .transport import IBKRHttpClient

__all__ = [
    "ApiParameters",
    "AuthenticationParameters",
    "Authenticator",
    "HeaderFactory",
    "HmacSignature",
    "IBKRHttpClient",
    "IBKROAuthClient",
    "PRODUCTION_REALM",
    "ParameterBuilder",
    "RequestContext",
    "ResponseParser",
    "RsaSignature",
    "SessionToken",
    "Signature",
    "SignatureGenerator",
    "Signatures",
    "TEST_REALM",
]
