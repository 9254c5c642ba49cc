"""IBKR Web API OAuth 1.0a client

Live session token exchange (Diffie-Hellman + RSA-SHA256), HMAC-SHA256 request
signing and session lifecycle management.
"""

from .core.config import DHParameters, OAuthConfig
from .exceptions import (
    IBKRApiError,
    IBKRAuthenticationError,
    IBKRBadRequestError,
    IBKRClientError,
    IBKRConfigurationError,
    IBKRConnectionError,
    IBKRInvalidCredentialsError,
    IBKRNotFoundError,
    IBKRRateLimitError,
    IBKRServerError,
    IBKRServiceUnavailableError,
    IBKRSessionInitializationError,
    IBKRSignatureInvalidError,
    IBKRTokenExpiredError,
    IBKRTokenInvalidError,
)
from .oauth import (
    Authenticator,
    HeaderFactory,
    IBKRHttpClient,
    IBKROAuthClient,
    ResponseParser,
    SessionToken,
    SignatureGenerator,
)

__version__ = "0.1.0"

__all__ = [
    "Authenticator",
    "DHParameters",
    "HeaderFactory",
    "IBKRApiError",
    "IBKRAuthenticationError",
    "IBKRBadRequestError",
    "IBKRClientError",
    "IBKRConfigurationError",
    "IBKRConnectionError",
    "IBKRHttpClient",
    "IBKRInvalidCredentialsError",
    "IBKRNotFoundError",
    "IBKROAuthClient",
    "IBKRRateLimitError",
    "IBKRServerError",
    "IBKRServiceUnavailableError",
    "IBKRSessionInitializationError",
    "IBKRSignatureInvalidError",
    "IBKRTokenExpiredError",
    "IBKRTokenInvalidError",
    "OAuthConfig",
    "ResponseParser",
    "SessionToken",
    "SignatureGenerator",
]
