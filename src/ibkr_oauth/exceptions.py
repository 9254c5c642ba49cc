"""IBKR OAuth exceptions module"""

import json
from typing import Any


def _default_message_for_status(status: int) -> str:
    if status == 400:
        return "Bad request - invalid parameters"
    if status == 401:
        return "Authentication failed"
    if status == 403:
        return "Forbidden - insufficient permissions"
    if status == 404:
        return "Resource not found"
    if status == 429:
        return "Rate limit exceeded"
    if 500 <= status <= 599:
        return "Server error occurred"
    return f"HTTP request failed with status {status}"


def extract_error_details(response: Any) -> dict[str, Any]:
    """Pull message, code and request id out of an error response body

    JSON bodies are searched for the keys IBKR uses; anything else is
    truncated to its first 200 characters.
    """
    if response is None:
        return {}
    body = getattr(response, "text", None)
    if not body:
        return {}

    headers = getattr(response, "headers", None) or {}
    try:
        parsed = json.loads(body)
    except ValueError:
        return {"message": body.strip()[:200], "raw_response": body}

    if not isinstance(parsed, dict):
        return {"raw_response": parsed}

    return {
        "message": parsed.get("error")
        or parsed.get("message")
        or parsed.get("errorMessage"),
        "code": parsed.get("code") or parsed.get("errorCode"),
        "request_id": parsed.get("requestId") or headers.get("X-Request-ID"),
        "raw_response": parsed,
    }


class IBKRClientError(Exception):
    """Base exception for IBKR client errors"""

    default_message = "IBKR client error"

    def __init__(
        self,
        message: str | None = None,
        code: Any = None,
        details: dict[str, Any] | None = None,
        response: Any = None,
    ) -> None:
        super().__init__(message or self.default_message)
        self.code = code
        self.details = details
        self.response = response

    @property
    def message(self) -> str:
        return str(self)

    @classmethod
    def from_response(cls, response: Any, message: str | None = None):
        """Build an error from an HTTP response, keeping status and body"""
        return cls._build(response, message)

    @classmethod
    def _build(cls, response: Any, message: str | None = None):
        details = extract_error_details(response)
        status = response.status_code
        error_message = (
            message
            or details.get("message")
            or _default_message_for_status(status)
        )
        return cls(
            error_message,
            code=details.get("code") or status,
            details=details,
            response=response,
        )

    def to_dict(self) -> dict[str, Any]:
        data = {
            "error": type(self).__name__,
            "message": self.message,
            "code": self.code,
            "details": self.details,
        }
        return {k: v for k, v in data.items() if v is not None}


class IBKRConfigurationError(IBKRClientError):
    """Raised when credentials, key material or DH parameters are unusable"""

    default_message = "Configuration error"


class IBKRAuthenticationError(IBKRClientError):
    """Raised when OAuth authentication fails"""

    default_message = "Authentication failed"

    @classmethod
    def from_response(cls, response: Any, message: str | None = None):
        """Pick the most specific authentication error for the response"""
        if cls is not IBKRAuthenticationError:
            return cls._build(response, message)

        details = extract_error_details(response)
        error_message = message or details.get("message")
        status = response.status_code

        if status == 401:
            lowered = (error_message or "").lower()
            if "expired" in lowered:
                error_cls: type[IBKRAuthenticationError] = IBKRTokenExpiredError
            elif "signature" in lowered:
                error_cls = IBKRSignatureInvalidError
            elif "invalid" in lowered:
                error_cls = IBKRTokenInvalidError
            else:
                error_cls = IBKRInvalidCredentialsError
        elif status == 403:
            error_cls = IBKRSessionInitializationError
        else:
            error_cls = IBKRAuthenticationError
            error_message = error_message or _default_message_for_status(status)

        return error_cls(
            error_message,
            code=details.get("code") or status,
            details=details,
            response=response,
        )


class IBKRInvalidCredentialsError(IBKRAuthenticationError):
    """Raised when the server rejects the consumer key or access token"""

    default_message = "Invalid credentials provided"


class IBKRTokenExpiredError(IBKRAuthenticationError):
    """Raised when the server reports an expired token"""

    default_message = "Access token has expired"


class IBKRTokenInvalidError(IBKRAuthenticationError):
    """Raised when the server reports an invalid token"""

    default_message = "Access token is invalid"


class IBKRSignatureInvalidError(IBKRAuthenticationError):
    """Raised when the server rejects the OAuth signature"""

    default_message = "OAuth signature validation failed"


class IBKRSessionInitializationError(IBKRAuthenticationError):
    """Raised when the brokerage session cannot be initialised"""

    default_message = "Failed to initialize brokerage session"


class IBKRApiError(IBKRClientError):
    """Raised when a call on an authenticated session fails"""

    default_message = "API request failed"

    @classmethod
    def from_response(cls, response: Any, message: str | None = None):
        """Pick the most specific API error for the response status"""
        if cls is not IBKRApiError:
            return cls._build(response, message)

        status = response.status_code
        if status == 400:
            error_cls: type[IBKRApiError] = IBKRBadRequestError
        elif status == 404:
            error_cls = IBKRNotFoundError
        elif status == 429:
            error_cls = IBKRRateLimitError
        elif status == 503:
            error_cls = IBKRServiceUnavailableError
        elif 500 <= status <= 599:
            error_cls = IBKRServerError
        else:
            error_cls = IBKRApiError
        return error_cls._build(response, message)


class IBKRBadRequestError(IBKRApiError):
    """Raised on HTTP 400"""

    default_message = "Bad request - check your parameters"


class IBKRNotFoundError(IBKRApiError):
    """Raised on HTTP 404"""

    default_message = "Resource not found"


class IBKRRateLimitError(IBKRApiError):
    """Raised on HTTP 429"""

    default_message = "Rate limit exceeded"

    @property
    def retry_after(self) -> int | None:
        headers = getattr(self.response, "headers", None) or {}
        value = headers.get("Retry-After")
        try:
            return int(value) if value is not None else None
        except ValueError:
            return None


class IBKRServerError(IBKRApiError):
    """Raised on HTTP 5xx"""

    default_message = "Server error occurred"


class IBKRServiceUnavailableError(IBKRServerError):
    """Raised on HTTP 503"""

    default_message = "Service temporarily unavailable"


class IBKRConnectionError(IBKRApiError):
    """Raised when the HTTP transport fails before a response arrives"""

    default_message = "HTTP request failed"
