"""ResponseParser - validates and decodes live session token responses"""

import json
from collections.abc import Iterable, Mapping
from typing import Any

from loguru import logger

from ibkr_oauth.exceptions import IBKRAuthenticationError

from .session_token import SessionToken
from .signature_generator import SignatureGenerator

DH_RESPONSE_FIELD = "diffie_hellman_response"
SIGNATURE_FIELD = "live_session_token_signature"
EXPIRATION_FIELD = "live_session_token_expiration"


class ResponseParser:
    """Turns HTTP responses from the LST endpoint into SessionTokens"""

    def __init__(self, signature_generator: SignatureGenerator) -> None:
        self.signature_generator = signature_generator

    def parse_live_session_token(self, response: Any) -> SessionToken:
        """Parse the LST response and derive the key from its DH response

        Missing fields become None; the resulting token then fails validation
        instead of raising here.

        Raises:
            IBKRAuthenticationError: On non-2xx status, malformed body or a
                DH response that is not hex
        """
        data = self.parse_json_response(response)
        if not isinstance(data, Mapping):
            kind = type(data).__name__
            raise IBKRAuthenticationError(
                f"Invalid response format: expected JSON object, got {kind}"
            )

        dh_response = data.get(DH_RESPONSE_FIELD)
        if dh_response is not None and not isinstance(dh_response, str):
            raise IBKRAuthenticationError(
                f"Invalid response format: {DH_RESPONSE_FIELD} must be a hex string, "
                f"got {type(dh_response).__name__}"
            )
        try:
            key_material = self.signature_generator.compute_live_session_token(
                dh_response
            )
        except ValueError as e:
            raise IBKRAuthenticationError(f"Invalid response format: {e}") from e
        token = SessionToken(
            key_material=key_material,
            server_signature=data.get(SIGNATURE_FIELD),
            expires_at=data.get(EXPIRATION_FIELD),
        )
        logger.debug(f"Parsed live session token expiring at {token.expires_at}")
        return token

    def parse_json_response(self, response: Any) -> Any:
        """Check for HTTP success and decode the JSON body

        Raises:
            IBKRAuthenticationError: On non-2xx status or malformed body
        """
        self._validate_response_success(response)
        try:
            return json.loads(response.text)
        except (ValueError, TypeError) as e:
            raise IBKRAuthenticationError(f"Invalid response format: {e}") from e

    def validate_required_fields(
        self, data: Mapping[str, Any], required_fields: Iterable[str]
    ) -> None:
        """Raise listing every absent field; None or "" values count as present"""
        missing_fields = [f for f in required_fields if f not in data]
        if missing_fields:
            raise IBKRAuthenticationError(
                f"Missing required fields in response: {', '.join(missing_fields)}"
            )

    def _validate_response_success(self, response: Any) -> None:
        if 200 <= response.status_code < 300:
            return
        message = f"LST request failed: {response.status_code} - {response.text}"
        logger.warning(message)
        raise IBKRAuthenticationError.from_response(response, message=message)
