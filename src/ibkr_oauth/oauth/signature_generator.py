"""Cryptographic primitives for IBKR OAuth 1.0a

Live Session Token (LST) derivation via Diffie-Hellman, RSA-SHA256 signing of
the LST request and HMAC-SHA256 signing of API requests.

Based on: https://www.interactivebrokers.com/campus/ibkr-api-page/oauth-1-0a-extended/
"""

import base64
import hmac
import re
import secrets
import string
from collections.abc import Mapping
from datetime import datetime, timezone
from hashlib import sha1, sha256
from typing import TYPE_CHECKING, Any
from urllib.parse import quote, quote_plus

from Crypto.Cipher import PKCS1_v1_5 as PKCS1_v1_5_Cipher
from Crypto.Hash import SHA256
from Crypto.Signature import PKCS1_v1_5 as PKCS1_v1_5_Signature
from loguru import logger

from ibkr_oauth.exceptions import IBKRConfigurationError

if TYPE_CHECKING:
    from ibkr_oauth.core.config import OAuthConfig

LIVE_SESSION_TOKEN_PATH = "/v1/api/oauth/live_session_token"
NONCE_ALPHABET = string.ascii_letters + string.digits
DH_RANDOM_BITS = 256
_HEX_PATTERN = re.compile(r"[0-9a-fA-F]+")


def percent_encode(value: Any) -> str:
    """RFC 3986 percent-encoding (unreserved characters kept)"""
    return quote(str(value), safe="~")


def shared_secret_to_bytes(shared_secret: int) -> bytes:
    """Big-endian bytes of the DH shared secret as IBKR serializes it

    A leading zero byte is added when the bit length is a multiple of 8,
    matching the server's signed big-integer encoding.
    """
    hex_str = format(shared_secret, "x")
    if len(hex_str) % 2:
        hex_str = "0" + hex_str
    secret_bytes = bytes.fromhex(hex_str)
    if shared_secret.bit_length() % 8 == 0:
        secret_bytes = bytes(1) + secret_bytes
    return secret_bytes


def _stringify(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class SignatureGenerator:
    """Builds nonces, base strings, signatures and the DH-derived LST

    Holds the DH secret between ``generate_dh_challenge`` and
    ``compute_live_session_token``; one instance must not run two exchanges
    at once.
    """

    def __init__(self, config: "OAuthConfig") -> None:
        self._config = config
        self._dh_random: int | None = None

    @property
    def config(self) -> "OAuthConfig":
        return self._config

    @property
    def live_session_token_url(self) -> str:
        return f"{self._config.base_url}{LIVE_SESSION_TOKEN_PATH}"

    def generate_nonce(self, length: int = 16) -> str:
        return "".join(secrets.choice(NONCE_ALPHABET) for _ in range(length))

    def generate_timestamp(self) -> str:
        return str(int(datetime.now(timezone.utc).timestamp()))

    def generate_dh_challenge(self) -> str:
        """Draw a fresh DH secret and return ``g^a mod p`` as lowercase hex

        Raises:
            IBKRConfigurationError: If DH parameters are not configured
        """
        dh_params = self._config.dh_params
        self._dh_random = secrets.randbits(DH_RANDOM_BITS)
        return format(pow(dh_params.g, self._dh_random, dh_params.p), "x")

    def compute_live_session_token(self, dh_response: str | None) -> str:
        """Derive the LST from the server's DH response

        LST = base64(HMAC-SHA1(K, prepend)) where K = B^a mod p and prepend
        is the decrypted access token secret.

        Args:
            dh_response: Server DH public value as hex

        Returns:
            Base64-encoded live session token

        Raises:
            ValueError: If no challenge was generated or the hex is malformed
        """
        if self._dh_random is None:
            raise ValueError("DH challenge must be generated first")

        if dh_response is None:
            logger.warning("DH response missing from LST response")
            dh_response = "0"

        try:
            is_hex = isinstance(dh_response, str) and _HEX_PATTERN.fullmatch(dh_response)
            if not is_hex:
                raise ValueError(f"Malformed DH response: {dh_response!r}")
            hex_response = dh_response
            if len(hex_response) % 2:
                hex_response = "0" + hex_response
            server_public = int(hex_response, 16)

            shared_secret = pow(
                server_public, self._dh_random, self._config.dh_params.p
            )
            prepend_bytes = bytes.fromhex(self.decrypt_prepend())

            bytes_hmac_hash_k = hmac.new(
                key=shared_secret_to_bytes(shared_secret),
                msg=prepend_bytes,
                digestmod=sha1,
            ).digest()
        finally:
            # One secret per derivation, successful or not
            self._dh_random = None
        return base64.b64encode(bytes_hmac_hash_k).decode("utf-8")

    def generate_rsa_signature(self, oauth_params: Mapping[str, Any]) -> str:
        """RSA-SHA256 signature for the live session token request

        ``oauth_signature`` and ``realm`` are never signed.
        """
        params = {
            k: v
            for k, v in oauth_params.items()
            if k not in ("oauth_signature", "realm")
        }
        base_string = self.decrypt_prepend() + self.canonical_base_string(
            "POST", self.live_session_token_url, params
        )

        sha256_hash = SHA256.new(data=base_string.encode("utf-8"))
        bytes_pkcs115_signature = PKCS1_v1_5_Signature.new(
            rsa_key=self._config.signature_key
        ).sign(msg_hash=sha256_hash)
        return base64.b64encode(bytes_pkcs115_signature).decode("utf-8")

    def generate_hmac_signature(
        self,
        method: str,
        url: str,
        params: Mapping[str, Any],
        query: Mapping[str, Any] | None = None,
        body: Mapping[str, Any] | None = None,
        live_session_token: str | None = None,
    ) -> str:
        """HMAC-SHA256 signature for an API request, percent-encoded"""
        base_string = self.canonical_base_string(method, url, params, query, body)
        bytes_hmac_hash = hmac.new(
            key=base64.b64decode(live_session_token),
            msg=base_string.encode("utf-8"),
            digestmod=sha256,
        ).digest()
        b64_str_hmac_hash = base64.b64encode(bytes_hmac_hash).decode("utf-8")
        return quote_plus(b64_str_hmac_hash, safe="")

    def flatten_params(
        self, params: Mapping[str, Any], prefix: str | None = None
    ) -> list[tuple[str, str]]:
        """Expand nested mappings to ``outer[inner]`` keys and lists to repeated keys"""
        flat: list[tuple[str, str]] = []
        for k, v in params.items():
            key = f"{prefix}[{k}]" if prefix is not None else str(k)
            flat.extend(self._flatten_value(key, v))
        return flat

    def _flatten_value(self, key: str, value: Any) -> list[tuple[str, str]]:
        if isinstance(value, Mapping):
            return self.flatten_params(value, key)
        if isinstance(value, (list, tuple)):
            flat: list[tuple[str, str]] = []
            for item in value:
                flat.extend(self._flatten_value(key, item))
            return flat
        return [(key, _stringify(value))]

    def canonical_base_string(
        self,
        method: str,
        url: str,
        oauth_params: Mapping[str, Any],
        query: Mapping[str, Any] | None = None,
        body: Mapping[str, Any] | None = None,
    ) -> str:
        """OAuth 1.0a signature base string: METHOD&enc(url)&enc(params)"""
        pairs = self.flatten_params(oauth_params)
        if query:
            pairs.extend(self.flatten_params(query))
        if body:
            pairs.extend(self.flatten_params(body))

        encoded = sorted((percent_encode(k), percent_encode(v)) for k, v in pairs)
        params_string = "&".join(f"{k}={v}" for k, v in encoded)
        return (
            f"{method.upper()}&{percent_encode(url)}&{percent_encode(params_string)}"
        )

    def decrypt_prepend(self) -> str:
        """Decrypt the access token secret and return it as hex

        Raises:
            IBKRConfigurationError: If the secret cannot be decrypted
        """
        bytes_decrypted_secret = PKCS1_v1_5_Cipher.new(
            key=self._config.encryption_key
        ).decrypt(
            ciphertext=base64.b64decode(self._config.access_token_secret),
            sentinel=None,
        )
        if bytes_decrypted_secret is None:
            raise IBKRConfigurationError("Failed to decrypt access token secret")
        return bytes_decrypted_secret.hex()
