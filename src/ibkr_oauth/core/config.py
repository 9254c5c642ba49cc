"""Configuration management for the IBKR OAuth client"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import NamedTuple

from Crypto.IO import PEM
from Crypto.PublicKey import RSA
from Crypto.Util.asn1 import DerSequence
from dotenv import load_dotenv
from loguru import logger

from ibkr_oauth.exceptions import IBKRConfigurationError

DEFAULT_BASE_URL = "https://api.ibkr.com"
DEFAULT_USER_AGENT = "ibkr-oauth/1.0"
ENVIRONMENTS = ("sandbox", "production")


class DHParameters(NamedTuple):
    """Diffie-Hellman group: prime modulus and generator"""

    p: int
    g: int


def parse_dh_param_pem(content: str) -> DHParameters:
    """Decode a PKCS#3 ``DH PARAMETERS`` PEM block into (p, g)

    Raises:
        IBKRConfigurationError: If the block is not valid DH parameters
    """
    try:
        der, marker, _ = PEM.decode(content)
        if marker != "DH PARAMETERS":
            raise ValueError(f"unexpected PEM block '{marker}'")
        seq = DerSequence()
        seq.decode(der)
        prime, generator = int(seq[0]), int(seq[1])
    except (ValueError, IndexError, TypeError) as e:
        raise IBKRConfigurationError(f"Invalid DH parameters: {e}") from e
    return DHParameters(prime, generator)


@dataclass
class OAuthConfig:
    """OAuth 1.0a credentials and key material for the IBKR Web API

    Keys may be supplied either as file paths or as PEM content; content wins
    when both are set. DH parameters come from ``dh_prime_hex`` (IBKR's usual
    form, generator 2) or from a ``DH PARAMETERS`` PEM.
    """

    consumer_key: str | None = None
    access_token: str | None = None
    access_token_secret: str | None = None

    environment: str = "sandbox"
    base_url: str = DEFAULT_BASE_URL
    timeout: int = 30
    user_agent: str = DEFAULT_USER_AGENT

    signature_key_path: str | None = None
    encryption_key_path: str | None = None
    dh_param_path: str | None = None

    signature_key_content: str | None = field(default=None, repr=False)
    encryption_key_content: str | None = field(default=None, repr=False)
    dh_param_content: str | None = field(default=None, repr=False)

    dh_prime_hex: str | None = field(default=None, repr=False)
    dh_generator: int = 2

    _signature_key: RSA.RsaKey | None = field(
        default=None, init=False, repr=False, compare=False
    )
    _encryption_key: RSA.RsaKey | None = field(
        default=None, init=False, repr=False, compare=False
    )
    _dh_params: DHParameters | None = field(
        default=None, init=False, repr=False, compare=False
    )

    @classmethod
    def from_env(cls, env_file: str | Path | None = None) -> "OAuthConfig":
        """Load configuration from environment variables

        Args:
            env_file: Optional .env file loaded first (existing variables win)

        Returns:
            OAuthConfig instance with values from environment

        Raises:
            IBKRConfigurationError: If a numeric variable cannot be parsed
        """
        if env_file is not None:
            load_dotenv(env_file)
        elif Path(".env").exists():
            load_dotenv(".env")

        try:
            timeout = int(os.getenv("IBKR_TIMEOUT", "30"))
            dh_generator = int(os.getenv("OAUTH_DH_GENERATOR", "2"))
        except ValueError as e:
            raise IBKRConfigurationError(
                f"Invalid numeric configuration value: {e}"
            ) from e

        config = cls(
            consumer_key=os.getenv("OAUTH_CONSUMER_KEY"),
            access_token=os.getenv("OAUTH_ACCESS_TOKEN"),
            access_token_secret=os.getenv("OAUTH_ACCESS_TOKEN_SECRET"),
            environment=os.getenv("IBKR_ENVIRONMENT", "sandbox").lower(),
            base_url=os.getenv("IBKR_BASE_URL", DEFAULT_BASE_URL),
            timeout=timeout,
            user_agent=os.getenv("IBKR_USER_AGENT", DEFAULT_USER_AGENT),
            signature_key_path=os.getenv("OAUTH_SIGNATURE_PATH"),
            encryption_key_path=os.getenv("OAUTH_ENCRYPTION_PATH"),
            dh_param_path=os.getenv("OAUTH_DH_PARAM_PATH"),
            dh_prime_hex=os.getenv("OAUTH_DH_PRIME"),
            dh_generator=dh_generator,
        )
        logger.debug(
            f"Loaded OAuth configuration: environment={config.environment} "
            f"base_url={config.base_url}"
        )
        return config

    @property
    def production(self) -> bool:
        return self.environment == "production"

    @property
    def sandbox(self) -> bool:
        return self.environment == "sandbox"

    def validate(self) -> bool:
        """Check every required setting, reporting all problems at once

        Raises:
            IBKRConfigurationError: If any setting is missing or invalid
        """
        errors = []
        if not self.consumer_key:
            errors.append("consumer_key is required")
        if not self.access_token:
            errors.append("access_token is required")
        if not self.access_token_secret:
            errors.append("access_token_secret is required")
        if self.environment not in ENVIRONMENTS:
            errors.append("environment must be 'sandbox' or 'production'")
        if not self._crypto_keys_available():
            errors.append(
                "cryptographic keys must be provided (either as file paths or content)"
            )

        if errors:
            raise IBKRConfigurationError(
                f"Configuration invalid: {', '.join(errors)}"
            )
        return True

    @property
    def signature_key(self) -> RSA.RsaKey:
        """RSA private key used for RSA-SHA256 request signing"""
        if self._signature_key is None:
            self._signature_key = self._load_rsa_key("signature_key")
        return self._signature_key

    @property
    def encryption_key(self) -> RSA.RsaKey:
        """RSA private key used to decrypt the access token secret"""
        if self._encryption_key is None:
            self._encryption_key = self._load_rsa_key("encryption_key")
        return self._encryption_key

    @property
    def dh_params(self) -> DHParameters:
        """Diffie-Hellman prime and generator

        Raises:
            IBKRConfigurationError: If no DH parameters are configured
        """
        if self._dh_params is None:
            self._dh_params = self._load_dh_params()
        return self._dh_params

    def reset_keys(self) -> None:
        """Drop cached keys so they are re-read on next access"""
        self._signature_key = None
        self._encryption_key = None
        self._dh_params = None

    def _crypto_keys_available(self) -> bool:
        has_dh = bool(self.dh_prime_hex) or self._has_key("dh_param")
        return (
            self._has_key("signature_key")
            and self._has_key("encryption_key")
            and has_dh
        )

    def _has_key(self, key_type: str) -> bool:
        path = getattr(self, f"{key_type}_path")
        content = getattr(self, f"{key_type}_content")
        return content is not None or bool(path and Path(path).exists())

    def _load_key_content(self, key_type: str) -> str:
        content = getattr(self, f"{key_type}_content")
        if content is not None:
            return content

        path = getattr(self, f"{key_type}_path")
        if path and Path(path).exists():
            return Path(path).read_text()

        raise IBKRConfigurationError(
            f"{key_type.replace('_', ' ')} not found: {path or 'no path provided'}"
        )

    def _load_rsa_key(self, key_type: str) -> RSA.RsaKey:
        content = self._load_key_content(key_type)
        try:
            key = RSA.import_key(content)
        except (ValueError, IndexError, TypeError) as e:
            raise IBKRConfigurationError(f"Invalid {key_type}: {e}") from e
        if not key.has_private():
            raise IBKRConfigurationError(f"Invalid {key_type}: not a private key")
        return key

    def _load_dh_params(self) -> DHParameters:
        if self.dh_prime_hex:
            try:
                prime = int(self.dh_prime_hex, 16)
            except ValueError as e:
                raise IBKRConfigurationError(
                    f"Invalid DH prime: {e}"
                ) from e
            return DHParameters(prime, self.dh_generator)

        if self._has_key("dh_param"):
            return parse_dh_param_pem(self._load_key_content("dh_param"))

        raise IBKRConfigurationError(
            "DH parameters not configured: set dh_prime_hex or dh_param_path"
        )
