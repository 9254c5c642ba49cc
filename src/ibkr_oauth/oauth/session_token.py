"""SessionToken - the live session token and its validity rules"""

import base64
import hmac
from dataclasses import dataclass, field
from datetime import datetime, timezone
from hashlib import sha1, sha256
from typing import Any

from loguru import logger

# Larger values are epoch milliseconds (IBKR sends milliseconds)
MILLISECONDS_THRESHOLD = 4_000_000_000


@dataclass(frozen=True)
class SessionToken:
    """Immutable live session token issued by a DH exchange

    Attributes:
        key_material: Base64 derived key used to HMAC-sign API requests
        server_signature: Hex HMAC-SHA1 the server computed over the consumer key
        expires_at: Epoch seconds or milliseconds; None means no expiry
    """

    key_material: str | None = field(repr=False)
    server_signature: str | None
    expires_at: int | str | None = None

    def expiration_time(self) -> datetime | None:
        """Expiry as an aware UTC datetime

        Raises:
            ValueError: If expires_at is not a timestamp
        """
        if self.expires_at is None:
            return None

        value = self.expires_at
        if isinstance(value, bool):
            raise ValueError(f"Invalid timestamp format: {value}")
        if isinstance(value, str):
            if not value.strip().isdigit():
                raise ValueError(f"Invalid timestamp format: {value}")
            value = int(value.strip())

        timestamp = int(value)
        if timestamp > MILLISECONDS_THRESHOLD:
            timestamp //= 1000
        return datetime.fromtimestamp(timestamp, tz=timezone.utc)

    def expired(self) -> bool:
        """True once the expiry has passed; unparseable expiry counts as expired"""
        try:
            expiration = self.expiration_time()
        except (ValueError, TypeError, OverflowError, OSError) as e:
            logger.warning(f"Invalid expiration time: {e}")
            return True

        if expiration is None:
            return False
        return datetime.now(timezone.utc) >= expiration

    def time_until_expiry(self) -> float | None:
        """Seconds left before expiry (never negative), None without expiry"""
        try:
            expiration = self.expiration_time()
        except (ValueError, TypeError, OverflowError, OSError):
            return 0.0
        if expiration is None:
            return None
        return max((expiration - datetime.now(timezone.utc)).total_seconds(), 0.0)

    def valid_signature(self, consumer_key: str | None) -> bool:
        """Check the server signature: hex(HMAC-SHA1(key=LST, msg=consumer_key))

        The hex digest is compared case-insensitively.
        """
        if not consumer_key or self.key_material is None:
            return False
        if self.server_signature is None:
            return False
        try:
            expected_hex = hmac.new(
                key=base64.b64decode(self.key_material),
                msg=consumer_key.encode("utf-8"),
                digestmod=sha1,
            ).hexdigest()
            return self.secure_compare(expected_hex, self.server_signature.lower())
        except (ValueError, TypeError, AttributeError) as e:
            logger.debug(f"Signature validation error: {e}")
            return False

    def valid(self, consumer_key: str | None) -> bool:
        return not self.expired() and self.valid_signature(consumer_key)

    @staticmethod
    def secure_compare(a: Any, b: Any) -> bool:
        """Constant-time comparison that never raises

        Both sides are hashed first so unequal lengths take the same time.
        """
        try:
            a_bytes = a.encode("utf-8") if isinstance(a, str) else bytes(a)
            b_bytes = b.encode("utf-8") if isinstance(b, str) else bytes(b)
            return hmac.compare_digest(
                sha256(a_bytes).digest(), sha256(b_bytes).digest()
            )
        except (TypeError, ValueError, AttributeError):
            return False

    def to_dict(self) -> dict[str, Any]:
        try:
            expiration = self.expiration_time()
        except (ValueError, TypeError, OverflowError, OSError):
            expiration = None
        return {
            "server_signature": self.server_signature,
            "expires_at": self.expires_at,
            "expired": self.expired(),
            "expiration_time": expiration.isoformat() if expiration else None,
            "time_until_expiry": self.time_until_expiry(),
        }
