"""Pytest fixtures for IBKR OAuth tests"""

import base64
import hmac
import json
import re
import secrets
from hashlib import sha1
from urllib.parse import quote, unquote_plus

import pytest
from Crypto.Cipher import PKCS1_v1_5 as PKCS1_v1_5_Cipher
from Crypto.Hash import SHA256
from Crypto.PublicKey import RSA
from Crypto.Signature import pkcs1_15

from ibkr_oauth.core.config import OAuthConfig

# RFC 2409 Oakley group 2 (1024-bit MODP)
TEST_DH_PRIME_HEX = (
    "00ffffffffffffffffc90fdaa22168c234c4c6628b80dc1cd129024e088a67cc74020bbea63b139b"
    "22514a08798e3404ddef9519b3cd3a431b302b0a6df25f14374fe1356d6d51c245e485b576625e7e"
    "c6f44c42e9a637ed6b0bff5cb6f406b7edee386bfb5a899fa5ae9f24117c4b1fe649286651ece653"
    "81ffffffffffffffff"
)
TEST_CONSUMER_KEY = "TESTCONS"
TEST_ACCESS_TOKEN = "test_access_token_123"
TEST_PREPEND = b"test_prepend_secret_value_0123456789"
LST_URL = "https://api.ibkr.com/v1/api/oauth/live_session_token"


@pytest.fixture(scope="session")
def rsa_keys():
    """Test-only RSA key pairs (signature, encryption)

    Session scope: key generation is slow and the keys are immutable.
    """
    return RSA.generate(1024), RSA.generate(1024)


@pytest.fixture(scope="session")
def rsa_key_files(rsa_keys, tmp_path_factory):
    """Write the test keys as PEM files and return their paths"""
    sig_key, enc_key = rsa_keys
    key_dir = tmp_path_factory.mktemp("rsa_keys")
    sig_path = key_dir / "test_signature_key.pem"
    enc_path = key_dir / "test_encryption_key.pem"
    sig_path.write_bytes(sig_key.export_key())
    enc_path.write_bytes(enc_key.export_key())
    return str(sig_path), str(enc_path)


@pytest.fixture(scope="session")
def access_token_secret(rsa_keys):
    """Access token secret encrypted to the test encryption key, base64"""
    _, enc_key = rsa_keys
    ciphertext = PKCS1_v1_5_Cipher.new(enc_key.publickey()).encrypt(TEST_PREPEND)
    return base64.b64encode(ciphertext).decode("utf-8")


@pytest.fixture
def oauth_config(rsa_key_files, access_token_secret):
    """Sandbox configuration backed by the test keys"""
    sig_path, enc_path = rsa_key_files
    return OAuthConfig(
        consumer_key=TEST_CONSUMER_KEY,
        access_token=TEST_ACCESS_TOKEN,
        access_token_secret=access_token_secret,
        signature_key_path=sig_path,
        encryption_key_path=enc_path,
        dh_prime_hex=TEST_DH_PRIME_HEX,
    )


@pytest.fixture
def production_config(oauth_config):
    oauth_config.environment = "production"
    return oauth_config


@pytest.fixture
def mock_oauth_env(monkeypatch, rsa_key_files, access_token_secret):
    """Set up OAuth environment variables for testing"""
    sig_path, enc_path = rsa_key_files

    monkeypatch.setenv("OAUTH_CONSUMER_KEY", TEST_CONSUMER_KEY)
    monkeypatch.setenv("OAUTH_ACCESS_TOKEN", TEST_ACCESS_TOKEN)
    monkeypatch.setenv("OAUTH_ACCESS_TOKEN_SECRET", access_token_secret)
    monkeypatch.setenv("OAUTH_DH_PRIME", TEST_DH_PRIME_HEX)
    monkeypatch.setenv("OAUTH_SIGNATURE_PATH", sig_path)
    monkeypatch.setenv("OAUTH_ENCRYPTION_PATH", enc_path)
    monkeypatch.delenv("OAUTH_DH_GENERATOR", raising=False)
    monkeypatch.delenv("OAUTH_DH_PARAM_PATH", raising=False)
    monkeypatch.delenv("IBKR_ENVIRONMENT", raising=False)
    monkeypatch.delenv("IBKR_BASE_URL", raising=False)
    monkeypatch.delenv("IBKR_TIMEOUT", raising=False)


def shared_secret_bytes(k: int) -> bytes:
    """Server-side encoding of K: minimal big-endian plus a sign byte"""
    k_bytes = k.to_bytes(max((k.bit_length() + 7) // 8, 1), "big")
    if k.bit_length() % 8 == 0:
        k_bytes = b"\x00" + k_bytes
    return k_bytes


def parse_oauth_header(header: str) -> dict[str, str]:
    if header.startswith("OAuth "):
        header = header[len("OAuth ") :]
    return dict(re.findall(r'(\w+)="([^"]*)"', header))


class SimulatedIBKRServer:
    """Mirror side of the live session token exchange

    Verifies the RSA signature of the LST request, answers the DH challenge
    and signs the resulting token the way IBKR does.
    """

    def __init__(
        self,
        signature_public_key,
        dh_prime_hex: str = TEST_DH_PRIME_HEX,
        generator: int = 2,
        consumer_key: str = TEST_CONSUMER_KEY,
        prepend: bytes = TEST_PREPEND,
        expires_at: int | None = None,
    ) -> None:
        self.signature_public_key = signature_public_key
        self.prime = int(dh_prime_hex, 16)
        self.generator = generator
        self.consumer_key = consumer_key
        self.prepend = prepend
        self.expires_at = expires_at
        self.issued_tokens: list[str] = []
        self.received_headers: list[dict[str, str]] = []

    def issue(self, dh_challenge_hex: str) -> dict:
        server_random = secrets.randbits(256)
        client_public = int(dh_challenge_hex, 16)
        server_public = pow(self.generator, server_random, self.prime)
        shared = pow(client_public, server_random, self.prime)

        lst_bytes = hmac.new(shared_secret_bytes(shared), self.prepend, sha1).digest()
        lst = base64.b64encode(lst_bytes).decode("utf-8")
        self.issued_tokens.append(lst)
        signature = hmac.new(lst_bytes, self.consumer_key.encode("utf-8"), sha1)
        return {
            "diffie_hellman_response": format(server_public, "x"),
            "live_session_token_signature": signature.hexdigest(),
            "live_session_token_expiration": self.expires_at,
        }

    def verify_rsa_signature(self, params: dict[str, str], url: str = LST_URL) -> None:
        signed = {
            k: v for k, v in params.items() if k not in ("oauth_signature", "realm")
        }
        pairs = sorted(
            (quote(k, safe="~"), quote(v, safe="~")) for k, v in signed.items()
        )
        params_string = "&".join(f"{k}={v}" for k, v in pairs)
        base_string = (
            self.prepend.hex()
            + f"POST&{quote(url, safe='~')}&{quote(params_string, safe='~')}"
        )
        signature = base64.b64decode(unquote_plus(params["oauth_signature"]))
        pkcs1_15.new(self.signature_public_key).verify(
            SHA256.new(base_string.encode("utf-8")), signature
        )

    def lst_callback(self, request):
        """``responses`` callback for the LST endpoint"""
        params = parse_oauth_header(request.headers["Authorization"])
        self.received_headers.append(params)
        try:
            self.verify_rsa_signature(params)
        except ValueError:
            return (401, {}, json.dumps({"error": "invalid signature"}))
        payload = self.issue(params["diffie_hellman_challenge"])
        return (200, {"Content-Type": "application/json"}, json.dumps(payload))


@pytest.fixture
def simulated_server(rsa_keys):
    sig_key, _ = rsa_keys
    return SimulatedIBKRServer(sig_key.publickey())


@pytest.fixture
def prepend_bytes():
    return TEST_PREPEND


@pytest.fixture
def signed_token_factory():
    """Build (key_material, server_signature) pairs that validate together"""

    def _factory(raw_key: bytes = b"live-session-token-bytes", consumer_key=None):
        key_material = base64.b64encode(raw_key).decode("utf-8")
        signature = hmac.new(
            raw_key, (consumer_key or TEST_CONSUMER_KEY).encode("utf-8"), sha1
        ).hexdigest()
        return key_material, signature

    return _factory
