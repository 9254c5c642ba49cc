#!/usr/bin/env python3
"""Validate OAuth 1.0a configuration for the IBKR Web API

Checks that credentials, RSA keys and DH parameters are present and usable.
With --authenticate, also performs a live session token exchange.
"""

import argparse
import sys
from pathlib import Path

from ibkr_oauth import IBKRClientError, IBKROAuthClient, OAuthConfig


class Colors:
    """ANSI color codes for terminal output"""

    GREEN = "\033[92m"
    RED = "\033[91m"
    YELLOW = "\033[93m"
    BLUE = "\033[94m"
    RESET = "\033[0m"


def check(condition: bool, success_msg: str, error_msg: str) -> bool:
    """Print check result with color"""
    if condition:
        print(f"{Colors.GREEN}✓{Colors.RESET} {success_msg}")
        return True
    else:
        print(f"{Colors.RED}✗{Colors.RESET} {error_msg}")
        return False


def warn(msg: str) -> None:
    """Print warning message"""
    print(f"{Colors.YELLOW}⚠{Colors.RESET}  {msg}")


def info(msg: str) -> None:
    """Print info message"""
    print(f"{Colors.BLUE}ℹ{Colors.RESET}  {msg}")


def _check_key(config: OAuthConfig, label: str, attr: str) -> bool:
    path = getattr(config, f"{attr}_path")
    if getattr(config, f"{attr}_content") is None:
        if not check(
            bool(path) and Path(path).exists(),
            f"{label} key file exists: {path}",
            f"{label} key file NOT FOUND: {path or '(unset)'}",
        ):
            return False
    try:
        key = getattr(config, attr)
    except IBKRClientError as e:
        return check(False, "", f"{label} key unusable: {e}")
    return check(
        True, f"{label} key is a {key.size_in_bits()}-bit RSA private key", ""
    )


def validate_oauth_configuration(config: OAuthConfig) -> bool:
    """Validate OAuth 1.0a configuration

    Returns:
        True if all checks pass, False otherwise
    """
    all_passed = True

    print(f"\n{Colors.BLUE}=== OAuth 1.0a Configuration Validation ==={Colors.RESET}\n")

    all_passed &= check(
        bool(config.consumer_key),
        f"Consumer key present: {config.consumer_key}",
        "Consumer key missing (OAUTH_CONSUMER_KEY)",
    )
    if config.consumer_key and not (
        config.consumer_key.isupper() and config.consumer_key.isalnum()
    ):
        warn(
            f"Consumer key format unusual: '{config.consumer_key}' "
            "(expected uppercase alphanumeric)"
        )

    access_token = config.access_token
    all_passed &= check(
        bool(access_token),
        f"Access token present: {access_token[:10]}..." if access_token else "",
        "Access token missing (OAUTH_ACCESS_TOKEN)",
    )

    secret = config.access_token_secret
    all_passed &= check(
        bool(secret),
        f"Access token secret present ({len(secret)} chars)" if secret else "",
        "Access token secret missing (OAUTH_ACCESS_TOKEN_SECRET)",
    )

    all_passed &= check(
        config.environment in ("sandbox", "production"),
        f"Environment: {config.environment} (realm "
        f"{'limited_poa' if config.production else 'test_realm'})",
        f"Invalid environment '{config.environment}' (IBKR_ENVIRONMENT)",
    )

    all_passed &= _check_key(config, "Signature", "signature_key")
    all_passed &= _check_key(config, "Encryption", "encryption_key")

    try:
        dh_params = config.dh_params
        all_passed &= check(
            True,
            f"DH parameters OK (~{dh_params.p.bit_length()}-bit prime, "
            f"generator {dh_params.g})",
            "",
        )
        if dh_params.p.bit_length() < 1024:
            warn("DH prime seems short, expected 2048-bit DH params")
    except IBKRClientError as e:
        all_passed &= check(False, "", f"DH parameters unusable: {e}")

    print(f"\n{Colors.BLUE}=== Summary ==={Colors.RESET}\n")

    if all_passed:
        print(
            f"{Colors.GREEN}✓ All OAuth configuration checks passed!{Colors.RESET}\n"
        )
    else:
        print(
            f"{Colors.RED}✗ Some OAuth configuration checks failed!{Colors.RESET}\n"
        )
        info("Fix the issues above and try again.")
        print()
    return all_passed


def try_authenticate(config: OAuthConfig) -> bool:
    """Run a live session token exchange and report the outcome"""
    client = IBKROAuthClient(config=config)
    try:
        valid = client.authenticate()
    except IBKRClientError as e:
        return check(False, "", f"Authentication failed: {e}")
    finally:
        client.close()

    token = client.authenticator.current_token
    if not valid and token is not None and token.expired():
        return check(False, "", "Live session token already expired")
    return check(
        valid,
        f"Live session token valid until {token.expiration_time() if token else '?'}",
        "Live session token signature did not validate",
    )


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--env-file", help="Path to a .env file")
    parser.add_argument(
        "--authenticate",
        action="store_true",
        help="Also request a live session token from IBKR",
    )
    args = parser.parse_args(argv)

    config = OAuthConfig.from_env(args.env_file)
    success = validate_oauth_configuration(config)
    if success and args.authenticate:
        success = try_authenticate(config)
    return 0 if success else 1


if __name__ == "__main__":
    sys.exit(main())
