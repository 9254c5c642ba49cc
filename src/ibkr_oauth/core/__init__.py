"""Core configuration for the IBKR OAuth client"""

from .config import DHParameters, OAuthConfig, parse_dh_param_pem

__all__ = ["DHParameters", "OAuthConfig", "parse_dh_param_pem"]
