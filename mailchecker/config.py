"""
Configuration module for Mailchecker.

Loads settings from environment variables with sensible defaults.
"""

import os


def _split_list(value: str) -> list[str]:
    """Split a comma/whitespace separated environment value into items."""
    return [item.strip() for item in value.replace(",", " ").split() if item.strip()]


class Config:
    """Base configuration shared by all environments."""

    # Security
    SECRET_KEY: str = os.environ.get("SECRET_KEY", "dev-secret-change-me")

    # DNS resolution. Caller-supplied servers are tried first; the public
    # fallbacks are always appended by the resolver.
    DNS_SERVERS: list[str] = _split_list(os.environ.get("DNS_SERVERS", ""))
    DNS_TIMEOUT_SECONDS: float = float(os.environ.get("DNS_TIMEOUT_SECONDS", "10"))

    # Bulk sweeps
    CHECK_CONCURRENCY: int = int(os.environ.get("CHECK_CONCURRENCY", "5"))

    # DKIM selectors probed when the caller supplies none
    DKIM_SELECTORS: list[str] = _split_list(
        os.environ.get(
            "DKIM_SELECTORS",
            "default,google,selector1,selector2,k1,dkim,mail,s1,s2,protonmail",
        )
    )

    # MTA-STS policy fetch timeout (seconds)
    MTA_STS_FETCH_TIMEOUT: float = float(os.environ.get("MTA_STS_FETCH_TIMEOUT", "10"))

    # Maximum include/redirect nesting followed by the SPF lookup counter
    SPF_MAX_DEPTH: int = int(os.environ.get("SPF_MAX_DEPTH", "10"))

    # Upload / payload limits
    MAX_CONTENT_LENGTH: int = 1 * 1024 * 1024  # 1 MB

    # Largest domain list accepted by the bulk API endpoint
    MAX_BULK_DOMAINS: int = int(os.environ.get("MAX_BULK_DOMAINS", "500"))
