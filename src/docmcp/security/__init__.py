"""Security package."""

from docmcp.security.api_keys import (
    KEY_LENGTH,
    KEY_MARKER,
    PREFIX_LENGTH,
    ApiKeyGate,
    ApiKeyService,
    generate_raw_key,
    hash_key,
    is_well_formed,
    key_prefix,
    verify_key,
)
from docmcp.security.rate_limit import KeyRateLimiter

__all__ = [
    "KEY_LENGTH",
    "KEY_MARKER",
    "PREFIX_LENGTH",
    "ApiKeyGate",
    "ApiKeyService",
    "KeyRateLimiter",
    "generate_raw_key",
    "hash_key",
    "is_well_formed",
    "key_prefix",
    "verify_key",
]
