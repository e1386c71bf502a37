"""API key format, hashing, generation and the authentication gate.

Raw keys look like ``dmcp_`` followed by 32 base62 characters. The first
12 characters are stored in clear as a lookup prefix; the full key is only
ever stored as a salted SHA-256 digest.
"""

import asyncio
import hashlib
import hmac
import secrets
import string
import uuid
from datetime import datetime
from typing import NoReturn

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from docmcp.config import get_settings
from docmcp.errors import AuthenticationError, RateLimitExceededError
from docmcp.models.api_key import ApiKey, ApiKeyStatus, GeneratedApiKey
from docmcp.observability.metrics import AUTH_ATTEMPTS
from docmcp.security.rate_limit import KeyRateLimiter
from docmcp.storage.repositories import ApiKeyRepository
from docmcp.utils import utcnow

logger = structlog.get_logger()

KEY_MARKER = "dmcp_"
SECRET_LENGTH = 32
KEY_LENGTH = len(KEY_MARKER) + SECRET_LENGTH
PREFIX_LENGTH = 12
HASH_SCHEME = "sha256"

_BASE62 = string.ascii_letters + string.digits


def generate_raw_key() -> str:
    """New random key: marker plus 32 base62 characters."""
    return KEY_MARKER + "".join(secrets.choice(_BASE62) for _ in range(SECRET_LENGTH))


def key_prefix(raw_key: str) -> str:
    return raw_key[:PREFIX_LENGTH]


def is_well_formed(raw_key: str | None) -> bool:
    """Shape check done before any store lookup."""
    if not isinstance(raw_key, str) or len(raw_key) != KEY_LENGTH:
        return False
    if not raw_key.startswith(KEY_MARKER):
        return False
    secret = raw_key[len(KEY_MARKER):]
    return all(ch in _BASE62 for ch in secret)


def hash_key(raw_key: str, salt: str | None = None) -> str:
    """One-way hash in the form ``sha256$<salt>$<hexdigest>``."""
    salt = salt or secrets.token_hex(16)
    digest = hashlib.sha256(f"{salt}{raw_key}".encode()).hexdigest()
    return f"{HASH_SCHEME}${salt}${digest}"


def verify_key(raw_key: str, stored_hash: str) -> bool:
    """Constant-time comparison of a raw key against a stored hash."""
    try:
        scheme, salt, expected = stored_hash.split("$", 2)
    except ValueError:
        return False
    if scheme != HASH_SCHEME:
        return False
    actual = hashlib.sha256(f"{salt}{raw_key}".encode()).hexdigest()
    return hmac.compare_digest(actual, expected)


# Verified against when no key matches the prefix, so unknown prefixes
# cost the same as wrong secrets.
_DUMMY_HASH = hash_key(KEY_MARKER + "0" * SECRET_LENGTH, salt="0" * 32)


class ApiKeyService:
    """Key management used by the CLI; the gate never creates keys."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def generate_key(
        self,
        name: str,
        created_by: str | None = None,
        expires_at: datetime | None = None,
        rate_limit: int | None = None,
    ) -> GeneratedApiKey:
        """
        Create and store a new key.

        Args:
            name: Unique human-readable name
            created_by: Who asked for the key
            expires_at: Optional expiry
            rate_limit: Requests per hour (default: settings.api_key_default_rate_limit)

        Returns:
            The raw key (shown once) and the stored record

        Raises:
            ValueError: A key with this name already exists
        """
        async with self.session_factory() as session:
            repo = ApiKeyRepository(session)
            if await repo.exists_by_name(name):
                raise ValueError(f"API key name already exists: {name}")

            raw_key = generate_raw_key()
            while await repo.get_by_prefix(key_prefix(raw_key)) is not None:
                raw_key = generate_raw_key()

            api_key = ApiKey(
                id=uuid.uuid4().hex,
                name=name,
                key_hash=hash_key(raw_key),
                key_prefix=key_prefix(raw_key),
                status=ApiKeyStatus.ACTIVE,
                rate_limit=rate_limit or get_settings().api_key_default_rate_limit,
                expires_at=expires_at,
                created_by=created_by,
            )
            await repo.create(api_key)

        logger.info("api_key_created", name=name, key_prefix=api_key.key_prefix, created_by=created_by)
        return GeneratedApiKey(raw_key=raw_key, api_key=api_key)

    async def revoke_key(self, key_id: str) -> bool:
        async with self.session_factory() as session:
            revoked = await ApiKeyRepository(session).update_status(key_id, ApiKeyStatus.REVOKED)
        logger.info("api_key_revoked", key_id=key_id, found=revoked)
        return revoked


class ApiKeyGate:
    """
    Authenticates inbound credentials.

    Every rejection raises the same AuthenticationError; only a key that
    authenticates but is over budget gets the distinct
    RateLimitExceededError. On success ``last_used_at`` is written in the
    background and a failure there is only logged.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        rate_limiter: KeyRateLimiter | None = None,
    ):
        self.session_factory = session_factory
        self.rate_limiter = rate_limiter or KeyRateLimiter()
        self._pending: set[asyncio.Task] = set()

    async def authenticate(self, raw_key: str | None) -> ApiKey:
        """
        Authenticate a raw key.

        Returns:
            The stored ApiKey record

        Raises:
            AuthenticationError: Malformed, unknown, wrong, revoked or expired key
            RateLimitExceededError: Valid key over its hourly budget
        """
        if not is_well_formed(raw_key):
            AUTH_ATTEMPTS.labels(outcome="malformed").inc()
            raise AuthenticationError()

        prefix = key_prefix(raw_key)
        async with self.session_factory() as session:
            api_key = await ApiKeyRepository(session).get_by_prefix(prefix)

        if api_key is None:
            verify_key(raw_key, _DUMMY_HASH)
            self._reject(prefix, "unknown_prefix")

        now = utcnow()
        if not verify_key(raw_key, api_key.key_hash):
            self._reject(prefix, "secret_mismatch")
        if not api_key.is_valid(now):
            self._reject(prefix, "inactive" if api_key.status != ApiKeyStatus.ACTIVE else "expired")

        allowed, retry_after = await self.rate_limiter.hit(api_key.id, api_key.rate_limit)
        if not allowed:
            AUTH_ATTEMPTS.labels(outcome="rate_limited").inc()
            logger.warning("api_key_rate_limited", key_prefix=prefix, retry_after=retry_after)
            raise RateLimitExceededError(prefix, retry_after)

        AUTH_ATTEMPTS.labels(outcome="success").inc()
        self._schedule_touch(api_key.id, now)
        return api_key

    def _reject(self, prefix: str, reason: str) -> NoReturn:
        AUTH_ATTEMPTS.labels(outcome="rejected").inc()
        logger.info("api_key_rejected", key_prefix=prefix, reason=reason)
        raise AuthenticationError()

    def _schedule_touch(self, key_id: str, used_at: datetime) -> None:
        task = asyncio.create_task(self._touch(key_id, used_at))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _touch(self, key_id: str, used_at: datetime) -> None:
        try:
            async with self.session_factory() as session:
                await ApiKeyRepository(session).update_last_used(key_id, used_at)
        except Exception as e:
            logger.warning("api_key_last_used_update_failed", key_id=key_id, error=str(e))

    async def drain(self) -> None:
        """Wait for pending ``last_used_at`` writes."""
        if self._pending:
            await asyncio.gather(*list(self._pending))
