"""Per-key hourly request budgets backed by the ``limits`` library."""

import math
import time

from limits import RateLimitItemPerHour
from limits.aio.strategies import FixedWindowRateLimiter
from limits.storage import storage_from_string

from docmcp.config import get_settings


class KeyRateLimiter:
    """
    Fixed one-hour windows, one counter per API key id.

    Storage comes from ``rate_limit_storage_uri`` so a shared backend
    (``async+redis://...``) can be used when several workers serve traffic.
    """

    def __init__(self, storage_uri: str | None = None):
        uri = storage_uri or get_settings().rate_limit_storage_uri
        self.storage = storage_from_string(uri)
        self.limiter = FixedWindowRateLimiter(self.storage)

    async def hit(self, key_id: str, requests_per_hour: int) -> tuple[bool, int]:
        """
        Count one request against the key's budget.

        Returns:
            (allowed, retry_after_seconds); retry_after is 0 when allowed
        """
        item = RateLimitItemPerHour(requests_per_hour)
        if await self.limiter.hit(item, "api_key", key_id):
            return True, 0

        stats = await self.limiter.get_window_stats(item, "api_key", key_id)
        retry_after = max(1, math.ceil(stats.reset_time - time.time()))
        return False, retry_after

    async def reset(self) -> None:
        await self.storage.reset()
