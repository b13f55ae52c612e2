"""
Redis throttle for gateway status polling.

THROTTLING STRATEGY
===================

Returning buyers' browsers poll the status endpoint, often aggressively and
from several tabs. Each poll of an open intent costs one gateway round-trip.
We allow one gateway query per session per STATUS_POLL_MIN_INTERVAL_SECONDS,
shared across all API instances:

  SET poll:{session_id} 1 NX EX {interval}

If the key was set, this caller may query the gateway. Otherwise another
caller did so moments ago and this one answers "pending" right away.

Failure mode: fail open. If Redis is disabled or down, every caller may query
the gateway; correctness never depends on this throttle.
"""

from typing import Awaitable, Callable, Optional

from boxoffice.core.config import get_settings
from boxoffice.core.logging import get_logger
from boxoffice.infrastructure.redis_client import get_redis

logger = get_logger(__name__)
settings = get_settings()


def _make_poll_key(session_id: str) -> str:
    return f"poll:{session_id}"


class PollThrottle:
    def __init__(
        self,
        interval_seconds: Optional[int] = None,
        redis_provider: Callable[[], Awaitable] = get_redis,
    ):
        self.interval_seconds = interval_seconds or settings.STATUS_POLL_MIN_INTERVAL_SECONDS
        self._redis_provider = redis_provider

    async def allow(self, session_id: str) -> bool:
        """True if this caller may query the gateway for `session_id` now."""
        client = await self._redis_provider()
        if not client:
            return True

        key = _make_poll_key(session_id)
        try:
            acquired = await client.set(key, "1", nx=True, ex=self.interval_seconds)
            if not acquired:
                logger.debug("status_poll_throttled", session_id=session_id)
            return bool(acquired)
        except Exception as e:
            logger.error("poll_throttle_error", key=key, error=str(e))
            return True


async def get_poll_throttle() -> PollThrottle:
    return PollThrottle()
