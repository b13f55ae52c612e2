"""
Background sweep loop, started from the application lifespan.

Runs `reconciler.sweep` every SWEEP_INTERVAL_SECONDS. Several API instances
may run it at once: every write it makes goes through the same atomic
consume flag as the request path.
"""

import asyncio
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from boxoffice.core.config import get_settings
from boxoffice.core.logging import get_logger
from boxoffice.services import reconciler
from boxoffice.services.interfaces.payment_gateway import PaymentGateway

logger = get_logger(__name__)
settings = get_settings()


class Sweeper:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        gateway: PaymentGateway,
        interval_seconds: Optional[float] = None,
    ):
        self._session_factory = session_factory
        self._gateway = gateway
        self._interval = interval_seconds or settings.SWEEP_INTERVAL_SECONDS
        self._task: Optional[asyncio.Task] = None
        self._stopping = asyncio.Event()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._stopping.clear()
        self._task = asyncio.create_task(self._run(), name="purchase-sweeper")
        logger.info("sweeper_started", interval_seconds=self._interval)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._stopping.set()
        try:
            await asyncio.wait_for(self._task, timeout=self._interval + 5)
        except asyncio.TimeoutError:
            self._task.cancel()
            logger.warning("sweeper_cancelled")
        self._task = None
        logger.info("sweeper_stopped")

    async def run_once(self) -> reconciler.SweepReport:
        return await reconciler.sweep(self._session_factory, self._gateway)

    async def _run(self) -> None:
        while not self._stopping.is_set():
            try:
                await self.run_once()
            except Exception:
                # A failed pass is retried on the next tick
                logger.exception("sweep_pass_failed")
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=self._interval)
            except asyncio.TimeoutError:
                continue
