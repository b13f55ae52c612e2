"""
Status reconciler: the entry point for "buyer returned from the gateway",
client polling, buyer cancellation and the scheduled sweep.

Each call is a pure function of (intent, one gateway query result). It holds
no connection open across calls and waits on nothing but that single query's
timeout. Retrying is the caller's job: `pending` outcomes carry a backoff hint
and the number of attempts left, after which the sweep takes over.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from boxoffice.core.config import get_settings
from boxoffice.core.logging import get_logger
from boxoffice.core.metrics import record_reconcile, record_sweep
from boxoffice.db.base import as_utc
from boxoffice.models import Disposition
from boxoffice.services import finalizer, intent_store
from boxoffice.services.finalizer import OutcomeState, PurchaseOutcome
from boxoffice.services.interfaces.payment_gateway import PaymentGateway, PaymentStatus
from boxoffice.services.poll_throttle import PollThrottle

logger = get_logger(__name__)
settings = get_settings()


def retry_after(checks: int) -> float:
    """Exponential backoff hint for the next status poll."""
    delay = settings.STATUS_RETRY_BASE_SECONDS * (2 ** max(checks - 1, 0))
    return min(delay, settings.STATUS_RETRY_MAX_SECONDS)


def _pending(checks: int) -> PurchaseOutcome:
    outcome = PurchaseOutcome.pending()
    outcome.attempts_remaining = max(settings.STATUS_MAX_CHECKS - checks, 0)
    outcome.retry_after_seconds = retry_after(checks) if outcome.attempts_remaining else None
    return outcome


async def reconcile(
    db: AsyncSession,
    gateway: PaymentGateway,
    session_id: str,
    buyer_id: Optional[int] = None,
    throttle: Optional[PollThrottle] = None,
) -> PurchaseOutcome:
    """
    Resolve a checkout session to issued / pending / failed / unknown_session.

    An intent owned by another buyer is reported as unknown_session so
    session ids cannot be used to probe other people's purchases.
    """
    intent = await intent_store.get(db, session_id)
    if intent is None or (buyer_id is not None and intent.buyer_id != buyer_id):
        logger.info("reconcile_unknown_session", session_id=session_id)
        record_reconcile(OutcomeState.UNKNOWN_SESSION.value)
        return PurchaseOutcome.unknown_session()

    if intent.is_consumed:
        outcome = await finalizer.consumed_outcome(db, intent)
        record_reconcile(outcome.state.value)
        return outcome

    if intent.status_checks >= settings.STATUS_MAX_CHECKS:
        # Out of attempts; the sweep settles it
        record_reconcile(OutcomeState.PENDING.value)
        return _pending(intent.status_checks)

    if throttle is not None and not await throttle.allow(session_id):
        record_reconcile(OutcomeState.PENDING.value)
        outcome = _pending(intent.status_checks)
        outcome.retry_after_seconds = float(throttle.interval_seconds)
        return outcome

    checks = await intent_store.record_status_check(db, session_id)
    await db.commit()

    status = await gateway.query_status(session_id)
    outcome = await finalizer.finalize(db, session_id, status)
    if outcome.state == OutcomeState.PENDING:
        outcome = _pending(checks)

    logger.info(
        "reconciled",
        session_id=session_id,
        gateway_status=status.value,
        state=outcome.state.value,
        checks=checks,
    )
    record_reconcile(outcome.state.value)
    return outcome


async def cancel(
    db: AsyncSession,
    gateway: PaymentGateway,
    session_id: str,
    buyer_id: int,
) -> PurchaseOutcome:
    """
    Buyer-initiated cancellation: release the reservation eagerly.

    The gateway is asked first. A paid session is finalized instead (money
    taken means tickets owed), and an UNKNOWN answer releases nothing.
    """
    intent = await intent_store.get(db, session_id)
    if intent is None or intent.buyer_id != buyer_id:
        return PurchaseOutcome.unknown_session()
    if intent.is_consumed:
        return await finalizer.consumed_outcome(db, intent)

    status = await gateway.query_status(session_id)
    if status == PaymentStatus.PAID:
        return await finalizer.issue(db, session_id)
    if status == PaymentStatus.UNKNOWN:
        logger.info("cancel_deferred", session_id=session_id, reason="gateway_status_unknown")
        return _pending(intent.status_checks)

    return await finalizer.release_intent(db, session_id, Disposition.CANCELLED)


@dataclass
class SweepReport:
    examined: int = 0
    issued: int = 0
    expired: int = 0
    skipped: int = 0
    errors: int = 0
    purged: int = 0


async def _sweep_one(
    db: AsyncSession,
    gateway: PaymentGateway,
    session_id: str,
    hard_cutoff: datetime,
    report: SweepReport,
) -> None:
    intent = await intent_store.get(db, session_id)
    if intent is None or intent.is_consumed:
        return

    status = await gateway.query_status(session_id)
    if status == PaymentStatus.PAID:
        outcome = await finalizer.issue(db, session_id)
        if outcome.state == OutcomeState.ISSUED and not outcome.already_issued:
            report.issued += 1
        return

    if status == PaymentStatus.UNKNOWN and as_utc(intent.created_at) >= hard_cutoff:
        # Unknown is not unpaid: keep the reservation until the hard expiry
        report.skipped += 1
        return

    outcome = await finalizer.release_intent(db, session_id, Disposition.EXPIRED)
    if outcome.released_units:
        report.expired += 1


async def sweep(
    session_factory: async_sessionmaker[AsyncSession],
    gateway: PaymentGateway,
    now: Optional[datetime] = None,
) -> SweepReport:
    """
    Settle or release stale, never-finalized intents, then purge consumed
    intents past the retention window. Each intent gets its own session and
    transaction; one failure is logged and does not stop the pass.
    Safe to run concurrently on several instances.
    """
    now = now or datetime.now(timezone.utc)
    stale_cutoff = now - timedelta(seconds=settings.RESERVATION_TTL_SECONDS)
    hard_cutoff = now - timedelta(seconds=settings.RESERVATION_HARD_EXPIRY_SECONDS)
    retention_cutoff = now - timedelta(seconds=settings.INTENT_RETENTION_SECONDS)
    report = SweepReport()

    async with session_factory() as db:
        session_ids = await intent_store.find_stale(db, stale_cutoff, settings.SWEEP_BATCH_SIZE)

    for session_id in session_ids:
        report.examined += 1
        async with session_factory() as db:
            try:
                await _sweep_one(db, gateway, session_id, hard_cutoff, report)
            except Exception:
                report.errors += 1
                logger.exception("sweep_intent_failed", session_id=session_id)

    async with session_factory() as db:
        report.purged = await intent_store.purge_consumed(db, retention_cutoff)
        await db.commit()

    record_sweep("issued", report.issued)
    record_sweep("expired", report.expired)
    record_sweep("skipped", report.skipped)
    record_sweep("error", report.errors)
    record_sweep("purged", report.purged)
    logger.info(
        "sweep_completed",
        examined=report.examined,
        issued=report.issued,
        expired=report.expired,
        skipped=report.skipped,
        errors=report.errors,
        purged=report.purged,
    )
    return report
