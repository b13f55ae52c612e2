"""
Purchase intent store.

The intent is the server-side system of record for a checkout in flight; the
buyer's browser only keeps a disposable copy of the session id. This module
is the only writer of an intent's consumption flag.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from boxoffice.core.errors import DuplicateSession
from boxoffice.core.logging import get_logger
from boxoffice.db.base import utcnow
from boxoffice.models import Disposition, PurchaseIntent
from boxoffice.services.selection_validator import ResolvedSelection

logger = get_logger(__name__)


async def create(
    db: AsyncSession,
    session_id: str,
    buyer_id: int,
    event_id: int,
    selection: ResolvedSelection,
    *,
    client_reference: str,
    amount: Decimal,
    currency: str,
) -> PurchaseIntent:
    """
    Insert a new, unconsumed intent in the caller's transaction.
    Raises DuplicateSession if the session id is already recorded.
    """
    existing = await db.execute(
        select(PurchaseIntent.id).where(PurchaseIntent.session_id == session_id)
    )
    if existing.scalar_one_or_none() is not None:
        raise DuplicateSession(session_id)

    intent = PurchaseIntent(
        session_id=session_id,
        client_reference=client_reference,
        buyer_id=buyer_id,
        event_id=event_id,
        selection=selection.to_dict(),
        amount=amount,
        currency=currency,
        status_checks=0,
    )
    db.add(intent)
    try:
        await db.flush()
    except IntegrityError:
        # Lost a race with another insert for the same session id
        raise DuplicateSession(session_id)

    logger.info(
        "intent_created",
        session_id=session_id,
        buyer_id=buyer_id,
        event_id=event_id,
        amount=str(amount),
    )
    return intent


async def get(db: AsyncSession, session_id: str) -> Optional[PurchaseIntent]:
    """Fetch an intent, always re-reading the row (never a stale identity-map copy)."""
    result = await db.execute(
        select(PurchaseIntent)
        .where(PurchaseIntent.session_id == session_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def mark_consumed(
    db: AsyncSession,
    session_id: str,
    disposition: Disposition,
    order_id: Optional[str] = None,
) -> bool:
    """
    Atomically move the intent from unconsumed to consumed.

    Returns True only for the single caller that performed the transition;
    every concurrent or later caller gets False. This flag is what makes
    ticket issuance at-most-once.
    """
    result = await db.execute(
        update(PurchaseIntent)
        .where(
            PurchaseIntent.session_id == session_id,
            PurchaseIntent.consumed_at.is_(None),
        )
        .values(
            consumed_at=utcnow(),
            disposition=disposition.value,
            order_id=order_id,
            updated_at=utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    won = result.rowcount == 1
    logger.debug(
        "intent_consume_attempt",
        session_id=session_id,
        disposition=disposition.value,
        won=won,
    )
    return won


async def record_status_check(db: AsyncSession, session_id: str) -> int:
    """Atomically count one gateway status query; returns the new count."""
    await db.execute(
        update(PurchaseIntent)
        .where(PurchaseIntent.session_id == session_id)
        .values(status_checks=PurchaseIntent.status_checks + 1)
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(
        select(PurchaseIntent.status_checks).where(PurchaseIntent.session_id == session_id)
    )
    return result.scalar_one()


async def find_stale(db: AsyncSession, older_than: datetime, limit: int = 100) -> list[str]:
    """Session ids of unconsumed intents created before `older_than`, oldest first."""
    result = await db.execute(
        select(PurchaseIntent.session_id)
        .where(
            PurchaseIntent.consumed_at.is_(None),
            PurchaseIntent.created_at < older_than,
        )
        .order_by(PurchaseIntent.created_at.asc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def purge_consumed(db: AsyncSession, older_than: datetime) -> int:
    """Delete consumed intents past the retention window. Issued tickets are kept."""
    result = await db.execute(
        delete(PurchaseIntent)
        .where(
            PurchaseIntent.consumed_at.is_not(None),
            PurchaseIntent.consumed_at < older_than,
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount:
        logger.info("intents_purged", count=result.rowcount)
    return result.rowcount
