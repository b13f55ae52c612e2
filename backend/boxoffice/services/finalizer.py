"""
Purchase finalizer: converts a settled payment into issued tickets or
released inventory, exactly once per checkout session.

STATE MACHINE
=============

  PENDING -> RESERVED -> PAID -> ISSUED
                 |
                 +----> FAILED -> RELEASED

RESERVED is entered at checkout, when the inventory ledger reservation and
the intent insert commit together. From there:

  PAID     mark_consumed(issued) and insert one Ticket per ticket line (plus
           purchased add-ons) in ONE transaction. If the insert fails, the
           consumed flag rolls back with it, so the same finalize can simply
           be run again. Inventory is not touched: the reservation is the sale.
  UNPAID   mark_consumed(failed) and release every ticket line, in one
           transaction.
  UNKNOWN  no transition; the caller retries later.

Idempotence: only the caller whose mark_consumed returns True writes. Every
other caller (a concurrent poll, a sweep, a retry) re-reads the intent and
reports what the winner did: the already-issued tickets of its order, or the
terminal failure. No duplicate Ticket rows can be created.
"""

import enum
import uuid
from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from boxoffice.core.logging import get_logger
from boxoffice.core.metrics import record_release, tickets_issued
from boxoffice.models import Disposition, PurchaseIntent, PurchasedAddOn, Ticket
from boxoffice.services import intent_store, inventory_ledger
from boxoffice.services.interfaces.payment_gateway import PaymentStatus
from boxoffice.services.selection_validator import ResolvedSelection

logger = get_logger(__name__)

FAILURE_REASONS = {
    Disposition.FAILED.value: "payment_failed",
    Disposition.EXPIRED.value: "reservation_expired",
    Disposition.CANCELLED.value: "cancelled",
}


class OutcomeState(str, enum.Enum):
    ISSUED = "issued"
    PENDING = "pending"
    FAILED = "failed"
    UNKNOWN_SESSION = "unknown_session"


@dataclass
class PurchaseOutcome:
    state: OutcomeState
    tickets: list[Ticket] = field(default_factory=list)
    order_id: Optional[str] = None
    already_issued: bool = False
    reason: Optional[str] = None
    released_units: int = 0
    retry_after_seconds: Optional[float] = None
    attempts_remaining: Optional[int] = None

    @classmethod
    def pending(cls) -> "PurchaseOutcome":
        return cls(state=OutcomeState.PENDING)

    @classmethod
    def unknown_session(cls) -> "PurchaseOutcome":
        return cls(state=OutcomeState.UNKNOWN_SESSION)


def new_order_id() -> str:
    return uuid.uuid4().hex


async def get_order_tickets(db: AsyncSession, order_id: str) -> list[Ticket]:
    result = await db.execute(
        select(Ticket).where(Ticket.order_id == order_id).order_by(Ticket.id.asc())
    )
    return list(result.scalars().all())


async def consumed_outcome(db: AsyncSession, intent: PurchaseIntent) -> PurchaseOutcome:
    """What an already-consumed intent resolved to. Never writes."""
    if intent.disposition == Disposition.ISSUED.value:
        return PurchaseOutcome(
            state=OutcomeState.ISSUED,
            tickets=await get_order_tickets(db, intent.order_id),
            order_id=intent.order_id,
            already_issued=True,
        )
    return PurchaseOutcome(
        state=OutcomeState.FAILED,
        reason=FAILURE_REASONS.get(intent.disposition, "payment_failed"),
    )


async def _replay(db: AsyncSession, session_id: str) -> PurchaseOutcome:
    intent = await intent_store.get(db, session_id)
    if intent is None:
        return PurchaseOutcome.unknown_session()
    return await consumed_outcome(db, intent)


async def _issue_tickets(
    db: AsyncSession, intent: PurchaseIntent, order_id: str
) -> list[Ticket]:
    selection = ResolvedSelection.from_dict(intent.selection)

    tickets = [
        Ticket(
            event_id=intent.event_id,
            ticket_type_id=line.ticket_type_id,
            order_id=order_id,
            buyer_id=intent.buyer_id,
            payment_session_id=intent.session_id,
            quantity=line.quantity,
            total_price=line.total_price,
            event_date=line.event_date,
            attendee_details=line.attendee_details,
            is_gift=line.is_gift,
            gift_recipients=line.gift_recipients or None,
        )
        for line in selection.tickets
    ]
    add_ons = [
        PurchasedAddOn(
            order_id=order_id,
            payment_session_id=intent.session_id,
            add_on_id=item.add_on_id,
            name=item.name,
            description=item.description,
            quantity=item.quantity,
            unit_price=item.unit_price,
            total_price=item.total_price,
            note=item.note,
        )
        for item in selection.add_ons
    ]
    db.add_all(tickets)
    db.add_all(add_ons)
    await db.flush()
    return tickets


async def issue(db: AsyncSession, session_id: str) -> PurchaseOutcome:
    """Payment confirmed: issue tickets once, or return the ones already issued."""
    order_id = new_order_id()
    try:
        won = await intent_store.mark_consumed(db, session_id, Disposition.ISSUED, order_id)
        if won:
            intent = await intent_store.get(db, session_id)
            tickets = await _issue_tickets(db, intent, order_id)
            units = await inventory_ledger.commit_lines(
                db, [(t.ticket_type_id, t.quantity) for t in tickets]
            )
            await db.commit()

            tickets_issued.inc(units)
            logger.info(
                "tickets_issued",
                session_id=session_id,
                order_id=order_id,
                buyer_id=intent.buyer_id,
                lines=len(tickets),
                units=units,
            )
            return PurchaseOutcome(state=OutcomeState.ISSUED, tickets=tickets, order_id=order_id)
        await db.rollback()
    except Exception:
        await db.rollback()
        logger.exception("ticket_issue_failed", session_id=session_id)
        raise

    outcome = await _replay(db, session_id)
    logger.info("finalize_replayed", session_id=session_id, state=outcome.state.value)
    return outcome


async def release_intent(
    db: AsyncSession, session_id: str, disposition: Disposition
) -> PurchaseOutcome:
    """
    Close an unpaid reservation: consume the intent with `disposition` and put
    its ticket lines back on sale. Shared by failed payments, the sweep
    (expired) and buyer cancellation.
    """
    try:
        won = await intent_store.mark_consumed(db, session_id, disposition)
        if won:
            intent = await intent_store.get(db, session_id)
            selection = ResolvedSelection.from_dict(intent.selection)
            units = await inventory_ledger.release_lines(
                db, [(line.ticket_type_id, line.quantity) for line in selection.tickets]
            )
            await db.commit()

            record_release(disposition.value, units)
            logger.info(
                "reservation_released",
                session_id=session_id,
                disposition=disposition.value,
                units=units,
            )
            return PurchaseOutcome(
                state=OutcomeState.FAILED,
                reason=FAILURE_REASONS[disposition.value],
                released_units=units,
            )
        await db.rollback()
    except Exception:
        await db.rollback()
        logger.exception("reservation_release_failed", session_id=session_id)
        raise

    return await _replay(db, session_id)


async def finalize(db: AsyncSession, session_id: str, status: PaymentStatus) -> PurchaseOutcome:
    """Drive one intent through the state machine for a gateway status."""
    if status == PaymentStatus.PAID:
        return await issue(db, session_id)
    if status == PaymentStatus.UNPAID:
        return await release_intent(db, session_id, Disposition.FAILED)
    return PurchaseOutcome.pending()
