"""
Inventory ledger: the only writer of `ticket_types.available_quantity`.

CONCURRENCY STRATEGY: Conditional UPDATE (compare-and-swap in the database)
==========================================================================

Problem:
  Two buyers race for the last tickets of a type. Read-then-write in the
  application (read available=1, write available=0) loses updates and
  oversells, and in-process locks do nothing across several instances.

Solution:
  Each mutation is one statement whose WHERE clause carries the precondition:

    UPDATE ticket_types SET available_quantity = available_quantity - :qty
    WHERE id = :id AND available_quantity >= :qty

  The database serializes concurrent writers on the row; a writer whose
  precondition no longer holds matches zero rows and we report it. There is
  no version column and no retry loop: a failed precondition is a real
  "sold out", not a conflict to retry.

  Multi-line reservations lock rows in ascending ticket-type id order, so two
  buyers selecting the same types in different orders cannot deadlock.

  The CHECK constraints on ticket_types are the final safety net.

There is no separate commit step: the reservation taken at checkout *is* the
sale once payment confirms, so the finalizer never touches inventory on
success and a double decrement cannot happen.
"""

from typing import Iterable

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from boxoffice.core.errors import InsufficientInventory, InventoryLedgerError
from boxoffice.core.logging import get_logger
from boxoffice.models import TicketType

logger = get_logger(__name__)


async def reserve(db: AsyncSession, ticket_type_id: int, quantity: int) -> None:
    """Atomically take `quantity` units off sale, or raise InsufficientInventory."""
    if quantity <= 0:
        raise InventoryLedgerError(f"Reservation quantity must be positive, got {quantity}")

    result = await db.execute(
        update(TicketType)
        .where(
            TicketType.id == ticket_type_id,
            TicketType.available_quantity >= quantity,
        )
        .values(available_quantity=TicketType.available_quantity - quantity)
        .execution_options(synchronize_session=False)
    )

    if result.rowcount == 0:
        logger.warning(
            "reservation_rejected",
            ticket_type_id=ticket_type_id,
            requested=quantity,
        )
        raise InsufficientInventory(ticket_type_id, quantity)

    logger.debug("inventory_reserved", ticket_type_id=ticket_type_id, quantity=quantity)


async def release(db: AsyncSession, ticket_type_id: int, quantity: int) -> None:
    """Atomically put `quantity` units back on sale."""
    if quantity <= 0:
        raise InventoryLedgerError(f"Release quantity must be positive, got {quantity}")

    result = await db.execute(
        update(TicketType)
        .where(
            TicketType.id == ticket_type_id,
            TicketType.available_quantity + quantity <= TicketType.total_quantity,
        )
        .values(available_quantity=TicketType.available_quantity + quantity)
        .execution_options(synchronize_session=False)
    )

    if result.rowcount == 0:
        # Releasing more than was ever reserved means a bookkeeping bug upstream
        logger.error(
            "release_rejected",
            ticket_type_id=ticket_type_id,
            quantity=quantity,
        )
        raise InventoryLedgerError(
            f"Cannot release {quantity} units of ticket type {ticket_type_id}"
        )

    logger.debug("inventory_released", ticket_type_id=ticket_type_id, quantity=quantity)


async def reserve_lines(db: AsyncSession, lines: Iterable[tuple[int, int]]) -> None:
    """
    Reserve several (ticket_type_id, quantity) lines in the caller's transaction.
    On InsufficientInventory the caller must roll back so earlier lines are undone.
    """
    for ticket_type_id, quantity in sorted(lines):
        await reserve(db, ticket_type_id, quantity)


async def release_lines(db: AsyncSession, lines: Iterable[tuple[int, int]]) -> int:
    """Release several lines; returns the number of units put back."""
    released = 0
    for ticket_type_id, quantity in sorted(lines):
        await release(db, ticket_type_id, quantity)
        released += quantity
    return released


async def commit_lines(db: AsyncSession, lines: Iterable[tuple[int, int]]) -> int:
    """
    Confirm reserved lines as sold. Writes nothing: the units left
    `available` when they were reserved. Returns the units confirmed.
    """
    units = sum(quantity for _, quantity in lines)
    logger.debug("inventory_committed", units=units)
    return units
