"""
Tests for the purchase finalizer: exactly-once issuance and release.
"""

import asyncio
import warnings
from pathlib import Path

import pytest
from sqlalchemy import func, select

from boxoffice.models import Disposition, Ticket
from boxoffice.services import finalizer, intent_store
from boxoffice.services.finalizer import OutcomeState
from boxoffice.services.interfaces.payment_gateway import PaymentStatus
from conftest import available_quantity, open_intent


async def ticket_units(session_factory, ticket_type_id):
    async with session_factory() as session:
        result = await session.execute(
            select(func.coalesce(func.sum(Ticket.quantity), 0)).where(
                Ticket.ticket_type_id == ticket_type_id
            )
        )
        return result.scalar_one()


@pytest.mark.asyncio
async def test_paid_issues_tickets(session_factory, ga_ticket_type):
    await open_intent(session_factory, ga_ticket_type, quantity=2)

    async with session_factory() as session:
        outcome = await finalizer.finalize(session, "sess_1", PaymentStatus.PAID)

    assert outcome.state == OutcomeState.ISSUED
    assert outcome.already_issued is False
    assert len(outcome.tickets) == 1
    assert outcome.tickets[0].quantity == 2
    assert outcome.tickets[0].order_id == outcome.order_id
    # The reservation is the sale: inventory stays taken
    assert await available_quantity(session_factory, ga_ticket_type.id) == 98


@pytest.mark.asyncio
async def test_finalize_twice_returns_same_order(session_factory, ga_ticket_type):
    await open_intent(session_factory, ga_ticket_type, quantity=2)

    async with session_factory() as session:
        first = await finalizer.finalize(session, "sess_1", PaymentStatus.PAID)
    async with session_factory() as session:
        second = await finalizer.finalize(session, "sess_1", PaymentStatus.PAID)

    assert second.state == OutcomeState.ISSUED
    assert second.already_issued is True
    assert second.order_id == first.order_id
    assert [t.id for t in second.tickets] == [t.id for t in first.tickets]
    assert await ticket_units(session_factory, ga_ticket_type.id) == 2


@pytest.mark.asyncio
async def test_concurrent_finalize_issues_once(session_factory, ga_ticket_type):
    """Return redirect, a poll and the sweep all confirm payment at once."""
    await open_intent(session_factory, ga_ticket_type, quantity=3)

    async def finalize_paid():
        async with session_factory() as session:
            return await finalizer.finalize(session, "sess_1", PaymentStatus.PAID)

    outcomes = await asyncio.gather(*[finalize_paid() for _ in range(5)])

    assert all(o.state == OutcomeState.ISSUED for o in outcomes)
    assert sum(1 for o in outcomes if not o.already_issued) == 1
    assert len({o.order_id for o in outcomes}) == 1
    assert await ticket_units(session_factory, ga_ticket_type.id) == 3
    assert await available_quantity(session_factory, ga_ticket_type.id) == 97


@pytest.mark.asyncio
async def test_unpaid_releases_reservation(session_factory, ga_ticket_type):
    await open_intent(session_factory, ga_ticket_type, quantity=2)
    assert await available_quantity(session_factory, ga_ticket_type.id) == 98

    async with session_factory() as session:
        outcome = await finalizer.finalize(session, "sess_1", PaymentStatus.UNPAID)

    assert outcome.state == OutcomeState.FAILED
    assert outcome.reason == "payment_failed"
    assert outcome.released_units == 2
    assert await available_quantity(session_factory, ga_ticket_type.id) == 100

    async with session_factory() as session:
        intent = await intent_store.get(session, "sess_1")
    assert intent.disposition == Disposition.FAILED.value


@pytest.mark.asyncio
async def test_paid_after_failure_is_not_issued(session_factory, ga_ticket_type):
    await open_intent(session_factory, ga_ticket_type, quantity=2)

    async with session_factory() as session:
        await finalizer.finalize(session, "sess_1", PaymentStatus.UNPAID)
    async with session_factory() as session:
        outcome = await finalizer.finalize(session, "sess_1", PaymentStatus.PAID)

    assert outcome.state == OutcomeState.FAILED
    assert outcome.released_units == 0
    assert await ticket_units(session_factory, ga_ticket_type.id) == 0
    assert await available_quantity(session_factory, ga_ticket_type.id) == 100


@pytest.mark.asyncio
async def test_release_twice_releases_once(session_factory, ga_ticket_type):
    await open_intent(session_factory, ga_ticket_type, quantity=2)

    async def expire():
        async with session_factory() as session:
            return await finalizer.release_intent(session, "sess_1", Disposition.EXPIRED)

    outcomes = await asyncio.gather(expire(), expire())

    assert sorted(o.released_units for o in outcomes) == [0, 2]
    assert all(o.reason == "reservation_expired" for o in outcomes)
    assert await available_quantity(session_factory, ga_ticket_type.id) == 100


@pytest.mark.asyncio
async def test_unknown_status_changes_nothing(session_factory, ga_ticket_type):
    await open_intent(session_factory, ga_ticket_type, quantity=2)

    async with session_factory() as session:
        outcome = await finalizer.finalize(session, "sess_1", PaymentStatus.UNKNOWN)

    assert outcome.state == OutcomeState.PENDING
    assert await available_quantity(session_factory, ga_ticket_type.id) == 98
    async with session_factory() as session:
        assert not (await intent_store.get(session, "sess_1")).is_consumed


@pytest.mark.asyncio
async def test_failed_issue_rolls_back_consumed_flag(session_factory, ga_ticket_type, monkeypatch):
    """A crash while writing tickets leaves the intent open so finalize can be retried."""
    await open_intent(session_factory, ga_ticket_type, quantity=2)

    async def broken_issue(db, intent, order_id):
        raise RuntimeError("disk full")

    monkeypatch.setattr(finalizer, "_issue_tickets", broken_issue)
    async with session_factory() as session:
        with pytest.raises(RuntimeError):
            await finalizer.finalize(session, "sess_1", PaymentStatus.PAID)

    async with session_factory() as session:
        assert not (await intent_store.get(session, "sess_1")).is_consumed

    monkeypatch.undo()
    async with session_factory() as session:
        outcome = await finalizer.finalize(session, "sess_1", PaymentStatus.PAID)
    assert outcome.state == OutcomeState.ISSUED
    assert await ticket_units(session_factory, ga_ticket_type.id) == 2


@pytest.mark.asyncio
async def test_conservation_across_mixed_outcomes(session_factory, ga_ticket_type):
    """available + issued + open reservations == total, whatever happens."""
    for i, quantity in enumerate([5, 3, 7, 1]):
        await open_intent(session_factory, ga_ticket_type, quantity=quantity, session_id=f"s{i}")

    async with session_factory() as session:
        await finalizer.finalize(session, "s0", PaymentStatus.PAID)
    async with session_factory() as session:
        await finalizer.finalize(session, "s1", PaymentStatus.UNPAID)
    async with session_factory() as session:
        await finalizer.release_intent(session, "s2", Disposition.CANCELLED)
    # s3 stays open

    available = await available_quantity(session_factory, ga_ticket_type.id)
    issued = await ticket_units(session_factory, ga_ticket_type.id)
    assert (available, issued) == (94, 5)
    assert available + issued + 1 == 100


def test_package_sources_compile_without_warnings():
    """Docstrings like the state diagram must not hold invalid escapes."""
    package_dir = Path(finalizer.__file__).resolve().parents[1]
    for path in sorted(package_dir.rglob("*.py")):
        with warnings.catch_warnings():
            warnings.simplefilter("error")
            compile(path.read_text(encoding="utf-8"), str(path), "exec")
