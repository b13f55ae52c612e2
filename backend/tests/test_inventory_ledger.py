"""
Tests for the inventory ledger, including concurrent reservation races.
"""

import asyncio

import pytest

from boxoffice.core.errors import InsufficientInventory, InventoryLedgerError
from boxoffice.services import inventory_ledger
from conftest import available_quantity


@pytest.mark.asyncio
async def test_reserve_and_release(session_factory, db_session, ga_ticket_type):
    await inventory_ledger.reserve(db_session, ga_ticket_type.id, 2)
    await db_session.commit()
    assert await available_quantity(session_factory, ga_ticket_type.id) == 98

    await inventory_ledger.release(db_session, ga_ticket_type.id, 2)
    await db_session.commit()
    assert await available_quantity(session_factory, ga_ticket_type.id) == 100


@pytest.mark.asyncio
async def test_reserve_everything_then_nothing_left(session_factory, db_session, ga_ticket_type):
    ticket_type_id = ga_ticket_type.id
    await inventory_ledger.reserve(db_session, ticket_type_id, 100)
    await db_session.commit()

    with pytest.raises(InsufficientInventory):
        await inventory_ledger.reserve(db_session, ticket_type_id, 1)
    await db_session.rollback()
    assert await available_quantity(session_factory, ticket_type_id) == 0


@pytest.mark.asyncio
@pytest.mark.parametrize("quantity", [0, -1])
async def test_non_positive_quantity_rejected(db_session, ga_ticket_type, quantity):
    with pytest.raises(InventoryLedgerError):
        await inventory_ledger.reserve(db_session, ga_ticket_type.id, quantity)
    with pytest.raises(InventoryLedgerError):
        await inventory_ledger.release(db_session, ga_ticket_type.id, quantity)


@pytest.mark.asyncio
async def test_release_beyond_total_rejected(session_factory, db_session, ga_ticket_type):
    """Releasing what was never reserved would break available <= total."""
    ticket_type_id = ga_ticket_type.id
    with pytest.raises(InventoryLedgerError):
        await inventory_ledger.release(db_session, ticket_type_id, 1)
    await db_session.rollback()
    assert await available_quantity(session_factory, ticket_type_id) == 100


@pytest.mark.asyncio
async def test_multi_line_reservation_is_all_or_nothing(
    session_factory, db_session, ga_ticket_type, vip_ticket_type
):
    ga_id, vip_id = ga_ticket_type.id, vip_ticket_type.id
    with pytest.raises(InsufficientInventory):
        await inventory_ledger.reserve_lines(db_session, [(ga_id, 10), (vip_id, 6)])
    await db_session.rollback()

    assert await available_quantity(session_factory, ga_id) == 100
    assert await available_quantity(session_factory, vip_id) == 5


@pytest.mark.asyncio
async def test_release_lines_counts_units(db_session, ga_ticket_type, vip_ticket_type):
    await inventory_ledger.reserve_lines(db_session, [(vip_ticket_type.id, 2), (ga_ticket_type.id, 3)])
    released = await inventory_ledger.release_lines(
        db_session, [(ga_ticket_type.id, 3), (vip_ticket_type.id, 2)]
    )
    assert released == 5


@pytest.mark.asyncio
async def test_concurrent_reservations_never_oversell(session_factory, vip_ticket_type):
    """
    20 buyers race for 5 VIP units on separate connections.
    Exactly 5 succeed and the counter ends at 0, never below.
    """

    async def buy_one():
        async with session_factory() as session:
            try:
                await inventory_ledger.reserve(session, vip_ticket_type.id, 1)
                await session.commit()
                return True
            except InsufficientInventory:
                await session.rollback()
                return False

    results = await asyncio.gather(*[buy_one() for _ in range(20)])

    assert sum(results) == 5
    assert await available_quantity(session_factory, vip_ticket_type.id) == 0
