"""
Tests for the purchase intent store.
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from boxoffice.core.errors import DuplicateSession
from boxoffice.db.base import utcnow
from boxoffice.models import Disposition
from boxoffice.services import intent_store
from boxoffice.services.selection_validator import ResolvedSelection, ResolvedTicketLine


def make_selection(event_id, ticket_type_id, quantity=2):
    return ResolvedSelection(
        event_id=event_id,
        tickets=[
            ResolvedTicketLine(
                ticket_type_id=ticket_type_id,
                name="GA",
                quantity=quantity,
                unit_price=Decimal("10.00"),
            )
        ],
        add_ons=[],
    )


async def create_intent(db, event_id, ticket_type_id, session_id="sess_1", buyer_id=1):
    intent = await intent_store.create(
        db,
        session_id,
        buyer_id,
        event_id,
        make_selection(event_id, ticket_type_id),
        client_reference=f"order_{session_id}",
        amount=Decimal("20.00"),
        currency="OMR",
    )
    await db.commit()
    return intent


@pytest.mark.asyncio
async def test_create_and_get(db_session, test_event, ga_ticket_type):
    await create_intent(db_session, test_event.id, ga_ticket_type.id)

    intent = await intent_store.get(db_session, "sess_1")
    assert intent is not None
    assert intent.buyer_id == 1
    assert intent.status_checks == 0
    assert not intent.is_consumed
    selection = ResolvedSelection.from_dict(intent.selection)
    assert selection.amount == Decimal("20.00")


@pytest.mark.asyncio
async def test_get_unknown_session(db_session):
    assert await intent_store.get(db_session, "nope") is None


@pytest.mark.asyncio
async def test_duplicate_session_rejected(db_session, test_event, ga_ticket_type):
    await create_intent(db_session, test_event.id, ga_ticket_type.id)

    with pytest.raises(DuplicateSession):
        await intent_store.create(
            db_session,
            "sess_1",
            2,
            test_event.id,
            make_selection(test_event.id, ga_ticket_type.id),
            client_reference="order_other",
            amount=Decimal("20.00"),
            currency="OMR",
        )


@pytest.mark.asyncio
async def test_mark_consumed_only_once(db_session, test_event, ga_ticket_type):
    await create_intent(db_session, test_event.id, ga_ticket_type.id)

    assert await intent_store.mark_consumed(db_session, "sess_1", Disposition.ISSUED, "order1") is True
    await db_session.commit()
    assert await intent_store.mark_consumed(db_session, "sess_1", Disposition.FAILED) is False
    await db_session.commit()

    intent = await intent_store.get(db_session, "sess_1")
    assert intent.is_consumed
    assert intent.disposition == "issued"
    assert intent.order_id == "order1"


@pytest.mark.asyncio
async def test_mark_consumed_unknown_session(db_session):
    assert await intent_store.mark_consumed(db_session, "nope", Disposition.FAILED) is False


@pytest.mark.asyncio
async def test_record_status_check_counts(db_session, test_event, ga_ticket_type):
    await create_intent(db_session, test_event.id, ga_ticket_type.id)

    assert await intent_store.record_status_check(db_session, "sess_1") == 1
    assert await intent_store.record_status_check(db_session, "sess_1") == 2
    await db_session.commit()

    intent = await intent_store.get(db_session, "sess_1")
    assert intent.status_checks == 2


@pytest.mark.asyncio
async def test_find_stale_skips_consumed_and_fresh(db_session, test_event, ga_ticket_type):
    await create_intent(db_session, test_event.id, ga_ticket_type.id, "sess_open")
    await create_intent(db_session, test_event.id, ga_ticket_type.id, "sess_done")
    await intent_store.mark_consumed(db_session, "sess_done", Disposition.CANCELLED)
    await db_session.commit()

    assert await intent_store.find_stale(db_session, utcnow() - timedelta(hours=1)) == []
    assert await intent_store.find_stale(db_session, utcnow() + timedelta(seconds=5)) == ["sess_open"]


@pytest.mark.asyncio
async def test_purge_consumed_respects_retention(db_session, test_event, ga_ticket_type):
    await create_intent(db_session, test_event.id, ga_ticket_type.id, "sess_open")
    await create_intent(db_session, test_event.id, ga_ticket_type.id, "sess_done")
    await intent_store.mark_consumed(db_session, "sess_done", Disposition.FAILED)
    await db_session.commit()

    assert await intent_store.purge_consumed(db_session, utcnow() - timedelta(days=1)) == 0
    assert await intent_store.purge_consumed(db_session, utcnow() + timedelta(seconds=5)) == 1
    await db_session.commit()

    assert await intent_store.get(db_session, "sess_done") is None
    assert await intent_store.get(db_session, "sess_open") is not None
