"""
Checkout: validate a selection, open a gateway session and reserve inventory.

ORDERING
========

  1. Load the catalog and validate the selection (pure, no writes).
  2. Create the gateway checkout session. This is the only network call, and
     it happens with no transaction open: a slow gateway can never hold
     ticket-type rows locked.
  3. In ONE transaction: reserve every ticket line (ascending id order) and
     insert the purchase intent keyed by the new session id. Commit.

If step 3 fails (sold out in the meantime, duplicate session) the transaction
rolls back and nothing is reserved. The orphaned gateway session is never
paid for: the buyer is not redirected to it, and it expires at the gateway.
If step 2 fails nothing was written at all.

Once step 3 commits, the intent is the durable record the reconciler and the
sweep work from, so every reservation is eventually issued or released.
"""

import uuid
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from boxoffice.core.config import get_settings
from boxoffice.core.errors import InsufficientInventory, PurchaseError, SelectionValidationError
from boxoffice.core.logging import get_logger
from boxoffice.core.metrics import record_checkout
from boxoffice.models import Event, EventAddOnLink, TicketType
from boxoffice.schemas.purchase import PurchaseIntentCreate, PurchaseIntentResponse
from boxoffice.services import intent_store, inventory_ledger
from boxoffice.services.interfaces.payment_gateway import PaymentGateway
from boxoffice.services.selection_validator import (
    CatalogSnapshot,
    ResolvedSelection,
    validate_selection,
)

logger = get_logger(__name__)
settings = get_settings()


async def load_catalog(db: AsyncSession, event_id: int) -> CatalogSnapshot:
    """Read the event's ticket types and add-on links as they are right now."""
    event = await db.get(Event, event_id)
    if event is None:
        raise SelectionValidationError("event_id", "event not found")

    ticket_types = await db.execute(
        select(TicketType)
        .where(TicketType.event_id == event_id)
        .execution_options(populate_existing=True)
    )
    links = await db.execute(
        select(EventAddOnLink)
        .where(EventAddOnLink.event_id == event_id)
        .execution_options(populate_existing=True)
    )
    return CatalogSnapshot(
        event_id=event_id,
        ticket_types={tt.id: tt for tt in ticket_types.scalars().all()},
        add_on_links={link.add_on_id: link for link in links.unique().scalars().all()},
    )


def new_client_reference() -> str:
    return f"order_{uuid.uuid4().hex}"


def _return_urls(reference: str) -> tuple[str, str]:
    base = f"{settings.PUBLIC_BASE_URL.rstrip('/')}/payment-status?ref={reference}"
    return f"{base}&status=success", f"{base}&status=failed"


def _describe(selection: ResolvedSelection) -> str:
    parts = []
    for line in selection.tickets:
        label = f"{line.quantity} x {line.name}"
        if line.event_date:
            label += f" ({line.event_date.isoformat()})"
        parts.append(label)
    return ", ".join(parts)


async def create_purchase_intent(
    db: AsyncSession,
    gateway: PaymentGateway,
    buyer_id: int,
    request: PurchaseIntentCreate,
    client_reference: Optional[str] = None,
) -> PurchaseIntentResponse:
    """
    Start a checkout for `buyer_id`.

    Raises SelectionValidationError, InsufficientInventory or
    GatewayUnavailable; on any of them nothing is reserved.
    """
    try:
        catalog = await load_catalog(db, request.event_id)
        selection = validate_selection(request, catalog)
    except InsufficientInventory:
        record_checkout("sold_out")
        raise
    except SelectionValidationError as e:
        record_checkout("invalid")
        logger.info("selection_rejected", buyer_id=buyer_id, field=e.field, reason=e.reason)
        raise

    amount = selection.amount
    reference = client_reference or new_client_reference()
    success_url, cancel_url = _return_urls(reference)

    # Close the read transaction before going to the network
    await db.rollback()

    try:
        session = await gateway.create_session(
            amount,
            settings.CURRENCY,
            success_url,
            cancel_url,
            reference=reference,
            description=_describe(selection),
        )
    except PurchaseError:
        record_checkout("gateway_error")
        raise

    try:
        await inventory_ledger.reserve_lines(
            db, [(line.ticket_type_id, line.quantity) for line in selection.tickets]
        )
        await intent_store.create(
            db,
            session.session_id,
            buyer_id,
            request.event_id,
            selection,
            client_reference=reference,
            amount=amount,
            currency=settings.CURRENCY,
        )
        await db.commit()
    except InsufficientInventory:
        await db.rollback()
        record_checkout("sold_out")
        raise
    except Exception:
        await db.rollback()
        record_checkout("error")
        raise

    record_checkout("created")
    logger.info(
        "checkout_created",
        session_id=session.session_id,
        buyer_id=buyer_id,
        event_id=request.event_id,
        amount=str(amount),
        reference=reference,
    )
    return PurchaseIntentResponse(
        session_id=session.session_id,
        redirect_url=session.redirect_url,
        amount=amount,
        currency=settings.CURRENCY,
    )
