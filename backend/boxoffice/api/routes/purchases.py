"""
Purchase endpoints: checkout, status reconciliation and cancellation.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from boxoffice.core.security import get_current_buyer_id
from boxoffice.core.logging import bind_purchase_context, get_logger
from boxoffice.db.session import get_db
from boxoffice.schemas.purchase import (
    PurchaseIntentCreate,
    PurchaseIntentResponse,
    PurchaseStatusResponse,
    TicketResponse,
)
from boxoffice.services import reconciler
from boxoffice.services.finalizer import OutcomeState, PurchaseOutcome
from boxoffice.services.gateway_factory import get_payment_gateway
from boxoffice.services.interfaces.payment_gateway import PaymentGateway
from boxoffice.services.poll_throttle import PollThrottle, get_poll_throttle
from boxoffice.services.purchase_service import create_purchase_intent

logger = get_logger(__name__)
router = APIRouter(prefix="/purchases", tags=["Purchases"])


def to_status_response(outcome: PurchaseOutcome) -> PurchaseStatusResponse:
    if outcome.state == OutcomeState.ISSUED:
        return PurchaseStatusResponse(
            issued=[TicketResponse.model_validate(t) for t in outcome.tickets],
            order_id=outcome.order_id,
            already_issued=outcome.already_issued,
        )
    if outcome.state == OutcomeState.PENDING:
        return PurchaseStatusResponse(
            pending=True,
            retry_after_seconds=outcome.retry_after_seconds,
            attempts_remaining=outcome.attempts_remaining,
        )
    if outcome.state == OutcomeState.FAILED:
        return PurchaseStatusResponse(failed=outcome.reason)
    return PurchaseStatusResponse(unknown_session=True)


@router.post(
    "/intent",
    response_model=PurchaseIntentResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_intent(
    request: PurchaseIntentCreate,
    buyer_id: int = Depends(get_current_buyer_id),
    db: AsyncSession = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
):
    """
    Validate the selection, reserve inventory and open a checkout session.

    The buyer is redirected to `redirect_url`. 409 means a ticket type sold
    out, 422 a malformed selection, 503 a gateway outage; in every error
    case nothing is reserved.
    """
    bind_purchase_context(buyer_id=buyer_id, event_id=request.event_id)
    return await create_purchase_intent(db, gateway, buyer_id, request)


@router.get(
    "/status/{session_id}",
    response_model=PurchaseStatusResponse,
    response_model_exclude_none=True,
)
async def purchase_status(
    session_id: str,
    buyer_id: int = Depends(get_current_buyer_id),
    db: AsyncSession = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    throttle: PollThrottle = Depends(get_poll_throttle),
):
    """
    Resolve the payment for a returning buyer or a polling client.

    Safe to call any number of times: tickets are issued once, later calls
    return the same tickets with `already_issued`. On `pending`, poll again
    after `retry_after_seconds`.
    """
    bind_purchase_context(session_id=session_id, buyer_id=buyer_id)
    outcome = await reconciler.reconcile(db, gateway, session_id, buyer_id, throttle)
    return to_status_response(outcome)


@router.post(
    "/{session_id}/cancel",
    response_model=PurchaseStatusResponse,
    response_model_exclude_none=True,
)
async def cancel_purchase(
    session_id: str,
    buyer_id: int = Depends(get_current_buyer_id),
    db: AsyncSession = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
):
    """Abandon a checkout and release its reservation (unless it was paid)."""
    bind_purchase_context(session_id=session_id, buyer_id=buyer_id)
    outcome = await reconciler.cancel(db, gateway, session_id, buyer_id)
    logger.info("purchase_cancel_requested", session_id=session_id, state=outcome.state.value)
    return to_status_response(outcome)
