"""
Payment gateway interface.
Isolates every gateway-specific protocol detail from the purchase core.
"""

import enum
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal


class PaymentStatus(str, enum.Enum):
    PAID = "paid"
    UNPAID = "unpaid"
    # Non-terminal: timeout, network error, outage, malformed response.
    # Never to be treated as UNPAID.
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class CheckoutSession:
    session_id: str
    redirect_url: str


class PaymentGateway(ABC):
    """
    Interface for checkout-session payment gateways.

    Implementations:
    - ThawaniGateway: Thawani Pay checkout sessions over HTTPS
    - MockGateway: in-process gateway for development, load and unit tests

    Implementations perform no retries and no business logic. Callers own
    retry policy (bounded, with backoff).
    """

    @abstractmethod
    async def create_session(
        self,
        amount: Decimal,
        currency: str,
        success_url: str,
        cancel_url: str,
        *,
        reference: str,
        description: str,
    ) -> CheckoutSession:
        """
        Create a checkout session for `amount` (major currency units).

        Raises:
            GatewayUnavailable: on timeout, transport error, rejected or
                malformed response. No session may be assumed to exist.
        """

    @abstractmethod
    async def query_status(self, session_id: str) -> PaymentStatus:
        """
        Report the settlement status of a session.

        Never raises for transport problems: those are PaymentStatus.UNKNOWN.
        """

    async def close(self) -> None:
        """Release pooled connections. No-op by default."""
