"""
In-process payment gateway.
Stands in for the real gateway in development, load tests and unit tests.
"""

import uuid
from decimal import Decimal
from typing import Optional

from boxoffice.core.errors import GatewayUnavailable
from boxoffice.services.interfaces.payment_gateway import (
    CheckoutSession,
    PaymentGateway,
    PaymentStatus,
)


class MockGateway(PaymentGateway):
    """
    Sessions report UNKNOWN until settled with `settle()`, unless
    `auto_settle` ("paid" or "unpaid") decides their outcome up front.
    Setting `outage` makes every call behave like a gateway timeout.

    Use when:
    - Running locally without gateway credentials
    - Load testing oversell behaviour (auto_settle="paid")
    - Driving the reconciler through every branch in tests
    """

    def __init__(self, auto_settle: Optional[str] = None, checkout_url: str = "http://mockpay.local/pay"):
        self.auto_settle = auto_settle
        self.checkout_url = checkout_url
        self.outage = False
        self.sessions: dict[str, dict] = {}
        self.status_queries = 0

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
        if self.outage:
            raise GatewayUnavailable("Mock gateway outage")

        session_id = f"mock_{uuid.uuid4().hex}"
        self.sessions[session_id] = {
            "amount": amount,
            "currency": currency,
            "reference": reference,
            "description": description,
            "success_url": success_url,
            "cancel_url": cancel_url,
            "status": self.auto_settle,
        }
        return CheckoutSession(session_id=session_id, redirect_url=f"{self.checkout_url}/{session_id}")

    async def query_status(self, session_id: str) -> PaymentStatus:
        self.status_queries += 1
        if self.outage:
            return PaymentStatus.UNKNOWN

        session = self.sessions.get(session_id)
        if session is None or session["status"] is None:
            return PaymentStatus.UNKNOWN
        return PaymentStatus.PAID if session["status"] == "paid" else PaymentStatus.UNPAID

    def settle(self, session_id: str, paid: bool) -> None:
        """Simulate the buyer completing (or abandoning) payment at the gateway."""
        self.sessions[session_id]["status"] = "paid" if paid else "unpaid"
