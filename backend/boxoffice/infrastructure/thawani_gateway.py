"""
Thawani Pay checkout-session client.

API: https://thawani-technologies.stoplight.io/docs/thawani-ecommerce-api

Wire details handled here and nowhere else:
  - `thawani-api-key` header on every call
  - amounts in baisa (1 OMR = 1000 baisa); paid items need at least 100 baisa
  - `{"success": bool, "data": {...}}` envelope
  - buyer is redirected to `{checkout_url}/{session_id}?key={publishable key}`

Every call has an explicit timeout. Timeouts, transport errors, 5xx and
malformed bodies on a status query are reported as UNKNOWN, never UNPAID.

Thawani answers `unpaid` both for an abandoned session and for one the buyer
is still looking at. A session stays payable until its `expire_at`, so
`unpaid` before that moment (or without one) is reported as UNKNOWN.
"""

import time
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

import httpx

from boxoffice.core.errors import GatewayUnavailable
from boxoffice.core.logging import get_logger
from boxoffice.core.metrics import record_gateway_call
from boxoffice.services.interfaces.payment_gateway import (
    CheckoutSession,
    PaymentGateway,
    PaymentStatus,
)

logger = get_logger(__name__)

MIN_PAID_UNIT_AMOUNT = 100  # baisa
MAX_PRODUCT_NAME = 80

_STATUS_MAP = {
    "paid": PaymentStatus.PAID,
    "unpaid": PaymentStatus.UNPAID,  # terminal only once expire_at has passed
    "cancelled": PaymentStatus.UNPAID,
    "canceled": PaymentStatus.UNPAID,
    "expired": PaymentStatus.UNPAID,
}


def _parse_expiry(value) -> Optional[datetime]:
    """Parse `expire_at`, which Thawani sends with up to 7 fractional digits."""
    if not value:
        return None
    text = str(value).replace("Z", "+00:00")
    head, dot, rest = text.partition(".")
    if dot:
        digits = rest[: len(rest) - len(rest.lstrip("0123456789"))]
        text = f"{head}.{digits[:6].ljust(6, '0')}{rest[len(digits):]}"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class ThawaniGateway(PaymentGateway):
    """Thawani checkout sessions over HTTPS with pooled httpx connections."""

    def __init__(
        self,
        api_url: str,
        checkout_url: str,
        api_key: str,
        public_key: str,
        timeout: float = 10.0,
        minor_units: int = 1000,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_url = api_url.rstrip("/")
        self.checkout_url = checkout_url.rstrip("/")
        self.public_key = public_key
        self.minor_units = minor_units
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            transport=transport,
            headers={
                "Content-Type": "application/json",
                "thawani-api-key": api_key,
            },
        )

    def to_minor_units(self, amount: Decimal) -> int:
        """Major units to baisa, honouring the gateway's minimum for paid items."""
        minor = int((amount * self.minor_units).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
        if amount > 0:
            return max(MIN_PAID_UNIT_AMOUNT, minor)
        return minor

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
        payload = {
            "client_reference_id": reference,
            "mode": "payment",
            "products": [
                {
                    "name": description[:MAX_PRODUCT_NAME],
                    "quantity": 1,
                    "unit_amount": self.to_minor_units(amount),
                }
            ],
            "success_url": success_url,
            "cancel_url": cancel_url,
            "metadata": {"reference": reference, "currency": currency},
        }

        start = time.perf_counter()
        try:
            response = await self._client.post(f"{self.api_url}/checkout/session", json=payload)
            body = response.json()
            if response.status_code >= 400 or not body.get("success"):
                raise GatewayUnavailable(
                    f"Gateway rejected session: {body.get('description') or response.status_code}"
                )
            session_id = body["data"]["session_id"]
        except GatewayUnavailable:
            record_gateway_call("create_session", "error", time.perf_counter() - start)
            logger.warning("gateway_session_rejected", reference=reference)
            raise
        except (httpx.HTTPError, ValueError, KeyError, TypeError) as e:
            record_gateway_call("create_session", "error", time.perf_counter() - start)
            logger.warning("gateway_session_failed", reference=reference, error=str(e))
            raise GatewayUnavailable(f"Payment gateway unavailable: {e}") from e

        record_gateway_call("create_session", "ok", time.perf_counter() - start)
        logger.info("gateway_session_created", reference=reference, session_id=session_id)
        return CheckoutSession(
            session_id=session_id,
            redirect_url=f"{self.checkout_url}/{session_id}?key={self.public_key}",
        )

    async def query_status(self, session_id: str) -> PaymentStatus:
        start = time.perf_counter()
        try:
            response = await self._client.get(f"{self.api_url}/checkout/session/{session_id}")
            if response.status_code >= 500:
                raise ValueError(f"gateway returned {response.status_code}")
            body = response.json()
            if not body.get("success"):
                raise ValueError(body.get("description") or "unsuccessful response")
            data = body["data"]
            raw_status = str(data["payment_status"]).lower()
        except (httpx.HTTPError, ValueError, KeyError, TypeError) as e:
            record_gateway_call("query_status", "unknown", time.perf_counter() - start)
            logger.warning("gateway_status_unknown", session_id=session_id, error=str(e))
            return PaymentStatus.UNKNOWN

        status = _STATUS_MAP.get(raw_status, PaymentStatus.UNKNOWN)
        if raw_status == "unpaid":
            expire_at = _parse_expiry(data.get("expire_at"))
            if expire_at is None or expire_at > datetime.now(timezone.utc):
                status = PaymentStatus.UNKNOWN
        record_gateway_call("query_status", status.value, time.perf_counter() - start)
        logger.info(
            "gateway_status",
            session_id=session_id,
            gateway_status=raw_status,
            status=status.value,
        )
        return status

    async def close(self) -> None:
        await self._client.aclose()
