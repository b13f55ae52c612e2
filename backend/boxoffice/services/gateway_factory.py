"""
Payment gateway factory.
Configures which gateway implementation the purchase core talks to.
"""

from typing import Optional

from boxoffice.core.config import get_settings
from boxoffice.infrastructure.thawani_gateway import ThawaniGateway
from boxoffice.services.interfaces.mock_gateway import MockGateway
from boxoffice.services.interfaces.payment_gateway import PaymentGateway

settings = get_settings()


def build_payment_gateway() -> PaymentGateway:
    """
    Build the configured gateway.

    Selection via PAYMENT_GATEWAY env var:
    - thawani: real checkout sessions (needs GATEWAY_API_KEY / GATEWAY_PUBLIC_KEY)
    - mock: in-process gateway; sessions stay UNKNOWN unless
      MOCK_GATEWAY_AUTO_SETTLE is set. Refused when ENVIRONMENT=production.
    """
    if settings.PAYMENT_GATEWAY == "thawani":
        return ThawaniGateway(
            api_url=settings.GATEWAY_API_URL,
            checkout_url=settings.GATEWAY_CHECKOUT_URL,
            api_key=settings.GATEWAY_API_KEY,
            public_key=settings.GATEWAY_PUBLIC_KEY,
            timeout=settings.GATEWAY_TIMEOUT_SECONDS,
            minor_units=settings.CURRENCY_MINOR_UNITS,
        )
    if settings.PAYMENT_GATEWAY != "mock":
        raise ValueError(f"Unknown PAYMENT_GATEWAY: {settings.PAYMENT_GATEWAY}")
    if settings.ENVIRONMENT == "production":
        raise RuntimeError("The mock payment gateway cannot run in production")
    return MockGateway(auto_settle=settings.MOCK_GATEWAY_AUTO_SETTLE)


# Singleton instance
_gateway: Optional[PaymentGateway] = None


def get_payment_gateway() -> PaymentGateway:
    """Get payment gateway singleton."""
    global _gateway
    if _gateway is None:
        _gateway = build_payment_gateway()
    return _gateway


async def close_payment_gateway() -> None:
    global _gateway
    if _gateway is not None:
        await _gateway.close()
        _gateway = None
