"""
Service interfaces for dependency inversion.
Allows swapping gateway implementations without changing the purchase core.
"""

from .payment_gateway import CheckoutSession, PaymentGateway, PaymentStatus
from .mock_gateway import MockGateway

__all__ = ['CheckoutSession', 'PaymentGateway', 'PaymentStatus', 'MockGateway']
