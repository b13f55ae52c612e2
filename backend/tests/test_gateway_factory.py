"""
Tests for payment gateway selection.
"""

import pytest

from boxoffice.infrastructure.thawani_gateway import ThawaniGateway
from boxoffice.services import gateway_factory
from boxoffice.services.interfaces.mock_gateway import MockGateway
from boxoffice.services.interfaces.payment_gateway import PaymentStatus


@pytest.fixture
def factory_settings(monkeypatch):
    settings = gateway_factory.settings
    monkeypatch.setattr(settings, "PAYMENT_GATEWAY", "mock")
    monkeypatch.setattr(settings, "ENVIRONMENT", "development")
    monkeypatch.setattr(settings, "MOCK_GATEWAY_AUTO_SETTLE", None)
    return settings


@pytest.mark.asyncio
async def test_mock_gateway_does_not_settle_by_default(factory_settings):
    gateway = gateway_factory.build_payment_gateway()
    assert isinstance(gateway, MockGateway)

    session = await gateway.create_session(
        1, "OMR", "ok", "fail", reference="order_1", description="1 x GA"
    )
    assert await gateway.query_status(session.session_id) == PaymentStatus.UNKNOWN


@pytest.mark.asyncio
async def test_mock_auto_settle_is_opt_in(factory_settings):
    factory_settings.MOCK_GATEWAY_AUTO_SETTLE = "paid"
    gateway = gateway_factory.build_payment_gateway()

    session = await gateway.create_session(
        1, "OMR", "ok", "fail", reference="order_1", description="1 x GA"
    )
    assert await gateway.query_status(session.session_id) == PaymentStatus.PAID


def test_mock_gateway_refused_in_production(factory_settings):
    factory_settings.ENVIRONMENT = "production"
    with pytest.raises(RuntimeError):
        gateway_factory.build_payment_gateway()


def test_unknown_gateway_name_rejected(factory_settings):
    factory_settings.PAYMENT_GATEWAY = "paypal"
    with pytest.raises(ValueError):
        gateway_factory.build_payment_gateway()


@pytest.mark.asyncio
async def test_thawani_selected(factory_settings):
    factory_settings.PAYMENT_GATEWAY = "thawani"
    factory_settings.ENVIRONMENT = "production"
    gateway = gateway_factory.build_payment_gateway()
    assert isinstance(gateway, ThawaniGateway)
    await gateway.close()
