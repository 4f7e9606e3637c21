"""Pytest fixtures for checkout session, surface and gateway tests."""

import pytest

from src.integrations.clients.mocks.payments import MockPaystackClient
from src.integrations.contracts.interfaces import Customer, OrderSummary
from src.utils.payment_config_loader import CheckoutConfig, PaymentConfig, VerificationConfig


@pytest.fixture(autouse=True)
def clear_payment_env(monkeypatch):
    """Keep a developer's .env from switching tests onto the real gateway."""
    for name in ("PAYMENTS_MODE", "PAYSTACK_BASE_URL", "PAYMENTS_ENV", "PAYSTACK_TEST_SECRET_KEY", "PAYSTACK_LIVE_SECRET_KEY"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def customer():
    return Customer(email="jane@example.com", phone="+2348000000000", first_name="Jane", last_name="Demo")


@pytest.fixture
def order(customer):
    return OrderSummary(order_id="123", amount_minor_units=250_000, currency="NGN", customer=customer)


@pytest.fixture
def payment_config():
    """Default config with no waiting between verification attempts."""
    return PaymentConfig(
        checkout=CheckoutConfig(fallback_timeout_seconds=60),
        verification=VerificationConfig(max_attempts=3, retry_delay_seconds=0),
    )


@pytest.fixture
def gateway():
    """Mock gateway that always assigns the same reference."""
    return MockPaystackClient(reference="errand_123_999")
