from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from .interfaces import Channel, InitializeRequest, OrderSummary, VerificationStatus

"""
Payment contract - request building and validation helpers for the hosted
checkout flow.

Used by both:
- clients/mocks/payments.py (scripted responses for development/testing)
- clients/real_http/payments.py (real gateway calls)
"""

DEFAULT_CURRENCIES = ("NGN", "USD", "GHS", "ZAR", "KES")
DEFAULT_CHANNELS = tuple(channel.value for channel in Channel)


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------

def validate_order_summary(
    order: OrderSummary,
    channel: Channel,
    supported_currencies: Iterable[str] = DEFAULT_CURRENCIES,
    supported_channels: Iterable[str] = DEFAULT_CHANNELS,
) -> List[str]:
    """
    Return a list of validation errors.
    Empty list means the order can be sent to the gateway.
    """
    errors: List[str] = []

    if order.amount_minor_units is None or order.amount_minor_units <= 0:
        errors.append("amount must be greater than zero")
    if not order.order_id:
        errors.append("order_id is required")
    if not order.customer.email:
        errors.append("customer email is required")

    currency = (order.currency or "").upper()
    if currency not in {c.upper() for c in supported_currencies}:
        errors.append(f"currency '{order.currency}' is not supported")

    channel_value = getattr(channel, "value", channel)
    if channel_value not in set(supported_channels):
        errors.append(f"channel '{channel_value}' is not supported")

    return errors


def candidate_reference(order_id: str, prefix: str = "errand", now: Optional[datetime] = None) -> str:
    """Client-side reference proposal; the gateway's answer wins."""
    moment = now or datetime.now()
    return f"{prefix}_{order_id}_{int(moment.timestamp() * 1000)}"


def build_initialize_request(
    order: OrderSummary,
    channel: Channel,
    *,
    callback_url: str,
    reference_prefix: str = "errand",
) -> InitializeRequest:
    metadata: Dict[str, Any] = {
        "orderId": order.order_id,
        "customer_name": order.customer.full_name,
        "customer_phone": order.customer.phone,
        **(order.metadata or {}),
    }
    return InitializeRequest(
        email=order.customer.email,
        amount=int(order.amount_minor_units),
        currency=order.currency.upper(),
        reference=candidate_reference(order.order_id, prefix=reference_prefix),
        callback_url=callback_url,
        metadata=metadata,
        channels=[Channel(channel).value],
    )


def is_terminal_status(status: VerificationStatus) -> bool:
    """Return True if polling again cannot change the answer."""
    return status in {VerificationStatus.SUCCESS, VerificationStatus.FAILED, VerificationStatus.ABANDONED}
