"""
Payment error taxonomy.

Gateway clients raise these; the session controller turns them into a
``failure`` state with a human-readable message. ``VerificationExhausted`` and
``UserCancelled`` are outcomes rather than faults and never reach ``on_error``
unless the presumed-success policy is switched off.
"""

from typing import Any, Dict, List, Optional


class PaymentError(Exception):
    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        payload: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload or {}


class InitializationError(PaymentError):
    """Gateway rejected the initialize call (bad request, bad credentials)."""


class NetworkError(PaymentError):
    """No response from the gateway (DNS, connect, read timeout)."""


class GatewayDeclineError(PaymentError):
    """4xx business error, e.g. a channel the merchant has not enabled."""


class ServerError(PaymentError):
    """5xx from the gateway or the backend proxying it."""


class VerificationExhausted(PaymentError):
    """Verification stayed pending for the whole retry budget."""


class UserCancelled(PaymentError):
    """The customer backed out of the hosted checkout."""


class PaymentValidationError(PaymentError, ValueError):
    def __init__(self, errors: List[str]) -> None:
        super().__init__("; ".join(errors) or "invalid order")
        self.errors = errors


class PaymentStateError(PaymentError, RuntimeError):
    """Operation is not legal in the session's current state."""
