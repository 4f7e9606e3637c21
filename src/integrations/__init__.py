"""
Integrations layer.
This package contains all code used to communicate with the payment gateway:
- contracts: shared models and the error taxonomy
- clients: mock and real HTTP gateway clients
- policy: response normalization

Key rule:
- The checkout controller MUST NOT call the gateway over HTTP directly.
- It calls a PaymentGateway picked by select_gateway_client().
"""

from .contracts.errors import (
    GatewayDeclineError,
    InitializationError,
    NetworkError,
    PaymentError,
    PaymentStateError,
    PaymentValidationError,
    ServerError,
    UserCancelled,
    VerificationExhausted,
)
from .contracts.interfaces import (
    Channel,
    Customer,
    InitializeRequest,
    InitializeResponse,
    OrderSummary,
    PaymentGateway,
    VerificationStatus,
    VerifyResponse,
)
from .contracts.payments import (
    build_initialize_request,
    candidate_reference,
    is_terminal_status,
    validate_order_summary,
)

__all__ = [
    # errors
    "GatewayDeclineError", "InitializationError", "NetworkError", "PaymentError",
    "PaymentStateError", "PaymentValidationError", "ServerError", "UserCancelled",
    "VerificationExhausted",
    # interfaces
    "Channel", "Customer", "InitializeRequest", "InitializeResponse", "OrderSummary",
    "PaymentGateway", "VerificationStatus", "VerifyResponse",
    # payments
    "build_initialize_request", "candidate_reference", "is_terminal_status",
    "validate_order_summary",
]
