"""
Utility modules for the payments service
"""
from .payment_config_loader import (
    CheckoutConfig,
    GatewayConfig,
    PaymentConfig,
    VerificationConfig,
    load_payment_config,
)

__all__ = [
    'CheckoutConfig',
    'GatewayConfig',
    'PaymentConfig',
    'VerificationConfig',
    'load_payment_config',
]
