"""
Gateway client selection.

Mock vs real is decided here and nowhere else:
- mode "mock"  -> MockPaystackClient
- mode "real"  -> PaystackHttpClient
- mode "auto"  -> real when a secret key is configured, mock otherwise
"""

import logging

from src.integrations.clients.mocks.payments import MockPaystackClient
from src.integrations.clients.real_http.payments import PaystackHttpClient
from src.integrations.contracts.interfaces import PaymentGateway
from src.utils.payment_config_loader import GatewayConfig

logger = logging.getLogger(__name__)


def select_gateway_client(config: GatewayConfig) -> PaymentGateway:
    if config.mode == "real" or (config.mode == "auto" and config.secret_key()):
        logger.info("Using real payment gateway at %s", config.base_url)
        return PaystackHttpClient(config=config)
    logger.info("Using mock payment gateway")
    return MockPaystackClient()
