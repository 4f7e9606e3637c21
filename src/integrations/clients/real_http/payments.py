"""
Real Paystack HTTP Client.

Talks to the backend's hosted-checkout endpoints (initialize / verify). Used
when a gateway secret key is configured or PAYMENTS_MODE=real.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from src.integrations.contracts.errors import (
    GatewayDeclineError,
    InitializationError,
    NetworkError,
    PaymentError,
    ServerError,
)
from src.integrations.contracts.interfaces import (
    InitializeRequest,
    InitializeResponse,
    PaymentGateway,
    VerifyResponse,
)
from src.integrations.policy.response_wrappers import (
    IntegrationResponseError,
    extract_error_message,
    normalize_initialize_response,
    normalize_verify_response,
)
from src.utils.payment_config_loader import GatewayConfig

logger = logging.getLogger(__name__)


class PaystackHttpClient(PaymentGateway):
    def __init__(
        self,
        config: Optional[GatewayConfig] = None,
        secret_key: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.config = config or GatewayConfig()
        self.base_url = self.config.base_url.rstrip("/")
        self.secret_key = secret_key if secret_key is not None else self.config.secret_key()
        self.timeout_seconds = self.config.timeout_seconds
        self._transport = transport
        if not self.secret_key:
            logger.warning("Paystack secret key is not set; requests go out unauthenticated.")

    def _headers(self) -> Dict[str, str]:
        headers: Dict[str, str] = {"Content-Type": "application/json"}
        if self.secret_key:
            headers["Authorization"] = f"Bearer {self.secret_key}"
        return headers

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport)

    async def initialize_payment(self, request: InitializeRequest) -> InitializeResponse:
        url = f"{self.base_url}{self.config.initialize_path}"
        logger.info("Initializing payment ref=%s amount=%s %s", request.reference, request.amount, request.currency)

        try:
            async with self._client() as client:
                response = await client.post(url, json=request.to_payload(), headers=self._headers())
        except httpx.RequestError as e:
            logger.error("Request error connecting to payment gateway: %s", e)
            raise NetworkError("Unable to reach the payment service. Check your connection and try again.") from e

        data = self._parse(response, default_message="Failed to initialize payment", initializing=True)
        try:
            normalized = normalize_initialize_response(data, fallback_reference=request.reference)
        except IntegrationResponseError as e:
            raise InitializationError(str(e), status_code=response.status_code, payload=data) from e

        if normalized.reference != request.reference:
            logger.info("Gateway replaced candidate reference %s with %s", request.reference, normalized.reference)

        return InitializeResponse(
            authorization_url=normalized.authorization_url,
            reference=normalized.reference,
            access_code=normalized.access_code,
            raw=normalized.raw,
        )

    async def verify_payment(self, reference: str) -> VerifyResponse:
        url = f"{self.base_url}{self.config.verify_path.format(reference=reference)}"
        logger.info("Verifying payment ref=%s", reference)

        try:
            async with self._client() as client:
                response = await client.get(url, headers=self._headers())
        except httpx.RequestError as e:
            logger.error("Request error verifying payment %s: %s", reference, e)
            raise NetworkError("Unable to reach the payment service.") from e

        data = self._parse(response, default_message="Failed to verify payment")
        normalized = normalize_verify_response(data, fallback_reference=reference)
        return VerifyResponse(
            reference=normalized.reference,
            status=normalized.status,
            message=normalized.message,
            gateway_response=normalized.gateway_response,
            raw=normalized.raw,
        )

    def _parse(self, response: httpx.Response, *, default_message: str, initializing: bool = False) -> Dict[str, Any]:
        try:
            data = response.json() if response.content else {}
        except ValueError:
            data = {}

        if response.is_error:
            message = extract_error_message(data, default_message)
            logger.error("HTTP error from payment gateway: %s %s", response.status_code, response.text)
            raise _error_for_status(response.status_code, message, data, initializing=initializing)

        if not isinstance(data, dict):
            raise PaymentError(default_message, status_code=response.status_code)

        if data.get("success") is False:
            message = extract_error_message(data, default_message)
            logger.error("Payment gateway declined request: %s", message)
            raise GatewayDeclineError(message, status_code=response.status_code, payload=data)

        return data


def _error_for_status(status_code: int, message: str, payload: Dict[str, Any], *, initializing: bool) -> PaymentError:
    if status_code >= 500:
        return ServerError(message, status_code=status_code, payload=payload)
    if initializing and status_code in (400, 401, 403):
        return InitializationError(message, status_code=status_code, payload=payload)
    return GatewayDeclineError(message, status_code=status_code, payload=payload)
