"""
Mock Paystack Client.

Purpose:
- Provides a fake hosted-checkout gateway used for development/testing
- Does NOT make any network calls
- Returns scripted initialize / verify responses and records every call

Swap:
Replace this mock client with clients/real_http/payments.py when a gateway
secret key is configured (see select_gateway_client).
"""

import logging
import uuid
from typing import Any, Dict, Iterable, List, Optional, Union

from src.integrations.contracts.errors import PaymentError
from src.integrations.contracts.interfaces import (
    InitializeRequest,
    InitializeResponse,
    PaymentGateway,
    VerificationStatus,
    VerifyResponse,
)

logger = logging.getLogger(__name__)

VerifyStep = Union[VerificationStatus, str, PaymentError]


class MockPaystackClient(PaymentGateway):
    """
    Scripted gateway.

    Parameters
    ----------
    verify_script : iterable
        Statuses (or exceptions to raise) returned by successive verify calls.
        The last entry repeats once the script is used up. Default: success.
    initialize_error : PaymentError, optional
        Raised by initialize_payment instead of returning a session.
    reference : str, optional
        Reference the "gateway" assigns. Default: echo the candidate.
    checkout_base_url : str
        Prefix for generated authorization URLs.
    """

    def __init__(
        self,
        verify_script: Optional[Iterable[VerifyStep]] = None,
        initialize_error: Optional[PaymentError] = None,
        reference: Optional[str] = None,
        checkout_base_url: str = "https://checkout.paystack.com",
    ):
        self._script: List[VerifyStep] = list(verify_script or [VerificationStatus.SUCCESS])
        self._initialize_error = initialize_error
        self._reference = reference
        self._checkout_base_url = checkout_base_url.rstrip("/")
        self.calls: List[Dict[str, Any]] = []

        logger.info("[PAYSTACK MOCK] Client initialised (verify_script=%s)", self._script)

    def configure(
        self,
        verify_script: Optional[Iterable[VerifyStep]] = None,
        initialize_error: Optional[PaymentError] = None,
    ) -> None:
        """Change behaviour at runtime, e.g. from the demo script."""
        if verify_script is not None:
            self._script = list(verify_script)
        self._initialize_error = initialize_error

    def _next_step(self) -> VerifyStep:
        if len(self._script) > 1:
            return self._script.pop(0)
        return self._script[0]

    # ------------------------------------------------------------------
    # Gateway API
    # ------------------------------------------------------------------

    async def initialize_payment(self, request: InitializeRequest) -> InitializeResponse:
        self.calls.append({"method": "initialize_payment", "request": request.to_payload()})
        logger.info("[PAYSTACK MOCK] Initializing ref=%s amount=%s %s",
                    request.reference, request.amount, request.currency)

        if self._initialize_error is not None:
            raise self._initialize_error

        reference = self._reference or request.reference
        access_code = uuid.uuid4().hex[:15]
        return InitializeResponse(
            authorization_url=f"{self._checkout_base_url}/{access_code}",
            reference=reference,
            access_code=access_code,
            raw={"mock": True},
        )

    async def verify_payment(self, reference: str) -> VerifyResponse:
        self.calls.append({"method": "verify_payment", "reference": reference})
        step = self._next_step()
        logger.info("[PAYSTACK MOCK] Verify ref=%s -> %s", reference, step)

        if isinstance(step, PaymentError):
            raise step

        status = VerificationStatus(step)
        return VerifyResponse(
            reference=reference,
            status=status,
            message="Verification successful" if status == VerificationStatus.SUCCESS else f"Transaction {status.value}",
            raw={"mock": True},
        )

    @property
    def verify_calls(self) -> List[str]:
        return [call["reference"] for call in self.calls if call["method"] == "verify_payment"]
