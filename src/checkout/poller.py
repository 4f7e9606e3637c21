"""
Verification poller.

Asks the gateway for a transaction's status with a fixed retry budget:
- success            -> PollOutcome.SUCCESS
- failed / abandoned -> PollOutcome.FAILED, no retry
- pending            -> wait retry_delay_seconds and ask again
- no response        -> same as pending, same budget
- still pending after max_attempts -> PollOutcome.EXHAUSTED
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from src.checkout.events import PollOutcome, PollResult
from src.integrations.contracts.errors import NetworkError, PaymentError, VerificationExhausted
from src.integrations.contracts.interfaces import PaymentGateway, VerificationStatus
from src.utils.payment_config_loader import VerificationConfig

logger = logging.getLogger(__name__)

Sleeper = Callable[[float], Awaitable[None]]


class VerificationPoller:
    def __init__(
        self,
        gateway: PaymentGateway,
        config: Optional[VerificationConfig] = None,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        self.gateway = gateway
        self.config = config or VerificationConfig()
        self._sleep = sleep

    async def poll(self, reference: str, on_attempt: Optional[Callable[[int], None]] = None) -> PollResult:
        max_attempts = self.config.max_attempts
        last_reason = "Payment is still pending"

        for attempt in range(1, max_attempts + 1):
            if on_attempt is not None:
                on_attempt(attempt)

            try:
                response = await self.gateway.verify_payment(reference)
            except NetworkError as e:
                logger.warning("Verify attempt %s/%s for ref=%s got no response: %s",
                               attempt, max_attempts, reference, e)
                last_reason = e.message
            except PaymentError as e:
                logger.error("Verify attempt %s/%s for ref=%s failed: %s", attempt, max_attempts, reference, e)
                return PollResult(PollOutcome.FAILED, reference, attempt, message=e.message or "Payment verification failed", error=e)
            else:
                status = response.status
                logger.info("Verify attempt %s/%s for ref=%s -> %s", attempt, max_attempts, reference, status.value)
                if status == VerificationStatus.SUCCESS:
                    return PollResult(PollOutcome.SUCCESS, reference, attempt)
                if status in (VerificationStatus.FAILED, VerificationStatus.ABANDONED):
                    return PollResult(PollOutcome.FAILED, reference, attempt, message="Payment verification failed")

            if attempt < max_attempts:
                await self._sleep(self.config.retry_delay_seconds)

        logger.warning("Verification for ref=%s still pending after %s attempts", reference, max_attempts)
        return PollResult(
            PollOutcome.EXHAUSTED,
            reference,
            max_attempts,
            message=last_reason,
            error=VerificationExhausted(f"Payment could not be confirmed after {max_attempts} attempts"),
        )
