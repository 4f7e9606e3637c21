"""
Payment session model - one per checkout attempt.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from src.integrations.contracts.errors import PaymentError, PaymentStateError
from src.integrations.contracts.interfaces import Channel, Customer, OrderSummary


class SessionState(str, Enum):
    IDLE = "idle"
    INITIALIZING = "initializing"
    AWAITING_COMPLETION = "awaiting_completion"
    VERIFYING = "verifying"
    SUCCESS = "success"
    FAILURE = "failure"


TERMINAL_STATES = frozenset({SessionState.SUCCESS, SessionState.FAILURE})

# Legal moves; reset()/close() back to IDLE are handled by the controller itself.
TRANSITIONS = {
    SessionState.IDLE: {SessionState.INITIALIZING},
    SessionState.INITIALIZING: {SessionState.AWAITING_COMPLETION, SessionState.FAILURE},
    SessionState.AWAITING_COMPLETION: {SessionState.VERIFYING, SessionState.IDLE, SessionState.FAILURE},
    SessionState.VERIFYING: {SessionState.SUCCESS, SessionState.FAILURE},
    SessionState.SUCCESS: set(),
    SessionState.FAILURE: set(),
}


class OutcomeKind(str, Enum):
    SUCCESS = "success"
    CANCELLED = "cancelled"
    ERROR = "error"


@dataclass(frozen=True)
class Outcome:
    kind: OutcomeKind
    reference: Optional[str] = None
    message: Optional[str] = None
    presumed: bool = False
    error: Optional[PaymentError] = None


@dataclass
class PaymentSession:
    order: OrderSummary
    channel: Channel
    session_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    state: SessionState = SessionState.IDLE
    verification_attempts: int = 0
    error_message: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    _reference: Optional[str] = field(default=None, repr=False)
    _authorization_url: Optional[str] = field(default=None, repr=False)
    _outcome: Optional[Outcome] = field(default=None, repr=False)

    def __post_init__(self) -> None:
        self.channel = Channel(self.channel)

    # -- pass-through order fields --

    @property
    def order_id(self) -> str:
        return self.order.order_id

    @property
    def amount_minor_units(self) -> int:
        return self.order.amount_minor_units

    @property
    def currency(self) -> str:
        return self.order.currency

    @property
    def customer(self) -> Customer:
        return self.order.customer

    # -- write-once fields --

    @property
    def reference(self) -> Optional[str]:
        return self._reference

    @reference.setter
    def reference(self, value: str) -> None:
        if self._reference is not None and value != self._reference:
            raise PaymentStateError(f"reference already assigned for session {self.session_id}")
        self._reference = value

    @property
    def authorization_url(self) -> Optional[str]:
        return self._authorization_url

    @authorization_url.setter
    def authorization_url(self, value: str) -> None:
        if self._authorization_url is not None and value != self._authorization_url:
            raise PaymentStateError(f"authorization_url already assigned for session {self.session_id}")
        self._authorization_url = value

    @property
    def outcome(self) -> Optional[Outcome]:
        return self._outcome

    def record_outcome(self, outcome: Outcome) -> bool:
        """Store the session's single outcome. Returns False if one is already recorded."""
        if self._outcome is not None:
            return False
        self._outcome = outcome
        return True

    def move_to(self, target: SessionState) -> SessionState:
        if target not in TRANSITIONS[self.state]:
            raise PaymentStateError(f"illegal transition {self.state.value} -> {target.value}")
        previous, self.state = self.state, target
        return previous

    def snapshot(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "order_id": self.order_id,
            "amount_minor_units": self.amount_minor_units,
            "currency": self.currency,
            "channel": self.channel.value,
            "state": self.state.value,
            "reference": self.reference,
            "authorization_url": self.authorization_url,
            "verification_attempts": self.verification_attempts,
            "error_message": self.error_message,
            "outcome": self._outcome.kind.value if self._outcome else None,
            "presumed": self._outcome.presumed if self._outcome else False,
        }
