"""
Events flowing into the session controller's queue.

Producers (surface adapter, fallback timer, init task, verification poller)
only ever build these and hand them to the controller; none of them touch
the PaymentSession.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from src.integrations.contracts.errors import PaymentError


class SignalKind(str, Enum):
    SUCCESS = "success"
    CANCELLED = "cancelled"
    ERROR = "error"
    IGNORE = "ignore"


class SignalSource(str, Enum):
    NAVIGATION = "navigation"
    MESSAGE = "message"
    LOAD_ERROR = "load_error"
    WINDOW = "window"
    USER = "user"


@dataclass(frozen=True)
class Classification:
    kind: SignalKind
    source: SignalSource
    reference: Optional[str] = None
    message: Optional[str] = None
    rule: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.kind != SignalKind.IGNORE


IGNORE_NAVIGATION = Classification(SignalKind.IGNORE, SignalSource.NAVIGATION)
IGNORE_MESSAGE = Classification(SignalKind.IGNORE, SignalSource.MESSAGE)


class PollOutcome(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    EXHAUSTED = "exhausted"


@dataclass(frozen=True)
class PollResult:
    outcome: PollOutcome
    reference: str
    attempts: int
    message: Optional[str] = None
    error: Optional[PaymentError] = None


# ---------------------------------------------------------------------------
# Controller queue events
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SessionEvent:
    session_id: str

    @property
    def precedence(self) -> int:
        # Lower runs first among events drained in the same batch.
        return 1


@dataclass(frozen=True)
class InitSucceeded(SessionEvent):
    reference: str
    authorization_url: str


@dataclass(frozen=True)
class InitFailed(SessionEvent):
    error: PaymentError


@dataclass(frozen=True)
class SurfaceSignal(SessionEvent):
    classification: Classification

    @property
    def precedence(self) -> int:
        return 0 if self.classification.source == SignalSource.MESSAGE else 1


@dataclass(frozen=True)
class FallbackElapsed(SessionEvent):
    pass


@dataclass(frozen=True)
class PollCompleted(SessionEvent):
    result: PollResult
