from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class Channel(str, Enum):
    CARD = "card"
    BANK_TRANSFER = "bank_transfer"
    USSD = "ussd"
    BANK = "bank"


class VerificationStatus(str, Enum):
    SUCCESS = "success"
    PENDING = "pending"
    FAILED = "failed"
    ABANDONED = "abandoned"


# ---------------------------------------------------------------------------
# Shared data models
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Customer:
    email: str
    phone: str
    first_name: str
    last_name: str

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


@dataclass(frozen=True)
class OrderSummary:
    """What the checkout screen hands to the payment subsystem."""
    order_id: str
    amount_minor_units: int              # kobo for NGN, cents for USD
    currency: str
    customer: Customer
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class InitializeRequest:
    email: str
    amount: int                          # minor units
    currency: str
    reference: str                       # candidate; gateway may replace it
    callback_url: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    channels: List[str] = field(default_factory=list)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "email": self.email,
            "amount": self.amount,
            "currency": self.currency,
            "reference": self.reference,
            "callback_url": self.callback_url,
            "metadata": self.metadata,
            "channels": self.channels,
        }


@dataclass
class InitializeResponse:
    authorization_url: str
    reference: str
    access_code: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)


@dataclass
class VerifyResponse:
    reference: str
    status: VerificationStatus
    message: str = ""
    gateway_response: Optional[str] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    raw: Dict[str, Any] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Abstract gateway interface
# ---------------------------------------------------------------------------

class PaymentGateway(ABC):
    """Every hosted-checkout gateway client must implement this interface."""

    @abstractmethod
    async def initialize_payment(self, request: InitializeRequest) -> InitializeResponse:
        """Create a hosted checkout session and return its authorization URL."""

    @abstractmethod
    async def verify_payment(self, reference: str) -> VerifyResponse:
        """Ask the backend for the current status of a transaction."""
