import asyncio
import functools
import logging
import time
import uuid
from typing import Any, Dict, List, Literal, Optional, Union

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from src.checkout.controller import ACTIVE_STATES, PaymentSessionController
from src.checkout.events import Classification
from src.checkout.session import SessionState
from src.checkout.surface.adapters import PopupWindowSurfaceAdapter, create_surface_adapter
from src.integrations.clients import select_gateway_client
from src.integrations.contracts.errors import PaymentStateError, PaymentValidationError
from src.integrations.contracts.interfaces import Channel, Customer, OrderSummary, PaymentGateway
from src.utils.payment_config_loader import PaymentConfig, load_payment_config

logger = logging.getLogger(__name__)

api = APIRouter()
payments_api = api

_config: Optional[PaymentConfig] = None
_gateway: Optional[PaymentGateway] = None
_checkouts: Dict[str, "CheckoutRecord"] = {}

# Checkouts that reported an outcome stay readable this long, then are dropped.
FINISHED_RETENTION_SECONDS = 600.0
# Extra time on top of the gateway timeout before open/retry give up waiting.
INIT_WAIT_GRACE_SECONDS = 5.0


class CustomerModel(BaseModel):
    email: str
    phone: str = ""
    first_name: str = ""
    last_name: str = ""


class OpenCheckoutRequest(BaseModel):
    order_id: str
    amount_minor_units: int = Field(..., description="Charge amount in minor units (kobo for NGN)")
    currency: str = "NGN"
    channel: Channel = Channel.CARD
    customer: CustomerModel
    metadata: Dict[str, Any] = Field(default_factory=dict)
    platform: Optional[Literal["mobile", "web"]] = Field(default=None, description="Overrides checkout.platform")


class NavigationRequest(BaseModel):
    url: str


class MessageRequest(BaseModel):
    data: Union[Dict[str, Any], str]


class HttpErrorRequest(BaseModel):
    status_code: int


class LoadErrorRequest(BaseModel):
    description: str = ""


class CheckoutRecord:
    """One open payment UI: its controller plus every outcome it reported."""

    def __init__(self, checkout_id: str, controller: PaymentSessionController) -> None:
        self.checkout_id = checkout_id
        self.controller = controller
        self.outcomes: List[Dict[str, Any]] = []
        self.finished_at: Optional[float] = None

    def record(self, kind: str, value: Optional[str] = None) -> None:
        logger.info("Checkout %s outcome: %s %s", self.checkout_id, kind, value or "")
        self.outcomes.append({"kind": kind, "value": value})
        self.finished_at = time.monotonic()

    def expired(self, now: float) -> bool:
        if self.finished_at is None or self.controller.state in ACTIVE_STATES:
            return False
        return now - self.finished_at >= FINISHED_RETENTION_SECONDS

    def to_dict(self) -> Dict[str, Any]:
        return {"checkout_id": self.checkout_id, "outcomes": self.outcomes, **self.controller.snapshot()}


def configure(gateway: Optional[PaymentGateway] = None, config: Optional[PaymentConfig] = None) -> None:
    """Swap the gateway/config (tests, demos). Drops every open checkout."""
    global _gateway, _config
    _gateway = gateway
    _config = config
    _checkouts.clear()


def get_config() -> PaymentConfig:
    global _config
    if _config is None:
        _config = load_payment_config()
    return _config


def get_gateway() -> PaymentGateway:
    global _gateway
    if _gateway is None:
        _gateway = select_gateway_client(get_config().gateway)
    return _gateway


async def close_all_checkouts() -> None:
    for record in list(_checkouts.values()):
        await record.controller.aclose()
    _checkouts.clear()


def _open_on_client(url: str) -> None:
    # On the web platform the browser, not this process, opens the gateway window.
    logger.info("Client should open payment window at %s", url)


def _build_controller(record_holder: Dict[str, CheckoutRecord], platform: Optional[str]) -> PaymentSessionController:
    config = get_config()
    embedded = (platform or config.checkout.platform) == "mobile"

    def outcome(kind: str, value: Optional[str] = None) -> None:
        record_holder["record"].record(kind, value)

    return PaymentSessionController(
        get_gateway(),
        config,
        on_success=functools.partial(outcome, "success"),
        on_cancel=functools.partial(outcome, "cancelled"),
        on_error=functools.partial(outcome, "error"),
        surface_factory=functools.partial(
            create_surface_adapter,
            config.checkout,
            supports_embedded_surface=embedded,
            opener=_open_on_client,
        ),
    )


async def _discard(record: CheckoutRecord) -> None:
    await record.controller.aclose()
    _checkouts.pop(record.checkout_id, None)


async def _evict_finished() -> None:
    now = time.monotonic()
    for record in [r for r in _checkouts.values() if r.expired(now)]:
        logger.info("Dropping finished checkout %s", record.checkout_id)
        await _discard(record)


async def _await_mounted(record: CheckoutRecord) -> None:
    timeout = get_config().gateway.timeout_seconds + INIT_WAIT_GRACE_SECONDS
    try:
        await record.controller.wait_for_state(
            SessionState.AWAITING_COMPLETION, SessionState.FAILURE, timeout=timeout
        )
    except asyncio.TimeoutError as e:
        logger.error("Checkout %s did not finish initializing within %ss", record.checkout_id, timeout)
        await _discard(record)
        raise HTTPException(
            status_code=504,
            detail={"message": "Payment gateway did not respond in time", "checkout_id": record.checkout_id},
        ) from e


def _get_record(checkout_id: str) -> CheckoutRecord:
    record = _checkouts.get(checkout_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Checkout not found")
    return record


def _require_adapter(record: CheckoutRecord):
    adapter = record.controller.adapter
    if adapter is None:
        raise HTTPException(
            status_code=409,
            detail={"message": "Checkout surface is not mounted", "state": record.controller.state.value},
        )
    return adapter


async def _after_signal(record: CheckoutRecord, classification: Classification) -> Dict[str, Any]:
    await record.controller.drain()
    return {
        "classification": {
            "kind": classification.kind.value,
            "source": classification.source.value,
            "rule": classification.rule,
            "reference": classification.reference,
            "message": classification.message,
        },
        **record.to_dict(),
    }


@api.post("/sessions", tags=["Payments"])
async def open_checkout(request: OpenCheckoutRequest):
    await _evict_finished()
    holder: Dict[str, CheckoutRecord] = {}
    controller = _build_controller(holder, request.platform)
    record = CheckoutRecord(uuid.uuid4().hex, controller)
    holder["record"] = record

    order = OrderSummary(
        order_id=request.order_id,
        amount_minor_units=request.amount_minor_units,
        currency=request.currency,
        customer=Customer(**request.customer.model_dump()),
        metadata=request.metadata,
    )
    try:
        await controller.open(order, request.channel)
    except PaymentValidationError as e:
        raise HTTPException(status_code=422, detail={"message": str(e), "errors": e.errors}) from e

    _checkouts[record.checkout_id] = record
    await _await_mounted(record)
    return record.to_dict()


@api.get("/sessions/{checkout_id}", tags=["Payments"])
async def get_checkout(checkout_id: str):
    return _get_record(checkout_id).to_dict()


@api.post("/sessions/{checkout_id}/navigation", tags=["Payments"])
async def report_navigation(checkout_id: str, request: NavigationRequest):
    record = _get_record(checkout_id)
    adapter = _require_adapter(record)
    if hasattr(adapter, "should_start_load") and not adapter.should_start_load(request.url):
        logger.warning("Surface for checkout %s navigated to a blocked URL: %s", checkout_id, request.url)
    return await _after_signal(record, adapter.handle_navigation(request.url))


@api.post("/sessions/{checkout_id}/message", tags=["Payments"])
async def report_message(checkout_id: str, request: MessageRequest):
    record = _get_record(checkout_id)
    adapter = _require_adapter(record)
    return await _after_signal(record, adapter.handle_message(request.data))


@api.post("/sessions/{checkout_id}/http-error", tags=["Payments"])
async def report_http_error(checkout_id: str, request: HttpErrorRequest):
    record = _get_record(checkout_id)
    adapter = _require_adapter(record)
    return await _after_signal(record, adapter.handle_http_error(request.status_code))


@api.post("/sessions/{checkout_id}/load-error", tags=["Payments"])
async def report_load_error(checkout_id: str, request: LoadErrorRequest):
    record = _get_record(checkout_id)
    adapter = _require_adapter(record)
    return await _after_signal(record, adapter.handle_load_error(request.description))


def _require_popup(record: CheckoutRecord) -> PopupWindowSurfaceAdapter:
    adapter = _require_adapter(record)
    if not isinstance(adapter, PopupWindowSurfaceAdapter):
        raise HTTPException(status_code=400, detail="Only web checkouts use a separate payment window.")
    return adapter


@api.post("/sessions/{checkout_id}/confirm", tags=["Payments"])
async def confirm_completed(checkout_id: str):
    record = _get_record(checkout_id)
    return await _after_signal(record, _require_popup(record).confirm_completed())


@api.post("/sessions/{checkout_id}/dismiss", tags=["Payments"])
async def dismiss_window(checkout_id: str):
    record = _get_record(checkout_id)
    return await _after_signal(record, _require_popup(record).dismiss())


@api.post("/sessions/{checkout_id}/window-closed", tags=["Payments"])
async def window_closed(checkout_id: str):
    record = _get_record(checkout_id)
    return await _after_signal(record, _require_popup(record).window_closed())


@api.post("/sessions/{checkout_id}/close", tags=["Payments"])
async def close_checkout(checkout_id: str):
    record = _get_record(checkout_id)
    await _discard(record)
    return record.to_dict()


@api.post("/sessions/{checkout_id}/retry", tags=["Payments"])
async def retry_checkout(checkout_id: str):
    record = _get_record(checkout_id)
    try:
        await record.controller.retry_after_failure()
    except PaymentStateError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    await _await_mounted(record)
    return record.to_dict()


@api.post("/sessions/{checkout_id}/reset", tags=["Payments"])
async def reset_checkout(checkout_id: str):
    record = _get_record(checkout_id)
    try:
        record.controller.reset()
    except PaymentStateError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    return record.to_dict()


@api.get("/paystack/callback", tags=["Payments"])
async def paystack_callback(trxref: Optional[str] = None, reference: Optional[str] = None):
    # The surface classifies this navigation; the page itself only has to load.
    return {"received": True, "reference": reference or trxref}
