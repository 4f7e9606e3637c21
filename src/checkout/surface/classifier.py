"""
Completion-signal classification for the hosted checkout surface.

Navigation URLs are checked against an ordered rule table; the first rule
whose predicate matches decides the outcome. Messages posted by the bridge
script are classified by their ``event`` (or legacy ``type``) field.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Sequence, Tuple
from urllib.parse import parse_qs, urlparse

from pydantic import BaseModel, Field, ValidationError

from src.checkout.events import (
    IGNORE_MESSAGE,
    IGNORE_NAVIGATION,
    Classification,
    SignalKind,
    SignalSource,
)
from src.utils.payment_config_loader import CheckoutConfig

logger = logging.getLogger(__name__)

SERVICE_UNAVAILABLE = "Payment service unavailable"
DEFAULT_FAILURE_MESSAGE = "Payment failed"


@dataclass(frozen=True)
class NavigationContext:
    url: str
    lowered: str
    host: str
    query: Dict[str, str]
    session_reference: Optional[str]
    callback_url: str
    callback_host: str
    callback_markers: Tuple[str, ...] = ()
    close_patterns: Tuple[str, ...] = ()

    @classmethod
    def build(cls, url: str, session_reference: Optional[str], config: CheckoutConfig) -> "NavigationContext":
        parsed = urlparse(url)
        query = {key: values[0] for key, values in parse_qs(parsed.query).items() if values}
        return cls(
            url=url,
            lowered=url.lower(),
            host=parsed.netloc.lower(),
            query=query,
            session_reference=session_reference,
            callback_url=config.callback_url.lower(),
            callback_host=urlparse(config.callback_url).netloc.lower(),
            callback_markers=tuple(m.lower() for m in config.callback_markers),
            close_patterns=tuple(p.lower() for p in config.close_patterns),
        )

    @property
    def status(self) -> str:
        return (self.query.get("status") or "").strip().lower()

    @property
    def query_reference(self) -> Optional[str]:
        return self.query.get("reference") or self.query.get("trxref")


# ---------------------------------------------------------------------------
# Predicates
# ---------------------------------------------------------------------------

def _is_callback(ctx: NavigationContext) -> bool:
    if ctx.callback_url and ctx.callback_url in ctx.lowered:
        return True
    if ctx.callback_host and ctx.host == ctx.callback_host:
        return True
    return any(marker in ctx.lowered for marker in ctx.callback_markers)


def _callback_success(ctx: NavigationContext) -> bool:
    return _is_callback(ctx) and (ctx.status == "success" or "success" in ctx.lowered)


def _callback_cancelled(ctx: NavigationContext) -> bool:
    return _is_callback(ctx) and (ctx.status in ("cancelled", "cancel") or "cancel" in ctx.lowered)


def _close_page(ctx: NavigationContext) -> bool:
    return any(pattern in ctx.lowered for pattern in ctx.close_patterns)


def _cancel_token(ctx: NavigationContext) -> bool:
    return "cancel" in ctx.lowered


def _reference_param(ctx: NavigationContext) -> bool:
    return "trxref=" in ctx.lowered or "reference=" in ctx.lowered


# ---------------------------------------------------------------------------
# Outcomes
# ---------------------------------------------------------------------------

def _success_from_query(ctx: NavigationContext) -> Tuple[SignalKind, Optional[str]]:
    return SignalKind.SUCCESS, ctx.query_reference or ctx.session_reference


def _success_from_session(ctx: NavigationContext) -> Tuple[SignalKind, Optional[str]]:
    return SignalKind.SUCCESS, ctx.session_reference


def _cancelled(ctx: NavigationContext) -> Tuple[SignalKind, Optional[str]]:
    return SignalKind.CANCELLED, None


@dataclass(frozen=True)
class NavigationRule:
    name: str
    predicate: Callable[[NavigationContext], bool]
    outcome: Callable[[NavigationContext], Tuple[SignalKind, Optional[str]]]


NAVIGATION_RULES: Tuple[NavigationRule, ...] = (
    NavigationRule("callback_success", _callback_success, _success_from_query),
    NavigationRule("callback_cancelled", _callback_cancelled, _cancelled),
    NavigationRule("gateway_close_page", _close_page, _success_from_session),
    NavigationRule("cancel_token", _cancel_token, _cancelled),
    NavigationRule("reference_param", _reference_param, _success_from_query),
)


@dataclass
class NavigationClassifier:
    config: CheckoutConfig = field(default_factory=CheckoutConfig)
    rules: Sequence[NavigationRule] = NAVIGATION_RULES

    def classify(self, url: str, session_reference: Optional[str] = None) -> Classification:
        try:
            if not url:
                return IGNORE_NAVIGATION
            ctx = NavigationContext.build(url, session_reference, self.config)
            for rule in self.rules:
                if rule.predicate(ctx):
                    kind, reference = rule.outcome(ctx)
                    logger.debug("Navigation %s matched rule %s -> %s", url, rule.name, kind.value)
                    return Classification(kind, SignalSource.NAVIGATION, reference=reference, rule=rule.name)
        except Exception:
            logger.debug("Navigation classification failed for %r; ignoring", url, exc_info=True)
        return IGNORE_NAVIGATION


# ---------------------------------------------------------------------------
# Message channel
# ---------------------------------------------------------------------------

class BridgeMessageData(BaseModel):
    reference: Optional[str] = None
    message: Optional[str] = None


class BridgeMessage(BaseModel):
    event: Optional[str] = None
    data: BridgeMessageData = Field(default_factory=BridgeMessageData)
    # legacy shape
    type: Optional[str] = None
    reference: Optional[str] = None
    message: Optional[str] = None


_EVENT_KINDS = {
    "success": SignalKind.SUCCESS,
    "cancelled": SignalKind.CANCELLED,
    "cancel": SignalKind.CANCELLED,
    "error": SignalKind.ERROR,
}

_LEGACY_KINDS = {
    "payment_success": SignalKind.SUCCESS,
    "payment_cancelled": SignalKind.CANCELLED,
    "payment_error": SignalKind.ERROR,
}


def _parse_message(raw: Any) -> Optional[BridgeMessage]:
    if isinstance(raw, (str, bytes)):
        raw = json.loads(raw)
    if not isinstance(raw, dict):
        return None
    return BridgeMessage.model_validate(raw)


def classify_message(raw: Any, session_reference: Optional[str] = None) -> Classification:
    try:
        return _classify_message(raw, session_reference)
    except (ValueError, ValidationError):
        logger.debug("Non-JSON or malformed bridge message received: %r", raw)
    except Exception:
        logger.debug("Bridge message classification failed for %r; ignoring", raw, exc_info=True)
    return IGNORE_MESSAGE


def _classify_message(raw: Any, session_reference: Optional[str]) -> Classification:
    msg = _parse_message(raw)
    if msg is None:
        return IGNORE_MESSAGE

    if msg.event:
        kind = _EVENT_KINDS.get(msg.event.strip().lower())
        reference, message = msg.data.reference, msg.data.message
        rule = f"event:{msg.event}"
    elif msg.type:
        kind = _LEGACY_KINDS.get(msg.type.strip().lower())
        reference, message = msg.reference, msg.message
        rule = f"type:{msg.type}"
    else:
        kind = None

    if kind is None:
        return IGNORE_MESSAGE
    if kind == SignalKind.SUCCESS:
        return Classification(kind, SignalSource.MESSAGE, reference=reference or session_reference, rule=rule)
    if kind == SignalKind.ERROR:
        return Classification(kind, SignalSource.MESSAGE, message=message or DEFAULT_FAILURE_MESSAGE, rule=rule)
    return Classification(kind, SignalSource.MESSAGE, rule=rule)


def classify_http_error(status_code: int) -> Classification:
    if status_code >= 400:
        return Classification(SignalKind.ERROR, SignalSource.LOAD_ERROR, message=SERVICE_UNAVAILABLE, rule=f"http_{status_code}")
    return Classification(SignalKind.IGNORE, SignalSource.LOAD_ERROR)


def classify_load_error() -> Classification:
    return Classification(SignalKind.ERROR, SignalSource.LOAD_ERROR, message=SERVICE_UNAVAILABLE, rule="load_error")
