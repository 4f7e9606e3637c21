"""
Checkout surface adapters.

An adapter hosts the gateway's authorization URL and turns everything the
surface reports (navigations, bridge messages, load failures, window events)
into classifications for the session controller. It never touches the
session itself.

Two implementations share one contract:
- EmbeddedSurfaceAdapter: in-app browsing surface (mobile)
- PopupWindowSurfaceAdapter: separate browser window (web)
create_surface_adapter() picks one from the platform capability flag.
"""

from __future__ import annotations

import asyncio
import logging
import webbrowser
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional

from src.checkout.events import Classification, SignalKind, SignalSource
from src.checkout.surface.bridge import build_bridge_script
from src.checkout.surface.classifier import (
    NavigationClassifier,
    classify_http_error,
    classify_load_error,
    classify_message,
)
from src.utils.payment_config_loader import CheckoutConfig

logger = logging.getLogger(__name__)

SignalSink = Callable[[Classification], None]
TimeoutSink = Callable[[], None]


class CheckoutSurfaceAdapter(ABC):
    platform = "abstract"

    def __init__(
        self,
        config: Optional[CheckoutConfig] = None,
        on_signal: Optional[SignalSink] = None,
        on_timeout: Optional[TimeoutSink] = None,
        classifier: Optional[NavigationClassifier] = None,
    ) -> None:
        self.config = config or CheckoutConfig()
        self._on_signal = on_signal or (lambda classification: None)
        self._on_timeout = on_timeout or (lambda: None)
        self.classifier = classifier or NavigationClassifier(self.config)
        self.authorization_url: Optional[str] = None
        self.reference: Optional[str] = None
        self.mounted = False
        self.settled = False
        self._timer: Optional[asyncio.TimerHandle] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def mount(self, authorization_url: str, reference: str) -> None:
        if self.mounted:
            return
        self.authorization_url = authorization_url
        self.reference = reference
        self.mounted = True
        self._start_fallback_timer()
        logger.info("Mounting %s checkout surface for ref=%s", self.platform, reference)
        self._render()

    def unmount(self) -> None:
        self._cancel_fallback_timer()
        if not self.mounted:
            return
        self.mounted = False
        logger.info("Unmounting %s checkout surface for ref=%s", self.platform, self.reference)
        self._teardown()

    @property
    def fallback_pending(self) -> bool:
        return self._timer is not None

    def _start_fallback_timer(self) -> None:
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self.config.fallback_timeout_seconds, self._fallback_elapsed)

    def _cancel_fallback_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _fallback_elapsed(self) -> None:
        self._timer = None
        if not self.mounted or self.settled:
            return
        self.settled = True
        logger.warning("No completion signal for ref=%s after %ss; presuming completion",
                       self.reference, self.config.fallback_timeout_seconds)
        self._on_timeout()

    # ------------------------------------------------------------------
    # Signals
    # ------------------------------------------------------------------

    def handle_navigation(self, url: str) -> Classification:
        logger.debug("Surface navigation to %s", url)
        return self._dispatch(self.classifier.classify(url, self.reference))

    def handle_message(self, raw: Any) -> Classification:
        return self._dispatch(classify_message(raw, self.reference))

    def handle_http_error(self, status_code: int) -> Classification:
        logger.error("Checkout surface HTTP error: %s", status_code)
        return self._dispatch(classify_http_error(status_code))

    def handle_load_error(self, description: str = "") -> Classification:
        logger.error("Checkout surface failed to load: %s", description)
        return self._dispatch(classify_load_error())

    def _dispatch(self, classification: Classification) -> Classification:
        if not self.mounted or not classification.is_terminal:
            return classification
        # Later terminal signals still go to the controller; it keeps the first one it applies.
        self.settled = True
        self._cancel_fallback_timer()
        self._on_signal(classification)
        return classification

    # ------------------------------------------------------------------
    # Platform hooks
    # ------------------------------------------------------------------

    @abstractmethod
    def _render(self) -> None:
        """Show the authorization URL to the customer."""

    @abstractmethod
    def _teardown(self) -> None:
        """Remove whatever _render() put on screen."""

    def describe(self) -> Dict[str, Any]:
        return {
            "platform": self.platform,
            "authorization_url": self.authorization_url,
            "mounted": self.mounted,
        }


# ---------------------------------------------------------------------------
# Mobile: embedded browsing surface
# ---------------------------------------------------------------------------

class RemoteSurfaceHost:
    """
    Default host for the embedded surface: the app's own web view renders the
    page and reports back over the payments API, so we only keep what it needs.
    """

    def __init__(self) -> None:
        self.loaded_url: Optional[str] = None
        self.injected_script: Optional[str] = None

    def load(self, url: str, injected_script: str) -> None:
        self.loaded_url = url
        self.injected_script = injected_script

    def dispose(self) -> None:
        self.loaded_url = None
        self.injected_script = None


class EmbeddedSurfaceAdapter(CheckoutSurfaceAdapter):
    platform = "mobile"

    def __init__(self, *args, host: Optional[Any] = None, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.host = host or RemoteSurfaceHost()
        self.injected_script: Optional[str] = None

    def should_start_load(self, url: str) -> bool:
        """Only HTTPS pages and the gateway's own domains may load in the surface."""
        lowered = (url or "").lower()
        return lowered.startswith("https://") or any(domain in lowered for domain in self.config.gateway_domains)

    def _render(self) -> None:
        markers = list(self.config.close_patterns) + list(self.config.callback_markers)
        self.injected_script = build_bridge_script(self.reference or "", markers)
        self.host.load(self.authorization_url, self.injected_script)

    def _teardown(self) -> None:
        self.host.dispose()

    def describe(self) -> Dict[str, Any]:
        info = super().describe()
        info["injected_script"] = self.injected_script
        return info


# ---------------------------------------------------------------------------
# Web: separate browser window
# ---------------------------------------------------------------------------

class PopupWindowSurfaceAdapter(CheckoutSurfaceAdapter):
    platform = "web"

    def __init__(self, *args, opener: Optional[Callable[[str], Any]] = None, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.opener = opener or webbrowser.open_new
        self.window_open = False

    def _render(self) -> None:
        logger.info("Opening payment window (%s)", self.config.popup_features)
        self.opener(self.authorization_url)
        self.window_open = True

    def _teardown(self) -> None:
        # The browser owns the window; we just stop listening to it.
        self.window_open = False

    def confirm_completed(self) -> Classification:
        """Customer says they finished paying in the other window."""
        return self._dispatch(Classification(SignalKind.SUCCESS, SignalSource.USER, reference=self.reference, rule="user_confirmed"))

    def dismiss(self) -> Classification:
        """Customer backed out from the host page."""
        return self._dispatch(Classification(SignalKind.CANCELLED, SignalSource.USER, rule="user_dismissed"))

    def window_closed(self) -> Classification:
        """The gateway window went away; treated like reaching the close page."""
        self.window_open = False
        return self._dispatch(Classification(SignalKind.SUCCESS, SignalSource.WINDOW, reference=self.reference, rule="window_closed"))

    def describe(self) -> Dict[str, Any]:
        info = super().describe()
        info["window_open"] = self.window_open
        return info


def create_surface_adapter(
    config: CheckoutConfig,
    *,
    supports_embedded_surface: Optional[bool] = None,
    on_signal: Optional[SignalSink] = None,
    on_timeout: Optional[TimeoutSink] = None,
    host: Optional[Any] = None,
    opener: Optional[Callable[[str], Any]] = None,
) -> CheckoutSurfaceAdapter:
    if supports_embedded_surface is None:
        supports_embedded_surface = config.platform == "mobile"
    if supports_embedded_surface:
        return EmbeddedSurfaceAdapter(config, on_signal, on_timeout, host=host)
    return PopupWindowSurfaceAdapter(config, on_signal, on_timeout, opener=opener)
