"""
Payment session controller.

The one place that mutates a PaymentSession and the one place that calls the
host's outcome callbacks. Everything else (init task, surface adapter,
fallback timer, verification poller) posts events onto a single queue that is
drained in arrival order by one consumer task.

    idle --open--> initializing --ok--> awaiting_completion --success/timeout--> verifying
                         |                   |        |                            |
                       error              cancel    error                 success / failed /
                         v                   v        v                     exhausted
                      failure              idle    failure                success | failure
"""

from __future__ import annotations

import asyncio
import functools
import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

from src.checkout.events import (
    Classification,
    FallbackElapsed,
    InitFailed,
    InitSucceeded,
    PollCompleted,
    PollOutcome,
    PollResult,
    SessionEvent,
    SignalKind,
    SurfaceSignal,
)
from src.checkout.poller import VerificationPoller
from src.checkout.session import TERMINAL_STATES, Outcome, OutcomeKind, PaymentSession, SessionState
from src.checkout.surface.adapters import CheckoutSurfaceAdapter, create_surface_adapter
from src.integrations.contracts.errors import (
    InitializationError,
    PaymentError,
    PaymentStateError,
    PaymentValidationError,
    UserCancelled,
)
from src.integrations.contracts.interfaces import Channel, OrderSummary, PaymentGateway
from src.integrations.contracts.payments import build_initialize_request, validate_order_summary
from src.utils.payment_config_loader import PaymentConfig

logger = logging.getLogger(__name__)

ACTIVE_STATES = frozenset({SessionState.INITIALIZING, SessionState.AWAITING_COMPLETION, SessionState.VERIFYING})


class PaymentSessionController:
    def __init__(
        self,
        gateway: PaymentGateway,
        config: Optional[PaymentConfig] = None,
        *,
        on_success: Optional[Callable[[str], Any]] = None,
        on_cancel: Optional[Callable[[], Any]] = None,
        on_error: Optional[Callable[[str], Any]] = None,
        poller: Optional[VerificationPoller] = None,
        surface_factory: Optional[Callable[..., CheckoutSurfaceAdapter]] = None,
        supports_embedded_surface: Optional[bool] = None,
    ) -> None:
        self.gateway = gateway
        self.config = config or PaymentConfig()
        self.on_success = on_success
        self.on_cancel = on_cancel
        self.on_error = on_error
        self.poller = poller or VerificationPoller(gateway, self.config.verification)
        self._surface_factory = surface_factory or functools.partial(
            create_surface_adapter,
            self.config.checkout,
            supports_embedded_surface=supports_embedded_surface,
        )

        self._session: Optional[PaymentSession] = None
        self._adapter: Optional[CheckoutSurfaceAdapter] = None
        self._queue: Optional[asyncio.Queue] = None
        self._pump_task: Optional[asyncio.Task] = None
        self._init_task: Optional[asyncio.Task] = None
        self._poll_task: Optional[asyncio.Task] = None
        self._waiters: List[Tuple[frozenset, asyncio.Future]] = []
        self.last_outcome: Optional[Outcome] = None

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def session(self) -> Optional[PaymentSession]:
        return self._session

    @property
    def state(self) -> SessionState:
        return self._session.state if self._session else SessionState.IDLE

    @property
    def adapter(self) -> Optional[CheckoutSurfaceAdapter]:
        return self._adapter

    def snapshot(self) -> Dict[str, Any]:
        outcome = self.last_outcome
        return {
            "state": self.state.value,
            "session": self._session.snapshot() if self._session else None,
            "surface": self._adapter.describe() if self._adapter else None,
            "last_outcome": {
                "kind": outcome.kind.value,
                "reference": outcome.reference,
                "message": outcome.message,
                "presumed": outcome.presumed,
            } if outcome else None,
        }

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def open(self, order: OrderSummary, channel: Channel) -> PaymentSession:
        errors = validate_order_summary(
            order,
            Channel(channel),
            self.config.supported_currencies,
            self.config.supported_channels,
        )
        if errors:
            raise PaymentValidationError(errors)

        state = self.state
        if state in ACTIVE_STATES:
            logger.info("open() ignored; session %s already %s", self._session.session_id, state.value)
            return self._session
        if state in TERMINAL_STATES:
            raise PaymentStateError(f"session is {state.value}; call reset() or retry_after_failure() first")

        session = PaymentSession(order=order, channel=channel)
        self._session = session
        self._begin_initialization(session)
        return session

    def close(self) -> None:
        """User dismissed the payment UI. No outcome callback fires."""
        session = self._session
        self._teardown()
        self._session = None
        if session is not None:
            logger.info("Session %s closed from state %s", session.session_id, session.state.value)
        self._notify()

    def reset(self) -> None:
        if self.state not in TERMINAL_STATES:
            raise PaymentStateError(f"reset() is only allowed from success or failure, not {self.state.value}")
        logger.info("Session %s reset", self._session.session_id)
        self._teardown()
        self._session = None
        self._notify()

    async def retry_after_failure(self) -> PaymentSession:
        previous = self._session
        if previous is None or previous.state != SessionState.FAILURE:
            raise PaymentStateError(f"retry_after_failure() is only allowed from failure, not {self.state.value}")

        self._teardown()
        session = PaymentSession(order=previous.order, channel=previous.channel)
        self._session = session
        logger.info("Retrying order %s as session %s", session.order_id, session.session_id)
        self._begin_initialization(session)
        return session

    async def wait_for_state(self, *states: SessionState, timeout: Optional[float] = None) -> SessionState:
        if self.state in states:
            return self.state
        future = asyncio.get_running_loop().create_future()
        waiter = (frozenset(states), future)
        self._waiters.append(waiter)
        try:
            return await asyncio.wait_for(future, timeout)
        finally:
            if waiter in self._waiters:
                self._waiters.remove(waiter)

    async def drain(self) -> None:
        """Wait until every queued event has been applied."""
        if self._queue is not None:
            await self._queue.join()

    async def aclose(self) -> None:
        self.close()
        if self._pump_task is not None:
            self._pump_task.cancel()
            try:
                await self._pump_task
            except asyncio.CancelledError:
                pass
            self._pump_task = None

    # ------------------------------------------------------------------
    # Producers
    # ------------------------------------------------------------------

    def _post(self, event: SessionEvent) -> None:
        self._ensure_pump()
        self._queue.put_nowait(event)

    def _begin_initialization(self, session: PaymentSession) -> None:
        self._ensure_pump()
        self._transition(session, SessionState.INITIALIZING)
        self._init_task = asyncio.create_task(self._initialize(session))

    async def _initialize(self, session: PaymentSession) -> None:
        request = build_initialize_request(
            session.order,
            session.channel,
            callback_url=self.config.checkout.callback_url,
            reference_prefix=self.config.reference_prefix,
        )
        try:
            response = await self.gateway.initialize_payment(request)
        except PaymentError as e:
            self._post(InitFailed(session.session_id, e))
        except Exception as e:
            logger.exception("Unexpected error initializing payment for session %s", session.session_id)
            self._post(InitFailed(session.session_id, InitializationError(str(e) or "Failed to initialize payment")))
        else:
            self._post(InitSucceeded(session.session_id, response.reference, response.authorization_url))

    def _start_verification(self, session: PaymentSession) -> None:
        self._unmount_adapter()
        self._transition(session, SessionState.VERIFYING)
        self._poll_task = asyncio.create_task(self._verify(session))

    async def _verify(self, session: PaymentSession) -> None:
        on_attempt = functools.partial(self._count_attempt, session.session_id)
        try:
            result = await self.poller.poll(session.reference, on_attempt=on_attempt)
        except Exception as e:
            logger.exception("Unexpected error verifying session %s", session.session_id)
            result = PollResult(PollOutcome.FAILED, session.reference, session.verification_attempts,
                                message="Failed to verify payment", error=PaymentError(str(e)))
        self._post(PollCompleted(session.session_id, result))

    def _count_attempt(self, session_id: str, attempt: int) -> None:
        session = self._session
        if session is not None and session.session_id == session_id and session.state == SessionState.VERIFYING:
            session.verification_attempts += 1

    def _mount_adapter(self, session: PaymentSession) -> None:
        self._adapter = self._surface_factory(
            on_signal=functools.partial(self._surface_signal, session.session_id),
            on_timeout=functools.partial(self._post_fallback, session.session_id),
        )
        self._adapter.mount(session.authorization_url, session.reference)

    def _surface_signal(self, session_id: str, classification: Classification) -> None:
        self._post(SurfaceSignal(session_id, classification))

    def _post_fallback(self, session_id: str) -> None:
        self._post(FallbackElapsed(session_id))

    # ------------------------------------------------------------------
    # Consumer
    # ------------------------------------------------------------------

    def _ensure_pump(self) -> None:
        if self._pump_task is None or self._pump_task.done():
            self._queue = asyncio.Queue()
            self._pump_task = asyncio.create_task(self._pump())

    async def _pump(self) -> None:
        queue = self._queue
        while True:
            batch = [await queue.get()]
            while not queue.empty():
                batch.append(queue.get_nowait())
            # Bridge messages beat URL heuristics that arrived in the same batch.
            for event in sorted(batch, key=lambda e: e.precedence):
                try:
                    await self._apply(event)
                except Exception:
                    logger.exception("Failed to apply %s", type(event).__name__)
                finally:
                    queue.task_done()

    async def _apply(self, event: SessionEvent) -> None:
        session = self._session
        if session is None or event.session_id != session.session_id:
            logger.debug("Dropping stale %s for session %s", type(event).__name__, event.session_id)
            return

        if isinstance(event, InitSucceeded):
            await self._on_init_succeeded(session, event)
        elif isinstance(event, InitFailed):
            await self._on_init_failed(session, event)
        elif isinstance(event, SurfaceSignal):
            await self._on_surface_signal(session, event.classification)
        elif isinstance(event, FallbackElapsed):
            if session.state == SessionState.AWAITING_COMPLETION:
                logger.warning("Fallback timeout for session %s; verifying ref=%s", session.session_id, session.reference)
                self._start_verification(session)
        elif isinstance(event, PollCompleted):
            await self._on_poll_completed(session, event)

    async def _on_init_succeeded(self, session: PaymentSession, event: InitSucceeded) -> None:
        if session.state != SessionState.INITIALIZING:
            return
        self._init_task = None
        session.reference = event.reference
        session.authorization_url = event.authorization_url
        self._transition(session, SessionState.AWAITING_COMPLETION)
        self._mount_adapter(session)

    async def _on_init_failed(self, session: PaymentSession, event: InitFailed) -> None:
        if session.state != SessionState.INITIALIZING:
            return
        self._init_task = None
        message = event.error.message or "Failed to initialize payment"
        logger.error("Payment initialization failed for session %s: %s", session.session_id, message)
        await self._fail(session, message, event.error)

    async def _on_surface_signal(self, session: PaymentSession, classification: Classification) -> None:
        if session.state != SessionState.AWAITING_COMPLETION:
            logger.debug("Ignoring %s signal in state %s", classification.kind.value, session.state.value)
            return

        logger.info("Session %s surface reported %s (rule=%s, source=%s)", session.session_id,
                    classification.kind.value, classification.rule, classification.source.value)

        if classification.kind == SignalKind.SUCCESS:
            if classification.reference and classification.reference != session.reference:
                logger.warning("Surface reported ref=%s but session ref is %s; verifying the session ref",
                               classification.reference, session.reference)
            self._start_verification(session)
        elif classification.kind == SignalKind.CANCELLED:
            self._unmount_adapter()
            self._transition(session, SessionState.IDLE)
            await self._finish(session, Outcome(OutcomeKind.CANCELLED, error=UserCancelled("Payment was cancelled")))
            if self._session is session:
                self._session = None
                self._notify()
        elif classification.kind == SignalKind.ERROR:
            self._unmount_adapter()
            await self._fail(session, classification.message or "Payment failed", None)

    async def _on_poll_completed(self, session: PaymentSession, event: PollCompleted) -> None:
        if session.state != SessionState.VERIFYING:
            return
        self._poll_task = None
        result = event.result

        if result.outcome == PollOutcome.SUCCESS:
            self._transition(session, SessionState.SUCCESS)
            await self._finish(session, Outcome(OutcomeKind.SUCCESS, reference=session.reference))
        elif result.outcome == PollOutcome.EXHAUSTED and self.config.verification.presume_success_on_exhaustion:
            logger.warning("Presuming success for ref=%s after %s pending verifications",
                           session.reference, result.attempts)
            self._transition(session, SessionState.SUCCESS)
            await self._finish(session, Outcome(OutcomeKind.SUCCESS, reference=session.reference, presumed=True))
        else:
            message = result.error.message if result.outcome == PollOutcome.EXHAUSTED else result.message
            await self._fail(session, message or "Payment verification failed", result.error)

    async def _fail(self, session: PaymentSession, message: str, error: Optional[PaymentError]) -> None:
        session.error_message = message
        self._transition(session, SessionState.FAILURE)
        await self._finish(session, Outcome(OutcomeKind.ERROR, message=message, error=error))

    async def _finish(self, session: PaymentSession, outcome: Outcome) -> None:
        if not session.record_outcome(outcome):
            logger.error("Session %s already reported %s; dropping %s",
                         session.session_id, session.outcome.kind.value, outcome.kind.value)
            return
        self.last_outcome = outcome

        if outcome.kind == OutcomeKind.SUCCESS:
            await self._invoke(self.on_success, outcome.reference)
        elif outcome.kind == OutcomeKind.CANCELLED:
            await self._invoke(self.on_cancel)
        else:
            await self._invoke(self.on_error, outcome.message)

    async def _invoke(self, callback: Optional[Callable[..., Any]], *args: Any) -> None:
        if callback is None:
            return
        try:
            result = callback(*args)
            if hasattr(result, "__await__"):
                await result
        except Exception:
            logger.exception("Outcome callback %s raised", getattr(callback, "__name__", callback))

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _transition(self, session: PaymentSession, target: SessionState) -> None:
        previous = session.move_to(target)
        logger.info("Session %s: %s -> %s", session.session_id, previous.value, target.value)
        self._notify()

    def _notify(self) -> None:
        state = self.state
        pending = []
        for states, future in self._waiters:
            if future.done():
                continue
            if state in states:
                future.set_result(state)
            else:
                pending.append((states, future))
        self._waiters = pending

    def _unmount_adapter(self) -> None:
        if self._adapter is not None:
            self._adapter.unmount()
            self._adapter = None

    def _teardown(self) -> None:
        for task in (self._init_task, self._poll_task):
            if task is not None and not task.done():
                task.cancel()
        self._init_task = None
        self._poll_task = None
        self._unmount_adapter()
