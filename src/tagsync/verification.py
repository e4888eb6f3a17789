"""One-time-passcode verification handshake with a resend cooldown.

    AwaitingSend --request_code ok--> AwaitingCode --submit_code ok--> Verified
                                          |
                                          +-- max wrong codes --> Failed

Rejected actions are not exceptions: they come back as a ``FlowOutcome``
carrying a ``Rejection`` value.
"""

from __future__ import annotations

import enum
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol

import structlog

from tagsync.duration import parse_duration
from tagsync.errors import ClientError, ExecutionError
from tagsync.scheduler import Scheduler, Timer
from tagsync.store import CacheStore
from tagsync.types import Duration, MutationResult

log = structlog.get_logger(__name__)


class FlowState(enum.Enum):
    AWAITING_SEND = "awaiting_send"
    AWAITING_CODE = "awaiting_code"
    VERIFIED = "verified"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (FlowState.VERIFIED, FlowState.FAILED)


@dataclass(frozen=True, slots=True)
class Rejection:
    """Base for actions refused without touching the network."""


@dataclass(frozen=True, slots=True)
class CooldownActive(Rejection):
    remaining: int


@dataclass(frozen=True, slots=True)
class InvalidAction(Rejection):
    action: str
    state: FlowState


@dataclass(frozen=True, slots=True)
class ActionPending(Rejection):
    action: str


@dataclass(frozen=True, slots=True)
class VerificationExhausted(Rejection):
    attempts: int


@dataclass(slots=True)
class VerificationSession:
    subject: str
    state: FlowState = FlowState.AWAITING_SEND
    cooldown_remaining: int = 0
    attempts: int = 0


@dataclass(frozen=True, slots=True)
class FlowOutcome:
    """What an action did. ``ok`` is True only when the action succeeded."""

    ok: bool
    state: FlowState
    error: ExecutionError | None = None
    rejection: Rejection | None = None


class Notifier(Protocol):
    """Toast-style sink for human-readable status strings."""

    def loading(self, message: str) -> None: ...

    def success(self, message: str) -> None: ...

    def error(self, message: str) -> None: ...


class LogNotifier:
    """Notifier that writes status strings to the log."""

    def loading(self, message: str) -> None:
        log.info("notify", level="loading", message=message)

    def success(self, message: str) -> None:
        log.info("notify", level="success", message=message)

    def error(self, message: str) -> None:
        log.warning("notify", level="error", message=message)


class VerificationFlow:
    """Drives one verification session for *subject*.

    The countdown is a repeating timer owned by the flow; it runs only
    while the session is ``AWAITING_CODE`` with cooldown left, and
    ``close()`` stops it.
    """

    def __init__(
        self,
        store: CacheStore,
        subject: str,
        *,
        scheduler: Scheduler,
        send_endpoint: str = "sendOtp",
        verify_endpoint: str = "verifyOtp",
        subject_field: str = "email",
        cooldown: int = 5,
        tick: Duration = "1s",
        max_attempts: int = 3,
        notifier: Notifier | None = None,
        on_change: Callable[[VerificationSession], None] | None = None,
    ) -> None:
        if cooldown < 0:
            raise ValueError("cooldown must not be negative")
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._store = store
        self._scheduler = scheduler
        self._send_endpoint = send_endpoint
        self._verify_endpoint = verify_endpoint
        self._subject_field = subject_field
        self._cooldown = cooldown
        self._tick = parse_duration(tick)
        self._max_attempts = max_attempts
        self._notifier: Notifier = notifier or LogNotifier()
        self._on_change = on_change
        self._timer: Timer | None = None
        self._pending: str | None = None
        self._closed = False
        self.session = VerificationSession(subject=subject)

    @property
    def state(self) -> FlowState:
        return self.session.state

    @property
    def cooldown_remaining(self) -> int:
        return self.session.cooldown_remaining

    @property
    def attempts(self) -> int:
        return self.session.attempts

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def countdown_running(self) -> bool:
        return self._timer is not None

    async def request_code(self) -> FlowOutcome:
        """Send (or resend) the code. Resending requires the cooldown to be over."""
        rejection = self._check(
            "request_code", FlowState.AWAITING_SEND, FlowState.AWAITING_CODE
        )
        if rejection is None and self.session.cooldown_remaining > 0:
            rejection = CooldownActive(self.session.cooldown_remaining)
        if rejection is not None:
            return FlowOutcome(ok=False, state=self.state, rejection=rejection)

        self._notifier.loading("Sending OTP")
        result = await self._call(
            "request_code",
            self._send_endpoint,
            {self._subject_field: self.session.subject},
        )
        if self._closed:
            return FlowOutcome(ok=result.success, state=self.state, error=result.error)
        if not result.success:
            self._notifier.error(_describe(result.error))
            return FlowOutcome(ok=False, state=self.state, error=result.error)

        self._notifier.success("OTP Sent")
        self.session.cooldown_remaining = self._cooldown
        self._transition(FlowState.AWAITING_CODE)
        self._start_countdown()
        return FlowOutcome(ok=True, state=self.state)

    async def resend_code(self) -> FlowOutcome:
        return await self.request_code()

    async def submit_code(self, code: str) -> FlowOutcome:
        rejection = self._check("submit_code", FlowState.AWAITING_CODE)
        if rejection is not None:
            return FlowOutcome(ok=False, state=self.state, rejection=rejection)

        self._notifier.loading("Verifying OTP")
        result = await self._call(
            "submit_code",
            self._verify_endpoint,
            {self._subject_field: self.session.subject, "otp": code},
        )
        if self._closed:
            return FlowOutcome(ok=result.success, state=self.state, error=result.error)
        if result.success:
            self._notifier.success("OTP Verified")
            self._transition(FlowState.VERIFIED)
            return FlowOutcome(ok=True, state=self.state)

        self._notifier.error(_describe(result.error))
        if not isinstance(result.error, ClientError):
            # Network/server trouble does not count as a wrong code
            return FlowOutcome(ok=False, state=self.state, error=result.error)

        self.session.attempts += 1
        if self.session.attempts >= self._max_attempts:
            self._transition(FlowState.FAILED)
            return FlowOutcome(
                ok=False,
                state=self.state,
                error=result.error,
                rejection=VerificationExhausted(self.session.attempts),
            )
        self._changed()
        return FlowOutcome(ok=False, state=self.state, error=result.error)

    def close(self) -> None:
        """Tear the flow down; stops the countdown. Idempotent."""
        self._closed = True
        self._stop_countdown()

    def _check(self, action: str, *allowed: FlowState) -> Rejection | None:
        if self._closed or self.state not in allowed:
            return InvalidAction(action, self.state)
        if self._pending is not None:
            return ActionPending(self._pending)
        return None

    async def _call(
        self, action: str, endpoint: str, body: dict[str, Any]
    ) -> MutationResult[Any]:
        self._pending = action
        try:
            return await self._store.run_mutation(endpoint, body)
        finally:
            self._pending = None

    def _transition(self, state: FlowState) -> None:
        previous = self.session.state
        self.session.state = state
        if state is not FlowState.AWAITING_CODE:
            self._stop_countdown()
        log.info(
            "verification.transition",
            old=previous.value,
            new=state.value,
            attempts=self.session.attempts,
        )
        self._changed()

    def _start_countdown(self) -> None:
        self._stop_countdown()
        if self.session.cooldown_remaining > 0:
            self._timer = self._scheduler.call_every(self._tick, self._on_tick)

    def _stop_countdown(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_tick(self) -> None:
        if self._closed or self.state is not FlowState.AWAITING_CODE:
            self._stop_countdown()
            return
        self.session.cooldown_remaining = max(0, self.session.cooldown_remaining - 1)
        if self.session.cooldown_remaining == 0:
            self._stop_countdown()
        self._changed()

    def _changed(self) -> None:
        if self._on_change is not None:
            self._on_change(self.session)


def _describe(error: ExecutionError | None) -> str:
    if isinstance(error, ClientError):
        return error.message
    return str(error) if error else "Request failed"
