"""
Rate-limit-aware retry around a single reasoning-backend request.

The policy is an explicit state machine::

    Idle -> Sending -> Success
                    -> RateLimited -> (backoff) -> Sending
                    -> OtherFailure

:func:`transition` is pure: given the current state, the event that just happened and the
attempt number, it returns the next state plus the effects to perform (emit the transient
notice, sleep, clear the notice).  :class:`RetryingInvoker` is the small async driver that
performs those effects, so the policy can be tested with a scripted sequence of responses and
no live backend.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import (
    Awaitable,
    Callable,
    List,
    Optional,
)

from projectpilot.config import settings
from projectpilot.core.cancellation import CancellationToken
from projectpilot.core.errors import RateLimited
from projectpilot.core.schema import (
    BackendRequest,
    BackendResponse,
    Conversation,
    ConversationMessage,
)

logger = logging.getLogger(__name__)

BUSY_NOTICE = "⏳ The server is busy, waiting for a free slot to process your request…"

Sender = Callable[[BackendRequest], Awaitable[BackendResponse]]
Sleeper = Callable[[float], Awaitable[None]]


class InvokerState(str, Enum):
    """States of one outbound request."""

    IDLE = "idle"
    SENDING = "sending"
    SUCCESS = "success"
    RATE_LIMITED = "rate-limited"
    OTHER_FAILURE = "other-failure"


class InvokerEvent(str, Enum):
    """What happened while in a state."""

    START = "start"
    SENT_OK = "sent-ok"
    RATE_LIMITED = "rate-limited"
    FAILED = "failed"
    BACKOFF_ELAPSED = "backoff-elapsed"


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded exponential backoff: ``base_delay * 2**attempt``."""

    max_attempts: int = 3
    base_delay: float = 2.0

    @classmethod
    def from_settings(cls) -> RetryPolicy:
        return cls(max_attempts=settings.RETRY_MAX_ATTEMPTS, base_delay=settings.RETRY_BASE_DELAY)

    def delay_for(self, attempt: int) -> float:
        return self.base_delay * (2**attempt)


@dataclass(frozen=True)
class Step:
    """Next state and the effects the driver must perform to get there."""

    state: InvokerState
    attempt: int
    sleep_for: Optional[float] = None
    emit_notice: bool = False
    clear_notice: bool = False

    @property
    def terminal(self) -> bool:
        return self.state in (InvokerState.SUCCESS, InvokerState.OTHER_FAILURE)


def transition(
    state: InvokerState, event: InvokerEvent, attempt: int, policy: RetryPolicy
) -> Step:
    """
    Pure transition function of the retry state machine.

    *attempt* is the zero-based index of the attempt that produced *event*.
    """
    if state is InvokerState.IDLE and event is InvokerEvent.START:
        return Step(InvokerState.SENDING, attempt=0)

    if state is InvokerState.SENDING:
        if event is InvokerEvent.SENT_OK:
            return Step(InvokerState.SUCCESS, attempt, clear_notice=True)
        if event is InvokerEvent.FAILED:
            return Step(InvokerState.OTHER_FAILURE, attempt, clear_notice=True)
        if event is InvokerEvent.RATE_LIMITED:
            if attempt < policy.max_attempts - 1:
                return Step(
                    InvokerState.RATE_LIMITED,
                    attempt,
                    sleep_for=policy.delay_for(attempt),
                    emit_notice=attempt == 0,
                )
            return Step(InvokerState.OTHER_FAILURE, attempt, clear_notice=True)

    if state is InvokerState.RATE_LIMITED and event is InvokerEvent.BACKOFF_ELAPSED:
        return Step(InvokerState.SENDING, attempt + 1)

    raise ValueError(f"Invalid transition from {state.value} on {event.value}")


class RetryingInvoker:
    """
    Send one backend request, backing off on :class:`RateLimited`.

    Parameters
    ----------
    send:
        Coroutine function performing the actual backend call.
    policy:
        Retry policy; defaults to the configured one.
    sleep:
        Awaitable sleep used for backoff.  Tests inject a recorder here.
    """

    def __init__(
        self,
        send: Sender,
        policy: RetryPolicy | None = None,
        sleep: Sleeper | None = None,
    ) -> None:
        self._send = send
        self.policy = policy or RetryPolicy.from_settings()
        self._sleep = sleep
        self.history: List[InvokerState] = []

    async def _backoff(self, delay: float, cancel: Optional[CancellationToken]) -> None:
        if self._sleep is not None:
            await self._sleep(delay)
        elif cancel is not None:
            await cancel.sleep(delay)
        else:
            await asyncio.sleep(delay)
        if cancel is not None:
            cancel.raise_if_cancelled()

    async def invoke(
        self,
        request: BackendRequest,
        conversation: Optional[Conversation] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> BackendResponse:
        """
        Run the state machine to completion.

        Returns
        -------
        BackendResponse
            The first successful backend response.

        Raises
        ------
        RateLimited
            Every allowed attempt was rate limited.
        BackendError
            Any other backend failure, without retrying.
        """
        notice: Optional[ConversationMessage] = None
        step = transition(InvokerState.IDLE, InvokerEvent.START, 0, self.policy)
        self.history = [step.state]
        try:
            while True:
                if cancel is not None:
                    cancel.raise_if_cancelled()
                error: Optional[BaseException] = None
                try:
                    response = await self._send(request)
                    event = InvokerEvent.SENT_OK
                except RateLimited as exc:
                    error = exc
                    event = InvokerEvent.RATE_LIMITED
                except Exception as exc:  # noqa: BLE001
                    error = exc
                    event = InvokerEvent.FAILED

                step = transition(step.state, event, step.attempt, self.policy)
                self.history.append(step.state)

                if step.emit_notice and conversation is not None and notice is None:
                    notice = conversation.post_status(BUSY_NOTICE)

                if step.state is InvokerState.SUCCESS:
                    return response
                if step.state is InvokerState.OTHER_FAILURE:
                    assert error is not None
                    if event is InvokerEvent.RATE_LIMITED:
                        logger.error(
                            "Backend still rate limited after %d attempts", step.attempt + 1
                        )
                    raise error

                logger.warning(
                    "Backend rate limited (429). Retrying in %.1fs (attempt %d/%d)",
                    step.sleep_for,
                    step.attempt + 1,
                    self.policy.max_attempts,
                )
                await self._backoff(step.sleep_for or 0.0, cancel)
                step = transition(
                    step.state, InvokerEvent.BACKOFF_ELAPSED, step.attempt, self.policy
                )
                self.history.append(step.state)
        finally:
            if notice is not None and conversation is not None:
                conversation.prune_status(notice)
