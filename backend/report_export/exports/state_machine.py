"""
State machine for one orchestrated export.

    Submitting -> Polling -> Fetching -> Done
                     |
                     +-> RetryWait -> Submitting   (Failed with Retry-After)
                     +-> Aborted                   (no hint, out of attempts, or unreadable status)
                     +-> TimedOut | Cancelled

transition() is a pure function of (state, event). The orchestrator
performs the side effects each state asks for and feeds the results back
in as events.
"""

from dataclasses import dataclass
from typing import Optional, Union

from report_export.exports.errors import InvalidTransitionError
from report_export.exports.models import (
    Artifact,
    JobHandle,
    PollOutcome,
    PollResult,
)
from report_export.integrations.powerbi.models import ExportState, ExportStatus


DEFAULT_MAX_ATTEMPTS = 3


# States

@dataclass(frozen=True)
class Submitting:
    attempt: int


@dataclass(frozen=True)
class Polling:
    handle: JobHandle

    @property
    def attempt(self) -> int:
        return self.handle.attempt


@dataclass(frozen=True)
class RetryWait:
    attempt: int
    delay_seconds: float
    last_status: ExportStatus


@dataclass(frozen=True)
class Fetching:
    handle: JobHandle
    status: ExportStatus

    @property
    def attempt(self) -> int:
        return self.handle.attempt


@dataclass(frozen=True)
class Done:
    attempt: int
    artifact: Artifact
    status: ExportStatus


@dataclass(frozen=True)
class TimedOut:
    attempt: int


@dataclass(frozen=True)
class Cancelled:
    attempt: int
    last_status: Optional[ExportStatus] = None


@dataclass(frozen=True)
class Aborted:
    attempt: int
    reason: str
    last_status: Optional[ExportStatus] = None


ExportMachineState = Union[
    Submitting, Polling, RetryWait, Fetching, Done, TimedOut, Cancelled, Aborted
]
TERMINAL_STATES = (Done, TimedOut, Cancelled, Aborted)


# Events

@dataclass(frozen=True)
class Submitted:
    handle: JobHandle


@dataclass(frozen=True)
class PollCompleted:
    result: PollResult


@dataclass(frozen=True)
class WaitElapsed:
    pass


@dataclass(frozen=True)
class WaitCancelled:
    pass


@dataclass(frozen=True)
class Fetched:
    artifact: Artifact


ExportEvent = Union[Submitted, PollCompleted, WaitElapsed, WaitCancelled, Fetched]


def initial_state() -> Submitting:
    return Submitting(attempt=1)


def is_terminal(state: ExportMachineState) -> bool:
    return isinstance(state, TERMINAL_STATES)


def _on_poll_completed(
    state: Polling,
    result: PollResult,
    max_attempts: int,
) -> ExportMachineState:
    attempt = state.attempt

    if result.outcome == PollOutcome.TIMED_OUT:
        return TimedOut(attempt=attempt)
    if result.outcome == PollOutcome.CANCELLED:
        return Cancelled(attempt=attempt)
    if result.outcome == PollOutcome.QUERY_FAILED:
        return Aborted(
            attempt=attempt,
            reason=f"Export status could not be read: {result.error}",
        )

    status = result.status
    if status is None or not status.is_terminal:
        raise InvalidTransitionError(
            "Poll completed without a terminal status",
            export_id=state.handle.export_id,
        )

    if status.state == ExportState.SUCCEEDED:
        return Fetching(handle=state.handle, status=status)

    # Failed. A Retry-After hint marks the service as busy; no hint is permanent.
    if status.retry_after_seconds is None:
        return Aborted(
            attempt=attempt,
            reason=status.error or "Export failed permanently",
            last_status=status,
        )
    if attempt >= max_attempts:
        return Aborted(
            attempt=attempt,
            reason=f"Export failed after {attempt} attempts",
            last_status=status,
        )
    return RetryWait(
        attempt=attempt,
        delay_seconds=max(status.retry_after_seconds, 0.0),
        last_status=status,
    )


def transition(
    state: ExportMachineState,
    event: ExportEvent,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
) -> ExportMachineState:
    """
    Compute the next state.

    Raises:
        InvalidTransitionError: If event is not valid in state
    """
    if isinstance(state, Submitting) and isinstance(event, Submitted):
        return Polling(handle=event.handle)

    if isinstance(state, Polling) and isinstance(event, PollCompleted):
        return _on_poll_completed(state, event.result, max_attempts)

    if isinstance(state, RetryWait) and isinstance(event, WaitElapsed):
        return Submitting(attempt=state.attempt + 1)

    if isinstance(state, RetryWait) and isinstance(event, WaitCancelled):
        return Cancelled(attempt=state.attempt, last_status=state.last_status)

    if isinstance(state, Fetching) and isinstance(event, Fetched):
        return Done(attempt=state.attempt, artifact=event.artifact, status=state.status)

    raise InvalidTransitionError(
        f"No transition from {type(state).__name__} on {type(event).__name__}"
    )
