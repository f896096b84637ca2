"""
Export orchestration with whole-job retry.

This service orchestrates:
- Submitting an export job
- Polling it to a terminal state
- Retrying the entire job when the service reports a busy failure
- Handing the exported file back to the caller

Each call to export() keeps its state in locals, so one orchestrator and
one client can serve any number of concurrent exports.
"""

import asyncio
import logging
from typing import Optional

from report_export.exports.fetcher import ArtifactFetcher
from report_export.exports.models import ExportOutcome, ExportResult
from report_export.exports.poller import JobPoller
from report_export.exports.state_machine import (
    DEFAULT_MAX_ATTEMPTS,
    Aborted,
    Cancelled,
    Done,
    ExportEvent,
    ExportMachineState,
    Fetched,
    Fetching,
    PollCompleted,
    Polling,
    RetryWait,
    Submitted,
    Submitting,
    TimedOut,
    WaitCancelled,
    WaitElapsed,
    initial_state,
    is_terminal,
    transition,
)
from report_export.exports.submitter import JobSubmitter
from report_export.exports.timing import AsyncioClock, default_clock
from report_export.integrations.powerbi.models import ExportRequest

logger = logging.getLogger(__name__)

DEFAULT_POLL_TIMEOUT_SECONDS = 60.0


class ExportOrchestrator:
    """
    Runs an export end to end.

    A Failed job that carries a Retry-After hint is resubmitted after the
    hinted delay, up to max_attempts submissions in total. A Failed job
    without a hint is aborted at once. Submission and fetch errors are
    raised to the caller.
    """

    def __init__(
        self,
        submitter: JobSubmitter,
        poller: JobPoller,
        fetcher: ArtifactFetcher,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        clock: AsyncioClock = default_clock,
    ):
        """
        Initialize export orchestrator.

        Args:
            submitter: Creates export jobs
            poller: Polls export jobs to completion
            fetcher: Opens the exported file
            max_attempts: Maximum number of submissions (default: 3)
            clock: Timing source for retry waits

        Raises:
            ValueError: If max_attempts is less than 1
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        self._submitter = submitter
        self._poller = poller
        self._fetcher = fetcher
        self.max_attempts = max_attempts
        self._clock = clock

    async def export(
        self,
        request: ExportRequest,
        timeout_seconds: float = DEFAULT_POLL_TIMEOUT_SECONDS,
        cancel: Optional[asyncio.Event] = None,
    ) -> ExportResult:
        """
        Export a report, retrying the whole job on busy failures.

        Args:
            request: What to export
            timeout_seconds: Polling budget for each attempt
            cancel: Optional cancellation signal

        Returns:
            ExportResult with the artifact on success, or the outcome
            (timed out, cancelled, aborted) otherwise

        Raises:
            SubmissionError: If an export job cannot be created
            FetchError: If a succeeded export cannot be retrieved
        """
        state: ExportMachineState = initial_state()

        while not is_terminal(state):
            event = await self._step(state, request, timeout_seconds, cancel)
            state = transition(state, event, self.max_attempts)

        return self._to_result(state, request)

    async def _step(
        self,
        state: ExportMachineState,
        request: ExportRequest,
        timeout_seconds: float,
        cancel: Optional[asyncio.Event],
    ) -> ExportEvent:
        """Perform the side effect for a non-terminal state and return the resulting event."""
        if isinstance(state, Submitting):
            return Submitted(await self._submitter.submit(request, attempt=state.attempt))

        if isinstance(state, Polling):
            return PollCompleted(await self._poller.poll(state.handle, timeout_seconds, cancel))

        if isinstance(state, RetryWait):
            logger.info(
                "Retrying export after delay",
                extra={
                    "report_id": request.report_id,
                    "export_id": state.last_status.export_id,
                    "delay_seconds": state.delay_seconds,
                    "next_attempt": state.attempt + 1,
                    "max_attempts": self.max_attempts,
                },
            )
            cancelled = await self._clock.wait(state.delay_seconds, cancel)
            return WaitCancelled() if cancelled else WaitElapsed()

        if isinstance(state, Fetching):
            return Fetched(await self._fetcher.fetch(state.handle, state.status))

        raise TypeError(f"Unexpected state: {state!r}")

    def _to_result(self, state: ExportMachineState, request: ExportRequest) -> ExportResult:
        if isinstance(state, Done):
            logger.info(
                "Export completed successfully",
                extra={
                    "report_id": request.report_id,
                    "export_id": state.status.export_id,
                    "file_suffix": state.artifact.file_suffix,
                    "attempt": state.attempt,
                },
            )
            return ExportResult(
                outcome=ExportOutcome.SUCCEEDED,
                attempts=state.attempt,
                artifact=state.artifact,
                last_status=state.status,
                report_id=request.report_id,
            )

        if isinstance(state, TimedOut):
            return ExportResult(
                outcome=ExportOutcome.TIMED_OUT,
                attempts=state.attempt,
                reason="Export polling timed out",
                report_id=request.report_id,
            )

        if isinstance(state, Cancelled):
            return ExportResult(
                outcome=ExportOutcome.CANCELLED,
                attempts=state.attempt,
                reason="Export cancelled",
                last_status=state.last_status,
                report_id=request.report_id,
            )

        if isinstance(state, Aborted):
            logger.warning(
                "EXPORT_ABORTED: Export failed",
                extra={
                    "report_id": request.report_id,
                    "group_id": request.group_id,
                    "attempts": state.attempt,
                    "max_attempts": self.max_attempts,
                    "reason": state.reason,
                },
            )
            return ExportResult(
                outcome=ExportOutcome.ABORTED,
                attempts=state.attempt,
                reason=state.reason,
                last_status=state.last_status,
                report_id=request.report_id,
            )

        raise TypeError(f"Not a terminal state: {state!r}")
