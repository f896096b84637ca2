"""
Export job status polling.

The interval between polls is controlled by the service through the
Retry-After header. When the header is missing the poller falls back to
a fixed default interval. Throttled status queries are retried the same
way.
"""

import asyncio
import logging
from typing import Callable, Optional

from report_export.exports.models import JobHandle, PollResult
from report_export.exports.timing import AsyncioClock, default_clock
from report_export.integrations.powerbi.client import PowerBIClient
from report_export.integrations.powerbi.exceptions import PowerBIError, PowerBIRateLimitError
from report_export.integrations.powerbi.models import ExportStatus

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL_SECONDS = 5.0

ProgressCallback = Callable[[JobHandle, ExportStatus], None]


class JobPoller:
    """
    Polls one export job until it reaches a terminal state, times out,
    or is cancelled.
    """

    def __init__(
        self,
        client: PowerBIClient,
        default_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS,
        clock: AsyncioClock = default_clock,
        on_progress: Optional[ProgressCallback] = None,
    ):
        if default_interval_seconds <= 0:
            raise ValueError("default_interval_seconds must be positive")

        self._client = client
        self.default_interval_seconds = default_interval_seconds
        self._clock = clock
        self._on_progress = on_progress

    def next_delay(self, status: ExportStatus) -> float:
        """Seconds to wait before the next poll of a non-terminal status."""
        if status.retry_after_seconds is not None:
            return max(status.retry_after_seconds, 0.0)
        return self.default_interval_seconds

    async def poll(
        self,
        handle: JobHandle,
        timeout_seconds: float,
        cancel: Optional[asyncio.Event] = None,
    ) -> PollResult:
        """
        Poll until Succeeded or Failed.

        Timeout and cancellation are checked at the start of every
        iteration. Waits are capped at the time remaining and end early
        when cancel is set.

        A throttled status query (429) is retried after its Retry-After
        delay, or the default interval, within the same budget. Any other
        failed query ends the loop.

        Args:
            handle: The job to poll
            timeout_seconds: Wall-clock budget for the whole loop
            cancel: Optional cancellation signal

        Returns:
            PollResult: completed with a terminal status, timed out,
            cancelled, or query_failed
        """
        start = self._clock.monotonic()
        polls = 0

        while True:
            elapsed = self._clock.monotonic() - start

            if cancel is not None and cancel.is_set():
                logger.info(
                    "Export polling cancelled",
                    extra={"export_id": handle.export_id, "polls": polls},
                )
                return PollResult.cancelled(polls, elapsed)

            if elapsed >= timeout_seconds:
                logger.warning(
                    "Export polling timed out",
                    extra={
                        "export_id": handle.export_id,
                        "timeout_seconds": timeout_seconds,
                        "polls": polls,
                    },
                )
                return PollResult.timed_out(polls, elapsed)

            try:
                status = await self._client.get_export_status(
                    handle.group_id, handle.report_id, handle.export_id
                )
            except PowerBIRateLimitError as e:
                polls += 1
                delay = (
                    max(e.retry_after, 0.0)
                    if e.retry_after is not None
                    else self.default_interval_seconds
                )
                logger.warning(
                    "Export status query rate limited",
                    extra={
                        "export_id": handle.export_id,
                        "retry_after_seconds": e.retry_after,
                        "polls": polls,
                    },
                )
                remaining = timeout_seconds - (self._clock.monotonic() - start)
                await self._clock.wait(min(delay, max(remaining, 0.0)), cancel)
                continue
            except PowerBIError as e:
                polls += 1
                logger.error(
                    "Export status query failed",
                    extra={
                        "export_id": handle.export_id,
                        "status_code": e.status_code,
                        "request_id": e.request_id,
                        "error": e.message,
                    },
                )
                return PollResult.query_failed(
                    e.message, polls, self._clock.monotonic() - start
                )
            polls += 1

            logger.debug(
                "Export status",
                extra={
                    "export_id": handle.export_id,
                    "state": status.state.value,
                    "percent_complete": status.percent_complete,
                    "retry_after_seconds": status.retry_after_seconds,
                },
            )
            if self._on_progress is not None:
                self._on_progress(handle, status)

            if status.is_terminal:
                return PollResult.completed(
                    status, polls, self._clock.monotonic() - start
                )

            remaining = timeout_seconds - (self._clock.monotonic() - start)
            delay = min(self.next_delay(status), max(remaining, 0.0))
            await self._clock.wait(delay, cancel)
