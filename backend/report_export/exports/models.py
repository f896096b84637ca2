"""
Data models for the export job lifecycle.
"""

from dataclasses import dataclass
from enum import Enum
from typing import AsyncIterator, Optional

import httpx

from report_export.exports.errors import (
    ArtifactConsumedError,
    ExportAbortedError,
    ExportCancelledError,
    ExportTimeoutError,
)
from report_export.integrations.powerbi.models import ExportStatus


CONTENT_TYPES = {
    ".pdf": "application/pdf",
    ".pptx": "application/vnd.openxmlformats-officedocument.presentationml.presentation",
    ".png": "image/png",
    ".zip": "application/zip",
    ".xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    ".docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    ".csv": "text/csv",
    ".xml": "application/xml",
    ".mhtml": "multipart/related",
}
DEFAULT_CONTENT_TYPE = "application/octet-stream"


@dataclass(frozen=True)
class JobHandle:
    """Correlation key for one submission attempt of an export."""

    export_id: str
    report_id: str
    group_id: str
    attempt: int = 1


class Artifact:
    """
    The file produced by a succeeded export.

    The byte stream belongs to whoever holds the artifact and can be
    consumed exactly once. Iterating it to the end (or calling aclose)
    releases the underlying HTTP response.
    """

    def __init__(
        self,
        response: httpx.Response,
        file_suffix: str,
        report_name: Optional[str] = None,
        export_id: Optional[str] = None,
    ):
        self._response = response
        self.file_suffix = file_suffix
        self.report_name = report_name
        self.export_id = export_id
        self._consumed = False

    @property
    def consumed(self) -> bool:
        return self._consumed

    @property
    def content_type(self) -> str:
        return CONTENT_TYPES.get(self.file_suffix.lower(), DEFAULT_CONTENT_TYPE)

    @property
    def file_name(self) -> str:
        return f"{self.report_name or 'export'}{self.file_suffix}"

    async def iter_bytes(self) -> AsyncIterator[bytes]:
        if self._consumed:
            raise ArtifactConsumedError(
                "Artifact stream has already been consumed",
                export_id=self.export_id,
            )
        self._consumed = True
        try:
            async for chunk in self._response.aiter_bytes():
                yield chunk
        finally:
            await self._response.aclose()

    async def read(self) -> bytes:
        """Consume the whole stream into memory."""
        chunks = []
        async for chunk in self.iter_bytes():
            chunks.append(chunk)
        return b"".join(chunks)

    async def aclose(self) -> None:
        self._consumed = True
        await self._response.aclose()

    async def __aenter__(self) -> "Artifact":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    def __repr__(self) -> str:
        return f"Artifact(file_suffix={self.file_suffix!r}, export_id={self.export_id!r})"


class PollOutcome(str, Enum):
    """How a poll loop ended."""

    COMPLETED = "completed"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"
    QUERY_FAILED = "query_failed"


@dataclass(frozen=True)
class PollResult:
    """
    Result of polling one export job.

    status is set only when outcome is COMPLETED, and is then terminal
    (Succeeded or Failed). error describes why the status could not be
    read when outcome is QUERY_FAILED.
    """

    outcome: PollOutcome
    status: Optional[ExportStatus] = None
    polls: int = 0
    elapsed_seconds: float = 0.0
    error: Optional[str] = None

    @classmethod
    def completed(cls, status: ExportStatus, polls: int = 0, elapsed_seconds: float = 0.0) -> "PollResult":
        return cls(PollOutcome.COMPLETED, status, polls, elapsed_seconds)

    @classmethod
    def timed_out(cls, polls: int = 0, elapsed_seconds: float = 0.0) -> "PollResult":
        return cls(PollOutcome.TIMED_OUT, None, polls, elapsed_seconds)

    @classmethod
    def cancelled(cls, polls: int = 0, elapsed_seconds: float = 0.0) -> "PollResult":
        return cls(PollOutcome.CANCELLED, None, polls, elapsed_seconds)

    @classmethod
    def query_failed(cls, error: str, polls: int = 0, elapsed_seconds: float = 0.0) -> "PollResult":
        return cls(PollOutcome.QUERY_FAILED, None, polls, elapsed_seconds, error)


class ExportOutcome(str, Enum):
    """Final outcome of an orchestrated export."""

    SUCCEEDED = "succeeded"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"
    ABORTED = "aborted"


@dataclass
class ExportResult:
    """Result of an export with retry information."""

    outcome: ExportOutcome
    attempts: int
    artifact: Optional[Artifact] = None
    reason: Optional[str] = None
    last_status: Optional[ExportStatus] = None
    report_id: Optional[str] = None

    @property
    def is_successful(self) -> bool:
        return self.outcome == ExportOutcome.SUCCEEDED

    def unwrap(self) -> Artifact:
        """
        Return the artifact, or raise the exception matching the outcome.

        Raises:
            ExportTimeoutError: Polling exceeded its time budget
            ExportCancelledError: The caller cancelled the export
            ExportAbortedError: The export failed permanently or retries ran out
        """
        export_id = self.last_status.export_id if self.last_status else None

        if self.outcome == ExportOutcome.SUCCEEDED and self.artifact is not None:
            return self.artifact
        if self.outcome == ExportOutcome.TIMED_OUT:
            raise ExportTimeoutError(
                self.reason or "Export polling timed out",
                export_id=export_id,
                report_id=self.report_id,
            )
        if self.outcome == ExportOutcome.CANCELLED:
            raise ExportCancelledError(
                self.reason or "Export cancelled",
                export_id=export_id,
                report_id=self.report_id,
            )
        raise ExportAbortedError(
            self.reason or "Export aborted",
            attempts=self.attempts,
            export_id=export_id,
            report_id=self.report_id,
        )
