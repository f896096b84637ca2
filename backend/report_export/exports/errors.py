"""
Exceptions raised by the export job lifecycle.

Timeouts, cancellations and aborts are normally reported as outcomes on
ExportResult. The matching exceptions here are only raised by
ExportResult.unwrap() for callers that prefer exceptions.
"""

from typing import Optional


class ExportError(Exception):
    """Base exception for export lifecycle errors."""

    def __init__(
        self,
        message: str,
        export_id: Optional[str] = None,
        report_id: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.export_id = export_id
        self.report_id = report_id

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(message={self.message!r}, export_id={self.export_id!r})"


class SubmissionError(ExportError):
    """Creating the export job failed (transport, auth or API error)."""
    pass


class FetchError(ExportError):
    """A succeeded export could not be retrieved."""
    pass


class InvalidStateError(FetchError):
    """Fetch was attempted on an export that has not succeeded."""

    def __init__(self, message: str, state: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.state = state


class ArtifactConsumedError(ExportError):
    """The artifact stream was already consumed or closed."""
    pass


class InvalidTransitionError(ExportError):
    """The export state machine received an event it cannot handle."""
    pass


class ExportTimeoutError(ExportError):
    """Polling exceeded the caller's time budget."""
    pass


class ExportCancelledError(ExportError):
    """The caller cancelled the export."""
    pass


class ExportAbortedError(ExportError):
    """The export failed permanently or ran out of retry attempts."""

    def __init__(self, message: str, attempts: int = 0, **kwargs):
        super().__init__(message, **kwargs)
        self.attempts = attempts
