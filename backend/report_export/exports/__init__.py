"""
Export job lifecycle: submit, poll, retry and fetch.
"""

from report_export.exports.errors import (
    ExportError,
    SubmissionError,
    FetchError,
    InvalidStateError,
    ArtifactConsumedError,
    InvalidTransitionError,
    ExportTimeoutError,
    ExportCancelledError,
    ExportAbortedError,
)
from report_export.exports.fetcher import ArtifactFetcher
from report_export.exports.models import (
    Artifact,
    ExportOutcome,
    ExportResult,
    JobHandle,
    PollOutcome,
    PollResult,
)
from report_export.exports.orchestrator import ExportOrchestrator
from report_export.exports.poller import JobPoller
from report_export.exports.submitter import JobSubmitter

__all__ = [
    # Components
    "JobSubmitter",
    "JobPoller",
    "ArtifactFetcher",
    "ExportOrchestrator",
    # Models
    "Artifact",
    "ExportOutcome",
    "ExportResult",
    "JobHandle",
    "PollOutcome",
    "PollResult",
    # Exceptions
    "ExportError",
    "SubmissionError",
    "FetchError",
    "InvalidStateError",
    "ArtifactConsumedError",
    "InvalidTransitionError",
    "ExportTimeoutError",
    "ExportCancelledError",
    "ExportAbortedError",
]
