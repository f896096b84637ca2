"""
Report export service.

Wires the Power BI client and configured export settings into an
ExportOrchestrator, and fills in request defaults (workspace, report,
format, locale) for callers that only know part of the request.

Page names are supplied by the caller. They are the internal page names
returned by the report pages API, not the display names.
"""

import asyncio
import logging
from typing import Optional, Sequence

from report_export.config.export_settings import ExportSettings, get_export_settings
from report_export.exports.fetcher import ArtifactFetcher
from report_export.exports.models import Artifact, ExportResult
from report_export.exports.orchestrator import ExportOrchestrator
from report_export.exports.poller import JobPoller, ProgressCallback
from report_export.exports.submitter import JobSubmitter
from report_export.exports.timing import AsyncioClock, default_clock
from report_export.integrations.powerbi.client import PowerBIClient
from report_export.integrations.powerbi.models import ExportRequest, FileFormat

logger = logging.getLogger(__name__)


class ReportExportService:
    """Entry point for exporting reports to files."""

    def __init__(
        self,
        client: PowerBIClient,
        settings: Optional[ExportSettings] = None,
        clock: AsyncioClock = default_clock,
        on_progress: Optional[ProgressCallback] = None,
    ):
        self._client = client
        self.settings = settings or get_export_settings()
        self._orchestrator = ExportOrchestrator(
            submitter=JobSubmitter(client),
            poller=JobPoller(
                client,
                default_interval_seconds=self.settings.default_poll_interval_seconds,
                clock=clock,
                on_progress=on_progress,
            ),
            fetcher=ArtifactFetcher(client),
            max_attempts=self.settings.max_attempts,
            clock=clock,
        )

    def build_request(
        self,
        report_id: Optional[str] = None,
        group_id: Optional[str] = None,
        format: Optional[FileFormat] = None,
        page_names: Optional[Sequence[str]] = None,
        report_filter: Optional[str] = None,
    ) -> ExportRequest:
        """
        Build an ExportRequest, falling back to configured defaults.

        Raises:
            ValueError: If no report or workspace is given or configured
        """
        report_id = report_id or self.settings.report_id
        group_id = group_id or self.settings.workspace_id

        if not report_id:
            raise ValueError("report_id is required (pass it or set POWERBI_REPORT_ID)")
        if not group_id:
            raise ValueError("group_id is required (pass it or set POWERBI_WORKSPACE_ID)")

        return ExportRequest(
            report_id=report_id,
            group_id=group_id,
            format=format or self.settings.default_format,
            page_names=tuple(page_names) if page_names else None,
            report_filter=report_filter or None,
            locale=self.settings.locale,
        )

    async def export_report(
        self,
        request: ExportRequest,
        timeout_seconds: Optional[float] = None,
        cancel: Optional[asyncio.Event] = None,
    ) -> ExportResult:
        """
        Run an export and return its outcome.

        Raises:
            SubmissionError: If an export job cannot be created
            FetchError: If a succeeded export cannot be retrieved
        """
        timeout = timeout_seconds or self.settings.poll_timeout_seconds

        logger.info(
            "Report export requested",
            extra={
                "report_id": request.report_id,
                "group_id": request.group_id,
                "format": request.format.value,
                "page_count": len(request.page_names or ()),
                "timeout_seconds": timeout,
            },
        )

        return await self._orchestrator.export(request, timeout_seconds=timeout, cancel=cancel)

    async def export_report_file(
        self,
        request: ExportRequest,
        timeout_seconds: Optional[float] = None,
        cancel: Optional[asyncio.Event] = None,
    ) -> Artifact:
        """
        Run an export and return the file, raising on any other outcome.

        Raises:
            ExportTimeoutError, ExportCancelledError, ExportAbortedError:
                When the export does not succeed
            SubmissionError: If an export job cannot be created
            FetchError: If a succeeded export cannot be retrieved
        """
        result = await self.export_report(request, timeout_seconds, cancel)
        return result.unwrap()
