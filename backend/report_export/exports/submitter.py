"""
Export job submission.
"""

import logging

from report_export.exports.errors import SubmissionError
from report_export.exports.models import JobHandle
from report_export.integrations.powerbi.client import PowerBIClient
from report_export.integrations.powerbi.exceptions import PowerBIError
from report_export.integrations.powerbi.models import ExportRequest

logger = logging.getLogger(__name__)


class JobSubmitter:
    """Creates server-side export jobs. Holds no state between calls."""

    def __init__(self, client: PowerBIClient):
        self._client = client

    async def submit(self, request: ExportRequest, attempt: int = 1) -> JobHandle:
        """
        Create an export job for the request.

        Args:
            request: The export to run
            attempt: Which attempt of the logical export this is

        Returns:
            JobHandle for polling and fetching this job

        Raises:
            SubmissionError: On any transport, auth or API failure
        """
        try:
            export_id = await self._client.export_to_file(request)
        except PowerBIError as e:
            logger.error(
                "Export submission failed",
                extra={
                    "report_id": request.report_id,
                    "group_id": request.group_id,
                    "attempt": attempt,
                    "status_code": e.status_code,
                    "error": e.message,
                },
            )
            raise SubmissionError(
                f"Failed to submit export: {e.message}",
                report_id=request.report_id,
            ) from e

        logger.info(
            "Export submitted",
            extra={
                "report_id": request.report_id,
                "export_id": export_id,
                "attempt": attempt,
            },
        )

        return JobHandle(
            export_id=export_id,
            report_id=request.report_id,
            group_id=request.group_id,
            attempt=attempt,
        )
