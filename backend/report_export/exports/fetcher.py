"""
Retrieval of the file produced by a succeeded export.
"""

import logging

from report_export.exports.errors import FetchError, InvalidStateError
from report_export.exports.models import Artifact, JobHandle
from report_export.integrations.powerbi.client import PowerBIClient
from report_export.integrations.powerbi.exceptions import PowerBIError
from report_export.integrations.powerbi.models import ExportState, ExportStatus

logger = logging.getLogger(__name__)


class ArtifactFetcher:
    """Opens the result stream of a succeeded export job."""

    def __init__(self, client: PowerBIClient):
        self._client = client

    async def fetch(self, handle: JobHandle, status: ExportStatus) -> Artifact:
        """
        Open the exported file for a succeeded job.

        Raises:
            InvalidStateError: If status is not Succeeded
            FetchError: If the file cannot be retrieved
        """
        if status.state != ExportState.SUCCEEDED:
            raise InvalidStateError(
                f"Cannot fetch export in state {status.state.value}",
                state=status.state.value,
                export_id=handle.export_id,
                report_id=handle.report_id,
            )

        try:
            response = await self._client.get_export_file(
                handle.group_id, handle.report_id, handle.export_id
            )
        except PowerBIError as e:
            logger.error(
                "Export file retrieval failed",
                extra={
                    "export_id": handle.export_id,
                    "report_id": handle.report_id,
                    "status_code": e.status_code,
                    "error": e.message,
                },
            )
            raise FetchError(
                f"Failed to retrieve exported file: {e.message}",
                export_id=handle.export_id,
                report_id=handle.report_id,
            ) from e

        return Artifact(
            response,
            file_suffix=status.resource_file_extension or "",
            report_name=status.report_name,
            export_id=handle.export_id,
        )
