"""
Report export API routes.

Runs a report export and streams the resulting file back to the client.
Page names and filters are passed straight through to the export request.
If the client disconnects while the export is still running, the export
is cancelled.
"""

import asyncio
import logging
import unicodedata
from typing import List, Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask

from report_export.exports.errors import FetchError, SubmissionError
from report_export.exports.models import ExportOutcome
from report_export.integrations.powerbi.models import FileFormat
from report_export.services.report_export_service import ReportExportService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/reports", tags=["report-exports"])

# nginx convention for "client closed request"
HTTP_499_CLIENT_CLOSED_REQUEST = 499

DISCONNECT_CHECK_INTERVAL_SECONDS = 1.0

_OUTCOME_STATUS_CODES = {
    ExportOutcome.TIMED_OUT: status.HTTP_504_GATEWAY_TIMEOUT,
    ExportOutcome.CANCELLED: HTTP_499_CLIENT_CLOSED_REQUEST,
    ExportOutcome.ABORTED: status.HTTP_502_BAD_GATEWAY,
}


def content_disposition(file_name: str) -> str:
    """
    Build an attachment Content-Disposition header for a download name.

    Report names may contain any Unicode character, but header values must
    be latin-1. The plain ``filename`` parameter carries an ASCII
    approximation for old clients; ``filename*`` carries the exact name,
    percent-encoded as UTF-8 (RFC 6266 / RFC 5987).
    """
    ascii_name = (
        unicodedata.normalize("NFKD", file_name).encode("ascii", "ignore").decode("ascii")
    )
    fallback = "".join(
        "_" if ch in '"\\' or not ch.isprintable() else ch for ch in ascii_name
    )
    return (
        f'attachment; filename="{fallback or "export"}"; '
        f"filename*=UTF-8''{quote(file_name, safe='')}"
    )


async def watch_disconnect(
    request: Request,
    cancel: asyncio.Event,
    interval_seconds: float = DISCONNECT_CHECK_INTERVAL_SECONDS,
) -> None:
    """Set cancel once the client has gone away."""
    while not cancel.is_set():
        if await request.is_disconnected():
            logger.info("Client disconnected, cancelling report export")
            cancel.set()
            return
        await asyncio.sleep(interval_seconds)


def get_report_export_service(request: Request) -> ReportExportService:
    """Build the export service around the app's shared Power BI client."""
    client = getattr(request.app.state, "powerbi_client", None)
    if client is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Power BI export not configured",
        )
    return ReportExportService(client)


@router.get("/{report_id}/export")
async def export_report(
    request: Request,
    report_id: str,
    group_id: Optional[str] = Query(None, description="Workspace ID (defaults to configured workspace)"),
    format: Optional[FileFormat] = Query(None, description="Target file format"),
    page: Optional[List[str]] = Query(None, description="Page names to include, in order"),
    filter: Optional[str] = Query(None, description="Report-level URL filter"),
    timeout_seconds: Optional[float] = Query(None, ge=1, le=3600),
    service: ReportExportService = Depends(get_report_export_service),
):
    """
    Export a report and stream the file.

    Waits for the export to finish, retrying busy failures, then streams
    the file with a download filename of <report name><suffix>.
    """
    try:
        export_request = service.build_request(
            report_id=report_id,
            group_id=group_id,
            format=format,
            page_names=page,
            report_filter=filter,
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    cancel = asyncio.Event()
    watcher = asyncio.create_task(watch_disconnect(request, cancel))
    try:
        result = await service.export_report(
            export_request, timeout_seconds=timeout_seconds, cancel=cancel
        )
    except SubmissionError as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=e.message)
    except FetchError as e:
        logger.error(
            "Exported file could not be retrieved",
            extra={"report_id": report_id, "export_id": e.export_id, "error": e.message},
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Exported file could not be retrieved",
        )
    finally:
        watcher.cancel()

    if not result.is_successful:
        logger.warning(
            "Report export did not succeed",
            extra={
                "report_id": report_id,
                "outcome": result.outcome.value,
                "attempts": result.attempts,
                "reason": result.reason,
            },
        )
        raise HTTPException(
            status_code=_OUTCOME_STATUS_CODES[result.outcome],
            detail=result.reason or result.outcome.value,
        )

    artifact = result.artifact
    return StreamingResponse(
        artifact.iter_bytes(),
        media_type=artifact.content_type,
        headers={"Content-Disposition": content_disposition(artifact.file_name)},
        background=BackgroundTask(artifact.aclose),
    )
