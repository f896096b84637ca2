"""
Power BI REST API client for report export-to-file jobs.

This client handles:
- Creating export jobs for a report in a workspace
- Polling export status (including the Retry-After hint header)
- Streaming the exported file once the job has succeeded

Documentation: https://learn.microsoft.com/rest/api/power-bi/reports/export-to-file-in-group

SECURITY: The access token is acquired by the caller. It must never be logged.
"""

import logging
import os
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Optional, Dict, Any, Tuple

import httpx

from report_export.integrations.powerbi.exceptions import (
    PowerBIError,
    PowerBIAuthenticationError,
    PowerBIRateLimitError,
    PowerBIConnectionError,
    PowerBINotFoundError,
)
from report_export.integrations.powerbi.models import (
    ExportRequest,
    ExportStatus,
)

logger = logging.getLogger(__name__)

# Default configuration
DEFAULT_BASE_URL = "https://api.powerbi.com/v1.0/myorg"
DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_CONNECT_TIMEOUT_SECONDS = 10.0
# File downloads can be large; only the connect phase is bounded
DEFAULT_DOWNLOAD_TIMEOUT_SECONDS = None


def parse_retry_after(
    value: Optional[str],
    now: Optional[datetime] = None,
) -> Optional[float]:
    """
    Parse a Retry-After header value into seconds.

    Accepts either delta-seconds or an HTTP date. Returns None when the
    header is missing or unparseable; a date in the past yields 0.
    """
    if value is None:
        return None

    value = value.strip()
    if not value:
        return None

    try:
        return max(float(value), 0.0)
    except ValueError:
        pass

    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        logger.debug("Ignoring unparseable Retry-After header", extra={"value": value})
        return None

    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)
    return max((when - now).total_seconds(), 0.0)


_RESOURCE_SEGMENTS = {"groups": "group", "reports": "report", "exports": "export"}


def resource_from_endpoint(endpoint: str) -> Tuple[Optional[str], Optional[str]]:
    """
    Return the innermost (resource_type, resource_id) named by an API path.

    ``/groups/g1/reports/r1/exports/e1/file`` yields ``("export", "e1")``.
    """
    parts = [part for part in endpoint.split("?")[0].split("/") if part]
    found: Tuple[Optional[str], Optional[str]] = (None, None)
    for segment, value in zip(parts, parts[1:]):
        if segment in _RESOURCE_SEGMENTS:
            found = (_RESOURCE_SEGMENTS[segment], value)
    return found


class PowerBIClient:
    """
    Async client for the Power BI export-to-file API.

    One instance may be shared by any number of concurrent exports; it
    holds no per-export state.

    SECURITY: Access token must be stored securely and never logged.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        access_token: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize Power BI client.

        Args:
            base_url: API base URL (default: from env or the public cloud URL)
            access_token: AAD bearer token (default: from env)
            timeout: Request timeout in seconds
            connect_timeout: Connection timeout in seconds
            transport: Optional httpx transport (used for testing)
        """
        self.base_url = (
            base_url or os.getenv("POWERBI_BASE_URL") or DEFAULT_BASE_URL
        ).rstrip("/")
        self.access_token = access_token or os.getenv("POWERBI_ACCESS_TOKEN")

        if not self.access_token:
            raise ValueError(
                "Power BI access token is required. Set POWERBI_ACCESS_TOKEN environment variable "
                "or pass access_token parameter."
            )

        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout, connect=connect_timeout),
            headers={
                "Content-Type": "application/json",
                "Accept": "application/json",
                "Authorization": f"Bearer {self.access_token}",
            },
            transport=transport,
        )
        self._connect_timeout = connect_timeout

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> "PowerBIClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def _export_path(self, group_id: str, report_id: str) -> str:
        return f"/groups/{group_id}/reports/{report_id}"

    async def _raise_for_status(self, response: httpx.Response, endpoint: str) -> None:
        """Map an error response onto the exception hierarchy."""
        request_id = response.headers.get("RequestId")

        if response.status_code == 401:
            logger.error(
                "Power BI API authentication failed",
                extra={"status_code": 401, "endpoint": endpoint, "request_id": request_id},
            )
            raise PowerBIAuthenticationError(request_id=request_id)

        if response.status_code == 403:
            logger.error(
                "Power BI API authorization failed",
                extra={"status_code": 403, "endpoint": endpoint, "request_id": request_id},
            )
            raise PowerBIAuthenticationError(
                message="Authorization failed - token may lack required permissions",
                status_code=403,
                request_id=request_id,
            )

        if response.status_code == 404:
            resource_type, resource_id = resource_from_endpoint(endpoint)
            logger.warning(
                "Power BI resource not found",
                extra={
                    "endpoint": endpoint,
                    "resource_type": resource_type,
                    "resource_id": resource_id,
                    "request_id": request_id,
                },
            )
            raise PowerBINotFoundError(
                resource_type=resource_type,
                resource_id=resource_id,
                request_id=request_id,
            )

        if response.status_code == 429:
            retry_after = response.headers.get("Retry-After")
            logger.warning(
                "Power BI API rate limited",
                extra={
                    "endpoint": endpoint,
                    "retry_after": retry_after,
                },
            )
            raise PowerBIRateLimitError(
                retry_after=parse_retry_after(retry_after),
                request_id=request_id,
            )

        if response.status_code >= 400:
            error_body = {}
            try:
                await response.aread()
                error_body = response.json()
            except (ValueError, httpx.HTTPError):
                error_body = {}

            logger.error(
                "Power BI API error",
                extra={
                    "status_code": response.status_code,
                    "endpoint": endpoint,
                    "request_id": request_id,
                    "response": str(error_body)[:500],
                },
            )
            error = error_body.get("error", {}) if isinstance(error_body, dict) else {}
            raise PowerBIError(
                message=f"Power BI API error: {response.status_code}",
                status_code=response.status_code,
                code=error.get("code") if isinstance(error, dict) else None,
                response=error_body if isinstance(error_body, dict) else {},
                request_id=request_id,
            )

    async def _send(
        self,
        method: str,
        endpoint: str,
        json: Optional[Dict[str, Any]] = None,
        stream: bool = False,
    ) -> httpx.Response:
        """
        Send an HTTP request to the Power BI API.

        Args:
            method: HTTP method (GET, POST, etc.)
            endpoint: API endpoint path
            json: Request body as JSON
            stream: Leave the response body unread for the caller to stream

        Returns:
            The successful httpx.Response

        Raises:
            PowerBIError: On API errors
        """
        url = f"{self.base_url}/{endpoint.lstrip('/')}"

        try:
            if stream:
                request = self._client.build_request(
                    method,
                    url,
                    json=json,
                    timeout=httpx.Timeout(
                        DEFAULT_DOWNLOAD_TIMEOUT_SECONDS, connect=self._connect_timeout
                    ),
                )
                response = await self._client.send(request, stream=True)
            else:
                response = await self._client.request(
                    method=method,
                    url=url,
                    json=json,
                )
        except httpx.TimeoutException as e:
            logger.error(
                "Power BI API timeout",
                extra={"endpoint": endpoint, "error": str(e)},
            )
            raise PowerBIConnectionError(f"Request timeout: {e}") from e
        except httpx.RequestError as e:
            logger.error(
                "Power BI API connection error",
                extra={"endpoint": endpoint, "error": str(e)},
            )
            raise PowerBIConnectionError(f"Connection error: {e}") from e

        if response.status_code >= 400:
            try:
                await self._raise_for_status(response, endpoint)
            finally:
                if stream:
                    await response.aclose()

        return response

    async def export_to_file(self, request: ExportRequest) -> str:
        """
        Start an export job for a report.

        Args:
            request: What to export and how

        Returns:
            Export ID used to poll for status and download the file

        Raises:
            PowerBIError: On API errors
        """
        endpoint = f"{self._export_path(request.group_id, request.report_id)}/ExportTo"
        response = await self._send("POST", endpoint, json=request.to_dict())
        data = response.json()

        export_id = data.get("id", "")
        if not export_id:
            raise PowerBIError(
                message="Export job created without an id",
                status_code=response.status_code,
                response=data,
            )

        logger.info(
            "Power BI export job created",
            extra={
                "report_id": request.report_id,
                "group_id": request.group_id,
                "export_id": export_id,
                "format": request.format.value,
            },
        )

        return export_id

    async def get_export_status(
        self,
        group_id: str,
        report_id: str,
        export_id: str,
    ) -> ExportStatus:
        """
        Get the current status of an export job.

        The Retry-After header, when present, is attached to the returned
        status as retry_after_seconds. It is not always populated.

        Raises:
            PowerBIError: On API errors
        """
        endpoint = f"{self._export_path(group_id, report_id)}/exports/{export_id}"
        response = await self._send("GET", endpoint)

        return ExportStatus.from_dict(
            response.json(),
            retry_after_seconds=parse_retry_after(response.headers.get("Retry-After")),
        )

    async def get_export_file(
        self,
        group_id: str,
        report_id: str,
        export_id: str,
    ) -> httpx.Response:
        """
        Open a stream on the file produced by a succeeded export job.

        The body is not read. The caller owns the returned response and
        must close it (aclose) once the stream has been consumed.

        Raises:
            PowerBIError: On API errors
        """
        endpoint = f"{self._export_path(group_id, report_id)}/exports/{export_id}/file"
        response = await self._send("GET", endpoint, stream=True)

        logger.debug(
            "Power BI export file stream opened",
            extra={"export_id": export_id, "report_id": report_id},
        )

        return response


def get_powerbi_client(
    base_url: Optional[str] = None,
    access_token: Optional[str] = None,
) -> PowerBIClient:
    """
    Factory function to create a PowerBIClient.

    Args:
        base_url: Override API base URL
        access_token: Override access token

    Returns:
        Configured PowerBIClient instance
    """
    return PowerBIClient(
        base_url=base_url,
        access_token=access_token,
    )
