"""
Unit tests for the Power BI export client.

Tests cover:
- Client initialization and validation
- Export request serialization
- Export job creation, status polling and file download
- Retry-After header parsing
- Error handling for various HTTP status codes
- Timeout and connection error handling
"""

import json
from datetime import datetime, timedelta, timezone
from email.utils import format_datetime

import httpx
import pytest

from report_export.integrations.powerbi.client import (
    PowerBIClient,
    get_powerbi_client,
    parse_retry_after,
    resource_from_endpoint,
    DEFAULT_BASE_URL,
)
from report_export.integrations.powerbi.exceptions import (
    PowerBIError,
    PowerBIAuthenticationError,
    PowerBIRateLimitError,
    PowerBIConnectionError,
    PowerBINotFoundError,
)
from report_export.integrations.powerbi.models import (
    ExportRequest,
    ExportState,
    ExportStatus,
    FileFormat,
    parse_timestamp,
)

BASE_URL = "https://api.powerbi.test/v1.0/myorg"
GROUP_ID = "group-1"
REPORT_ID = "report-1"


# Test fixtures
@pytest.fixture
def mock_env(monkeypatch):
    """Set up mock environment variables."""
    monkeypatch.setenv("POWERBI_ACCESS_TOKEN", "test-token-12345")
    monkeypatch.setenv("POWERBI_BASE_URL", BASE_URL)


def make_client(handler) -> PowerBIClient:
    return PowerBIClient(
        base_url=BASE_URL,
        access_token="test-token",
        transport=httpx.MockTransport(handler),
    )


@pytest.fixture
def export_request():
    return ExportRequest(report_id=REPORT_ID, group_id=GROUP_ID, format=FileFormat.PDF)


class TestPowerBIClientInitialization:
    """Tests for client initialization."""

    def test_init_with_env_vars(self, mock_env):
        client = PowerBIClient()
        assert client.access_token == "test-token-12345"
        assert client.base_url == BASE_URL

    def test_init_with_explicit_params(self, mock_env):
        client = PowerBIClient(base_url="https://custom.api.com/v1.0/myorg", access_token="custom")
        assert client.access_token == "custom"
        assert client.base_url == "https://custom.api.com/v1.0/myorg"

    def test_init_defaults_to_public_cloud(self, monkeypatch):
        monkeypatch.setenv("POWERBI_ACCESS_TOKEN", "token")
        monkeypatch.delenv("POWERBI_BASE_URL", raising=False)
        assert PowerBIClient().base_url == DEFAULT_BASE_URL

    def test_init_strips_trailing_slash(self, mock_env):
        client = PowerBIClient(base_url=BASE_URL + "/")
        assert client.base_url == BASE_URL

    def test_init_missing_token_raises(self, monkeypatch):
        monkeypatch.delenv("POWERBI_ACCESS_TOKEN", raising=False)
        with pytest.raises(ValueError, match="access token is required"):
            PowerBIClient()

    def test_factory_function(self, mock_env):
        client = get_powerbi_client()
        assert client.access_token == "test-token-12345"


class TestExportRequestSerialization:
    """Tests for the export request wire body."""

    def test_minimal_request(self, export_request):
        assert export_request.to_dict() == {
            "format": "PDF",
            "powerBIReportConfiguration": {"settings": {"locale": "en-us"}},
        }

    def test_pages_and_filter(self):
        request = ExportRequest(
            report_id=REPORT_ID,
            group_id=GROUP_ID,
            format=FileFormat.PPTX,
            page_names=["ReportSection1", "ReportSection2"],
            report_filter="Store/Territory eq 'NC'",
        )
        config = request.to_dict()["powerBIReportConfiguration"]

        assert request.page_names == ("ReportSection1", "ReportSection2")
        assert config["pages"] == [
            {"pageName": "ReportSection1"},
            {"pageName": "ReportSection2"},
        ]
        assert config["reportLevelFilters"] == [{"filter": "Store/Territory eq 'NC'"}]

    def test_missing_ids_rejected(self):
        with pytest.raises(ValueError, match="report_id"):
            ExportRequest(report_id="", group_id=GROUP_ID)
        with pytest.raises(ValueError, match="group_id"):
            ExportRequest(report_id=REPORT_ID, group_id="")


class TestParseRetryAfter:
    """Tests for Retry-After header parsing."""

    def test_missing_header(self):
        assert parse_retry_after(None) is None
        assert parse_retry_after("  ") is None

    def test_delta_seconds(self):
        assert parse_retry_after("30") == 30.0

    def test_http_date(self):
        now = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
        header = format_datetime(now + timedelta(seconds=90), usegmt=True)
        assert parse_retry_after(header, now=now) == 90.0

    def test_past_date_is_zero(self):
        now = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
        header = format_datetime(now - timedelta(seconds=90), usegmt=True)
        assert parse_retry_after(header, now=now) == 0.0

    def test_garbage_ignored(self):
        assert parse_retry_after("soon") is None


class TestExportToFile:
    """Tests for export job creation."""

    @pytest.mark.asyncio
    async def test_creates_export_job(self, export_request):
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["method"] = request.method
            captured["url"] = str(request.url)
            captured["body"] = json.loads(request.content)
            captured["auth"] = request.headers["Authorization"]
            return httpx.Response(202, json={"id": "export-123", "status": "NotStarted"})

        async with make_client(handler) as client:
            export_id = await client.export_to_file(export_request)

        assert export_id == "export-123"
        assert captured["method"] == "POST"
        assert captured["url"] == f"{BASE_URL}/groups/{GROUP_ID}/reports/{REPORT_ID}/ExportTo"
        assert captured["body"]["format"] == "PDF"
        assert captured["auth"] == "Bearer test-token"

    @pytest.mark.asyncio
    async def test_missing_id_raises(self, export_request):
        client = make_client(lambda request: httpx.Response(202, json={}))
        with pytest.raises(PowerBIError, match="without an id"):
            await client.export_to_file(export_request)

    @pytest.mark.asyncio
    async def test_auth_failure(self, export_request):
        client = make_client(lambda request: httpx.Response(401))
        with pytest.raises(PowerBIAuthenticationError) as exc_info:
            await client.export_to_file(export_request)
        assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    async def test_forbidden(self, export_request):
        client = make_client(lambda request: httpx.Response(403))
        with pytest.raises(PowerBIAuthenticationError) as exc_info:
            await client.export_to_file(export_request)
        assert exc_info.value.status_code == 403

    @pytest.mark.asyncio
    async def test_rate_limited(self, export_request):
        client = make_client(
            lambda request: httpx.Response(429, headers={"Retry-After": "45"})
        )
        with pytest.raises(PowerBIRateLimitError) as exc_info:
            await client.export_to_file(export_request)
        assert exc_info.value.retry_after == 45.0

    @pytest.mark.asyncio
    async def test_server_error_keeps_error_code(self, export_request):
        client = make_client(
            lambda request: httpx.Response(
                500, json={"error": {"code": "ExportFailed", "message": "boom"}}
            )
        )
        with pytest.raises(PowerBIError) as exc_info:
            await client.export_to_file(export_request)
        assert exc_info.value.status_code == 500
        assert exc_info.value.code == "ExportFailed"

    @pytest.mark.asyncio
    async def test_connection_error(self, export_request):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = make_client(handler)
        with pytest.raises(PowerBIConnectionError, match="Connection error"):
            await client.export_to_file(export_request)

    @pytest.mark.asyncio
    async def test_timeout(self, export_request):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        client = make_client(handler)
        with pytest.raises(PowerBIConnectionError, match="Request timeout"):
            await client.export_to_file(export_request)


class TestGetExportStatus:
    """Tests for export status polling."""

    @pytest.mark.asyncio
    async def test_running_with_retry_after(self):
        def handler(request):
            assert str(request.url).endswith(f"/groups/{GROUP_ID}/reports/{REPORT_ID}/exports/export-1")
            return httpx.Response(
                200,
                json={"id": "export-1", "status": "Running", "percentComplete": 40},
                headers={"Retry-After": "2"},
            )

        status = await make_client(handler).get_export_status(GROUP_ID, REPORT_ID, "export-1")

        assert status.state == ExportState.RUNNING
        assert status.percent_complete == 40
        assert status.retry_after_seconds == 2.0
        assert status.is_terminal is False

    @pytest.mark.asyncio
    async def test_succeeded_without_retry_after(self):
        def handler(request):
            return httpx.Response(
                200,
                json={
                    "id": "export-1",
                    "status": "Succeeded",
                    "percentComplete": 100,
                    "reportName": "Sales",
                    "resourceFileExtension": ".pdf",
                    "lastActionDateTime": "2024-01-01T12:00:00Z",
                },
            )

        status = await make_client(handler).get_export_status(GROUP_ID, REPORT_ID, "export-1")

        assert status.state == ExportState.SUCCEEDED
        assert status.retry_after_seconds is None
        assert status.resource_file_extension == ".pdf"
        assert status.report_name == "Sales"
        assert status.last_action_at == datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)
        assert status.is_successful is True

    @pytest.mark.asyncio
    async def test_failed_carries_error_message(self):
        def handler(request):
            return httpx.Response(
                200,
                json={"id": "export-1", "status": "Failed", "error": {"code": "X", "message": "Too busy"}},
            )

        status = await make_client(handler).get_export_status(GROUP_ID, REPORT_ID, "export-1")

        assert status.state == ExportState.FAILED
        assert status.error == "Too busy"

    @pytest.mark.asyncio
    async def test_not_found(self):
        client = make_client(
            lambda request: httpx.Response(404, headers={"RequestId": "req-42"})
        )
        with pytest.raises(PowerBINotFoundError) as exc_info:
            await client.get_export_status(GROUP_ID, REPORT_ID, "missing")

        assert exc_info.value.resource_type == "export"
        assert exc_info.value.resource_id == "missing"
        assert exc_info.value.request_id == "req-42"
        assert str(exc_info.value) == "Export not found: missing"

    @pytest.mark.asyncio
    async def test_seven_digit_fraction_timestamp(self):
        def handler(request):
            return httpx.Response(
                200,
                json={
                    "id": "export-1",
                    "status": "Running",
                    "lastActionDateTime": "2020-06-09T05:24:44.8306735Z",
                },
            )

        status = await make_client(handler).get_export_status(GROUP_ID, REPORT_ID, "export-1")

        assert status.last_action_at == datetime(
            2020, 6, 9, 5, 24, 44, 830673, tzinfo=timezone.utc
        )

    @pytest.mark.asyncio
    async def test_undefined_state_is_not_terminal(self):
        client = make_client(
            lambda request: httpx.Response(200, json={"id": "export-1", "status": "Undefined"})
        )

        status = await client.get_export_status(GROUP_ID, REPORT_ID, "export-1")

        assert status.state == ExportState.UNDEFINED
        assert status.is_terminal is False


class TestExportStatusParsing:
    """Tests for tolerant parsing of status payloads."""

    def test_unknown_state_maps_to_undefined(self):
        status = ExportStatus.from_dict({"id": "e", "status": "Queued"})
        assert status.state == ExportState.UNDEFINED

    def test_missing_state_is_not_started(self):
        assert ExportStatus.from_dict({"id": "e"}).state == ExportState.NOT_STARTED

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("2024-01-01T12:00:00Z", datetime(2024, 1, 1, 12, tzinfo=timezone.utc)),
            (
                "2020-06-09T05:24:44.8306735Z",
                datetime(2020, 6, 9, 5, 24, 44, 830673, tzinfo=timezone.utc),
            ),
            ("yesterday", None),
            (None, None),
        ],
    )
    def test_parse_timestamp(self, value, expected):
        assert parse_timestamp(value) == expected

    def test_unparseable_timestamp_ignored(self):
        status = ExportStatus.from_dict(
            {"id": "e", "status": "Running", "lastActionDateTime": "not-a-date"}
        )
        assert status.last_action_at is None


class TestResourceFromEndpoint:

    @pytest.mark.parametrize(
        "endpoint,expected",
        [
            ("/groups/g1/reports/r1/ExportTo", ("report", "r1")),
            ("/groups/g1/reports/r1/exports/e1", ("export", "e1")),
            ("/groups/g1/reports/r1/exports/e1/file", ("export", "e1")),
            ("/groups/g1", ("group", "g1")),
            ("/health", (None, None)),
        ],
    )
    def test_innermost_resource(self, endpoint, expected):
        assert resource_from_endpoint(endpoint) == expected

    @pytest.mark.asyncio
    async def test_missing_report_on_submit(self, export_request):
        client = make_client(lambda request: httpx.Response(404))
        with pytest.raises(PowerBINotFoundError) as exc_info:
            await client.export_to_file(export_request)

        assert exc_info.value.resource_type == "report"
        assert exc_info.value.resource_id == REPORT_ID


class TestGetExportFile:
    """Tests for exported file download."""

    @pytest.mark.asyncio
    async def test_streams_file(self):
        def handler(request):
            assert str(request.url).endswith("/exports/export-1/file")
            return httpx.Response(200, content=b"%PDF-1.7 data")

        async with make_client(handler) as client:
            response = await client.get_export_file(GROUP_ID, REPORT_ID, "export-1")
            body = b"".join([chunk async for chunk in response.aiter_bytes()])
            await response.aclose()

        assert body == b"%PDF-1.7 data"

    @pytest.mark.asyncio
    async def test_missing_file(self):
        client = make_client(lambda request: httpx.Response(404))
        with pytest.raises(PowerBINotFoundError):
            await client.get_export_file(GROUP_ID, REPORT_ID, "export-1")
