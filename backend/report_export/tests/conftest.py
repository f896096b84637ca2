"""
Root test configuration and fixtures.

Provides:
- fake_clock: deterministic monotonic time and waits (no real sleeping)
- make_status: factory for ExportStatus snapshots
- mock_client: PowerBIClient double with async methods
- make_artifact: Artifact over an in-memory response
"""

import asyncio
import os
from typing import List, Optional
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from report_export.config.export_settings import reset_export_settings_loader
from report_export.exports.models import Artifact
from report_export.integrations.powerbi.client import PowerBIClient
from report_export.integrations.powerbi.models import ExportState, ExportStatus

# Set test environment
os.environ.setdefault("ENV", "test")


class FakeClock:
    """
    Clock double for the poll and retry loops.

    wait() records each requested delay and advances time by it, unless
    the cancel event is already set, in which case it returns True
    without advancing.
    """

    def __init__(self, start: float = 0.0):
        self.now = start
        self.waits: List[float] = []

    def monotonic(self) -> float:
        return self.now

    async def wait(self, delay: float, cancel: Optional[asyncio.Event] = None) -> bool:
        self.waits.append(delay)
        if cancel is not None and cancel.is_set():
            return True
        self.now += delay
        return False


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def make_status():
    def _make(
        state: ExportState,
        retry_after: Optional[float] = None,
        export_id: str = "export-1",
        percent_complete: int = 0,
        extension: Optional[str] = None,
        report_name: Optional[str] = "Sales",
        error: Optional[str] = None,
    ) -> ExportStatus:
        return ExportStatus(
            export_id=export_id,
            state=state,
            percent_complete=percent_complete,
            retry_after_seconds=retry_after,
            resource_file_extension=extension,
            report_name=report_name,
            error=error,
        )

    return _make


@pytest.fixture
def mock_client():
    client = MagicMock(spec=PowerBIClient)
    client.export_to_file = AsyncMock()
    client.get_export_status = AsyncMock()
    client.get_export_file = AsyncMock()
    return client


@pytest.fixture
def make_artifact():
    def _make(content: bytes = b"%PDF-1.7", suffix: str = ".pdf", report_name: str = "Sales") -> Artifact:
        return Artifact(
            httpx.Response(200, content=content),
            file_suffix=suffix,
            report_name=report_name,
            export_id="export-1",
        )

    return _make


@pytest.fixture(autouse=True)
def _reset_export_settings():
    reset_export_settings_loader()
    yield
    reset_export_settings_loader()
