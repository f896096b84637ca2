"""
Data models for Power BI export-to-file API requests and responses.
"""

import re
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional, Tuple, Dict, Any


DEFAULT_LOCALE = "en-us"

# The service emits up to 7 fractional digits; fromisoformat accepts at most 6
_FRACTION_RE = re.compile(r"(\.\d{6})\d+")


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO 8601 timestamp from the API, returning None if unparseable."""
    if not value:
        return None
    value = _FRACTION_RE.sub(r"\1", value.replace("Z", "+00:00"))
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        return None


class FileFormat(str, Enum):
    """Renderable target formats for a report export."""

    PDF = "PDF"
    ACCESSIBLEPDF = "ACCESSIBLEPDF"
    PPTX = "PPTX"
    PNG = "PNG"
    IMAGE = "IMAGE"
    XLSX = "XLSX"
    DOCX = "DOCX"
    CSV = "CSV"
    XML = "XML"
    MHTML = "MHTML"


class ExportState(str, Enum):
    """State of a server-side export job."""

    NOT_STARTED = "NotStarted"
    RUNNING = "Running"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"
    UNDEFINED = "Undefined"

    @classmethod
    def _missing_(cls, value):
        # Unknown states are reported as Undefined and polled again
        return cls.UNDEFINED

    @property
    def is_terminal(self) -> bool:
        return self in (ExportState.SUCCEEDED, ExportState.FAILED)


@dataclass(frozen=True)
class ExportRequest:
    """
    A request to render a report to a file.

    Page names are the internal page identifiers, not the display names.
    The filter uses the URL filter syntax and is applied at report level.
    """

    report_id: str
    group_id: str
    format: FileFormat = FileFormat.PDF
    page_names: Optional[Tuple[str, ...]] = None
    report_filter: Optional[str] = None
    locale: str = DEFAULT_LOCALE

    def __post_init__(self):
        if not self.report_id:
            raise ValueError("report_id is required")
        if not self.group_id:
            raise ValueError("group_id is required")
        if self.page_names is not None and not isinstance(self.page_names, tuple):
            object.__setattr__(self, "page_names", tuple(self.page_names))

    def to_dict(self) -> Dict[str, Any]:
        configuration: Dict[str, Any] = {
            "settings": {"locale": self.locale},
        }
        if self.page_names:
            configuration["pages"] = [
                {"pageName": name} for name in self.page_names
            ]
        if self.report_filter:
            configuration["reportLevelFilters"] = [{"filter": self.report_filter}]

        return {
            "format": self.format.value,
            "powerBIReportConfiguration": configuration,
        }


@dataclass(frozen=True)
class ExportStatus:
    """
    Snapshot of an export job as returned by one status query.

    retry_after_seconds comes from the Retry-After response header and is
    None when the service did not send one.
    """

    export_id: str
    state: ExportState
    percent_complete: int = 0
    retry_after_seconds: Optional[float] = None
    resource_file_extension: Optional[str] = None
    report_name: Optional[str] = None
    error: Optional[str] = None
    last_action_at: Optional[datetime] = None

    @classmethod
    def from_dict(
        cls,
        data: Dict[str, Any],
        retry_after_seconds: Optional[float] = None,
    ) -> "ExportStatus":
        error = data.get("error")
        if isinstance(error, dict):
            error = error.get("message") or error.get("code")

        return cls(
            export_id=data.get("id", ""),
            state=ExportState(data.get("status", ExportState.NOT_STARTED.value)),
            percent_complete=int(data.get("percentComplete") or 0),
            retry_after_seconds=retry_after_seconds,
            resource_file_extension=data.get("resourceFileExtension"),
            report_name=data.get("reportName"),
            error=error,
            last_action_at=parse_timestamp(data.get("lastActionDateTime")),
        )

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal

    @property
    def is_successful(self) -> bool:
        return self.state == ExportState.SUCCEEDED
