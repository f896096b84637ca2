"""
Power BI integration for report exports.

This module provides a client for the Power BI REST API export-to-file
endpoints: create an export job, poll its status and download the file.
"""

from report_export.integrations.powerbi.client import PowerBIClient, get_powerbi_client
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
)

__all__ = [
    # Client
    "PowerBIClient",
    "get_powerbi_client",
    # Exceptions
    "PowerBIError",
    "PowerBIAuthenticationError",
    "PowerBIRateLimitError",
    "PowerBIConnectionError",
    "PowerBINotFoundError",
    # Models
    "ExportRequest",
    "ExportState",
    "ExportStatus",
    "FileFormat",
]
