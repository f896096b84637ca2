"""
Business logic services.
"""

from report_export.services.report_export_service import ReportExportService

__all__ = ["ReportExportService"]
