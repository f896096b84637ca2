# API routes
from report_export.api.routes import report_exports

__all__ = ["report_exports"]
