"""
FastAPI application entry point for the report export backend.

The Power BI client is created once at startup and shared by every
export request.
"""

import os
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from report_export.api.routes import report_exports
from report_export.config.export_settings import get_export_settings
from report_export.integrations.powerbi.client import get_powerbi_client

# Configure structured logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup
    logger.info("Starting report export API")

    settings = get_export_settings()
    logger.info(
        "Export settings loaded",
        extra={
            "max_attempts": settings.max_attempts,
            "poll_timeout_seconds": settings.poll_timeout_seconds,
            "workspace_configured": bool(settings.workspace_id),
            "report_configured": bool(settings.report_id),
        },
    )

    # Token acquisition happens outside this service; without a token exports return 503
    app.state.powerbi_client = None
    if os.getenv("POWERBI_ACCESS_TOKEN"):
        app.state.powerbi_client = get_powerbi_client()
        logger.info("Power BI client configured")
    else:
        logger.warning(
            "POWERBI_ACCESS_TOKEN is not set. Export endpoints will return 503."
        )

    yield

    # Shutdown
    if app.state.powerbi_client is not None:
        await app.state.powerbi_client.close()
    logger.info("Shutting down report export API")


# Create FastAPI app
app = FastAPI(
    title="Report Export API",
    description="Exports reports to files through asynchronous export jobs",
    version="1.0.0",
    lifespan=lifespan
)

cors_origins = os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",")

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(report_exports.router)


@app.get("/health")
async def health():
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("PORT", 8000))
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=port,
        reload=os.getenv("ENV") == "development"
    )
