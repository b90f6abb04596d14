"""
FastAPI application for the video publishing pipeline.

Exposes the pipeline as an HTTP trigger for schedulers, plus health and
maintenance endpoints.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from publisher.api import routes
from publisher.config import get_settings
from publisher.logging_config import setup_logging
from publisher.services.clients import DriveClient, GoogleAuth, NotionRecordStore, YouTubeClient
from publisher.services.errors import ConfigurationError

# Configure logging before anything else
settings = get_settings()
setup_logging(settings)
logger = logging.getLogger(__name__)


async def check_services() -> dict:
    """
    Check reachability of Notion and the Google APIs.

    Returns:
        Mapping of service name to availability
    """
    status = {"notion": False, "google_auth": False, "drive": False, "youtube": False}

    try:
        async with NotionRecordStore.from_settings(settings) as store:
            status["notion"] = await store.check_connection()
    except ConfigurationError as e:
        logger.warning(f"Notion not configured: {e}")

    try:
        auth = GoogleAuth.from_settings(settings)
    except ConfigurationError as e:
        logger.warning(f"Google not configured: {e}")
        return status

    try:
        await auth.get_access_token()
        status["google_auth"] = True
    except Exception as e:
        logger.warning(f"Google token refresh failed: {e}")
    else:
        async with DriveClient.from_settings(settings, auth) as drive:
            status["drive"] = await drive.check_connection()
        async with YouTubeClient.from_settings(settings, auth) as youtube:
            status["youtube"] = await youtube.check_connection()
    finally:
        await auth.close()

    return status


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Logs startup info and checks service availability.
    """
    logger.info("Starting Auto Publisher API")
    logger.info(f"Log level: {settings.log_level}")
    logger.info(f"Temp directory: {settings.temp_dir}")
    logger.info(f"Source folder: {settings.google_drive_folder_id or '(not set)'}")

    if not settings.api_secret:
        logger.warning("API_SECRET is not set: pipeline endpoints will refuse requests")

    status = await check_services()
    logger.info(
        f"Services - Notion: {status['notion']}, Google: {status['google_auth']}, "
        f"Drive: {status['drive']}, YouTube: {status['youtube']}"
    )

    yield

    logger.info("Shutting down Auto Publisher API")


app = FastAPI(
    title="Auto Publisher API",
    description="API for the Drive to Notion to YouTube publishing pipeline",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS middleware for dashboards and schedulers
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(routes.router)


@app.get("/health")
async def health_check() -> dict:
    """
    Health check endpoint.

    Returns:
        Basic health status
    """
    return {"status": "ok"}


@app.get("/health/services")
async def services_health() -> dict:
    """
    Check external services availability.

    Returns:
        Status of Notion and Google services
    """
    status = await check_services()
    return {
        **status,
        "notion_url": settings.notion_url,
        "drive_folder_configured": bool(settings.google_drive_folder_id),
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "publisher.main:app",
        host="0.0.0.0",
        port=3333,
        reload=True,
    )
