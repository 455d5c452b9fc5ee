"""FastAPI routes for sync status and on-demand triggers.

GET  /api/sync          health, optionally with metrics and recent events
POST /api/sync          start a full sync in the background (202)
POST /api/sync/phone    resync one catalog phone
GET  /api/sync/jobs     job registry
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import BackgroundTasks, FastAPI, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from phone_sync.models.config import ExternalDataConfig
from phone_sync.pipeline.integration import ExternalDataIntegrationService


class PhoneSyncRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    phone_id: str = Field(alias="phoneId", min_length=1)


def create_app(
    service: Optional[ExternalDataIntegrationService] = None,
    config: Optional[ExternalDataConfig] = None,
) -> FastAPI:
    """
    Build the routes around one facade instance.

    Args:
        service: Facade to expose; built from ``config`` when omitted
        config: Configuration used when the app builds its own facade

    Returns:
        FastAPI application. A facade built here is cleaned up on shutdown.
    """
    owns_service = service is None
    service = service or ExternalDataIntegrationService(config)

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        yield
        if owns_service:
            await service.cleanup()

    app = FastAPI(title="Phone Data Sync", lifespan=lifespan)
    app.state.service = service

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(_: Request, exc: Exception) -> JSONResponse:
        service.logger.error("api_error", error=str(exc), error_type=type(exc).__name__)
        return JSONResponse(status_code=500, content={"status": "error", "message": str(exc)})

    @app.get("/api/sync")
    async def sync_status(
        metrics: bool = False,
        events: bool = False,
        hours: float = Query(default=24, gt=0),
    ):
        """Health report, plus metrics and events when asked for."""
        body = {"status": "success", "health": service.get_health_status()}
        if metrics:
            body["metrics"] = service.formatter.format_metrics(service.get_metrics())
        if events:
            body["events"] = service.formatter.format_events(service.get_recent_events(hours))
        return body

    @app.post("/api/sync", status_code=202)
    async def start_full_sync(background_tasks: BackgroundTasks):
        background_tasks.add_task(_full_sync, service)
        return {"status": "accepted", "message": "Full sync started"}

    @app.post("/api/sync/phone")
    async def sync_phone(request: PhoneSyncRequest):
        success = await service.sync_phone_data(request.phone_id)
        return {
            "status": "success" if success else "failed",
            "phoneId": request.phone_id,
            "synced": success,
        }

    @app.get("/api/sync/jobs")
    async def sync_jobs():
        return {"jobs": service.formatter.format_jobs(service.get_sync_jobs())}

    return app


async def _full_sync(service: ExternalDataIntegrationService) -> None:
    # Runs after the 202 is sent; nothing is left to report the error to
    try:
        await service.perform_full_sync()
    except Exception as e:
        service.logger.error("background_sync_failed", error=str(e))
