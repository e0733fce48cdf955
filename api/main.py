"""
FastAPI application exposing brand monitoring to the UI layer.

The scheduler is built once per process in the lifespan handler and handed
to the routes through the ``get_scheduler`` dependency, which tests replace
with ``app.dependency_overrides``.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from brand_monitor.config import Settings
from brand_monitor.errors import ItemNotFoundError, UnsupportedTypeError, ValidationError
from brand_monitor.logger import get_logger
from brand_monitor.models import CheckOutcome, ConflictAlert, MonitoringItem, MonitoringStats
from brand_monitor.registry import RegistryClient
from brand_monitor.scheduler import MonitoringScheduler

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = Settings.from_env()
    registry = RegistryClient(settings)
    scheduler = MonitoringScheduler.from_settings(settings, registry)
    app.state.scheduler = scheduler

    stop_event = asyncio.Event()
    poller: Optional[asyncio.Task] = None
    if settings.poll_interval_seconds:
        logger.info("Starting monitoring poller every %.0fs", settings.poll_interval_seconds)
        poller = asyncio.create_task(
            scheduler.run_forever(settings.poll_interval_seconds, stop_event)
        )
    try:
        yield
    finally:
        stop_event.set()
        if poller is not None:
            await poller
        await registry.aclose()
        logger.info("Shutting down application")


app = FastAPI(
    title="Brand Monitoring API",
    description="Trademark, domain, marketplace and social media conflict monitoring",
    version="1.0.0",
    lifespan=lifespan,
)


def get_scheduler(request: Request) -> MonitoringScheduler:
    return request.app.state.scheduler


@app.exception_handler(ItemNotFoundError)
async def not_found_handler(request: Request, exc: ItemNotFoundError) -> JSONResponse:
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(ValidationError)
@app.exception_handler(UnsupportedTypeError)
async def invalid_item_handler(request: Request, exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=422, content={"detail": str(exc)})


class MonitoringItemCreate(BaseModel):
    """Fields a user supplies when creating a monitoring item."""

    name: str
    type: str
    keywords: List[str] = Field(..., description="Keywords to watch, in order.")
    frequency: str = "daily"
    extensions: Optional[List[str]] = None
    platforms: Optional[List[str]] = None
    social_platforms: Optional[List[str]] = None
    include_variations: bool = True
    client_id: Optional[str] = None
    notifications: bool = True


class MonitoringItemUpdate(BaseModel):
    name: Optional[str] = None
    keywords: Optional[List[str]] = None
    frequency: Optional[str] = None
    status: Optional[str] = None
    extensions: Optional[List[str]] = None
    platforms: Optional[List[str]] = None
    social_platforms: Optional[List[str]] = None
    include_variations: Optional[bool] = None
    client_id: Optional[str] = None
    notifications: Optional[bool] = None


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "ok"}


@app.get("/monitoring/items", response_model=List[MonitoringItem])
async def list_items(scheduler: MonitoringScheduler = Depends(get_scheduler)):
    return await scheduler.list_items()


@app.post("/monitoring/items", response_model=MonitoringItem, status_code=201)
async def create_item(
    payload: MonitoringItemCreate,
    scheduler: MonitoringScheduler = Depends(get_scheduler),
):
    """Create a monitoring item; trademark items get their first check immediately."""
    item = MonitoringItem(**payload.model_dump(exclude_none=True))
    return await scheduler.add_item(item)


@app.get("/monitoring/items/{item_id}", response_model=MonitoringItem)
async def get_item(item_id: str, scheduler: MonitoringScheduler = Depends(get_scheduler)):
    return await scheduler.get_item(item_id)


@app.patch("/monitoring/items/{item_id}", response_model=MonitoringItem)
async def update_item(
    item_id: str,
    payload: MonitoringItemUpdate,
    scheduler: MonitoringScheduler = Depends(get_scheduler),
):
    return await scheduler.update_item(item_id, payload.model_dump(exclude_unset=True))


@app.delete("/monitoring/items/{item_id}", status_code=204)
async def delete_item(item_id: str, scheduler: MonitoringScheduler = Depends(get_scheduler)):
    await scheduler.delete_item(item_id)


@app.post("/monitoring/items/{item_id}/check", response_model=CheckOutcome)
async def run_check(item_id: str, scheduler: MonitoringScheduler = Depends(get_scheduler)):
    """Run a manual check. A failed check still answers 200 with ``error`` set."""
    return await scheduler.run_check(item_id)


@app.get("/monitoring/alerts", response_model=List[ConflictAlert])
async def list_alerts(
    item_id: Optional[str] = None,
    scheduler: MonitoringScheduler = Depends(get_scheduler),
):
    return await scheduler.list_alerts(item_id)


@app.delete("/monitoring/alerts/{alert_id}", status_code=204)
async def dismiss_alert(alert_id: str, scheduler: MonitoringScheduler = Depends(get_scheduler)):
    await scheduler.dismiss_alert(alert_id)


@app.get("/monitoring/stats", response_model=MonitoringStats)
async def stats(scheduler: MonitoringScheduler = Depends(get_scheduler)):
    return await scheduler.stats()
