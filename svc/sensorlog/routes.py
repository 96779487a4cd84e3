from __future__ import annotations
import logging
from datetime import datetime
from typing import List, Optional
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, Request, status
from fastapi.responses import HTMLResponse
from starlette.concurrency import run_in_threadpool
from .models import (
    DbStats, DeviceInfo, ErrorResponse, HealthResponse, IngestResponse, NormalizedMessage,
    StoredMessage,
)
from .normalizer import MalformedInput
from .pages import render_dashboard, render_overview
from .service import DatabaseUnavailable, IngestService
from . import config

logger = logging.getLogger(__name__)

router = APIRouter()


def get_service(request: Request) -> IngestService:
    """The service instance created by the app factory."""
    return request.app.state.service


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    description="Returns service health status, memory usage and database availability",
    tags=["Health"]
)
def health(service: IngestService = Depends(get_service)) -> HealthResponse:
    """Health check endpoint."""
    return HealthResponse(
        status="ok",
        environment=config.ENVIRONMENT,
        memory_messages=service.store.size(),
        database=service.db_enabled,
    )


@router.post(
    "/data",
    response_model=IngestResponse,
    status_code=status.HTTP_200_OK,
    summary="Ingest sensor data",
    description="Receive one message pushed by the Sensor Logger app, normalize it and keep it",
    responses={
        200: {"description": "Message accepted"},
        400: {"model": ErrorResponse, "description": "Body is not a valid sensor message"},
    },
    tags=["Ingest"]
)
async def ingest(
    request: Request,
    background_tasks: BackgroundTasks,
    service: IngestService = Depends(get_service),
) -> IngestResponse:
    """Normalize and store a sensor message; the database write runs after the response."""
    body = await request.body()
    try:
        raw, message = await run_in_threadpool(service.ingest, body)
    except MalformedInput as e:
        client_ip = request.client.host if request.client else "unknown"
        logger.warning(f"Rejected sensor data from {client_ip}: {e}")
        raise HTTPException(status_code=400, detail=str(e))

    background_tasks.add_task(service.persist, message, raw.payload)
    return IngestResponse(
        ok=True,
        message_id=message.message_id,
        total_readings=message.total_readings,
    )


@router.get(
    "/",
    response_class=HTMLResponse,
    summary="Overview page",
    tags=["Pages"]
)
def overview(service: IngestService = Depends(get_service)) -> HTMLResponse:
    return HTMLResponse(
        render_overview(
            current_time=datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
            environment=config.ENVIRONMENT,
            log_level=config.LOG_LEVEL,
            memory_count=service.store.size(),
            max_store=service.store.max_size or 0,
            file_log=service.archive_dir is not None,
            server_addr=config.get_server_addr(),
            database=service.db_enabled,
        )
    )


@router.get(
    "/dashboard",
    response_class=HTMLResponse,
    summary="Dashboard page",
    description="Totals over the in-memory window and the readings of the most recent message",
    tags=["Pages"]
)
def dashboard(service: IngestService = Depends(get_service)) -> HTMLResponse:
    return HTMLResponse(render_dashboard(service.dashboard_data()))


@router.get(
    "/api/data",
    response_model=List[NormalizedMessage],
    summary="In-memory messages",
    description="Messages held in memory, oldest first. With limit, only the most recent ones.",
    tags=["Data"]
)
def memory_data(
    limit: Optional[int] = Query(default=None, ge=1, description="Return only the last N messages"),
    service: IngestService = Depends(get_service),
) -> List[NormalizedMessage]:
    return service.memory_messages(limit)


@router.get(
    "/api/db/data",
    response_model=List[StoredMessage],
    summary="Stored messages",
    description="Messages from the database, newest first, filtered by device and/or sensor type",
    responses={
        500: {"model": ErrorResponse, "description": "Database query failed"},
        503: {"model": ErrorResponse, "description": "Database not available"},
    },
    tags=["Data"]
)
def db_data(
    limit: int = Query(default=50, ge=1, le=1000, description="Maximum number of messages to return"),
    device: str = Query(default="", description="Only messages from this device"),
    sensor: str = Query(default="", description="Only messages containing this sensor type"),
    service: IngestService = Depends(get_service),
) -> List[StoredMessage]:
    return _db_call(lambda: service.stored_messages(limit, device, sensor), "stored messages")


@router.get(
    "/api/db/devices",
    response_model=List[DeviceInfo],
    summary="Known devices",
    responses={
        500: {"model": ErrorResponse, "description": "Database query failed"},
        503: {"model": ErrorResponse, "description": "Database not available"},
    },
    tags=["Data"]
)
def db_devices(service: IngestService = Depends(get_service)) -> List[DeviceInfo]:
    return _db_call(service.devices, "device info")


@router.get(
    "/api/db/stats",
    response_model=DbStats,
    summary="Database statistics",
    responses={
        500: {"model": ErrorResponse, "description": "Database query failed"},
        503: {"model": ErrorResponse, "description": "Database not available"},
    },
    tags=["Data"]
)
def db_stats(service: IngestService = Depends(get_service)) -> DbStats:
    return _db_call(service.stats, "statistics")


def _db_call(fn, what: str):
    try:
        return fn()
    except DatabaseUnavailable as e:
        raise HTTPException(status_code=503, detail=str(e))
    except Exception as e:
        logger.error(f"Database query for {what} failed: {e}")
        raise HTTPException(status_code=500, detail=f"{what} query failed")
