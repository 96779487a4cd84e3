from __future__ import annotations
from dotenv import load_dotenv
load_dotenv()  # Load .env file before importing app modules

import os
import time
import logging
from typing import Callable, Optional
import uvicorn
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from sensorlog import config
from sensorlog.routes import router
from sensorlog.service import IngestService
from sensorlog.store import MessageStore

logger = logging.getLogger(__name__)

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def configure_logging() -> None:
    """
    Console logging at the configured level, plus a log file when file logging is on.

    Safe to call more than once: handlers are only installed while the root
    logger has none, so a second call (or a host that already set up logging)
    only adjusts the sensorlog level.
    """
    level = _LEVELS.get(config.LOG_LEVEL, logging.INFO)
    logging.getLogger("sensorlog").setLevel(level)
    if logging.getLogger().handlers:
        return

    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if config.ENABLE_FILE_LOG:
        try:
            os.makedirs(os.path.dirname(config.LOG_FILE), exist_ok=True)
            handlers.append(logging.FileHandler(config.LOG_FILE, encoding="utf-8"))
        except OSError as e:
            print(f"Could not open log file {config.LOG_FILE}: {e}")

    fmt = '%(levelname)s: %(name)s: %(message)s'
    if config.is_production():
        fmt = '%(asctime)s ' + fmt

    logging.basicConfig(level=level, format=fmt, handlers=handlers)


class LoggingMiddleware(BaseHTTPMiddleware):
    """Middleware to log request and response information."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.time()

        # Get client IP
        client_ip = request.client.host if request.client else "unknown"

        if request.method == "OPTIONS":
            # CORS preflight, handled by the CORS middleware
            return await call_next(request)

        # Sensor batches can be large, so only their size is logged
        size = request.headers.get("content-length", "N/A")
        query_params = dict(request.query_params) if request.query_params else None
        logger.debug(
            f"Request: {request.method} {request.url.path} | "
            f"IP: {client_ip} | "
            f"Query: {query_params} | "
            f"Body size: {size}"
        )

        response = await call_next(request)

        process_time = time.time() - start_time
        logger.info(
            f"Response: {request.method} {request.url.path} | "
            f"IP: {client_ip} | "
            f"Status: {response.status_code} | "
            f"Time: {process_time:.3f}s"
        )

        return response


def create_app(service: Optional[IngestService] = None) -> FastAPI:
    """
    Build the application around one IngestService.

    The service (and the store it owns) is created here from configuration
    unless one is passed in, and is reached by the routes through app.state.
    """
    config.validate_config()
    configure_logging()
    if service is None:
        service = IngestService(
            MessageStore(max_size=config.MAX_DATA_STORE),
            archive_dir=config.DATA_DIR if config.ENABLE_FILE_LOG else None,
            log_messages=config.ENABLE_LOGGING,
        )

    app = FastAPI(title="Sensor Logger Service", version="0.1.0")
    app.state.service = service

    # Request logging middleware (add first so it wraps everything)
    app.add_middleware(LoggingMiddleware)

    # JSON APIs are readable from any dashboard origin
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(router)
    logger.info(
        f"Sensor Logger ready: environment={config.ENVIRONMENT} "
        f"max_data_store={service.store.max_size} database={service.db_enabled} "
        f"archive={service.archive_dir is not None}"
    )
    return app


if __name__ == "__main__":
    app = create_app()
    logger.info(f"Set the Sensor Logger push URL to http://<this-host>:{config.SERVER_PORT}/data")
    uvicorn.run(app, host=config.SERVER_HOST or "0.0.0.0", port=config.SERVER_PORT)
