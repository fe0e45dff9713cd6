"""
GeoTrack Relay - FastAPI Application

Control API for a location worker hosted in the server process.
"""

from contextlib import asynccontextmanager
from typing import Optional
import asyncio
import time

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from loguru import logger

from ..bootstrap import build_worker
from ..core.config import settings
from ..core.errors import GeoTrackError
from ..core.worker import LocationWorker
from .routes import settings as settings_routes, websocket, worker as worker_routes
from .routes.websocket import ConnectionManager


def create_app(worker: Optional[LocationWorker] = None, autostart: bool = True) -> FastAPI:
    """
    Create the API application.

    Args:
        worker: Worker to serve. If not specified one is built from settings
            on startup and closed on shutdown.
        autostart: Start the worker on startup

    Returns:
        FastAPI application
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Application lifespan handler.
        Runs startup and shutdown logic.
        """
        # Startup
        logger.info("Starting GeoTrack Relay API...")
        owned = app.state.worker is None
        if owned:
            app.state.worker = build_worker()

        app.state.connections.attach(app.state.worker, asyncio.get_running_loop())
        if autostart:
            app.state.worker.start()
        logger.info(f"Worker {app.state.worker.state.value.value}")

        yield

        # Shutdown
        logger.info("Shutting down GeoTrack Relay API...")
        app.state.connections.detach()
        if owned:
            app.state.worker.close()
            app.state.worker = None
        else:
            app.state.worker.stop()
        logger.info("Worker shutdown complete")

    app = FastAPI(
        title="GeoTrack Relay API",
        description="""
        Control API for the background location worker.

        ## Features

        * **Worker** - Lifecycle, app mode and manual uploads
        * **Settings** - Collector URL, user name, upload flag and intervals
        * **WebSocket** - Live fixes, delivery status and state changes
        """,
        version=settings.app_version,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )
    app.state.worker = worker
    app.state.connections = ConnectionManager()

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.api.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Request timing middleware
    @app.middleware("http")
    async def add_process_time_header(request: Request, call_next):
        """Add X-Process-Time header to all responses"""
        start_time = time.time()
        response = await call_next(request)
        process_time = time.time() - start_time
        response.headers["X-Process-Time"] = str(process_time)
        return response

    # Exception handlers
    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Handle validation errors with detailed messages"""
        errors = []
        for error in exc.errors():
            errors.append({
                "field": ".".join(str(loc) for loc in error["loc"]),
                "message": error["msg"],
                "type": error["type"]
            })
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={
                "detail": "Validation error",
                "errors": errors
            }
        )

    @app.exception_handler(GeoTrackError)
    async def geotrack_exception_handler(request: Request, exc: GeoTrackError):
        """Handle worker errors that escape a route"""
        logger.warning(f"{type(exc).__name__}: {exc}")
        return JSONResponse(
            status_code=status.HTTP_409_CONFLICT,
            content={
                "detail": str(exc),
                "type": type(exc).__name__
            }
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Handle unexpected exceptions"""
        logger.error(f"Unexpected error: {exc}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": "Internal server error",
                "message": str(exc) if settings.debug else "An unexpected error occurred"
            }
        )

    # Include routers
    app.include_router(
        worker_routes.router,
        prefix="/api/worker",
        tags=["Worker"]
    )

    app.include_router(
        settings_routes.router,
        prefix="/api/settings",
        tags=["Settings"]
    )

    app.include_router(
        websocket.router,
        prefix="/ws",
        tags=["WebSocket"]
    )

    # Root endpoints
    @app.get("/", tags=["Root"])
    async def root():
        """API root endpoint"""
        return {
            "name": settings.app_name,
            "version": settings.app_version,
            "docs": "/docs",
            "health": "/health"
        }

    @app.get("/health", tags=["Root"])
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "version": settings.app_version
        }

    @app.get("/api", tags=["Root"])
    async def api_info():
        """API information endpoint"""
        return {
            "name": settings.app_name,
            "version": settings.app_version,
            "endpoints": {
                "worker": "/api/worker",
                "settings": "/api/settings"
            },
            "websocket": {
                "worker": "/ws/worker"
            }
        }

    return app
