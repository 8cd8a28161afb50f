"""Service Desk Backend Application.

This is the main entry point for the service desk backend. Users report
facility issues as tickets; service-desk staff triage them; both sides talk
through a per-ticket chat thread.

Modules:
    - chat: access policy, message log, WebSocket sessions, ticket rooms
      and the delivery pipeline shared by HTTP and WebSocket
    - directory: users and tickets (lookup, assignment, status)
    - auth: bearer token verification
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from servicedesk.chat.router import router as chat_router
from servicedesk.config import AppSettings, get_config
from servicedesk.deps import build_services
from servicedesk.directory.router import router as tickets_router
from servicedesk.errors import ServiceDeskError

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

# Silence verbose third-party loggers.
for _noisy in (
    "uvicorn.access",
    "duckdb",
    "websockets",
    "httpx",
    "httpcore",
):
    logging.getLogger(_noisy).setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup/shutdown events."""
    # Startup
    services = app.state.services
    config = services.settings

    configured_level = getattr(logging, config.logging.level.upper(), None)
    if configured_level is not None:
        logging.getLogger().setLevel(configured_level)
        logger.info("Root logger level set to %s", config.logging.level.upper())

    services.registry.start()
    logger.info(
        f"Service desk ready on http://{config.server.host}:{config.server.port} "
        f"(database={config.database.path})"
    )

    yield  # Application runs here

    # Shutdown
    await services.registry.stop()
    services.db.close()
    logger.info("Application shutdown complete")


async def _service_desk_error_handler(request: Request, exc: ServiceDeskError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc!r}")
    return JSONResponse(
        {"success": False, "message": exc.message, "error": exc.error_code},
        status_code=exc.status_code,
    )


async def _request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.debug(f"{request.method} {request.url.path} rejected: {exc.errors()}")
    return JSONResponse(
        {"success": False, "message": "Invalid request", "error": "validation"},
        status_code=400,
    )


async def _unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(
        {"success": False, "message": "Something went wrong!"},
        status_code=500,
    )


def create_app(settings: Optional[AppSettings] = None) -> FastAPI:
    """Build a fully wired application.

    Args:
        settings: Configuration to use. Defaults to the on-disk settings.
    """
    settings = settings or get_config()

    app = FastAPI(
        title="Service Desk API",
        description="Ticket reporting and real-time ticket chat",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.services = build_services(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.server.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["Authorization", "Content-Type"],
    )

    app.add_exception_handler(ServiceDeskError, _service_desk_error_handler)
    app.add_exception_handler(RequestValidationError, _request_validation_handler)
    app.add_exception_handler(Exception, _unexpected_error_handler)

    # Register all routers
    app.include_router(tickets_router)
    app.include_router(chat_router)

    @app.get("/health")
    async def health() -> dict:
        """Health check endpoint.

        Returns:
            dict: Status object indicating the server is running.
        """
        return {"success": True, "message": "Server is running"}

    return app


app = create_app()
