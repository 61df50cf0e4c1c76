"""devbridge control plane - on-demand tunnels to field devices."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import socketio
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from devbridge_control import __version__
from devbridge_control.config import settings
from devbridge_control.deps import cleanup_registry, get_hub
from devbridge_control.routes import connection_router, health_router
from devbridge_shared import SentryConfig, configure_logging, init_sentry

_sentry_config = SentryConfig(
    service_name="devbridge-control",
    dsn=settings.sentry_dsn,
    environment=settings.environment,
    release=f"devbridge-control@{__version__}",
    traces_sample_rate=settings.sentry_traces_sample_rate,
)
init_sentry("devbridge-control", _sentry_config)

logger = configure_logging(
    "devbridge-control",
    log_level=settings.log_level.upper(),
    json_format=settings.environment != "development",
)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application lifespan - startup and shutdown."""
    logger.info(
        "Starting devbridge control plane",
        environment=settings.environment,
        rpc_timeout=settings.rpc_timeout,
        known_devices=len(settings.device_keys),
    )

    yield

    logger.info("Shutting down devbridge control plane")
    await cleanup_registry()


async def _request_validation_handler(
    _request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Report malformed request bodies in the same shape as other client errors."""
    errors = exc.errors()
    message = errors[0].get("msg", "Invalid request body") if errors else "Invalid request body"
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": message})


app = FastAPI(
    title="devbridge control plane",
    description="Opens and closes tunnels to devices behind NAT",
    version=__version__,
    lifespan=lifespan,
)
app.add_exception_handler(
    RequestValidationError,
    _request_validation_handler,  # type: ignore[arg-type]
)

app.include_router(health_router)
app.include_router(connection_router)

sio = socketio.AsyncServer(
    async_mode="asgi",
    cors_allowed_origins=settings.cors_origins,
    logger=False,
    engineio_logger=False,
)

# Device agents connect on the /device namespace
sio.register_namespace(get_hub().namespace)

socket_app = socketio.ASGIApp(sio, app)


def run() -> None:
    """Console entry point."""
    import uvicorn

    uvicorn.run(
        "devbridge_control.main:socket_app",
        host=settings.host,
        port=settings.port,
        reload=settings.environment == "development" and settings.debug,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
