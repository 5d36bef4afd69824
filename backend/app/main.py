import logging
import logging.config

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.metrics import router as metrics_router
from app.api.routes import router as api_router
from app.api.ws import router as ws_router
from app.config import get_settings
from app.services.sessions import services_for, shutdown_sessions, startup_sessions
from watchparty.media import MediaResolutionError


settings = get_settings()

LOG_LEVEL = "DEBUG" if settings.debug else "INFO"

LOGGING_CONFIG = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "standard": {
            "format": "%(asctime)s %(levelname)s [%(name)s] %(message)s",
        }
    },
    "handlers": {
        "default": {
            "class": "logging.StreamHandler",
            "formatter": "standard",
        }
    },
    "root": {
        "handlers": ["default"],
        "level": "INFO",
    },
    "loggers": {
        # Room lifecycle and relay traffic follow the debug switch.
        "watchparty": {"level": LOG_LEVEL},
        "app": {"level": LOG_LEVEL},
        "watchparty.voice": {
            "handlers": ["default"],
            "level": "INFO",
            "propagate": False,
        },
    },
}


logging.config.dictConfig(LOGGING_CONFIG)

logger = logging.getLogger(__name__)

app = FastAPI(title=settings.app_name, debug=settings.debug)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[str(origin).rstrip("/") for origin in settings.cors_origins],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    allow_origin_regex=settings.cors_allow_origin_regex,
)


@app.exception_handler(MediaResolutionError)
async def media_resolution_error_handler(request: Request, exc: MediaResolutionError) -> JSONResponse:
    logger.info("Rejected video link on %s: %s", request.url.path, exc)
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": {"code": "media_unresolvable", "message": str(exc)}},
    )


@app.get("/health", tags=["system"])
def health_check(request: Request) -> dict[str, object]:
    """Liveness plus the size of the in-memory state."""

    services = services_for(request)
    return {
        "status": "ok",
        "environment": settings.environment,
        "rooms": len(services.registry),
        "signal_connections": services.relay.connection_count,
    }


@app.on_event("startup")
async def _startup() -> None:
    await startup_sessions(app, settings)


@app.on_event("shutdown")
async def _shutdown() -> None:
    await shutdown_sessions(app)


app.include_router(api_router, prefix="/api")
app.include_router(ws_router)
app.include_router(metrics_router)
