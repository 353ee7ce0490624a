"""FastAPI entrypoint for the proctored examination attempt engine."""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import Depends, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from proctored_exam.config import Settings, configure_logging, get_settings
from proctored_exam.database import Database, get_database
from proctored_exam.errors import AttemptEngineError, StoreError, TransientStoreError
from proctored_exam.routers import attempts as attempts_router_module

logger = logging.getLogger(__name__)

# Paths that browsers hit with navigator.sendBeacon (text/plain bodies)
BEACON_METHODS = {"POST", "PUT"}


def create_app(settings: Optional[Settings] = None, database: Optional[Database] = None) -> FastAPI:
    """Build the application around an explicitly constructed database handle."""
    settings = settings or get_settings()
    configure_logging(settings.LOG_LEVEL)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        db = database or Database.from_settings(settings)
        db.create_all()
        app.state.database = db
        logger.info("Attempt engine started")
        yield
        db.dispose()

    app = FastAPI(title="Proctored Examination Attempt Engine", lifespan=lifespan)
    app.state.settings = settings
    attempts_prefix = f"{settings.API_PREFIX}/attempts"

    @app.exception_handler(AttemptEngineError)
    async def attempt_engine_error_handler(request: Request, exc: AttemptEngineError):
        headers = None
        if isinstance(exc, TransientStoreError):
            headers = {"Retry-After": str(exc.retry_after)}
        elif isinstance(exc, StoreError):
            logger.error("Database error during %s %s", request.method, request.url.path)
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Malformed bodies are caller-fixable: 400 with the offending fields."""
        details = [
            {
                "field": ".".join(str(part) for part in error.get("loc", [])[1:]),
                "message": error.get("msg", "Invalid input"),
            }
            for error in exc.errors()
        ]
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "Invalid request", "code": "VALIDATION_ERROR", "details": details},
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error in %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Internal server error", "code": "INTERNAL_ERROR"},
        )

    @app.middleware("http")
    async def beacon_body_as_json(request: Request, call_next):
        """Treat text/plain bodies sent by sendBeacon as JSON."""
        if request.method in BEACON_METHODS and request.url.path.startswith(attempts_prefix):
            content_type = request.headers.get("content-type", "")
            if content_type.startswith("text/plain"):
                request.scope["headers"] = [
                    (key, b"application/json" if key == b"content-type" else value)
                    for key, value in request.scope["headers"]
                ]
        return await call_next(request)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(attempts_router_module.router, prefix=attempts_prefix, tags=["attempts"])

    @app.get(f"{settings.API_PREFIX}/health")
    def health(db: Database = Depends(get_database)):
        """Liveness plus a database round-trip."""
        timestamp = datetime.now(timezone.utc).isoformat()
        try:
            latency = db.ping()
        except StoreError as e:
            return JSONResponse(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                content={
                    "status": "DEGRADED",
                    "timestamp": timestamp,
                    "database": {"healthy": False, "error": e.code},
                },
            )
        return {
            "status": "OK",
            "timestamp": timestamp,
            "database": {"healthy": True, "latencyMs": latency},
        }

    return app


app = create_app()
