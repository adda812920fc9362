"""
Main FastAPI application.
"""
import logging
import uuid
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from nclex_cat.api.v1.api import api_router
from nclex_cat.api.v1.exams import exposure_monitor
from nclex_cat.core.cat.errors import CATError, ItemBankUnavailable
from nclex_cat.core.config import settings
from nclex_cat.core.error_responses import cat_error_to_http
from nclex_cat.core.logging_config import setup_logging
from nclex_cat.middleware import RequestLoggingMiddleware
from nclex_cat.models import Base, engine

# Initialize logging configuration at startup
setup_logging()

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan event handler.

    - On startup: Creates missing tables
    - On shutdown: Logs the exposure report for this process
    """
    Base.metadata.create_all(bind=engine)
    logger.info(
        f"{settings.APP_NAME} {settings.APP_VERSION} started "
        f"(env={settings.ENV}, min_items={settings.CAT_MIN_ITEMS}, "
        f"max_items={settings.CAT_MAX_ITEMS})"
    )

    yield

    exposure_monitor.check_and_alert()
    logger.info(
        f"Application shutting down after {exposure_monitor.sessions} exam sessions"
    )


tags_metadata = [
    {
        "name": "health",
        "description": "Health check endpoints for monitoring application status",
    },
    {
        "name": "exams",
        "description": "Adaptive exam sessions: start, next item, responses, abandonment and results",
    },
]


def create_application() -> FastAPI:
    """
    Create and configure the FastAPI application.
    """
    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        lifespan=lifespan,
        description=(
            "**NCLEX CAT API** - Computerized adaptive testing for NCLEX-style exams.\n\n"
            "This API provides:\n"
            "* Exam sessions driven by 3PL item response theory\n"
            "* Content balancing against the NCLEX Client Needs test plan\n"
            "* Pass/fail classification with readiness and category breakdowns"
        ),
        docs_url=f"{settings.API_V1_PREFIX}/docs",
        redoc_url=f"{settings.API_V1_PREFIX}/redoc",
        openapi_url=f"{settings.API_V1_PREFIX}/openapi.json",
        openapi_tags=tags_metadata,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "X-Request-ID"],
    )

    app.add_middleware(RequestLoggingMiddleware)

    app.include_router(api_router, prefix=settings.API_V1_PREFIX)

    @app.exception_handler(CATError)
    async def cat_error_handler(request: Request, exc: CATError):
        """
        Map engine errors to HTTP responses.
        """
        http_exc = cat_error_to_http(exc)
        log = logger.error if isinstance(exc, ItemBankUnavailable) else logger.info
        log(
            f"{exc.__class__.__name__} on {request.method} {request.url.path}: {exc}",
            extra={"status_code": http_exc.status_code},
        )
        return JSONResponse(
            status_code=http_exc.status_code,
            content={"detail": http_exc.detail},
            headers=http_exc.headers,
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ):
        """
        Handle request validation errors.
        """
        errors = [
            {
                "loc": list(error.get("loc", [])),
                "msg": str(error.get("msg", "")),
                "type": str(error.get("type", "")),
            }
            for error in exc.errors()
        ]
        logger.info(f"Validation error on {request.url.path}: {errors}")
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={"detail": errors},
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        """
        Handle unexpected exceptions.

        Generates a unique error_id for each exception so support can trace
        it in the logs without leaking internal details in the response.
        """
        error_id = str(uuid.uuid4())
        logger.exception(
            f"Unhandled exception [error_id={error_id}]: {exc}",
            extra={"error_id": error_id},
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": "Internal server error",
                "error_id": error_id,
            },
        )

    return app


app = create_application()


@app.get("/")
async def root():
    """
    Root endpoint.
    """
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": settings.APP_VERSION,
        "docs": f"{settings.API_V1_PREFIX}/docs",
    }


def run() -> None:
    """Serve the API with uvicorn."""
    import uvicorn

    uvicorn.run(
        "nclex_cat.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
    )


if __name__ == "__main__":
    run()
