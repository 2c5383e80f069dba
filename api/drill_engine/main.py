"""
Drill engine application: routers, CORS and the mapping of errors to JSON responses.
"""
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
import logging
import os
import traceback
from drill_engine.core.config import settings
from drill_engine.core.database import init_db
from drill_engine.core import exceptions

# Import models to register them with SQLModel
import drill_engine.models  # noqa: F401
from drill_engine.api.v1 import api_router

logger = logging.getLogger(__name__)

IS_DEVELOPMENT = os.getenv("ENVIRONMENT", "production").lower() in ("development", "dev", "local")

# Checked in order; subclasses of these map to the same code
ERROR_STATUS = [
    (exceptions.ValidationError, status.HTTP_400_BAD_REQUEST),
    (exceptions.NotFoundError, status.HTTP_404_NOT_FOUND),
    (exceptions.ForbiddenError, status.HTTP_403_FORBIDDEN),
    (exceptions.ConflictError, status.HTTP_409_CONFLICT),
    (exceptions.OracleError, status.HTTP_502_BAD_GATEWAY),
]

app = FastAPI(title="Drill Engine API", version="1.0.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _error(status_code: int, detail, error_type: str, **extra) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": detail, "type": error_type, **extra})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    body = (await request.body()).decode("utf-8") or None
    logger.error(f"Invalid request on {request.method} {request.url.path}: {exc.errors()} body={body}")
    return _error(status.HTTP_422_UNPROCESSABLE_ENTITY, exc.errors(), "RequestValidationError", body=body)


@app.exception_handler(exceptions.DrillEngineException)
async def drill_engine_error_handler(request: Request, exc: exceptions.DrillEngineException):
    status_code = next(
        (code for error_class, code in ERROR_STATUS if isinstance(exc, error_class)),
        status.HTTP_500_INTERNAL_SERVER_ERROR,
    )
    logger.warning(f"{request.method} {request.url.path} -> {status_code} {type(exc).__name__}: {exc}")
    return _error(status_code, str(exc), type(exc).__name__)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    """Return a JSON 500; the traceback is only exposed in development."""
    logger.error(f"Unhandled exception on {request.method} {request.url.path}", exc_info=exc)
    if IS_DEVELOPMENT:
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, str(exc), type(exc).__name__,
                      traceback="".join(traceback.format_exception(type(exc), exc, exc.__traceback__)))
    return _error(status.HTTP_500_INTERNAL_SERVER_ERROR,
                  "An internal server error occurred. Please try again later.", "InternalServerError")


@app.on_event("startup")
async def startup_event():
    init_db()


@app.get("/health")
async def health():
    return {"status": "healthy"}


app.include_router(api_router, prefix=settings.api_v1_prefix)
