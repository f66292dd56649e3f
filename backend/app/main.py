import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.api.v1.setup_assistant import router as setup_assistant_router
from app.core.config import get_settings
from app.core.dependencies import init_db

settings = get_settings()

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Setup Assistant API",
    version="1.0.0",
    docs_url="/docs" if settings.docs_enabled else None,
    openapi_url="/openapi.json" if settings.openapi_enabled else None,
)

if settings.cors_allow_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=True,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
    )

app.include_router(setup_assistant_router, prefix="/api/v1", tags=["setup-assistant"])


@app.on_event("startup")
async def _init_schema():
    if init_db():
        logger.info("Database schema ready")
    else:
        logger.warning("DATABASE_URL is not configured; imports cannot be persisted")


def _error_response(status_code: int, detail) -> JSONResponse:
    if status_code >= 500 and not settings.expose_error_details:
        detail = "Internal error"
    return JSONResponse(status_code=status_code, content={"detail": detail})


@app.exception_handler(StarletteHTTPException)
async def _http_exception_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code >= 500:
        logger.warning("%s %s -> %d: %s", request.method, request.url.path, exc.status_code, exc.detail)
    return _error_response(exc.status_code, exc.detail)


@app.exception_handler(Exception)
async def _unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error_response(500, str(exc))


@app.get("/health")
async def health():
    return {
        "status": "ok",
        "setup_assistant": settings.enable_setup_assistant,
        "providers": settings.ai_allowed_providers,
    }
