import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import models  # noqa: F401
from .config import ALLOWED_ORIGINS, IS_PRODUCTION
from .database import Base, engine
from .domain.api_v1.router import API_V1_PREFIX
from .domain.api_v1.router import router as api_v1_router
from .domain.billing.router import router as billing_router
from .domain.calendar.router import router as calendar_router
from .domain.clients.router import router as clients_router
from .domain.contracts.router import router as contracts_router
from .domain.expenses.router import router as expenses_router
from .domain.gigs.router import router as gigs_router
from .domain.imports.router import router as imports_router
from .domain.integrations.dropbox.router import router as dropbox_router
from .domain.invoices.router import router as invoices_router
from .security_headers import SecurityHeadersMiddleware

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Reduce verbosity of third-party libraries
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Application starting up...")
    try:
        Base.metadata.create_all(bind=engine, checkfirst=True)
        logger.info("Database tables created successfully")
    except Exception as e:
        # Ignore "already exists" errors from race conditions between workers
        error_msg = str(e)
        if "already exists" in error_msg or "duplicate key" in error_msg:
            logger.info("Database tables already exist (created by another worker)")
        else:
            logger.error(f"Failed to create database tables: {e}")

    yield
    logger.info("Application shutting down...")


app = FastAPI(title="Gigbook API", version="1.0.0", lifespan=lifespan)


def is_api_v1(request: Request) -> bool:
    return request.url.path.startswith(API_V1_PREFIX)


def field_errors(exc: RequestValidationError) -> dict:
    """Group pydantic errors by field name: {"amount": ["Input should be ..."]}"""
    errors: dict = {}
    for error in exc.errors():
        loc = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
        field = ".".join(loc) or "_"
        errors.setdefault(field, []).append(error.get("msg", "Invalid value"))
    return errors


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    content = {"error": exc.detail}
    # Rate limit responses keep the plain shape on every surface
    if is_api_v1(request) and exc.status_code != 429:
        content = {"success": False, "error": exc.detail}
    return JSONResponse(status_code=exc.status_code, content=content, headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.warning(f"Validation error for {request.url.path}: {exc.errors()}")
    if is_api_v1(request):
        return JSONResponse(
            status_code=400,
            content={"success": False, "error": "Validation failed", "fieldErrors": field_errors(exc)},
        )
    return JSONResponse(
        status_code=422,
        content={"error": "Validation failed", "fieldErrors": field_errors(exc)},
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error(f"❌ {request.method} {request.url.path} - Unhandled error: {exc}", exc_info=exc)
    if is_api_v1(request):
        return JSONResponse(status_code=500, content={"success": False, "error": "Internal server error"})
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


app.add_middleware(SecurityHeadersMiddleware, exclude_paths=["/health", "/docs", "/openapi.json"])
if not IS_PRODUCTION:
    logger.info("Running outside production - HSTS header disabled")

logger.info(f"CORS allowed origins: {ALLOWED_ORIGINS}")

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
    allow_headers=["*"],
)

# Dashboard (session authenticated)
app.include_router(clients_router)
app.include_router(gigs_router)
app.include_router(expenses_router)
app.include_router(invoices_router)
app.include_router(contracts_router)
app.include_router(imports_router)
app.include_router(calendar_router)
app.include_router(dropbox_router)
app.include_router(billing_router)

# Public API (API key authenticated)
app.include_router(api_v1_router)


@app.get("/")
def root():
    return {"message": "Gigbook API is running"}


@app.get("/health")
def health():
    return {"status": "healthy"}
