from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
import time
import logging

from .api.v1.accounts import router as accounts_router
from .api.v1.scheduling import router as doctors_router, reservations_router
from .api.v1.sessions import router as sessions_router, users_router
from .core.config import settings
from .core.database import SessionLocal, init_db
from .core.errors import MediAssistError
from .services.session_broker import SessionBroker
from .services.credentials import DatabaseCredentialVerifier
from .services.token_store import SQLTokenStore

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.VERSION,
    description="Concurrent per-role sessions and race-free appointment slot reservation",
    openapi_url="/api/v1/openapi.json",
    docs_url="/docs",
    redoc_url="/redoc"
)

# Middleware setup
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Only add TrustedHostMiddleware in production, not in testing
if not settings.TESTING:
    app.add_middleware(
        TrustedHostMiddleware,
        allowed_hosts=settings.ALLOWED_HOSTS
    )

# Custom middleware for request logging and timing
@app.middleware("http")
async def add_process_time_header(request: Request, call_next):
    start_time = time.time()
    response = await call_next(request)
    process_time = time.time() - start_time
    response.headers["X-Process-Time"] = str(process_time)

    # Log request
    logger.info(
        f"{request.method} {request.url.path} - "
        f"Status: {response.status_code} - "
        f"Time: {process_time:.4f}s"
    )

    return response

# Exception handlers
@app.exception_handler(MediAssistError)
async def mediassist_error_handler(request: Request, exc: MediAssistError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())

@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    fields = [".".join(str(part) for part in error["loc"]) for error in exc.errors()]
    return JSONResponse(
        status_code=400,
        content={
            "error": "MalformedRequest",
            "message": "Request validation failed",
            "fields": fields,
        }
    )

@app.exception_handler(404)
async def not_found_handler(request: Request, exc: HTTPException):
    return JSONResponse(
        status_code=404,
        content={
            "error": "Not Found",
            "message": "The requested resource was not found",
            "path": str(request.url.path)
        }
    )

@app.exception_handler(500)
async def internal_error_handler(request: Request, exc: Exception):
    logger.error(f"Internal server error: {str(exc)}")
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal Server Error",
            "message": "An unexpected error occurred"
        }
    )

# Include routers
app.include_router(sessions_router, prefix="/api/v1")
app.include_router(users_router, prefix="/api/v1")
app.include_router(doctors_router, prefix="/api/v1")
app.include_router(reservations_router, prefix="/api/v1")
app.include_router(accounts_router, prefix="/api/v1")

# Startup and shutdown events
@app.on_event("startup")
async def startup_event():
    """Initialize application on startup."""
    logger.info(f"Starting {settings.APP_NAME}...")

    db_url = settings.get_database_url
    db_type = "PostgreSQL" if "postgresql" in db_url else "SQLite" if "sqlite" in db_url else "Unknown"
    logger.info(f"Using {db_type} database")

    # Initialize database
    try:
        init_db()
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize database: {str(e)}")
        raise

    # Drop session tokens that are past expiry and retention
    db = SessionLocal()
    try:
        SessionBroker(SQLTokenStore(db), DatabaseCredentialVerifier(SessionLocal)).purge_expired()
    finally:
        db.close()

    logger.info("Application startup complete")

@app.on_event("shutdown")
async def shutdown_event():
    """Cleanup on application shutdown."""
    logger.info(f"Shutting down {settings.APP_NAME}...")

# Health check endpoint
@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "timestamp": time.time(),
        "version": settings.VERSION
    }

# Root endpoint
@app.get("/")
async def root():
    """Root endpoint with API information."""
    return {
        "message": f"Welcome to {settings.APP_NAME} API",
        "version": settings.VERSION,
        "docs": "/docs",
        "redoc": "/redoc",
        "health": "/health"
    }

# API Info endpoint
@app.get("/api/v1/info")
async def api_info():
    """API information endpoint."""
    return {
        "name": settings.APP_NAME,
        "version": settings.VERSION,
        "endpoints": {
            "sessions": "/api/v1/sessions",
            "active_roles": "/api/v1/users/me/active-roles",
            "slots": "/api/v1/doctors/{doctor_id}/slots",
            "reservations": "/api/v1/doctors/{doctor_id}/reservations",
            "accounts": "/api/v1/accounts",
            "docs": "/docs",
            "openapi": "/api/v1/openapi.json"
        },
        "scheduling": {
            "work_day_start": settings.WORK_DAY_START,
            "work_day_end": settings.WORK_DAY_END,
            "slot_minutes": settings.SLOT_GRANULARITY_MINUTES
        }
    }

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "mediassist.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level="info"
    )
