"""
Visitflow Scheduling API
Main application file
"""

from datetime import datetime, timezone
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging
import uvicorn

from visitflow.core.config import settings
from visitflow.core.database import engine, Base, check_database_connection
from visitflow.core.errors import VisitflowError, domain_error_to_http
from visitflow.core.init_db import seed_initial_data
from visitflow.routers import (
    alert_escalations,
    approvals,
    capacity,
    invitations,
    locations,
    time_slots,
    users,
)

# ============================================================================
# Logging Configuration
# ============================================================================

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper()),
    format=settings.log_format
)
logger = logging.getLogger(__name__)

# ============================================================================
# FastAPI Application
# ============================================================================

docs_url = "/docs" if not settings.is_production else None
redoc_url = "/redoc" if not settings.is_production else None

app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Facility visit scheduling: capacity and time-slot reservation with an invitation approval lifecycle",
    contact={
        "name": "API Support",
        "email": "support@visitflow.io",
    },
    license_info={
        "name": "Proprietary",
    },
    docs_url=docs_url,
    redoc_url=redoc_url,
)

# ============================================================================
# CORS Configuration
# ============================================================================

if settings.API_CORS_ORIGINS and settings.API_CORS_ORIGINS.strip() == "*":
    # Allow all origins (credentials must be False)
    origins = ["*"]
    allow_credentials = False
else:
    origins = list(settings.cors_origins)
    if settings.API_CORS_ORIGINS:
        origins.extend(o.strip() for o in settings.API_CORS_ORIGINS.split(",") if o.strip())
    allow_credentials = True

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=allow_credentials,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["*"],
)

# ============================================================================
# Domain Error Handling
# ============================================================================

@app.exception_handler(VisitflowError)
async def visitflow_error_handler(request: Request, exc: VisitflowError):
    """Translate domain errors through the shared rule table."""
    http_exc = domain_error_to_http(exc)
    logger.info(f"{request.method} {request.url.path} -> {http_exc.status_code}")
    return JSONResponse(status_code=http_exc.status_code, content={"detail": http_exc.detail})

# ============================================================================
# Root & Health Endpoints
# ============================================================================

@app.get("/", tags=["Root"])
def root():
    """Root endpoint - API information"""
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "status": "running",
        "documentation": docs_url,
        "endpoints": {
            "health": "/health",
            "users": "/api/users",
            "locations": "/api/locations",
            "time_slots": "/api/time-slots",
            "capacity": "/api/capacity",
            "invitations": "/api/invitations",
            "alert_escalations": "/api/alert-escalations",
        }
    }


@app.get("/health", tags=["Health"])
def health_check():
    """Health check endpoint for API monitoring"""
    database_ok = check_database_connection()
    return {
        "status": "ok" if database_ok else "degraded",
        "database": "ok" if database_ok else "unreachable",
        "version": settings.app_version,
        "environment": settings.ENVIRONMENT,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@app.get("/api/health", tags=["Health"])
def api_health():
    """Health check endpoint (alternative path)"""
    return health_check()

# ============================================================================
# Event Handlers
# ============================================================================

@app.on_event("startup")
async def startup_event():
    """Actions to perform on application startup"""
    logger.info("=" * 60)
    logger.info(f"Starting {settings.app_name}")
    logger.info("=" * 60)
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Database: {'sqlite' if settings.is_sqlite else f'{settings.DB_HOST}:{settings.DB_PORT}/{settings.DB_NAME}'}")
    logger.info(f"Capacity warning threshold: {settings.capacity_warning_threshold}%")
    logger.info(f"JWT Expiration: {settings.JWT_EXPIRATION_HOURS} hours")
    logger.info("=" * 60)

    try:
        logger.info("Ensuring database tables exist...")
        Base.metadata.create_all(bind=engine)
        logger.info("Database tables ready")
        if settings.seed_database:
            seed_initial_data()
    except Exception as e:
        logger.error(f"Database initialization failed: {e}")
        logger.warning("Application will continue, but database operations may fail")


@app.on_event("shutdown")
async def shutdown_event():
    """Actions to perform on application shutdown"""
    logger.info("=" * 60)
    logger.info(f"Shutting down {settings.app_name}")
    logger.info("=" * 60)

# ============================================================================
# Router Registration
# ============================================================================

logger.info("Registering API routers...")
app.include_router(users.router)  # Authentication and staff users
app.include_router(locations.router)  # Locations and occupancy ceilings
app.include_router(time_slots.router)  # Time slot templates and bookings
app.include_router(capacity.router)  # Capacity checks and occupancy
app.include_router(invitations.router)  # Invitation lifecycle
app.include_router(approvals.router)  # Approval steps
app.include_router(alert_escalations.router)  # Escalation rules
logger.info("All routers registered successfully")

if __name__ == "__main__":
    uvicorn.run(
        "visitflow.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.is_development,
        log_level=settings.LOG_LEVEL.lower()
    )
