import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api import (
    auth,
    chat,
    company,
    dashboard,
    files,
    machines,
    manuals,
    search,
    tickets,
    users,
)
from app.core.config import settings
from app.core.database import check_database_health
from app.core.exceptions import FleetDeskError
from app.core.logging import configure_logging
from app.core.rate_limit import RateLimitMiddleware
from app.core.redis_client import check_redis_health
from app.services.manuals import InvalidManualFile

configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(
    title="FleetDesk API",
    description="Fleet maintenance support: machines, tickets, manuals and AI diagnostics",
    version="1.0.0",
)

# Rate limiting middleware
app.add_middleware(
    RateLimitMiddleware,
    requests_per_minute=settings.RATE_LIMIT_PER_MINUTE,
    requests_per_hour=settings.RATE_LIMIT_PER_HOUR,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(FleetDeskError)
async def fleetdesk_error_handler(request: Request, exc: FleetDeskError):
    logger.warning(f"{request.method} {request.url.path} failed: {exc.error_code} {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "error_code": exc.error_code},
    )


@app.exception_handler(InvalidManualFile)
async def invalid_manual_handler(request: Request, exc: InvalidManualFile):
    return JSONResponse(status_code=400, content={"detail": str(exc), "error_code": "INVALID_FILE"})


# Include routers
app.include_router(auth.router, prefix="/api/auth", tags=["Authentication"])
app.include_router(users.router, prefix="/api/users", tags=["Users"])
app.include_router(company.router, prefix="/api/company", tags=["Company"])
app.include_router(machines.router, prefix="/api/machines", tags=["Machines"])
app.include_router(tickets.router, prefix="/api/tickets", tags=["Tickets"])
app.include_router(manuals.router, prefix="/api/manuals", tags=["Manuals"])
app.include_router(search.router, prefix="/api/search", tags=["Search"])
app.include_router(chat.router, prefix="/api/chat", tags=["Chat"])
app.include_router(dashboard.router, prefix="/api/dashboard", tags=["Dashboard"])
app.include_router(files.router, prefix="/api/files", tags=["Files"])


@app.get("/")
async def root():
    return {"message": "FleetDesk API", "version": "1.0.0"}


@app.get("/health")
async def health_check():
    return {"status": "healthy"}


@app.get("/health/ready")
def readiness_check():
    """Database and Redis connectivity."""
    database = check_database_health()
    redis_status = check_redis_health()
    healthy = database["status"] == "healthy"
    return JSONResponse(
        status_code=200 if healthy else 503,
        content={
            "status": "healthy" if healthy else "unhealthy",
            "database": database,
            # Chat history degrades gracefully without Redis
            "redis": redis_status,
        },
    )
