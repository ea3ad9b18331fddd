"""EventDesk web application."""
import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from eventdesk.core.config import settings
from eventdesk.core.database import create_db_and_tables
from eventdesk.core.errors import EventDeskError
from eventdesk.core.scheduler import shutdown_scheduler, start_scheduler
from eventdesk.routes import (
    attendees,
    dashboard,
    events,
    invitations,
    live,
    notifications,
    registrations,
)

# Configure logging
log_dir = Path.home() / ".logs" / "eventdesk"
log_dir.mkdir(parents=True, exist_ok=True)
log_file = log_dir / "latest.log"

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    filename=str(log_file),
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown lifecycle."""
    # Startup
    logger.info("Starting EventDesk")
    create_db_and_tables()
    start_scheduler()
    yield
    # Shutdown
    shutdown_scheduler()
    logger.info("EventDesk shut down")


app = FastAPI(
    title=settings.app_name,
    description="Events, attendee lists, email invitations, check-ins and live reports",
    version="0.1.0",
    lifespan=lifespan,
)

# Configure CORS for the browser client
origins = (
    ["*"]
    if settings.allowed_origins == "*"
    else [o.strip() for o in settings.allowed_origins.split(",")]
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(EventDeskError)
async def eventdesk_error_handler(request: Request, exc: EventDeskError):
    """Turn service errors into a message the client can show the user."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.error_code, "message": exc.message, **exc.details},
    )


# Include routers
app.include_router(events.router)
app.include_router(attendees.router)
app.include_router(invitations.router)
app.include_router(registrations.router)
app.include_router(dashboard.router)
app.include_router(notifications.router)
app.include_router(live.router)


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy", "app": settings.app_name}
