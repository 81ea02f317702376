"""FastAPI application entry point."""
import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.errors import PyMongoError

from timekeeper.config import settings
from timekeeper.database import database, get_database
from timekeeper.exceptions import PersistenceError, TimerConflictError
from timekeeper.routers import manual_time, projects, timers, work_items
from timekeeper.services.change_feed import ChangeFeedListener
from timekeeper.services.report_service import ReportService
from timekeeper.services.view_cache import ReportCache

logging.basicConfig(
    level=logging.DEBUG if settings.debug else settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - startup and shutdown events."""
    # Startup
    await database.connect()
    listener = None
    if settings.enable_change_feed:
        listener = ChangeFeedListener(database.db, cache=app.state.report_cache)
        listener.start()
    yield
    # Shutdown
    if listener:
        await listener.stop()
    await database.disconnect()


app = FastAPI(
    title="Timekeeper API",
    description="Time tracking and hierarchical progress aggregation",
    version="0.1.0",
    lifespan=lifespan,
)


async def load_report(project_id: str):
    return await ReportService(await get_database()).project_report(project_id)


# Shared by the report endpoints, the mutating routers and the change feed
app.state.report_cache = ReportCache(load_report)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(projects.router)
app.include_router(work_items.router)
app.include_router(timers.router)
app.include_router(manual_time.router)


@app.exception_handler(TimerConflictError)
async def timer_conflict_handler(request: Request, exc: TimerConflictError):
    return JSONResponse(status_code=status.HTTP_409_CONFLICT, content={"detail": str(exc)})


@app.exception_handler(PersistenceError)
@app.exception_handler(PyMongoError)
async def persistence_error_handler(request: Request, exc: Exception):
    logger.error("Persistence failure on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": "Storage unavailable, nothing was changed"},
    )


@app.get("/")
async def root():
    """Root endpoint - health check."""
    return {"status": "ok", "message": "Timekeeper API"}


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy"}


def run() -> None:
    """Serve the API with uvicorn."""
    uvicorn.run(
        "timekeeper.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug,
    )
