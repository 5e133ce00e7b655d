"""FastAPI application entry point."""

import logging
import os

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import inspect

from wadi.config import settings
from wadi.errors import DimensionMismatchError, WadiError
from wadi.routes import credits, memory, projects, runs, ws

# Configure logging
logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title="WADI",
    description="Credit-gated streaming generation service",
    version="0.1.0",
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(projects.router)
app.include_router(runs.router)
app.include_router(credits.router)
app.include_router(memory.router)
app.include_router(ws.router)


@app.exception_handler(WadiError)
async def wadi_error_handler(request: Request, exc: WadiError):
    if isinstance(exc, DimensionMismatchError):
        logger.error(f"{request.method} {request.url.path}: {exc.message}")
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": "Internal server error", "code": exc.code},
        )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
    return JSONResponse(status_code=400, content={"error": message, "code": "INVALID_INPUT"})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=exc)
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error", "code": "INTERNAL_ERROR"},
    )


@app.on_event("startup")
async def startup_event():
    """Make sure the schema exists before serving requests."""
    from wadi.database import Base, engine
    import wadi.models  # noqa: F401

    logger.info("Starting application...")

    if settings.DATABASE_URL.startswith("sqlite"):
        Base.metadata.create_all(bind=engine)
        logger.info("SQLite schema ready")
        return

    if inspect(engine).has_table("runs"):
        logger.info("Database tables already exist, skipping migrations")
        return

    # Run database migrations
    logger.info("Running database migrations...")
    from alembic import command
    from alembic.config import Config

    alembic_cfg = Config(os.path.join(os.path.dirname(os.path.dirname(__file__)), "alembic.ini"))
    command.upgrade(alembic_cfg, "head")
    logger.info("Database migrations completed successfully")


@app.get("/health")
def health():
    """Health check endpoint."""
    return {"status": "healthy"}
