"""Filelink Backend Application.

Main entry point for the filelink service: it accepts file uploads, records
them transactionally in a relational database (DuckDB), and moves each file
to the location its naming template resolves to.

Modules:
    - store: relational store contract and DuckDB implementation
    - uploads: validation, two-phase row write, file move, orphan sweep
    - config: YAML settings
"""
import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI

from filelink.config import get_config
from filelink.store import DuckDBStore
from filelink.uploads.router import router as upload_router
from filelink.uploads.service import UploadService, build_field, set_upload_service

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup/shutdown events."""
    # Startup
    config = get_config()

    # Apply configured log level to the root logger so that
    # `logging.level: "debug"` in filelink.settings.yaml shows SQL statements.
    configured_level = getattr(logging, config.logging.level.upper(), None)
    if configured_level is not None:
        logging.getLogger().setLevel(configured_level)
        logger.info("Root logger level set to %s", config.logging.level.upper())

    Path(config.uploads.staging_dir).mkdir(parents=True, exist_ok=True)

    store = DuckDBStore.get_instance(config.database.path)
    service = UploadService(store, document_root=config.uploads.document_root)
    for field_settings in config.uploads.fields:
        service.register(build_field(field_settings))
    set_upload_service(service)

    logger.info(
        f"Upload service ready: {len(service.field_names)} fields, "
        f"staging in {config.uploads.staging_dir}"
    )

    yield  # Application runs here

    # Shutdown
    set_upload_service(None)
    DuckDBStore.reset_instance()
    logger.info("Application shutdown complete")


# Create FastAPI application with metadata
app = FastAPI(
    title="Filelink API",
    description="File uploads recorded in a relational database",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(upload_router)


@app.get("/health")
async def health() -> dict:
    """Health check endpoint.

    Returns:
        dict: Status object indicating the server is running.
    """
    return {"status": "ok"}
