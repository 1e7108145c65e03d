import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from backend.app.api import api_router
from backend.app.core.config import settings
from backend.app.core.database import RecordStore, create_database_engine, create_db_and_tables
from backend.app.core.error_handlers import ingestion_error_handler
from backend.app.core.errors import IngestionError
from backend.app.core.storage import BlobStore, create_s3_client
from backend.app.ingestion import build_pipeline

# Import all models to register them with SQLModel metadata
import backend.app.models  # noqa: F401

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting up Photo Events API...")

    engine = create_database_engine(settings.DATABASE_URL, echo=settings.DEBUG)
    if settings.AUTO_CREATE_TABLES:
        logger.info("Auto-creating database tables...")
        create_db_and_tables(engine)

    blob_store = BlobStore(
        create_s3_client(settings),
        prefix=settings.BLOB_NAMESPACE_PREFIX,
        region=settings.BLOB_REGION,
    )
    app.state.pipeline = build_pipeline(blob_store, RecordStore(engine), settings)

    yield

    logger.info("Shutting down Photo Events API...")
    app.state.pipeline = None
    blob_store.close()
    engine.dispose()


# --- App Initialization ---
app = FastAPI(
    title="Photo Events API",
    description="Stores uploaded photo batches and groups them into events",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS middleware for frontend development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(IngestionError, ingestion_error_handler)

# Include API routes
app.include_router(api_router)


@app.get("/")
async def root():
    """Root endpoint."""
    return {"message": "Photo Events API", "version": "1.0.0"}


@app.get("/health")
async def health_check():
    """Liveness check."""
    return {"status": "healthy", "ingestion": getattr(app.state, "pipeline", None) is not None}


if __name__ == "__main__":
    uvicorn.run("backend.main:app", host="0.0.0.0", port=8000, reload=settings.DEBUG)
