from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import logging
import os

from listingsync.api import health, listings, runs, sources
from listingsync.api import settings as settings_api
from listingsync.config import get_settings
from listingsync.database import SessionLocal, engine, Base, ensure_sqlite_columns
from listingsync.models import SourceConfig, Listing, IngestionRun, ReconciliationRun, RunLease, AppSetting
from listingsync.services.presets import seed_default_sources

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


def _ensure_sqlite_dir():
    database = engine.url.database
    if not database or database == ":memory:":
        return
    directory = os.path.dirname(database)
    if directory:
        os.makedirs(directory, exist_ok=True)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting listingsync")

    if settings.database_url.startswith("sqlite"):
        logger.info("SQLite detected - creating tables if needed")
        _ensure_sqlite_dir()
        Base.metadata.create_all(bind=engine)
        ensure_sqlite_columns()

    if settings.seed_default_sources:
        db = SessionLocal()
        try:
            seed_default_sources(db)
        except Exception as e:
            logger.error(f"Seeding default sources failed: {e}")
        finally:
            db.close()

    yield

    logger.info("Shutting down listingsync")


app = FastAPI(
    title="listingsync",
    description="Marketplace listing ingestion and reconciliation",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
    allow_headers=["*"],
)

app.include_router(health.router, tags=["health"])
app.include_router(sources.router, prefix="/api/sources", tags=["sources"])
app.include_router(listings.router, prefix="/api/sources", tags=["listings"])
app.include_router(runs.router, prefix="/api/sources", tags=["runs"])
app.include_router(settings_api.router, prefix="/api/settings", tags=["settings"])


@app.get("/ping")
async def ping():
    """Simple ping endpoint for health checks."""
    return {"status": "ok"}
