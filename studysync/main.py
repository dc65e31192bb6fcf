from pathlib import Path
from contextlib import asynccontextmanager

from alembic import command
from alembic.config import Config
from fastapi import FastAPI

from studysync.api.routes import categorization, health, integrations, items, stats, sync
from studysync.core.config import settings
from studysync.core.logging import get_logger


log = get_logger("app")


def run_migrations() -> None:
    """Execute Alembic migrations programmatically on startup."""
    project_root = Path(__file__).resolve().parent.parent
    alembic_cfg = Config(str(project_root / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(project_root / "alembic"))
    alembic_cfg.set_main_option("sqlalchemy.url", settings.DATABASE_URL)
    log.info("Running Alembic migrations to head")
    command.upgrade(alembic_cfg, "head")
    log.info("Alembic migrations applied")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Log environment mode
    log.info(f"Starting application in {settings.ENV.upper()} mode")
    if settings.is_production:
        log.info("Production mode: Debug disabled, docs disabled, stricter logging")
    else:
        log.info("Development mode: Debug enabled, docs available")

    if not settings.google_configured:
        log.warning("GOOGLE_CLIENT_ID/GOOGLE_CLIENT_SECRET not set; Classroom and Gmail sync are unavailable")

    # Startup
    try:
        run_migrations()
    except Exception:
        log.exception("Failed to apply migrations on startup")
        raise

    yield

    log.info("Application shutdown complete")


# Configure FastAPI based on environment
app = FastAPI(
    title="StudySync",
    description="Aggregates Canvas, Google Classroom and Gmail deadlines into one categorized item store",
    version="1.0.0",
    lifespan=lifespan,
    # Disable docs in production for security
    docs_url="/docs" if settings.docs_enabled else None,
    redoc_url="/redoc" if settings.docs_enabled else None,
    openapi_url="/openapi.json" if settings.docs_enabled else None,
    # Debug mode only in development
    debug=settings.debug_enabled,
)


app.include_router(sync.router)
app.include_router(items.router)
app.include_router(categorization.router)
app.include_router(integrations.router)
app.include_router(health.router)
app.include_router(stats.router)
