from studysync.api.routes.categorization import router as categorization_router
from studysync.api.routes.health import router as health_router
from studysync.api.routes.integrations import router as integrations_router
from studysync.api.routes.items import router as items_router
from studysync.api.routes.stats import router as stats_router
from studysync.api.routes.sync import router as sync_router

__all__ = [
    "categorization_router",
    "health_router",
    "integrations_router",
    "items_router",
    "stats_router",
    "sync_router",
]
