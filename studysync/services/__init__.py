# Services package
from studysync.services.data_service import DataService
from studysync.services.item_store import ItemStore
from studysync.services.sync_service import SyncService
from studysync.services.token_service import TokenManager

__all__ = [
    "DataService",
    "ItemStore",
    "SyncService",
    "TokenManager",
]
