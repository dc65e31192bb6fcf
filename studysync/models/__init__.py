from studysync.models.base import Base
from studysync.models.items import CalendarItem
from studysync.models.profile import UserProfile
from studysync.models.rules import CategorizationRule
from studysync.models.sync_logs import SyncLog

__all__ = [
    "Base",
    "CalendarItem",
    "CategorizationRule",
    "SyncLog",
    "UserProfile",
]
