"""Item Store - idempotent persistence for items, rules and sync audit rows."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import case, delete, func, select, true, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from studysync.core.logging import get_logger
from studysync.models.items import CalendarItem
from studysync.models.rules import CategorizationRule
from studysync.models.sync_logs import SyncLog
from studysync.schemas.normalized import ItemSource, ItemStatus, MatchType, NormalizedItem

log = get_logger("item_store")

DATETIME_FIELDS = ("due_date", "start_time", "end_time", "completed_at")


class ItemStore:
    """Repository over the item, rule and sync-log tables.

    Sync writes go through :meth:`upsert`, which is a single
    ``INSERT ... ON CONFLICT DO UPDATE`` per item, committed on its own so one
    bad item never rolls back its siblings.
    """

    def __init__(self, db: Session):
        self.db = db

    def _insert(self, table):
        dialect = self.db.get_bind().dialect.name
        if dialect == "postgresql":
            return postgresql.insert(table)
        if dialect == "sqlite":
            return sqlite.insert(table)
        raise RuntimeError(f"Unsupported database dialect for upsert: {dialect}")

    # -------------------------------------------------------------------------
    # Items
    # -------------------------------------------------------------------------
    def upsert(self, user_id: str, item: NormalizedItem) -> CalendarItem:
        """Insert or update the row keyed by (user, source, source_id).

        ``status``/``completed_at`` are only written when the item carries a
        status, and are left alone if the stored row is status-locked.
        """
        row = self._row_from_item(user_id, item)

        stmt = self._insert(CalendarItem).values(row)
        set_: Dict[str, Any] = {
            "title": stmt.excluded.title,
            "description": stmt.excluded.description,
            "item_type": stmt.excluded.item_type,
            "due_date": stmt.excluded.due_date,
            "start_time": stmt.excluded.start_time,
            "end_time": stmt.excluded.end_time,
            "all_day": stmt.excluded.all_day,
            "source_url": stmt.excluded.source_url,
            # priority, notes, effort and steps belong to the user after insert
            # A sync that could not resolve a course never clears one
            "course_name": func.coalesce(stmt.excluded.course_name, CalendarItem.course_name),
            "updated_at": datetime.now(timezone.utc),
        }
        if item.status is not None:
            unlocked = CalendarItem.status_locked != true()
            set_["status"] = case((unlocked, stmt.excluded.status), else_=CalendarItem.status)
            set_["completed_at"] = case((unlocked, stmt.excluded.completed_at), else_=CalendarItem.completed_at)

        stmt = stmt.on_conflict_do_update(
            index_elements=[CalendarItem.user_id, CalendarItem.source, CalendarItem.source_id],
            set_=set_,
        )

        try:
            self.db.execute(stmt)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        return self.get_by_source_id(user_id, row["source"], row["source_id"])

    def _row_from_item(self, user_id: str, item: NormalizedItem) -> Dict[str, Any]:
        title = (item.title or "").strip()
        if not title:
            raise ValueError("Item has no title")
        if not item.source_id:
            raise ValueError(f"Item '{title}' has no source id")

        row: Dict[str, Any] = {
            "id": uuid.uuid4(),
            "user_id": user_id,
            "title": title,
            "description": item.description,
            "item_type": _enum_value(item.item_type),
            "due_date": _coerce_datetime(item.due_date, "due date"),
            "start_time": _coerce_datetime(item.start_time, "start time"),
            "end_time": _coerce_datetime(item.end_time, "end time"),
            "all_day": bool(item.all_day),
            "source": _enum_value(item.source),
            "source_id": item.source_id,
            "source_url": item.source_url,
            "course_name": item.course_name,
            "status": _enum_value(item.status) if item.status else ItemStatus.PENDING.value,
            "completed_at": _coerce_datetime(item.completed_at, "completion time"),
            "status_locked": False,
            "priority": _enum_value(item.priority),
            "effort_estimate": _enum_value(item.effort_estimate) if item.effort_estimate else None,
            "steps": [step.model_dump() for step in item.steps],
        }
        return row

    def get_by_source_id(self, user_id: str, source: str, source_id: str) -> Optional[CalendarItem]:
        stmt = (
            select(CalendarItem)
            .where(
                CalendarItem.user_id == user_id,
                CalendarItem.source == source,
                CalendarItem.source_id == source_id,
            )
            .execution_options(populate_existing=True)
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def get_item(self, user_id: str, item_id: uuid.UUID) -> Optional[CalendarItem]:
        item = self.db.get(CalendarItem, item_id)
        if item is None or item.user_id != user_id:
            return None
        return item

    def list_items(self, user_id: str, source: Optional[str] = None, limit: int = 100, offset: int = 0) -> List[CalendarItem]:
        stmt = select(CalendarItem).where(CalendarItem.user_id == user_id)
        if source:
            stmt = stmt.where(CalendarItem.source == source)
        stmt = stmt.order_by(CalendarItem.due_date.asc().nullslast()).limit(limit).offset(offset)
        return list(self.db.execute(stmt).scalars().all())

    def query_unlabeled(self, user_id: str) -> List[CalendarItem]:
        stmt = select(CalendarItem).where(
            CalendarItem.user_id == user_id,
            CalendarItem.course_name.is_(None),
        )
        return list(self.db.execute(stmt).scalars().all())

    def set_course_name(self, item_id: uuid.UUID, course_name: str) -> None:
        self.db.execute(
            update(CalendarItem)
            .where(CalendarItem.id == item_id, CalendarItem.course_name.is_(None))
            .values(course_name=course_name, updated_at=datetime.now(timezone.utc))
        )
        self.db.commit()

    def create_manual_item(self, user_id: str, fields: Dict[str, Any]) -> CalendarItem:
        """Create a user-authored item (source=manual, no external id)."""
        values = {key: _enum_value(value) for key, value in fields.items() if value is not None}
        values.pop("source", None)
        values.pop("source_id", None)
        if "steps" in values:
            values["steps"] = [_dump_step(step) for step in values["steps"]]
        for key in DATETIME_FIELDS:
            if key in values:
                values[key] = _coerce_datetime(values[key], key.replace("_", " "))
        item = CalendarItem(user_id=user_id, source=ItemSource.MANUAL.value, source_id=None, **values)
        if item.status == ItemStatus.COMPLETED.value and item.completed_at is None:
            item.completed_at = datetime.now(timezone.utc)
        self.db.add(item)
        self.db.commit()
        self.db.refresh(item)
        return item

    def update_item(self, user_id: str, item_id: uuid.UUID, changes: Dict[str, Any]) -> Optional[CalendarItem]:
        """Apply a direct user edit. Setting ``status`` locks it against sync."""
        item = self.get_item(user_id, item_id)
        if item is None:
            return None

        changes = {key: _enum_value(value) for key, value in changes.items()}
        changes.pop("source", None)
        changes.pop("source_id", None)
        changes.pop("status_locked", None)
        if "steps" in changes and changes["steps"] is not None:
            changes["steps"] = [_dump_step(step) for step in changes["steps"]]
        for key in DATETIME_FIELDS:
            if key in changes:
                changes[key] = _coerce_datetime(changes[key], key.replace("_", " "))

        if "status" in changes and changes["status"] is not None:
            item.status_locked = True
            if changes["status"] == ItemStatus.COMPLETED.value:
                changes.setdefault("completed_at", item.completed_at or datetime.now(timezone.utc))
            elif "completed_at" not in changes:
                changes["completed_at"] = None

        for key, value in changes.items():
            setattr(item, key, value)

        self.db.commit()
        self.db.refresh(item)
        return item

    def delete_item(self, user_id: str, item_id: uuid.UUID) -> bool:
        result = self.db.execute(
            delete(CalendarItem).where(CalendarItem.id == item_id, CalendarItem.user_id == user_id)
        )
        self.db.commit()
        return result.rowcount > 0

    # -------------------------------------------------------------------------
    # Categorization rules
    # -------------------------------------------------------------------------
    def list_rules(self, user_id: str) -> List[CategorizationRule]:
        """All rules of a user, most recently created first."""
        stmt = (
            select(CategorizationRule)
            .where(CategorizationRule.user_id == user_id)
            .order_by(CategorizationRule.created_at.desc(), CategorizationRule.id.desc())
        )
        return list(self.db.execute(stmt).scalars().all())

    def upsert_rule(
        self,
        user_id: str,
        match_type: MatchType | str,
        match_value: str,
        course_name: str,
        auto_generated: bool = False,
    ) -> CategorizationRule:
        """Create or update the rule keyed by (user, match type, match value)."""
        match_type = _enum_value(match_type)
        stmt = self._insert(CategorizationRule).values(
            id=uuid.uuid4(),
            user_id=user_id,
            match_type=match_type,
            match_value=match_value,
            course_name=course_name,
            auto_generated=auto_generated,
            created_at=datetime.now(timezone.utc),
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[CategorizationRule.user_id, CategorizationRule.match_type, CategorizationRule.match_value],
            set_={
                "course_name": stmt.excluded.course_name,
                "auto_generated": stmt.excluded.auto_generated,
                "updated_at": datetime.now(timezone.utc),
            },
        )
        try:
            self.db.execute(stmt)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        lookup = (
            select(CategorizationRule)
            .where(
                CategorizationRule.user_id == user_id,
                CategorizationRule.match_type == match_type,
                CategorizationRule.match_value == match_value,
            )
            .execution_options(populate_existing=True)
        )
        return self.db.execute(lookup).scalar_one()

    def delete_rule(self, user_id: str, rule_id: uuid.UUID) -> bool:
        result = self.db.execute(
            delete(CategorizationRule).where(CategorizationRule.id == rule_id, CategorizationRule.user_id == user_id)
        )
        self.db.commit()
        return result.rowcount > 0

    # -------------------------------------------------------------------------
    # Sync audit log
    # -------------------------------------------------------------------------
    def record_sync(
        self,
        user_id: str,
        source: str,
        items_synced: int,
        errors: List[str],
        meta: Optional[Dict[str, Any]] = None,
    ) -> SyncLog:
        entry = SyncLog(
            user_id=user_id,
            source=source,
            status="error" if errors else "success",
            error_message="; ".join(errors) if errors else None,
            items_synced=items_synced,
            meta=meta,
            synced_at=datetime.now(timezone.utc),
        )
        self.db.add(entry)
        self.db.commit()
        log.info(f"Recorded sync user={user_id} source={source} status={entry.status} items={items_synced}")
        return entry


def _enum_value(value: Any) -> Any:
    return getattr(value, "value", value)


def _dump_step(step: Any) -> Dict[str, Any]:
    return step.model_dump() if hasattr(step, "model_dump") else dict(step)


def _coerce_datetime(value: Any, label: str) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return _as_utc(value)
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError as exc:
            raise ValueError(f"Invalid {label}: {value!r}") from exc
        return _as_utc(parsed)
    raise ValueError(f"Invalid {label}: {value!r}")


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
