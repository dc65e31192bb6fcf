"""Sync orchestrator: fetch -> categorize -> idempotent persist -> audit, per source."""

from __future__ import annotations

from collections import Counter
from typing import Any, Dict, List, Mapping, Optional

import httpx
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from studysync.core.errors import NotConfiguredError, SourceFetchError, SyncError, UpstreamUnavailableError
from studysync.core.logging import get_logger
from studysync.ingestion.base import BaseSource
from studysync.ingestion.canvas_feed_source import CanvasFeedSource
from studysync.ingestion.canvas_source import CanvasSource
from studysync.ingestion.classroom_source import ClassroomSource
from studysync.ingestion.gmail_source import GmailSource
from studysync.models.profile import UserProfile
from studysync.models.rules import CategorizationRule
from studysync.schemas.api import SyncResult
from studysync.schemas.normalized import SYNC_SOURCES, ItemSource, MatchType
from studysync.services.categorization import apply_rules, enrich_item
from studysync.services.item_store import ItemStore
from studysync.services.token_service import TokenManager

log = get_logger("sync_service")


class SyncService:
    """Runs one sync per (user, source).

    Responsibilities:
    - Resolve credentials and build the source adapter
    - Derive context-code rules from provider course listings
    - Enrich each item with a course label and upsert it on its own
    - Label previously stored items the new rules now cover
    - Write exactly one audit row per run that reached the provider
    """

    def __init__(
        self,
        db: Session,
        http_client: Optional[httpx.AsyncClient] = None,
        token_manager: Optional[TokenManager] = None,
    ):
        self.db = db
        self.http_client = http_client
        self.store = ItemStore(db)
        self.tokens = token_manager or TokenManager(db, http_client)

    async def run(self, user_id: str, source: ItemSource | str) -> SyncResult:
        """Run a sync for a single source.

        Raises :class:`NotConfiguredError` / :class:`ReconnectRequiredError`
        before anything is fetched (no audit row), and
        :class:`UpstreamUnavailableError` after logging an error audit row when
        the provider's primary collection call fails.
        """
        source = ItemSource(source)
        adapter = await self.build_source(user_id, source)
        log.info(f"Starting sync user={user_id} source={source.value}")

        try:
            fetched = await adapter.fetch()
        except (SourceFetchError, httpx.HTTPError, ValueError) as exc:
            message = f"Failed to fetch from {source.value}: {exc}"
            self.store.record_sync(user_id, source.value, 0, [message], meta={"stage": "fetch"})
            log.error(f"Sync failed for user={user_id} source={source.value}: {exc}")
            raise UpstreamUnavailableError(message, source=source.value) from exc

        rules_derived = self._derive_context_rules(user_id, fetched.context_codes)
        rules = self.store.list_rules(user_id)

        synced = 0
        warnings: List[str] = []
        steps: Counter = Counter()
        for item in fetched.items:
            enriched, step = enrich_item(item, rules, fetched.course_codes)
            try:
                self.store.upsert(user_id, enriched)
            except (ValueError, SQLAlchemyError) as exc:
                warnings.append(f"Failed to sync {item.title}: {exc}")
                log.warning(f"Failed to upsert {item.source_id} for user={user_id}: {exc}")
                continue
            synced += 1
            if step:
                steps[step] += 1

        retro_labelled = self._label_unlabeled(user_id, rules)

        meta: Dict[str, Any] = {
            **fetched.meta,
            "total_items": len(fetched.items),
            "rules_derived": rules_derived,
            "retro_labelled": retro_labelled,
            "enrichment": dict(steps),
        }
        self.store.record_sync(user_id, source.value, synced, warnings, meta=meta)

        log.info(
            f"Sync finished user={user_id} source={source.value} "
            f"synced={synced}/{len(fetched.items)} warnings={len(warnings)}"
        )
        return SyncResult(
            success=True,
            source=source.value,
            items_synced=synced,
            total_items=len(fetched.items),
            warnings=warnings,
            meta=meta,
        )

    async def run_all(self, user_id: str) -> Dict[str, SyncResult]:
        """Run every sync source independently; one failing never stops the rest."""
        results: Dict[str, SyncResult] = {}
        for source in SYNC_SOURCES:
            try:
                results[source.value] = await self.run(user_id, source)
            except NotConfiguredError as exc:
                log.info(f"Skipping {source.value} for user={user_id}: not configured")
                results[source.value] = SyncResult(
                    success=False, source=source.value, error=exc.message, meta={"skipped": True}
                )
            except SyncError as exc:
                log.error(f"Sync failed for {source.value}: {exc.message}")
                results[source.value] = SyncResult(success=False, source=source.value, error=exc.message)
            except Exception as exc:  # noqa: BLE001
                log.error(f"Unexpected failure syncing {source.value} for user={user_id}: {exc}")
                results[source.value] = SyncResult(success=False, source=source.value, error=str(exc))
        return results

    # -------------------------------------------------------------------------
    # Adapters
    # -------------------------------------------------------------------------
    async def build_source(self, user_id: str, source: ItemSource) -> BaseSource:
        profile = self.db.get(UserProfile, user_id)

        if source == ItemSource.CANVAS:
            if profile is None or not profile.canvas_api_configured:
                raise NotConfiguredError(
                    "Canvas not configured. Please add your Canvas token in settings.", source=source.value
                )
            return CanvasSource(profile.canvas_base_url, profile.canvas_token, http_client=self.http_client)

        if source == ItemSource.CANVAS_CALENDAR:
            if profile is None or not profile.canvas_calendar_url:
                raise NotConfiguredError(
                    "Canvas calendar feed not configured. Please add your calendar feed URL in settings.",
                    source=source.value,
                )
            return CanvasFeedSource(profile.canvas_calendar_url, http_client=self.http_client)

        if source == ItemSource.GOOGLE_CLASSROOM:
            token = await self.tokens.acquire_access_token(user_id)
            return ClassroomSource(token, user_timezone=profile.timezone if profile else "UTC", http_client=self.http_client)

        if source == ItemSource.GMAIL:
            token = await self.tokens.acquire_access_token(user_id)
            return GmailSource(token, http_client=self.http_client)

        raise ValueError(f"Unsupported sync source: {source.value}")

    # -------------------------------------------------------------------------
    # Categorization
    # -------------------------------------------------------------------------
    def _derive_context_rules(self, user_id: str, context_codes: Mapping[str, str]) -> int:
        """Upsert one auto-generated context-code rule per provider course."""
        derived = 0
        for code, course_name in context_codes.items():
            if not course_name:
                continue
            try:
                self.store.upsert_rule(user_id, MatchType.CONTEXT_CODE, code, course_name, auto_generated=True)
            except SQLAlchemyError as exc:
                log.warning(f"Failed to upsert context rule {code} for user={user_id}: {exc}")
                continue
            derived += 1
        return derived

    def _label_unlabeled(self, user_id: str, rules: List[CategorizationRule]) -> int:
        """Apply rules to stored items that still have no course."""
        if not rules:
            return 0

        labelled = 0
        for row in self.store.query_unlabeled(user_id):
            course_name = apply_rules(row, rules)
            if course_name:
                self.store.set_course_name(row.id, course_name)
                labelled += 1

        if labelled:
            log.info(f"Retroactively labelled {labelled} items for user={user_id}")
        return labelled
