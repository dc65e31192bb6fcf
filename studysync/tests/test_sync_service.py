"""Sync orchestrator tests: per-item isolation, audit rows and rule derivation"""

from datetime import datetime, timedelta, timezone

import httpx
import pytest
from sqlalchemy import select

from studysync.core.errors import NotConfiguredError, UpstreamUnavailableError
from studysync.ingestion.base import BaseSource, FetchResult
from studysync.models import CalendarItem, CategorizationRule, SyncLog
from studysync.schemas.normalized import ItemSource, MatchType, NormalizedItem
from studysync.services import token_service
from studysync.services.item_store import ItemStore
from studysync.services.sync_service import SyncService
from studysync.tests.helpers import USER_ID, html_response, mock_client


class StaticSource(BaseSource):
    """Adapter double returning a fixed fetch result."""

    name = ItemSource.CANVAS

    def __init__(self, result):
        super().__init__()
        self.result = result

    async def fetch(self):
        return self.result


def canvas_item(n, **overrides):
    fields = dict(
        title=f"Assignment {n}",
        source=ItemSource.CANVAS,
        source_id=f"assignment_{n}",
        due_date=datetime.now(timezone.utc) + timedelta(days=n),
    )
    fields.update(overrides)
    return NormalizedItem(**fields)


def service_with(db, result, monkeypatch):
    service = SyncService(db, http_client=mock_client(lambda request: httpx.Response(500)))

    async def build_source(user_id, source):
        return StaticSource(result)

    monkeypatch.setattr(service, "build_source", build_source)
    return service


def audit_rows(db):
    return db.execute(select(SyncLog).order_by(SyncLog.synced_at)).scalars().all()


@pytest.fixture(autouse=True)
def fresh_locks():
    token_service._refresh_locks.clear()
    yield
    token_service._refresh_locks.clear()


class TestPartialFailure:
    """Test that a bad item fails alone"""

    @pytest.mark.asyncio
    async def test_malformed_dates_fail_only_their_items(self, db, monkeypatch):
        items = [canvas_item(n) for n in range(10)]
        for n in (3, 7):
            bad = NormalizedItem.model_construct(**items[n].model_dump())
            bad.due_date = "sometime soon"
            items[n] = bad
        service = service_with(db, FetchResult(items=items, meta={"courses": 1}), monkeypatch)

        result = await service.run(USER_ID, "canvas")

        assert result.success is True
        assert result.items_synced == 8
        assert result.total_items == 10
        assert result.warnings == [
            "Failed to sync Assignment 3: Invalid due date: 'sometime soon'",
            "Failed to sync Assignment 7: Invalid due date: 'sometime soon'",
        ]

        [entry] = audit_rows(db)
        assert entry.status == "error"
        assert entry.items_synced == 8
        assert "Assignment 3" in entry.error_message
        assert entry.meta["courses"] == 1
        assert entry.meta["total_items"] == 10
        assert len(db.execute(select(CalendarItem)).scalars().all()) == 8

    @pytest.mark.asyncio
    async def test_clean_run_records_success(self, db, monkeypatch):
        service = service_with(db, FetchResult(items=[canvas_item(1), canvas_item(2)]), monkeypatch)

        result = await service.run(USER_ID, ItemSource.CANVAS)

        assert result.items_synced == 2
        assert result.warnings == []
        [entry] = audit_rows(db)
        assert entry.status == "success"
        assert entry.error_message is None

    @pytest.mark.asyncio
    async def test_resync_is_idempotent(self, db, monkeypatch):
        service = service_with(db, FetchResult(items=[canvas_item(1), canvas_item(2)]), monkeypatch)

        await service.run(USER_ID, "canvas")
        await service.run(USER_ID, "canvas")

        assert len(db.execute(select(CalendarItem)).scalars().all()) == 2
        assert len(audit_rows(db)) == 2


class TestFailureModes:
    """Test configuration and upstream failures"""

    @pytest.mark.asyncio
    async def test_not_configured_writes_no_audit_row(self, db):
        service = SyncService(db, http_client=mock_client(lambda request: httpx.Response(500)))

        with pytest.raises(NotConfiguredError):
            await service.run(USER_ID, "canvas")

        assert audit_rows(db) == []

    @pytest.mark.asyncio
    async def test_upstream_failure_writes_one_error_row(self, db, profile):
        service = SyncService(db, http_client=mock_client(lambda request: httpx.Response(503)))

        with pytest.raises(UpstreamUnavailableError) as excinfo:
            await service.run(USER_ID, "canvas_calendar")

        assert excinfo.value.status_code == 502
        [entry] = audit_rows(db)
        assert entry.source == "canvas_calendar"
        assert entry.status == "error"
        assert entry.items_synced == 0
        assert entry.meta == {"stage": "fetch"}

    @pytest.mark.asyncio
    async def test_non_json_primary_response_is_upstream_failure(self, db, profile):
        service = SyncService(db, http_client=mock_client(lambda request: html_response("<html>login</html>")))

        with pytest.raises(UpstreamUnavailableError):
            await service.run(USER_ID, "canvas")

        [entry] = audit_rows(db)
        assert entry.source == "canvas"
        assert entry.status == "error"
        assert entry.meta == {"stage": "fetch"}

    @pytest.mark.asyncio
    async def test_manual_is_not_a_sync_source(self, db):
        with pytest.raises(ValueError):
            await SyncService(db).run(USER_ID, "manual")

    @pytest.mark.asyncio
    async def test_unknown_source_is_rejected(self, db):
        with pytest.raises(ValueError):
            await SyncService(db).run(USER_ID, "blackboard")


class TestCategorization:
    """Test rule derivation and retroactive labelling"""

    @pytest.mark.asyncio
    async def test_context_rules_are_derived_and_applied(self, db, monkeypatch):
        result = FetchResult(
            items=[canvas_item(1, context_code="course_5"), canvas_item(2, title="Lab [BIO101]")],
            context_codes={"course_5": "Algebra II"},
            course_codes={"bio101": "Biology"},
        )
        service = service_with(db, result, monkeypatch)

        outcome = await service.run(USER_ID, "canvas")

        rule = db.execute(select(CategorizationRule)).scalar_one()
        assert rule.match_type == MatchType.CONTEXT_CODE.value
        assert rule.match_value == "course_5"
        assert rule.auto_generated is True
        assert outcome.meta["rules_derived"] == 1

        store = ItemStore(db)
        assert store.get_by_source_id(USER_ID, "canvas", "assignment_1").course_name == "Algebra II"
        lab = store.get_by_source_id(USER_ID, "canvas", "assignment_2")
        assert lab.course_name == "Biology"
        assert lab.title == "Lab"

    @pytest.mark.asyncio
    async def test_existing_unlabeled_items_are_labelled(self, db, monkeypatch):
        store = ItemStore(db)
        store.upsert(USER_ID, canvas_item(1, title="Reading log", source=ItemSource.GMAIL, source_id="m1"))
        store.upsert_rule(USER_ID, MatchType.TITLE_PREFIX, "reading", "English")
        service = service_with(db, FetchResult(), monkeypatch)

        outcome = await service.run(USER_ID, "canvas")

        assert outcome.meta["retro_labelled"] == 1
        assert store.get_by_source_id(USER_ID, "gmail", "m1").course_name == "English"


class TestRunAll:
    """Test per-source isolation across a full sync"""

    @pytest.mark.asyncio
    async def test_unconfigured_sources_are_skipped(self, db):
        service = SyncService(db, http_client=mock_client(lambda request: httpx.Response(500)))

        results = await service.run_all(USER_ID)

        assert set(results) == {"canvas", "canvas_calendar", "google_classroom", "gmail"}
        assert all(r.success is False and r.meta == {"skipped": True} for r in results.values())
        assert audit_rows(db) == []

    @pytest.mark.asyncio
    async def test_one_failing_source_does_not_stop_the_rest(self, db, profile, monkeypatch):
        service = SyncService(db, http_client=mock_client(lambda request: httpx.Response(500)))

        async def build_source(user_id, source):
            if source == ItemSource.GMAIL:
                return StaticSource(FetchResult(items=[canvas_item(1, source=ItemSource.GMAIL, source_id="m1")]))
            raise NotConfiguredError("not configured", source=source.value)

        monkeypatch.setattr(service, "build_source", build_source)

        results = await service.run_all(USER_ID)

        assert results["gmail"].success is True
        assert results["gmail"].items_synced == 1
        assert results["canvas"].meta == {"skipped": True}
