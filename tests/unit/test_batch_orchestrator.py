"""
Tests del BatchOrchestrator: paginación, cursores, fallas de página y cancelación.
"""
import asyncio
from datetime import datetime, timezone

import pytest

from conftest import (
    T0,
    FakeClock,
    FakeFeed,
    FakePersistence,
    InMemoryCursorStore,
    make_properties,
    media_config,
    property_config,
)
from listing_sync.infrastructure.external.reso_sync.batch_orchestrator import (
    BatchOrchestrator,
    max_cursor_position,
)
from listing_sync.infrastructure.external.reso_sync.field_mapper import FieldMapper
from listing_sync.infrastructure.external.reso_sync.referential_filter import ReferentialFilter
from listing_sync.infrastructure.external.reso_sync.schema_filter import SchemaCacheState, SchemaFilter
from listing_sync.infrastructure.external.reso_sync.sync_state import SyncStateTracker
from listing_sync.infrastructure.external.reso_sync.types import SyncCursor
from listing_sync.shared.constants.sync_constants import ErrorStage, OrchestratorState, SyncMode


PROPERTY_COLUMNS = {"ListingKey", "City", "ListPrice", "ModificationTimestamp", "UpdatedAt"}
MEDIA_COLUMNS = {"MediaKey", "ResourceRecordKey", "MediaURL", "MediaModificationTimestamp", "UpdatedAt"}


def _orchestrator(feed, persistence, store, clock=None):
    clock = clock or FakeClock()
    return BatchOrchestrator(
        feed=feed,
        persistence=persistence,
        mapper=FieldMapper(),
        schema_filter=SchemaFilter(persistence, SchemaCacheState(), clock=clock),
        referential_filter=ReferentialFilter(persistence),
        tracker=SyncStateTracker(store),
        max_consecutive_page_failures=3,
        clock=clock,
    )


@pytest.fixture
def persistence():
    return FakePersistence(columns={"Property": PROPERTY_COLUMNS, "Media": MEDIA_COLUMNS})


# ============================================================================
# Paginación y cursor
# ============================================================================


@pytest.mark.asyncio
async def test_full_page_then_short_page_advances_cursor_twice(persistence):
    records = make_properties(1400)
    feed = FakeFeed({"Property": records})
    store = InMemoryCursorStore()
    orchestrator = _orchestrator(feed, persistence, store)

    result = await orchestrator.run_entity(property_config(batch_size=1000))

    assert len(feed.page_calls) == 2
    assert [c["skip"] for c in feed.page_calls] == [0, 1000]
    assert all(c["order_by"] == "ModificationTimestamp,ListingKey" for c in feed.page_calls)
    assert result.cursor_advances == 2
    assert result.successful == 1400
    assert result.failed == 0
    assert result.attempted == result.successful + result.failed

    last = records[-1]
    final = store.cursors["property"]
    assert final.last_key == last["ListingKey"]
    assert final.last_timestamp == datetime.fromisoformat(last["ModificationTimestamp"].replace("Z", "+00:00"))
    assert result.final_cursor == final
    assert orchestrator.state_of("property") == OrchestratorState.DONE


@pytest.mark.asyncio
async def test_incremental_filter_starts_strictly_after_cursor(persistence):
    feed = FakeFeed({"Property": make_properties(1, prefix="Y")})
    store = InMemoryCursorStore()
    store.cursors["property"] = SyncCursor("property", T0, "X00010")
    orchestrator = _orchestrator(feed, persistence, store)

    await orchestrator.run_entity(property_config(), mode=SyncMode.INCREMENTAL)

    page_filter = feed.page_calls[0]["filter"]
    assert "ModificationTimestamp gt 2025-03-01T12:00:00Z" in page_filter
    assert "ModificationTimestamp eq 2025-03-01T12:00:00Z and ListingKey gt 'X00010'" in page_filter
    assert feed.count_calls[0]["filter"] == page_filter


@pytest.mark.asyncio
async def test_full_mode_uses_only_static_filter(persistence):
    feed = FakeFeed({"Media": []})
    store = InMemoryCursorStore()
    store.cursors["media"] = SyncCursor("media", T0, "M1")
    orchestrator = _orchestrator(feed, persistence, store)

    await orchestrator.run_entity(
        media_config(feed_filter="MediaCategory eq 'Photo'"), mode=SyncMode.FULL
    )

    assert feed.count_calls[0]["filter"] == "MediaCategory eq 'Photo'"


@pytest.mark.asyncio
async def test_cursor_advances_even_when_records_fail(persistence):
    records = make_properties(3)
    records[1]["ListingKey"] = ""
    persistence.fail_tables.add("Property")
    feed = FakeFeed({"Property": records})
    store = InMemoryCursorStore()
    orchestrator = _orchestrator(feed, persistence, store)

    result = await orchestrator.run_entity(property_config())

    assert result.successful == 0
    assert result.failed == 3
    stages = sorted(e.stage.value for e in result.errors)
    assert stages == ["mapping", "persistence", "persistence"]
    assert store.cursors["property"].last_key == records[2]["ListingKey"]


@pytest.mark.asyncio
async def test_empty_feed_leaves_cursor_at_start(persistence):
    feed = FakeFeed({"Property": []})
    store = InMemoryCursorStore()
    orchestrator = _orchestrator(feed, persistence, store)

    result = await orchestrator.run_entity(property_config())

    assert result.cursor_advances == 0
    assert result.attempted == 0
    assert feed.page_calls == []


# ============================================================================
# Fallas de transporte
# ============================================================================


@pytest.mark.asyncio
async def test_failed_page_is_recorded_and_skipped(persistence):
    records = make_properties(2500)
    feed = FakeFeed({"Property": records})
    feed.fail_skips["Property"] = {1000}
    store = InMemoryCursorStore()
    orchestrator = _orchestrator(feed, persistence, store)

    result = await orchestrator.run_entity(property_config(batch_size=1000))

    assert [c["skip"] for c in feed.page_calls] == [0, 1000, 2000]
    assert result.pages_failed == 1
    assert result.pages_fetched == 2
    assert result.successful == 1500
    transport = [e for e in result.errors if e.stage == ErrorStage.TRANSPORT]
    assert len(transport) == 1
    assert transport[0].key is None
    assert store.cursors["property"].last_key == records[-1]["ListingKey"]


@pytest.mark.asyncio
async def test_unknown_total_stops_after_consecutive_failures(persistence):
    feed = FakeFeed({"Property": make_properties(10)})
    feed.count_error = True
    feed.fail_skips["Property"] = {0, 10, 20, 30, 40}
    orchestrator = _orchestrator(feed, persistence, InMemoryCursorStore())

    result = await orchestrator.run_entity(property_config(batch_size=10))

    assert result.total_available is None
    assert len(feed.page_calls) == 3
    assert result.pages_failed == 3


# ============================================================================
# Hijos y cancelación
# ============================================================================


@pytest.mark.asyncio
async def test_children_with_missing_parent_are_rejected(persistence):
    persistence.tables["Property"] = {"A": {"ListingKey": "A"}}
    feed = FakeFeed({
        "Media": [
            {"MediaKey": "M1", "ResourceRecordKey": "A", "MediaModificationTimestamp": "2025-03-01T12:00:00Z"},
            {"MediaKey": "M2", "ResourceRecordKey": "B", "MediaModificationTimestamp": "2025-03-01T12:00:01Z"},
        ]
    })
    orchestrator = _orchestrator(feed, persistence, InMemoryCursorStore())

    result = await orchestrator.run_entity(media_config())

    assert set(persistence.tables["Media"]) == {"M1"}
    assert result.successful == 1
    assert result.failed == 1
    assert result.errors[0].stage == ErrorStage.REFERENTIAL
    assert result.errors[0].key == "M2"


@pytest.mark.asyncio
async def test_cancellation_is_checked_between_pages(persistence):
    feed = FakeFeed({"Property": make_properties(30)})
    cancel_event = asyncio.Event()
    original_fetch = feed.fetch_page

    async def fetch_and_cancel(*args, **kwargs):
        page = await original_fetch(*args, **kwargs)
        cancel_event.set()
        return page

    feed.fetch_page = fetch_and_cancel
    store = InMemoryCursorStore()
    orchestrator = _orchestrator(feed, persistence, store)

    result = await orchestrator.run_entity(property_config(batch_size=10), cancel_event=cancel_event)

    assert result.cancelled is True
    assert len(feed.page_calls) == 1
    assert result.successful == 10
    assert store.cursors["property"].last_key == "X00009"


def test_max_cursor_position_ignores_records_without_timestamp():
    config = property_config()
    records = [
        {"ListingKey": "B", "ModificationTimestamp": "2025-03-01T12:00:00Z"},
        {"ListingKey": "A", "ModificationTimestamp": "2025-03-01T12:00:00Z"},
        {"ListingKey": "Z", "ModificationTimestamp": None},
    ]

    assert max_cursor_position(records, config) == (datetime(2025, 3, 1, 12, tzinfo=timezone.utc), "B")
