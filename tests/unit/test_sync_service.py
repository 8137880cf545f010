"""
Tests del SyncEngine: corridas, registro puntual, concurrencia y estado.
"""
import asyncio

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
from listing_sync.infrastructure.external.reso_sync.sync_config import (
    EngineConfig,
    EntitySyncConfig,
    ParentReference,
)
from listing_sync.infrastructure.external.reso_sync.sync_service import SyncEngine
from listing_sync.infrastructure.external.reso_sync.types import FieldMapping
from listing_sync.shared.constants.sync_constants import EntityType, FieldKind, SyncMode, SyncRunStatus
from listing_sync.shared.exceptions.domain import EntityNotFoundException
from listing_sync.shared.exceptions.sync import (
    CursorStoreError,
    SyncAlreadyRunningError,
    UnknownEntityError,
)


PROPERTY_COLUMNS = {"ListingKey", "City", "ListPrice", "ModificationTimestamp", "UpdatedAt", "CreatedAt"}
MEDIA_COLUMNS = {"MediaKey", "ResourceRecordKey", "MediaURL", "MediaModificationTimestamp", "UpdatedAt"}


class RecordingRunLog:
    def __init__(self):
        self.started = []
        self.finished = []

    async def record_started(self, run):
        self.started.append(run.run_id)

    async def record_finished(self, run):
        self.finished.append((run.run_id, run.status))


class BlockingFeed(FakeFeed):
    """Feed cuyo count queda bloqueado hasta liberar `release`."""

    def __init__(self, records=None):
        super().__init__(records)
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def count(self, entity, *, filter=None, feed_type=None):
        self.started.set()
        await self.release.wait()
        return await super().count(entity, filter=filter, feed_type=feed_type)


def _media(key, parent, second=0):
    return {
        "MediaKey": key,
        "ResourceRecordKey": parent,
        "MediaURL": f"https://cdn.example.com/{key}.jpg",
        "MediaModificationTimestamp": f"2025-03-01T12:00:{second:02d}Z",
    }


def _engine(feed, persistence=None, store=None, run_log=None):
    persistence = persistence or FakePersistence(
        columns={"Property": PROPERTY_COLUMNS, "Media": MEDIA_COLUMNS}
    )
    return SyncEngine(
        config=EngineConfig(entities=[media_config(), property_config()]),
        feed=feed,
        persistence=persistence,
        cursor_store=store or InMemoryCursorStore(),
        run_log=run_log,
        clock=FakeClock(),
    )


# ============================================================================
# Corridas
# ============================================================================


@pytest.mark.asyncio
async def test_incremental_run_processes_parents_before_children():
    feed = FakeFeed({
        "Property": make_properties(2),
        "Media": [_media("M1", "X00000"), _media("M2", "X00001", 1)],
    })
    persistence = FakePersistence(columns={"Property": PROPERTY_COLUMNS, "Media": MEDIA_COLUMNS})
    run_log = RecordingRunLog()
    engine = _engine(feed, persistence, run_log=run_log)

    run = await engine.run_incremental_sync()

    assert [c["entity"] for c in feed.count_calls] == ["Property", "Media"]
    assert list(run.entities) == ["property", "media"]
    assert run.status == SyncRunStatus.SUCCESS
    assert run.successful == 4
    assert set(persistence.tables["Media"]) == {"M1", "M2"}
    assert run_log.started == [run.run_id]
    assert run_log.finished == [(run.run_id, SyncRunStatus.SUCCESS)]
    assert engine.last_run is run


@pytest.mark.asyncio
async def test_run_with_record_failures_is_partial():
    feed = FakeFeed({"Property": make_properties(1), "Media": [_media("M1", "MISSING")]})
    engine = _engine(feed)

    run = await engine.run_full_sync()

    assert run.mode == SyncMode.FULL
    assert run.failed == 1
    assert run.status == SyncRunStatus.PARTIAL


@pytest.mark.asyncio
async def test_run_can_be_limited_to_some_entities():
    feed = FakeFeed({"Property": make_properties(1), "Media": [_media("M1", "X00000")]})
    engine = _engine(feed)

    run = await engine.run_incremental_sync(["media"])

    assert list(run.entities) == ["media"]
    assert [c["entity"] for c in feed.count_calls] == ["Media"]


@pytest.mark.asyncio
async def test_unknown_entity_is_rejected():
    engine = _engine(FakeFeed())

    with pytest.raises(UnknownEntityError):
        await engine.run_incremental_sync(["listings"])


@pytest.mark.asyncio
async def test_concurrent_run_is_rejected_and_cancel_stops_between_pages():
    feed = BlockingFeed({"Property": make_properties(5)})
    engine = _engine(feed)

    task = asyncio.create_task(engine.run_incremental_sync())
    await feed.started.wait()

    assert engine.is_running
    with pytest.raises(SyncAlreadyRunningError):
        await engine.run_full_sync()

    assert engine.cancel() is True
    feed.release.set()
    run = await task

    assert run.cancelled is True
    assert run.status == SyncRunStatus.CANCELLED
    assert feed.page_calls == []
    assert not engine.is_running


@pytest.mark.asyncio
async def test_cancel_without_running_sync_returns_false():
    assert _engine(FakeFeed()).cancel() is False


@pytest.mark.asyncio
async def test_cursor_store_failure_aborts_run():
    store = InMemoryCursorStore()
    store.fail_load = True
    run_log = RecordingRunLog()
    engine = _engine(FakeFeed({"Property": make_properties(1)}), store=store, run_log=run_log)

    with pytest.raises(CursorStoreError):
        await engine.run_incremental_sync()

    assert engine.last_run.status == SyncRunStatus.ERROR
    assert run_log.finished[0][1] == SyncRunStatus.ERROR
    assert not engine.is_running


# ============================================================================
# Registro puntual
# ============================================================================


@pytest.mark.asyncio
async def test_sync_one_persists_record_and_children_without_moving_cursors():
    feed = FakeFeed({"Media": [_media("M1", "X1"), _media("M2", "X1", 1)]})
    feed.singles[("Property", "X1")] = {
        "ListingKey": "X1",
        "City": "Ottawa",
        "ModificationTimestamp": "2025-03-01T12:00:00Z",
    }
    persistence = FakePersistence(columns={"Property": PROPERTY_COLUMNS, "Media": MEDIA_COLUMNS})
    store = InMemoryCursorStore()
    engine = _engine(feed, persistence, store=store)

    result = await engine.sync_one("property", "X1")

    assert result.persisted is True
    assert result.record["City"] == "Ottawa"
    assert persistence.tables["Property"]["X1"]["City"] == "Ottawa"
    assert result.child_results["media"].successful == 2
    assert "ResourceRecordKey eq 'X1'" in feed.page_calls[0]["filter"]
    assert store.saves == []


@pytest.mark.asyncio
async def test_sync_one_reuses_fetched_rooms_for_room_children():
    room_config = EntitySyncConfig(
        entity_type=EntityType.ROOM,
        resource="PropertyRooms",
        table="PropertyRooms",
        key_field="RoomKey",
        timestamp_field="ModificationTimestamp",
        field_mappings=[
            FieldMapping("RoomKey"),
            FieldMapping("ListingKey"),
            FieldMapping("RoomType"),
            FieldMapping("Order", kind=FieldKind.INTEGER),
            FieldMapping("ModificationTimestamp", kind=FieldKind.TIMESTAMP),
        ],
        parent=ParentReference(field="ListingKey", table="Property", column="ListingKey"),
    )
    feed = FakeFeed({"PropertyRooms": [
        {"RoomKey": "R1", "ListingKey": "X1", "RoomType": "Kitchen", "Order": 1,
         "ModificationTimestamp": "2025-03-01T12:00:00Z"},
    ]})
    feed.singles[("Property", "X1")] = {"ListingKey": "X1", "ModificationTimestamp": "2025-03-01T12:00:00Z"}
    persistence = FakePersistence(columns={
        "Property": PROPERTY_COLUMNS | {"RoomType"},
        "PropertyRooms": {"RoomKey", "ListingKey", "RoomType", "Order", "ModificationTimestamp", "UpdatedAt"},
    })
    engine = SyncEngine(
        config=EngineConfig(entities=[property_config(room_summary=True), room_config]),
        feed=feed,
        persistence=persistence,
        cursor_store=InMemoryCursorStore(),
        clock=FakeClock(),
    )

    result = await engine.sync_one("property", "X1")

    assert [c["entity"] for c in feed.page_calls] == ["PropertyRooms"]
    assert result.record["RoomType"] == "Kitchen"
    assert result.child_results["room"].successful == 1
    assert persistence.tables["PropertyRooms"]["R1"]["ListingKey"] == "X1"

@pytest.mark.asyncio
async def test_sync_one_missing_record_raises_not_found():
    engine = _engine(FakeFeed())

    with pytest.raises(EntityNotFoundException):
        await engine.sync_one("property", "NOPE")


@pytest.mark.asyncio
async def test_sync_one_unknown_entity():
    engine = _engine(FakeFeed())

    with pytest.raises(UnknownEntityError):
        await engine.sync_one("agent", "A1")


# ============================================================================
# Estado
# ============================================================================


@pytest.mark.asyncio
async def test_status_reports_cursors_breakers_and_last_run():
    feed = FakeFeed({"Property": make_properties(3), "Media": []})
    store = InMemoryCursorStore()
    engine = _engine(feed, store=store)
    await engine.run_incremental_sync(["property"])
    saves_before = len(store.saves)

    status = await engine.get_status()

    assert status["running"] is False
    assert status["cursors"]["property"]["last_key"] == "X00002"
    assert status["cursors"]["media"] is None
    assert "media" not in store.cursors
    assert len(store.saves) == saves_before
    assert status["orchestrator_states"]["property"] == "done"
    assert status["orchestrator_states"]["media"] == "idle"
    assert status["last_run"]["status"] == "success"
    assert "Property" in status["circuit_breakers"]["tables"]


@pytest.mark.asyncio
async def test_reset_cursor_and_breakers():
    store = InMemoryCursorStore()
    engine = _engine(FakeFeed({"Property": make_properties(2)}), store=store)
    await engine.run_incremental_sync(["property"])
    assert store.cursors["property"].last_timestamp > T0

    cursor = await engine.reset_cursor("property")
    stats = engine.reset_circuit_breaker()

    assert cursor.last_key == ""
    assert store.cursors["property"].last_key == ""
    assert stats["cached_tables"] == 0


@pytest.mark.asyncio
async def test_close_releases_feed_client():
    feed = FakeFeed()
    engine = _engine(feed)

    await engine.close()

    assert feed.closed is True
