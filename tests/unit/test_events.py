"""
Tests del job agendado y del arranque del scheduler.
"""
import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock, patch

import pytest

from conftest import FakeClock, FakeFeed, FakePersistence, InMemoryCursorStore, make_properties, property_config
from listing_sync.core import events
from listing_sync.infrastructure.external.reso_sync.sync_config import EngineConfig
from listing_sync.infrastructure.external.reso_sync.sync_service import SyncEngine
from listing_sync.shared.exceptions.sync import SyncAlreadyRunningError


def _engine(running: bool = False) -> Mock:
    engine = Mock()
    engine.is_running = running
    engine.run_incremental_sync = AsyncMock()
    return engine


@pytest.mark.asyncio
async def test_scheduled_sync_runs_incremental() -> None:
    engine = _engine()

    await events.scheduled_incremental_sync(engine)

    engine.run_incremental_sync.assert_awaited_once_with()


@pytest.mark.asyncio
async def test_scheduled_sync_skips_when_running() -> None:
    engine = _engine(running=True)

    await events.scheduled_incremental_sync(engine)

    engine.run_incremental_sync.assert_not_awaited()


@pytest.mark.asyncio
async def test_scheduled_sync_swallows_run_errors() -> None:
    engine = _engine()
    engine.run_incremental_sync.side_effect = SyncAlreadyRunningError()
    await events.scheduled_incremental_sync(engine)

    engine.run_incremental_sync.side_effect = RuntimeError("feed caido")
    await events.scheduled_incremental_sync(engine)

    assert engine.run_incremental_sync.await_count == 2


def test_scheduler_disabled_returns_none() -> None:
    with patch.object(events.settings, "SYNC_SCHEDULER_ENABLED", False):
        assert events._start_scheduler(_engine()) is None


class SlowPersistence(FakePersistence):
    """Persistencia cuyo upsert tarda; marca cuando hay un chunk en vuelo."""

    def __init__(self, columns):
        super().__init__(columns)
        self.in_flight = asyncio.Event()
        self.finished_chunks = 0

    async def upsert(self, table, rows, *, key_field, chunk_size=100):
        self.in_flight.set()
        await asyncio.sleep(0.05)
        result = await super().upsert(table, rows, key_field=key_field, chunk_size=chunk_size)
        self.finished_chunks += 1
        return result


@pytest.mark.asyncio
async def test_shutdown_waits_for_in_flight_chunk_before_closing_db() -> None:
    feed = FakeFeed({"Property": make_properties(4)})
    persistence = SlowPersistence(
        {"Property": {"ListingKey", "City", "ListPrice", "ModificationTimestamp", "UpdatedAt"}}
    )
    engine = SyncEngine(
        config=EngineConfig(entities=[property_config(batch_size=2)]),
        feed=feed,
        persistence=persistence,
        cursor_store=InMemoryCursorStore(),
        clock=FakeClock(),
    )
    app = SimpleNamespace(state=SimpleNamespace(scheduler=None, sync_engine=engine))

    task = asyncio.create_task(engine.run_incremental_sync())
    await persistence.in_flight.wait()

    with patch.object(events, "close_db", AsyncMock()) as close_db:
        await events.shutdown_handler(app)()

        assert persistence.finished_chunks == 1
        assert not engine.is_running
        close_db.assert_awaited_once()

    run = await task
    assert run.cancelled is True
    assert engine.last_run is run
    assert len(persistence.tables["Property"]) == 2
    assert feed.closed is True
