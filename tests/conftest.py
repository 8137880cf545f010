"""
Configuración de fixtures para pytest.

Incluye dobles en memoria de los puertos del motor (feed, persistencia,
cursores) para testear el pipeline sin red ni base.
"""
from datetime import datetime, timedelta, timezone
from typing import Any, AsyncGenerator, Iterable, Optional

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from listing_sync.infrastructure.database.session import Base
from listing_sync.infrastructure.external.reso_sync.sync_config import (
    EntitySyncConfig,
    ParentReference,
)
from listing_sync.infrastructure.external.reso_sync.types import (
    FieldMapping,
    RecordError,
    SyncCursor,
    UpsertResult,
)
from listing_sync.shared.constants.sync_constants import EntityType, ErrorStage, FieldKind
from listing_sync.shared.exceptions.sync import TransportError


# URL de base de datos de prueba
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

T0 = datetime(2025, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


# ============================================================================
# Base de datos
# ============================================================================


@pytest.fixture(scope="function")
async def db_engine() -> AsyncGenerator[AsyncEngine, None]:
    """Engine SQLite en memoria con todas las tablas creadas."""
    engine = create_async_engine(TEST_DATABASE_URL, echo=False, poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture(scope="function")
def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Sesión de base de datos para tests."""
    async with session_factory() as session:
        yield session


# ============================================================================
# Dobles de los puertos
# ============================================================================


class FakeFeed:
    """
    Feed en memoria: pagina por $skip/$top sobre listas precargadas.

    No interpreta $filter; los tests cargan exactamente lo que el feed devolvería.
    """

    def __init__(self, records: Optional[dict[str, list[dict[str, Any]]]] = None) -> None:
        self.records = records or {}
        self.singles: dict[tuple[str, str], dict[str, Any]] = {}
        self.fail_skips: dict[str, set[int]] = {}
        self.count_error = False
        self.page_calls: list[dict[str, Any]] = []
        self.count_calls: list[dict[str, Any]] = []
        self.closed = False

    async def fetch_page(self, entity, *, top, skip=0, order_by=None, filter=None, feed_type=None):
        self.page_calls.append(
            {"entity": entity, "top": top, "skip": skip, "order_by": order_by, "filter": filter}
        )
        if skip in self.fail_skips.get(entity, set()):
            raise TransportError(f"HTTP 503 en {entity} skip={skip}", status=503)
        return list(self.records.get(entity, [])[skip:skip + top])

    async def count(self, entity, *, filter=None, feed_type=None):
        self.count_calls.append({"entity": entity, "filter": filter})
        if self.count_error:
            raise TransportError("count no disponible", status=503)
        return len(self.records.get(entity, []))

    async def fetch_one(self, entity, key, *, feed_type=None):
        return self.singles.get((entity, key))

    async def aclose(self):
        self.closed = True


class FakePersistence:
    """Persistencia en memoria que cumple Persistence Client + probe + existencia."""

    def __init__(self, columns: Optional[dict[str, set[str]]] = None) -> None:
        self.columns = columns or {}
        self.tables: dict[str, dict[str, dict[str, Any]]] = {}
        self.upsert_calls: list[tuple[str, int]] = []
        self.probe_calls = 0
        self.sample_calls = 0
        self.exists_calls = 0
        self.fail_tables: set[str] = set()
        self.exists_error: Optional[Exception] = None

    async def upsert(self, table, rows, *, key_field, chunk_size=100):
        self.upsert_calls.append((table, len(rows)))
        if table in self.fail_tables:
            errors = [RecordError(str(r[key_field]), ErrorStage.PERSISTENCE, "chunk rechazado") for r in rows]
            return UpsertResult(successful=0, failed=len(rows), errors=errors)
        stored = self.tables.setdefault(table, {})
        for row in rows:
            stored[row[key_field]] = dict(row)
        return UpsertResult(successful=len(rows), failed=0)

    async def exists(self, table, key, values: Iterable[Any]):
        self.exists_calls += 1
        if self.exists_error is not None:
            raise self.exists_error
        present = {row.get(key) for row in self.tables.get(table, {}).values()}
        return {v for v in values if v in present}

    async def probe_columns(self, table):
        self.probe_calls += 1
        return set(self.columns.get(table, set()))

    async def sample_columns(self, table):
        self.sample_calls += 1
        return set(self.columns.get(table, set()))


class InMemoryCursorStore:
    def __init__(self) -> None:
        self.cursors: dict[str, SyncCursor] = {}
        self.saves: list[SyncCursor] = []
        self.fail_load = False

    async def load(self, entity_type):
        if self.fail_load:
            raise ConnectionError("cursor store caido")
        return self.cursors.get(entity_type)

    async def save(self, cursor):
        self.saves.append(cursor)
        self.cursors[cursor.entity_type] = cursor


class FakeClock:
    """Reloj controlable para TTLs y cooldowns."""

    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


# ============================================================================
# Configs de entidades reducidas
# ============================================================================


def property_config(batch_size: int = 1000, **overrides) -> EntitySyncConfig:
    values = dict(
        entity_type=EntityType.PROPERTY,
        resource="Property",
        table="Property",
        key_field="ListingKey",
        timestamp_field="ModificationTimestamp",
        field_mappings=[
            FieldMapping("ListingKey"),
            FieldMapping("City"),
            FieldMapping("ListPrice", kind=FieldKind.DECIMAL),
            FieldMapping("ModificationTimestamp", kind=FieldKind.TIMESTAMP),
        ],
        batch_size=batch_size,
    )
    values.update(overrides)
    return EntitySyncConfig(**values)


def media_config(batch_size: int = 500, **overrides) -> EntitySyncConfig:
    values = dict(
        entity_type=EntityType.MEDIA,
        resource="Media",
        table="Media",
        key_field="MediaKey",
        timestamp_field="MediaModificationTimestamp",
        field_mappings=[
            FieldMapping("MediaKey"),
            FieldMapping("ResourceRecordKey"),
            FieldMapping("MediaURL"),
            FieldMapping("MediaModificationTimestamp", kind=FieldKind.TIMESTAMP),
        ],
        batch_size=batch_size,
        parent=ParentReference(field="ResourceRecordKey", table="Property", column="ListingKey"),
    )
    values.update(overrides)
    return EntitySyncConfig(**values)


def make_properties(count: int, start: datetime = T0, prefix: str = "X") -> list[dict[str, Any]]:
    """Registros Property con timestamps crecientes (uno por segundo)."""
    return [
        {
            "ListingKey": f"{prefix}{i:05d}",
            "City": "Toronto",
            "ListPrice": "500000",
            "ModificationTimestamp": (start + timedelta(seconds=i)).isoformat().replace("+00:00", "Z"),
        }
        for i in range(count)
    ]


@pytest.fixture
def fake_feed() -> FakeFeed:
    return FakeFeed()


@pytest.fixture
def fake_persistence() -> FakePersistence:
    return FakePersistence()


@pytest.fixture
def cursor_store() -> InMemoryCursorStore:
    return InMemoryCursorStore()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
