"""
Contratos (puertos) que consume el motor de sincronización.

Existen para:
- Mantener el motor independiente de httpx/SQLAlchemy.
- Facilitar tests unitarios con fakes en memoria.
"""

from __future__ import annotations

from typing import Any, Iterable, Optional, Protocol, Sequence

from listing_sync.infrastructure.external.reso_sync.types import (
    MappedRecord,
    RawRecord,
    SyncCursor,
    UpsertResult,
)
from listing_sync.shared.constants.sync_constants import FeedType


class FeedClient(Protocol):
    """
    Feed de listados paginado.

    Debe garantizar paginación estable para un filtro/orden fijo dentro de
    una corrida. Los errores de transporte se reportan como TransportError.
    """

    async def fetch_page(
        self,
        entity: str,
        *,
        top: int,
        skip: int = 0,
        order_by: Optional[str] = None,
        filter: Optional[str] = None,
        feed_type: FeedType = FeedType.IDX,
    ) -> list[RawRecord]:
        ...

    async def count(
        self,
        entity: str,
        *,
        filter: Optional[str] = None,
        feed_type: FeedType = FeedType.IDX,
    ) -> int:
        ...

    async def fetch_one(
        self,
        entity: str,
        key: str,
        *,
        feed_type: FeedType = FeedType.IDX,
    ) -> Optional[RawRecord]:
        ...


class SchemaProbe(Protocol):
    """Descubrimiento de columnas de una tabla."""

    async def probe_columns(self, table: str) -> set[str]:
        """Columnas según metadata (information_schema / inspector)."""
        ...

    async def sample_columns(self, table: str) -> set[str]:
        """Claves de una fila cualquiera; vacío si la tabla no tiene filas."""
        ...


class ExistenceChecker(Protocol):
    """Consulta de existencia de claves (para el filtro referencial)."""

    async def exists(self, table: str, key: str, values: Iterable[Any]) -> set[Any]:
        ...


class PersistenceClient(SchemaProbe, ExistenceChecker, Protocol):
    """
    Persistencia idempotente (UPSERT por clave primaria).

    Cada chunk se aplica en su propia transacción: un chunk rechazado no
    revierte a los demás.
    """

    async def upsert(
        self,
        table: str,
        rows: Sequence[MappedRecord],
        *,
        key_field: str,
        chunk_size: int = 100,
    ) -> UpsertResult:
        ...


class CursorStore(Protocol):
    """Backend de cursores: load-on-start, save-on-advance."""

    async def load(self, entity_type: str) -> Optional[SyncCursor]:
        ...

    async def save(self, cursor: SyncCursor) -> None:
        ...


class SyncRunLog(Protocol):
    """Registro de corridas (tabla sync_runs)."""

    async def record_started(self, run: Any) -> None:
        ...

    async def record_finished(self, run: Any) -> None:
        ...
