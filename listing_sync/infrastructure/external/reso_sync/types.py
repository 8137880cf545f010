"""
Tipos del motor de sincronización.

Se mantienen libres de I/O para poder testearlos fácilmente.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional, Union

from listing_sync.shared.constants.sync_constants import (
    ErrorStage,
    FieldKind,
    SchemaState,
    SyncMode,
    SyncRunStatus,
)
from listing_sync.shared.utils.datetime_utils import EPOCH, DateTimeUtils


RawRecord = dict[str, Any]
MappedRecord = dict[str, Any]


@dataclass(frozen=True)
class FieldMapping:
    """
    Define el mapeo de un campo del feed a una columna destino.

    - source_field: nombre del campo en el feed
    - column: nombre de la columna destino (por defecto el mismo)
    - kind: transformación a aplicar (ver FieldKind)
    """

    source_field: str
    column: str = ""
    kind: FieldKind = FieldKind.SCALAR

    @property
    def target(self) -> str:
        return self.column or self.source_field


# ---------------------------------------------------------------------------
# Cursor
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SyncCursor:
    """
    Posición reanudable de una entidad: (timestamp, clave).

    El orden es lexicográfico sobre (last_timestamp, last_key).
    """

    entity_type: str
    last_timestamp: datetime
    last_key: str = ""

    @classmethod
    def initial(cls, entity_type: str) -> "SyncCursor":
        return cls(entity_type=entity_type, last_timestamp=EPOCH, last_key="")

    @property
    def position(self) -> tuple[datetime, str]:
        return (DateTimeUtils.ensure_utc(self.last_timestamp), self.last_key)

    def precedes(self, timestamp: datetime, key: str) -> bool:
        """True si (timestamp, key) es estrictamente mayor que este cursor."""
        return (DateTimeUtils.ensure_utc(timestamp), key) > self.position

    def to_dict(self) -> dict[str, Any]:
        return {
            "entity_type": self.entity_type,
            "last_timestamp": DateTimeUtils.ensure_utc(self.last_timestamp).isoformat(),
            "last_key": self.last_key,
        }


# ---------------------------------------------------------------------------
# Resultados
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RecordError:
    """Falla de un registro (o de una página, con key=None) en una etapa."""

    key: Optional[str]
    stage: ErrorStage
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {"key": self.key, "stage": self.stage.value, "message": self.message}


@dataclass(frozen=True)
class RejectedRecord:
    """Registro descartado junto con el motivo."""

    record: MappedRecord
    error: RecordError

    @property
    def stage(self) -> ErrorStage:
        return self.error.stage


@dataclass
class BatchResult:
    """
    Resultado de una página de una entidad.

    Invariante: attempted == successful + failed.
    """

    entity_type: str
    attempted: int = 0
    successful: int = 0
    failed: int = 0
    errors: list[RecordError] = field(default_factory=list)
    page_number: int = 0
    skip: int = 0

    def add_error(self, key: Any, stage: ErrorStage, message: str) -> None:
        self.errors.append(
            RecordError(key=None if key is None else str(key), stage=stage, message=message)
        )
        self.failed += 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "entity_type": self.entity_type,
            "page_number": self.page_number,
            "skip": self.skip,
            "attempted": self.attempted,
            "successful": self.successful,
            "failed": self.failed,
            "errors": [e.to_dict() for e in self.errors],
        }


@dataclass(frozen=True)
class UpsertResult:
    """Resultado de persistir filas en chunks."""

    successful: int
    failed: int
    errors: list[RecordError] = field(default_factory=list)


@dataclass
class EntitySyncResult:
    """Agregado de todas las páginas de una entidad en una corrida."""

    entity_type: str
    batches: list[BatchResult] = field(default_factory=list)
    total_available: Optional[int] = None
    pages_fetched: int = 0
    pages_failed: int = 0
    cursor_advances: int = 0
    final_cursor: Optional[SyncCursor] = None
    cancelled: bool = False

    @property
    def attempted(self) -> int:
        return sum(b.attempted for b in self.batches)

    @property
    def successful(self) -> int:
        return sum(b.successful for b in self.batches)

    @property
    def failed(self) -> int:
        return sum(b.failed for b in self.batches)

    @property
    def errors(self) -> list[RecordError]:
        return [e for b in self.batches for e in b.errors]

    def to_dict(self) -> dict[str, Any]:
        return {
            "entity_type": self.entity_type,
            "total_available": self.total_available,
            "pages_fetched": self.pages_fetched,
            "pages_failed": self.pages_failed,
            "cursor_advances": self.cursor_advances,
            "attempted": self.attempted,
            "successful": self.successful,
            "failed": self.failed,
            "final_cursor": self.final_cursor.to_dict() if self.final_cursor else None,
            "cancelled": self.cancelled,
            "errors": [e.to_dict() for e in self.errors],
        }


@dataclass
class SyncRunResult:
    """Resultado de una corrida completa (todas las entidades)."""

    run_id: str
    mode: SyncMode
    started_at: datetime
    finished_at: Optional[datetime] = None
    entities: dict[str, EntitySyncResult] = field(default_factory=dict)
    cancelled: bool = False
    error: Optional[str] = None

    @property
    def attempted(self) -> int:
        return sum(e.attempted for e in self.entities.values())

    @property
    def successful(self) -> int:
        return sum(e.successful for e in self.entities.values())

    @property
    def failed(self) -> int:
        return sum(e.failed for e in self.entities.values())

    @property
    def errors(self) -> list[RecordError]:
        return [err for e in self.entities.values() for err in e.errors]

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.finished_at is None:
            return None
        return (self.finished_at - self.started_at).total_seconds()

    @property
    def status(self) -> SyncRunStatus:
        if self.error:
            return SyncRunStatus.ERROR
        if self.finished_at is None:
            return SyncRunStatus.RUNNING
        if self.cancelled:
            return SyncRunStatus.CANCELLED
        if self.failed:
            return SyncRunStatus.PARTIAL
        return SyncRunStatus.SUCCESS

    def summary(self) -> dict[str, Any]:
        """Resumen compacto (sin la lista de errores)."""
        return {
            "run_id": self.run_id,
            "mode": self.mode.value,
            "status": self.status.value,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "duration_seconds": self.duration_seconds,
            "attempted": self.attempted,
            "successful": self.successful,
            "failed": self.failed,
            "error_count": len(self.errors),
            "cancelled": self.cancelled,
            "error": self.error,
        }


# ---------------------------------------------------------------------------
# Esquema
# ---------------------------------------------------------------------------


@dataclass
class ColumnSchema:
    """
    Esquema cacheado de una tabla y estado del circuit breaker.

    EMPTY y TRIPPED son estados independientes:
    - EMPTY: tabla sin filas ni esquema descubrible (se re-verifica tras un intervalo)
    - TRIPPED: N fallas consecutivas de probe (se resetea tras el cooldown)
    """

    table_name: str
    known_columns: frozenset[str] = frozenset()
    fetched_at: Optional[datetime] = None
    state: SchemaState = SchemaState.UNKNOWN
    failure_count: int = 0
    tripped_at: Optional[datetime] = None
    empty_checked_at: Optional[datetime] = None
    last_error: Optional[str] = None
    dropped_columns: int = 0
    dropped_names: set[str] = field(default_factory=set)

    def clear(self) -> None:
        self.known_columns = frozenset()
        self.fetched_at = None
        self.state = SchemaState.UNKNOWN
        self.failure_count = 0
        self.tripped_at = None
        self.empty_checked_at = None
        self.last_error = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "column_count": len(self.known_columns),
            "failure_count": self.failure_count,
            "fetched_at": self.fetched_at.isoformat() if self.fetched_at else None,
            "tripped_at": self.tripped_at.isoformat() if self.tripped_at else None,
            "empty_checked_at": self.empty_checked_at.isoformat() if self.empty_checked_at else None,
            "last_error": self.last_error,
            "dropped_columns": self.dropped_columns,
            "dropped_names": sorted(self.dropped_names),
        }


@dataclass(frozen=True)
class DeclaredSchema:
    """Columnas declaradas estáticamente (sin validar contra la base)."""

    columns: frozenset[str]


@dataclass(frozen=True)
class ProbedSchema:
    """Columnas confirmadas por el probe (intersectadas con las declaradas)."""

    columns: frozenset[str]


@dataclass(frozen=True)
class UnavailableSchema:
    """Sin esquema utilizable: el filtro descarta todas las columnas."""

    reason: str
    state: SchemaState


SchemaResolution = Union[DeclaredSchema, ProbedSchema, UnavailableSchema]
