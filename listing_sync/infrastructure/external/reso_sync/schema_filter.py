"""
Filtro de columnas por tabla, con cache de esquema y circuit breaker.

Resolución (tagged union, ver types.SchemaResolution):
- DeclaredSchema: columnas declaradas en los mapeos, sin validar.
- ProbedSchema: columnas confirmadas contra la base (∩ declaradas).
- UnavailableSchema: tabla sin esquema utilizable -> se descarta todo.

El estado (cache + contadores) vive en SchemaCacheState, un objeto de
proceso que se inyecta explícitamente; no hay singletons.
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Any, Callable, Mapping, Optional

from loguru import logger

from listing_sync.application.interfaces.sync_ports import SchemaProbe
from listing_sync.shared.constants.sync_constants import SchemaState
from listing_sync.shared.utils.datetime_utils import DateTimeUtils

from .sync_config import SchemaCachePolicy
from .types import (
    ColumnSchema,
    DeclaredSchema,
    MappedRecord,
    ProbedSchema,
    SchemaResolution,
    UnavailableSchema,
)


Clock = Callable[[], datetime]


class SchemaCacheState:
    """
    Cache de esquemas y estado del breaker por tabla.

    Ciclo de vida: se crea al iniciar el motor; `reset()` limpia una tabla o todas.
    Las mutaciones de una misma tabla se serializan con un asyncio.Lock propio.
    """

    def __init__(self) -> None:
        self._entries: dict[str, ColumnSchema] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def entry(self, table: str) -> ColumnSchema:
        if table not in self._entries:
            self._entries[table] = ColumnSchema(table_name=table)
        return self._entries[table]

    def lock_for(self, table: str) -> asyncio.Lock:
        if table not in self._locks:
            self._locks[table] = asyncio.Lock()
        return self._locks[table]

    def entries(self) -> dict[str, ColumnSchema]:
        return dict(self._entries)

    def reset(self, table: Optional[str] = None) -> None:
        if table is None:
            self._entries.clear()
            return
        self._entries.pop(table, None)


class SchemaFilter:
    """
    Garantiza que cada clave del registro filtrado exista en la tabla destino.

    Columnas desconocidas se descartan y se cuentan; nunca es un error del registro.
    """

    def __init__(
        self,
        probe: SchemaProbe,
        state: SchemaCacheState,
        *,
        policy: Optional[SchemaCachePolicy] = None,
        declared: Optional[Mapping[str, frozenset[str]]] = None,
        clock: Clock = DateTimeUtils.now_utc,
    ) -> None:
        self._probe = probe
        self._state = state
        self._policy = policy or SchemaCachePolicy()
        self._declared = dict(declared or {})
        self._clock = clock

    # ------------------------------------------------------------------
    # API
    # ------------------------------------------------------------------

    async def filter_for_table(self, record: MappedRecord, table: str) -> MappedRecord:
        resolution = await self.resolve(table)
        return self.apply(record, resolution, table)

    async def resolve(self, table: str) -> SchemaResolution:
        """Resuelve el esquema vigente de `table` (con cache y breaker)."""
        declared = self._declared.get(table)
        if declared is not None and not self._policy.probe_enabled:
            return DeclaredSchema(declared)

        async with self._state.lock_for(table):
            entry = self._state.entry(table)
            now = self._clock()

            if entry.state == SchemaState.KNOWN and entry.fetched_at is not None:
                if self._elapsed(entry.fetched_at, now) < self._policy.ttl_seconds:
                    return self._known(entry, declared)

            if entry.state == SchemaState.TRIPPED and entry.tripped_at is not None:
                if self._elapsed(entry.tripped_at, now) < self._policy.failure_cooldown_seconds:
                    return self._unavailable(entry, declared, "circuit breaker abierto")
                logger.info(f"Circuit breaker de '{table}': cooldown cumplido, reintentando probe")
                entry.clear()

            if entry.state == SchemaState.EMPTY and entry.empty_checked_at is not None:
                if self._elapsed(entry.empty_checked_at, now) < self._policy.empty_recheck_seconds:
                    return self._unavailable(entry, declared, "tabla vacia")
                entry.state = SchemaState.UNKNOWN

            return await self._discover(entry, declared, now)

    def apply(self, record: MappedRecord, resolution: SchemaResolution, table: str) -> MappedRecord:
        """Copia solo las claves presentes en el esquema resuelto."""
        if isinstance(resolution, UnavailableSchema):
            allowed: frozenset[str] = frozenset()
        else:
            allowed = resolution.columns

        result = {k: v for k, v in record.items() if k in allowed}
        dropped = [k for k in record if k not in allowed]
        if dropped:
            entry = self._state.entry(table)
            entry.dropped_columns += len(dropped)
            new_names = set(dropped) - entry.dropped_names
            if new_names and not isinstance(resolution, UnavailableSchema):
                logger.warning(f"Columnas inexistentes en '{table}' descartadas: {sorted(new_names)}")
            entry.dropped_names.update(new_names)
        return result

    def is_tripped(self, table: str) -> bool:
        entry = self._state.entries().get(table)
        return entry is not None and entry.state == SchemaState.TRIPPED

    def reset(self, table: Optional[str] = None) -> None:
        """Limpia cache, contadores y timers de una tabla (o de todas)."""
        self._state.reset(table)
        logger.info(f"Circuit breaker reseteado: {table or 'todas las tablas'}")

    def get_stats(self) -> dict[str, Any]:
        entries = self._state.entries()
        return {
            "cached_tables": len(entries),
            "tables": {name: entry.to_dict() for name, entry in entries.items()},
            "tripped_tables": [n for n, e in entries.items() if e.state == SchemaState.TRIPPED],
            "empty_tables": [n for n, e in entries.items() if e.state == SchemaState.EMPTY],
            "failure_counts": {n: e.failure_count for n, e in entries.items() if e.failure_count},
            "policy": {
                "ttl_seconds": self._policy.ttl_seconds,
                "max_failures": self._policy.max_failures,
                "failure_cooldown_seconds": self._policy.failure_cooldown_seconds,
                "empty_recheck_seconds": self._policy.empty_recheck_seconds,
                "probe_enabled": self._policy.probe_enabled,
            },
        }

    # ------------------------------------------------------------------
    # Internos
    # ------------------------------------------------------------------

    async def _discover(
        self,
        entry: ColumnSchema,
        declared: Optional[frozenset[str]],
        now: datetime,
    ) -> SchemaResolution:
        table = entry.table_name
        columns: set[str] = set()
        try:
            columns = set(await self._probe.probe_columns(table))
        except Exception as e:
            logger.debug(f"Probe de metadata fallo para '{table}': {e}")

        if not columns:
            try:
                columns = set(await self._probe.sample_columns(table))
            except Exception as e:
                return self._record_failure(entry, declared, now, str(e))

            if not columns:
                entry.state = SchemaState.EMPTY
                entry.empty_checked_at = now
                entry.known_columns = frozenset()
                entry.last_error = None
                logger.warning(f"Tabla '{table}' sin filas ni esquema descubrible: marcada EMPTY")
                return self._unavailable(entry, declared, "tabla vacia")

        entry.known_columns = frozenset(columns)
        entry.fetched_at = now
        entry.state = SchemaState.KNOWN
        entry.failure_count = 0
        entry.tripped_at = None
        entry.last_error = None
        logger.debug(f"Esquema de '{table}' cacheado ({len(columns)} columnas)")
        return self._known(entry, declared)

    def _record_failure(
        self,
        entry: ColumnSchema,
        declared: Optional[frozenset[str]],
        now: datetime,
        error: str,
    ) -> SchemaResolution:
        entry.failure_count += 1
        entry.last_error = error
        if entry.failure_count >= self._policy.max_failures:
            entry.state = SchemaState.TRIPPED
            entry.tripped_at = now
            logger.warning(
                f"Circuit breaker abierto para '{entry.table_name}' tras "
                f"{entry.failure_count} fallas consecutivas: {error}"
            )
        else:
            entry.state = SchemaState.UNKNOWN
            logger.warning(
                f"Probe de esquema fallo para '{entry.table_name}' "
                f"({entry.failure_count}/{self._policy.max_failures}): {error}"
            )
        return self._unavailable(entry, declared, error)

    @staticmethod
    def _known(entry: ColumnSchema, declared: Optional[frozenset[str]]) -> SchemaResolution:
        if declared is None:
            return ProbedSchema(entry.known_columns)
        return ProbedSchema(entry.known_columns & declared)

    @staticmethod
    def _unavailable(
        entry: ColumnSchema,
        declared: Optional[frozenset[str]],
        reason: str,
    ) -> SchemaResolution:
        if declared is not None:
            return DeclaredSchema(declared)
        state = entry.state if entry.state != SchemaState.KNOWN else SchemaState.UNKNOWN
        return UnavailableSchema(reason=reason, state=state)

    @staticmethod
    def _elapsed(since: datetime, now: datetime) -> float:
        return (now - since).total_seconds()
