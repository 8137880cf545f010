"""
Orquestador de páginas por entidad.

Máquina de estados:
    IDLE -> FETCHING -> PROCESSING -> PERSISTING -> (ADVANCING | FAILED_BATCH) -> FETCHING | DONE

- FETCHING: pide una página de `batch_size` (orden ts,key asc). Una página corta
  termina la corrida tras procesarla. Un error de transporte registra la página
  como fallida y salta una página (progreso sobre completitud).
- PROCESSING: FieldMapper + SchemaFilter por registro.
- PERSISTING: filtro referencial (hijos) y UPSERT en chunks independientes.
- ADVANCING: el cursor pasa al máximo (ts, key) visto en la página, sin importar
  los errores individuales.

El loop es secuencial: una página se procesa completa antes de pedir la
siguiente. La cancelación solo se evalúa entre páginas.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Optional, Sequence

from loguru import logger

from listing_sync.application.interfaces.sync_ports import FeedClient, PersistenceClient
from listing_sync.shared.constants.sync_constants import (
    ErrorStage,
    OrchestratorState,
    SyncMode,
)
from listing_sync.shared.exceptions.sync import MappingError, SchemaUnavailable, TransportError
from listing_sync.shared.utils.datetime_utils import DateTimeUtils

from .feed_client import build_cursor_filter, combine_filters
from .field_mapper import FieldMapper, to_timestamp
from .referential_filter import ReferentialFilter
from .schema_filter import SchemaFilter
from .sync_config import EntitySyncConfig
from .sync_state import SyncStateTracker
from .types import (
    BatchResult,
    EntitySyncResult,
    MappedRecord,
    RawRecord,
    UnavailableSchema,
)


@dataclass
class PageOutcome:
    """Resultado de procesar una página: métricas + filas enviadas a persistencia."""

    batch: BatchResult
    rows: list[MappedRecord] = field(default_factory=list)


def max_cursor_position(
    records: Sequence[RawRecord],
    config: EntitySyncConfig,
) -> Optional[tuple[datetime, str]]:
    """
    Máximo (timestamp, key) de la página.

    Registros sin timestamp parseable o sin clave no participan.
    """
    best: Optional[tuple[datetime, str]] = None
    for raw in records:
        if not isinstance(raw, Mapping):
            continue
        ts = to_timestamp(raw.get(config.timestamp_field))
        key = raw.get(config.key_field)
        if ts is None or key is None or not str(key).strip():
            continue
        position = (ts, str(key).strip())
        if best is None or position > best:
            best = position
    return best


def _raw_key(raw: Any, config: EntitySyncConfig) -> Optional[str]:
    if not isinstance(raw, Mapping):
        return None
    value = raw.get(config.key_field)
    return None if value is None else str(value)


class BatchOrchestrator:
    """
    Ejecuta la corrida de una entidad, página por página.
    """

    def __init__(
        self,
        *,
        feed: FeedClient,
        persistence: PersistenceClient,
        mapper: FieldMapper,
        schema_filter: SchemaFilter,
        referential_filter: ReferentialFilter,
        tracker: SyncStateTracker,
        max_consecutive_page_failures: int = 3,
        clock: Callable[[], datetime] = DateTimeUtils.now_utc,
    ) -> None:
        self._feed = feed
        self._persistence = persistence
        self._mapper = mapper
        self._schema_filter = schema_filter
        self._referential = referential_filter
        self._tracker = tracker
        self._max_page_failures = max_consecutive_page_failures
        self._clock = clock
        self._states: dict[str, OrchestratorState] = {}

    def state_of(self, entity_type: str) -> OrchestratorState:
        return self._states.get(entity_type, OrchestratorState.IDLE)

    async def run_entity(
        self,
        config: EntitySyncConfig,
        *,
        mode: SyncMode = SyncMode.INCREMENTAL,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> EntitySyncResult:
        """
        Corre todas las páginas de una entidad.

        El filtro de páginas se fija al inicio: incremental desde el cursor
        guardado, full solo con el filtro estático de la entidad.

        Raises:
            CursorStoreError: si el cursor no puede leerse o guardarse
        """
        entity = config.entity_type.value
        result = EntitySyncResult(entity_type=entity)
        self._transition(entity, OrchestratorState.IDLE)

        cursor = await self._tracker.get_cursor(entity)
        if mode == SyncMode.INCREMENTAL:
            page_filter = combine_filters(
                build_cursor_filter(config.timestamp_field, config.key_field, cursor),
                config.feed_filter,
            )
        else:
            page_filter = combine_filters(config.feed_filter)

        try:
            result.total_available = await self._feed.count(
                config.resource, filter=page_filter, feed_type=config.feed_type
            )
        except TransportError as e:
            logger.warning(f"[{entity}] No se pudo obtener el total: {e.message}")

        logger.info(
            f"[{entity}] Sync {mode.value} desde cursor {cursor.position[0].isoformat()} / "
            f"'{cursor.last_key}' (total={result.total_available})"
        )

        total = result.total_available
        skip = 0
        page_number = 0
        consecutive_failures = 0

        while True:
            if cancel_event is not None and cancel_event.is_set():
                logger.warning(f"[{entity}] Corrida cancelada antes de la pagina {page_number + 1}")
                result.cancelled = True
                break
            if total is not None and skip >= total:
                break

            page_number += 1
            self._transition(entity, OrchestratorState.FETCHING)
            try:
                page = await self._feed.fetch_page(
                    config.resource,
                    top=config.batch_size,
                    skip=skip,
                    order_by=config.order_by,
                    filter=page_filter,
                    feed_type=config.feed_type,
                )
            except TransportError as e:
                self._transition(entity, OrchestratorState.FAILED_BATCH)
                failed = BatchResult(entity_type=entity, page_number=page_number, skip=skip)
                failed.add_error(None, ErrorStage.TRANSPORT, e.message)
                result.batches.append(failed)
                result.pages_failed += 1
                consecutive_failures += 1
                logger.warning(f"[{entity}] Pagina {page_number} (skip={skip}) fallida, se salta: {e.message}")
                skip += config.batch_size
                if total is None and consecutive_failures >= self._max_page_failures:
                    logger.error(
                        f"[{entity}] {consecutive_failures} paginas fallidas consecutivas sin total conocido; "
                        f"se detiene la corrida"
                    )
                    break
                continue

            consecutive_failures = 0
            result.pages_fetched += 1

            outcome = await self.process_records(
                config, page, synced_at=self._clock(), page_number=page_number, skip=skip
            )
            result.batches.append(outcome.batch)

            self._transition(entity, OrchestratorState.ADVANCING)
            position = max_cursor_position(page, config)
            if position is not None:
                if await self._tracker.advance_cursor(entity, position[0], position[1]):
                    result.cursor_advances += 1

            logger.info(
                f"[{entity}] Pagina {page_number}: {outcome.batch.successful}/{outcome.batch.attempted} ok, "
                f"{outcome.batch.failed} fallidos"
            )

            if len(page) < config.batch_size:
                break
            skip += config.batch_size

        self._transition(entity, OrchestratorState.DONE)
        result.final_cursor = await self._tracker.get_cursor(entity)
        return result

    async def process_page(
        self,
        config: EntitySyncConfig,
        records: Sequence[RawRecord],
        *,
        synced_at: datetime,
        children: Optional[Sequence[RawRecord]] = None,
    ) -> BatchResult:
        outcome = await self.process_records(config, records, synced_at=synced_at, children=children)
        return outcome.batch

    async def process_records(
        self,
        config: EntitySyncConfig,
        records: Sequence[RawRecord],
        *,
        synced_at: datetime,
        children: Optional[Sequence[RawRecord]] = None,
        page_number: int = 0,
        skip: int = 0,
    ) -> PageOutcome:
        """
        PROCESSING + PERSISTING de una página ya obtenida.

        Invariante del resultado: attempted == successful + failed.
        """
        entity = config.entity_type.value
        batch = BatchResult(
            entity_type=entity, attempted=len(records), page_number=page_number, skip=skip
        )

        self._transition(entity, OrchestratorState.PROCESSING)
        mapped: list[MappedRecord] = []
        for raw in records:
            try:
                mapped.append(self._mapper.map(raw, config, synced_at=synced_at, children=children))
            except MappingError as e:
                batch.add_error(_raw_key(raw, config), ErrorStage.MAPPING, e.message)

        rows: list[MappedRecord] = []
        if mapped:
            resolution = await self._schema_filter.resolve(config.table)
            for row in mapped:
                filtered = self._schema_filter.apply(row, resolution, config.table)
                missing = [c for c in config.required_columns if filtered.get(c) in (None, "")]
                if not missing:
                    rows.append(filtered)
                    continue
                if isinstance(resolution, UnavailableSchema):
                    message = SchemaUnavailable(config.table, resolution.reason).message
                else:
                    message = f"Columnas requeridas ausentes: {', '.join(missing)}"
                batch.add_error(row.get(config.key_field), ErrorStage.VALIDATION, message)

        self._transition(entity, OrchestratorState.PERSISTING)
        if config.parent and rows:
            rows, rejected = await self._referential.filter_by_existing_parents(
                rows,
                config.parent.field,
                config.parent.table,
                parent_key_column=config.parent.column,
                key_field=config.key_field,
            )
            for item in rejected:
                batch.errors.append(item.error)
                batch.failed += 1

        if rows:
            upsert = await self._persistence.upsert(
                config.table, rows, key_field=config.key_field, chunk_size=config.chunk_size
            )
            batch.successful += upsert.successful
            batch.failed += upsert.failed
            batch.errors.extend(upsert.errors)

        return PageOutcome(batch=batch, rows=rows)

    def _transition(self, entity: str, state: OrchestratorState) -> None:
        previous = self._states.get(entity, OrchestratorState.IDLE)
        self._states[entity] = state
        if previous != state:
            logger.debug(f"[{entity}] {previous.value} -> {state.value}")
