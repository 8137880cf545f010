"""
Servicio de sincronización feed RESO -> base relacional.

Diseño (resumen):
- Un SyncEngine por proceso; es dueño del estado compartido (cursores y cache
  de esquema) y lo inyecta explícitamente en sus componentes.
- Las corridas recorren las entidades en orden padre -> hijos.
- Una sola corrida a la vez (lock); cancelación cooperativa entre páginas.
- Cada corrida queda registrada en sync_runs (si hay run log configurado).
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Iterable, Optional, Union
from uuid import uuid4

from loguru import logger

from listing_sync.application.interfaces.sync_ports import (
    CursorStore,
    FeedClient,
    PersistenceClient,
    SyncRunLog,
)
from listing_sync.shared.constants.sync_constants import (
    ENTITY_SYNC_ORDER,
    EntityType,
    ErrorStage,
    FeedType,
    SyncMode,
)
from listing_sync.shared.exceptions.domain import EntityNotFoundException
from listing_sync.shared.exceptions.sync import (
    SyncAlreadyRunningError,
    TransportError,
    UnknownEntityError,
)
from listing_sync.shared.utils.datetime_utils import DateTimeUtils

from .batch_orchestrator import BatchOrchestrator
from .feed_client import quote_odata_literal
from .field_mapper import FieldMapper
from .referential_filter import ReferentialFilter
from .schema_filter import SchemaCacheState, SchemaFilter
from .sync_config import EngineConfig, EntitySyncConfig
from .sync_state import SyncStateTracker
from .types import BatchResult, MappedRecord, SyncRunResult


@dataclass
class SyncOneResult:
    """Resultado de sincronizar un registro puntual (y sus hijos)."""

    entity_type: str
    key: str
    record: Optional[MappedRecord]
    persisted: bool
    batch: BatchResult
    child_results: dict[str, BatchResult] = field(default_factory=dict)


class SyncEngine:
    """
    Punto de entrada del motor: full / incremental / registro puntual / estado.
    """

    def __init__(
        self,
        *,
        config: EngineConfig,
        feed: FeedClient,
        persistence: PersistenceClient,
        cursor_store: CursorStore,
        run_log: Optional[SyncRunLog] = None,
        schema_state: Optional[SchemaCacheState] = None,
        clock: Callable[[], datetime] = DateTimeUtils.now_utc,
    ) -> None:
        self.config = config
        self._feed = feed
        self._run_log = run_log
        self._clock = clock
        self.schema_state = schema_state or SchemaCacheState()

        self.mapper = FieldMapper(timezone=config.feed_timezone)
        self.schema_filter = SchemaFilter(
            persistence,
            self.schema_state,
            policy=config.schema_policy,
            declared={c.table: c.declared_columns for c in config.entities},
            clock=clock,
        )
        self.referential_filter = ReferentialFilter(persistence, policy=config.referential_policy)
        self.tracker = SyncStateTracker(cursor_store)
        self.orchestrator = BatchOrchestrator(
            feed=feed,
            persistence=persistence,
            mapper=self.mapper,
            schema_filter=self.schema_filter,
            referential_filter=self.referential_filter,
            tracker=self.tracker,
            max_consecutive_page_failures=config.max_consecutive_page_failures,
            clock=clock,
        )

        self._run_lock = asyncio.Lock()
        self._cancel_event = asyncio.Event()
        self._last_run: Optional[SyncRunResult] = None

    # ------------------------------------------------------------------
    # Corridas
    # ------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._run_lock.locked()

    @property
    def last_run(self) -> Optional[SyncRunResult]:
        return self._last_run

    async def run_full_sync(
        self, entities: Optional[Iterable[Union[str, EntityType]]] = None
    ) -> SyncRunResult:
        return await self._run(SyncMode.FULL, entities)

    async def run_incremental_sync(
        self, entities: Optional[Iterable[Union[str, EntityType]]] = None
    ) -> SyncRunResult:
        return await self._run(SyncMode.INCREMENTAL, entities)

    def cancel(self) -> bool:
        """Pide cancelar la corrida en curso (efectivo entre páginas)."""
        if not self.is_running:
            return False
        self._cancel_event.set()
        logger.warning("Cancelacion solicitada; se detendra al terminar la pagina actual")
        return True

    async def wait_idle(self) -> None:
        """Espera a que termine la corrida en curso (si la hay)."""
        async with self._run_lock:
            pass

    async def _run(
        self, mode: SyncMode, entities: Optional[Iterable[Union[str, EntityType]]]
    ) -> SyncRunResult:
        if self._run_lock.locked():
            raise SyncAlreadyRunningError()

        async with self._run_lock:
            self._cancel_event.clear()
            configs = self.select_configs(entities)
            run = SyncRunResult(run_id=str(uuid4()), mode=mode, started_at=self._clock())
            logger.info(
                f"Iniciando sync {mode.value} ({run.run_id}): "
                f"{', '.join(c.entity_type.value for c in configs)}"
            )
            await self._log_started(run)

            try:
                for config in configs:
                    if self._cancel_event.is_set():
                        run.cancelled = True
                        break
                    entity_result = await self.orchestrator.run_entity(
                        config, mode=mode, cancel_event=self._cancel_event
                    )
                    run.entities[config.entity_type.value] = entity_result
                    if entity_result.cancelled:
                        run.cancelled = True
                        break
            except Exception as e:
                run.finished_at = self._clock()
                run.error = str(e)[:2000]
                self._last_run = run
                logger.error(f"Sync {mode.value} ({run.run_id}) abortada: {e}")
                await self._log_finished(run)
                raise

            run.finished_at = self._clock()
            self._last_run = run
            await self._log_finished(run)

        message = (
            f"Sync {mode.value} ({run.run_id}) {run.status.value}: "
            f"{run.successful}/{run.attempted} ok, {run.failed} fallidos, "
            f"{run.duration_seconds:.1f}s"
        )
        if run.failed or run.cancelled:
            logger.warning(message)
        else:
            logger.success(message)
        return run

    # ------------------------------------------------------------------
    # Registro puntual
    # ------------------------------------------------------------------

    async def sync_one(self, entity_type: Union[str, EntityType], key: str) -> SyncOneResult:
        """
        Sincroniza un registro por clave y, si es padre, sus hijos.

        No mueve cursores: es una reparación puntual fuera del orden total.

        Raises:
            UnknownEntityError: entidad no configurada
            EntityNotFoundException: el feed no tiene el registro
            TransportError: el feed no respondió al pedir el registro
        """
        config = self.entity_config(entity_type)
        raw = await self._feed.fetch_one(config.resource, key, feed_type=config.feed_type)
        if raw is None:
            raise EntityNotFoundException(config.resource, key)

        rooms = None
        if config.room_summary:
            rooms = await self._fetch_rooms(key)

        outcome = await self.orchestrator.process_records(
            config, [raw], synced_at=self._clock(), children=rooms
        )
        persisted = outcome.batch.successful == 1
        result = SyncOneResult(
            entity_type=config.entity_type.value,
            key=key,
            record=outcome.rows[0] if outcome.rows else None,
            persisted=persisted,
            batch=outcome.batch,
        )

        if persisted:
            for child in self.config.children_of(config.table):
                prefetched = rooms if child.entity_type == EntityType.ROOM else None
                result.child_results[child.entity_type.value] = await self._sync_children(
                    child, key, prefetched
                )

        children = {name: batch.successful for name, batch in result.child_results.items()}
        logger.info(f"Sync puntual {config.entity_type.value}={key}: persisted={persisted}, hijos={children}")
        return result

    async def _fetch_rooms(self, listing_key: str) -> Optional[list[dict[str, Any]]]:
        room_config = self.config.entity(EntityType.ROOM)
        if room_config is None or room_config.parent is None:
            return None
        try:
            return await self._feed.fetch_page(
                room_config.resource,
                top=room_config.batch_size,
                order_by=room_config.order_by,
                filter=f"{room_config.parent.field} eq {quote_odata_literal(listing_key)}",
                feed_type=room_config.feed_type,
            )
        except TransportError as e:
            logger.warning(f"No se pudieron obtener ambientes de {listing_key}: {e.message}")
            return None

    async def _sync_children(
        self,
        child: EntitySyncConfig,
        parent_key: str,
        records: Optional[list[dict[str, Any]]] = None,
    ) -> BatchResult:
        if records is None:
            try:
                records = await self._feed.fetch_page(
                    child.resource,
                    top=child.batch_size,
                    order_by=child.order_by,
                    filter=f"{child.parent.field} eq {quote_odata_literal(parent_key)}",
                    feed_type=child.feed_type,
                )
            except TransportError as e:
                failed = BatchResult(entity_type=child.entity_type.value)
                failed.add_error(None, ErrorStage.TRANSPORT, e.message)
                return failed
        return await self.orchestrator.process_page(child, records, synced_at=self._clock())

    # ------------------------------------------------------------------
    # Estado / operaciones manuales
    # ------------------------------------------------------------------

    async def get_status(self) -> dict[str, Any]:
        """
        Estado del motor: cursores, breakers, estados del orquestador y última corrida.

        Raises:
            CursorStoreError: si el store de cursores no está disponible
        """
        cursors = {}
        for config in self.config.entities:
            cursor = await self.tracker.peek_cursor(config.entity_type.value)
            cursors[config.entity_type.value] = cursor.to_dict() if cursor else None
        return {
            "running": self.is_running,
            "cursors": cursors,
            "circuit_breakers": self.schema_filter.get_stats(),
            "orchestrator_states": {
                c.entity_type.value: self.orchestrator.state_of(c.entity_type.value).value
                for c in self.config.entities
            },
            "last_run": self._last_run.summary() if self._last_run else None,
        }

    def reset_circuit_breaker(self, table: Optional[str] = None) -> dict[str, Any]:
        self.schema_filter.reset(table)
        return self.schema_filter.get_stats()

    async def reset_cursor(self, entity_type: Union[str, EntityType]):
        config = self.entity_config(entity_type)
        return await self.tracker.reset_cursor(config.entity_type.value)

    async def close(self) -> None:
        """Libera el cliente HTTP del feed (si expone aclose)."""
        aclose = getattr(self._feed, "aclose", None)
        if aclose is not None:
            await aclose()

    def entity_config(self, entity_type: Union[str, EntityType]) -> EntitySyncConfig:
        valid = [c.entity_type.value for c in self.config.entities]
        try:
            resolved = EntityType(entity_type)
        except ValueError:
            raise UnknownEntityError(str(entity_type), valid) from None
        config = self.config.entity(resolved)
        if config is None:
            raise UnknownEntityError(resolved.value, valid)
        return config

    def select_configs(
        self, entities: Optional[Iterable[Union[str, EntityType]]]
    ) -> list[EntitySyncConfig]:
        if entities is None:
            wanted = {c.entity_type for c in self.config.entities}
        else:
            wanted = {self.entity_config(e).entity_type for e in entities}
        selected = []
        for entity_type in ENTITY_SYNC_ORDER:
            config = self.config.entity(entity_type)
            if config is not None and entity_type in wanted:
                selected.append(config)
        return selected

    async def _log_started(self, run: SyncRunResult) -> None:
        if self._run_log is None:
            return
        try:
            await self._run_log.record_started(run)
        except Exception as e:
            logger.warning(f"No se pudo registrar inicio de corrida {run.run_id}: {e}")

    async def _log_finished(self, run: SyncRunResult) -> None:
        if self._run_log is None:
            return
        try:
            await self._run_log.record_finished(run)
        except Exception as e:
            logger.warning(f"No se pudo registrar fin de corrida {run.run_id}: {e}")


def build_sync_engine(settings) -> SyncEngine:
    """
    Constructor “oficial” del motor a partir de Settings.

    Usa el engine SQLAlchemy global (session.py) y un ResoFeedClient propio;
    el caller debe llamar `engine.close()` al terminar.
    """
    from listing_sync.infrastructure.database.session import AsyncSessionLocal, engine
    from listing_sync.infrastructure.repositories.listing_repository import ListingRepository
    from listing_sync.infrastructure.repositories.sync_cursor_repository import SyncCursorRepository
    from listing_sync.infrastructure.repositories.sync_run_repository import SyncRunRepository

    from .feed_client import FeedCredentials, ResoFeedClient
    from .sync_config import build_engine_config

    credentials = FeedCredentials(
        access_token=settings.FEED_ACCESS_TOKEN,
        idx_token=settings.FEED_IDX_TOKEN,
        vow_token=settings.FEED_VOW_TOKEN,
    )
    if not credentials.token_for(FeedType.IDX):
        logger.warning("CONFIG: sin token de feed configurado (FEED_ACCESS_TOKEN / FEED_IDX_TOKEN)")

    feed = ResoFeedClient(
        credentials,
        base_url=settings.FEED_BASE_URL,
        timeout_s=settings.FEED_TIMEOUT_SECONDS,
        max_retries=settings.FEED_MAX_RETRIES,
    )
    return SyncEngine(
        config=build_engine_config(settings),
        feed=feed,
        persistence=ListingRepository(AsyncSessionLocal, engine),
        cursor_store=SyncCursorRepository(AsyncSessionLocal),
        run_log=SyncRunRepository(AsyncSessionLocal),
    )
