"""
Casos de uso de sincronización del feed RESO.

Fachada delgada sobre SyncEngine: traduce resultados del motor a DTOs y
lanza corridas en background cuando la request no quiere esperar.
"""

from __future__ import annotations

import asyncio
from typing import Iterable, List, Optional, Set

from loguru import logger

from listing_sync.application.dto.sync_dto import (
    BatchResultDTO,
    CancelResponseDTO,
    CircuitBreakerResetResponseDTO,
    EntitySyncResultDTO,
    RecordErrorDTO,
    SyncCursorDTO,
    SyncOneResponseDTO,
    SyncRunResponseDTO,
    SyncStartedDTO,
    SyncStatusDTO,
)
from listing_sync.infrastructure.external.reso_sync.sync_service import SyncEngine
from listing_sync.infrastructure.external.reso_sync.types import (
    BatchResult,
    EntitySyncResult,
    SyncCursor,
    SyncRunResult,
)
from listing_sync.shared.constants.sync_constants import SyncMode
from listing_sync.shared.exceptions.sync import SyncAlreadyRunningError


def _cursor_dto(cursor: SyncCursor) -> SyncCursorDTO:
    return SyncCursorDTO(
        entity_type=cursor.entity_type,
        last_timestamp=cursor.last_timestamp,
        last_key=cursor.last_key,
    )


def _batch_dto(batch: BatchResult) -> BatchResultDTO:
    return BatchResultDTO(
        entity_type=batch.entity_type,
        attempted=batch.attempted,
        successful=batch.successful,
        failed=batch.failed,
        errors=[RecordErrorDTO(**e.to_dict()) for e in batch.errors],
    )


def _entity_dto(result: EntitySyncResult) -> EntitySyncResultDTO:
    return EntitySyncResultDTO(
        entity_type=result.entity_type,
        total_available=result.total_available,
        pages_fetched=result.pages_fetched,
        pages_failed=result.pages_failed,
        cursor_advances=result.cursor_advances,
        attempted=result.attempted,
        successful=result.successful,
        failed=result.failed,
        final_cursor=_cursor_dto(result.final_cursor) if result.final_cursor else None,
        cancelled=result.cancelled,
        errors=[RecordErrorDTO(**e.to_dict()) for e in result.errors],
    )


def run_result_to_dto(run: SyncRunResult) -> SyncRunResponseDTO:
    return SyncRunResponseDTO(
        run_id=run.run_id,
        mode=run.mode.value,
        status=run.status.value,
        started_at=run.started_at,
        finished_at=run.finished_at,
        duration_seconds=run.duration_seconds,
        attempted=run.attempted,
        successful=run.successful,
        failed=run.failed,
        error_count=len(run.errors),
        cancelled=run.cancelled,
        error=run.error,
        entities=[_entity_dto(e) for e in run.entities.values()],
    )


class SyncUseCases:
    """Operaciones expuestas por la API sobre el motor de sincronización."""

    # Referencias fuertes a las corridas en background
    _background: Set[asyncio.Task] = set()

    def __init__(self, engine: SyncEngine, scheduler_enabled: bool = False):
        self.engine = engine
        self.scheduler_enabled = scheduler_enabled

    async def run_sync(
        self, mode: SyncMode, entities: Optional[Iterable[str]] = None
    ) -> SyncRunResponseDTO:
        if mode == SyncMode.FULL:
            run = await self.engine.run_full_sync(entities)
        else:
            run = await self.engine.run_incremental_sync(entities)
        return run_result_to_dto(run)

    def start_sync(self, mode: SyncMode, entities: Optional[List[str]] = None) -> SyncStartedDTO:
        """
        Lanza la corrida en background y retorna de inmediato.

        Raises:
            SyncAlreadyRunningError: si ya hay una corrida en curso
            UnknownEntityError: si alguna entidad no existe
        """
        if self.engine.is_running:
            raise SyncAlreadyRunningError()
        selected = [c.entity_type.value for c in self.engine.select_configs(entities)]

        task = asyncio.create_task(self._run_in_background(mode, selected))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

        return SyncStartedDTO(
            mode=mode.value,
            entities=selected,
            message=f"Sincronizacion {mode.value} iniciada en background",
        )

    async def _run_in_background(self, mode: SyncMode, entities: List[str]) -> None:
        try:
            await self.run_sync(mode, entities)
        except SyncAlreadyRunningError:
            logger.warning(f"Sync {mode.value} en background descartada: ya habia una corrida en curso")
        except Exception as e:
            logger.error(f"Sync {mode.value} en background fallo: {e}")

    async def sync_one(self, entity_type: str, key: str) -> SyncOneResponseDTO:
        result = await self.engine.sync_one(entity_type, key)
        return SyncOneResponseDTO(
            entity_type=result.entity_type,
            key=result.key,
            persisted=result.persisted,
            result=_batch_dto(result.batch),
            children={name: _batch_dto(batch) for name, batch in result.child_results.items()},
        )

    async def get_status(self) -> SyncStatusDTO:
        status = await self.engine.get_status()
        return SyncStatusDTO(
            running=status["running"],
            cursors={
                name: SyncCursorDTO(**cursor) if cursor else None
                for name, cursor in status["cursors"].items()
            },
            circuit_breakers=status["circuit_breakers"],
            orchestrator_states=status["orchestrator_states"],
            last_run=status["last_run"],
            scheduler_enabled=self.scheduler_enabled,
        )

    def cancel(self) -> CancelResponseDTO:
        cancelled = self.engine.cancel()
        message = (
            "Cancelacion solicitada; la corrida se detendra al terminar la pagina actual"
            if cancelled
            else "No hay corrida en curso"
        )
        return CancelResponseDTO(cancelled=cancelled, message=message)

    def reset_circuit_breakers(self, table: Optional[str] = None) -> CircuitBreakerResetResponseDTO:
        stats = self.engine.reset_circuit_breaker(table)
        logger.info(f"Circuit breakers reseteados: {table or 'todas las tablas'}")
        return CircuitBreakerResetResponseDTO(table=table, circuit_breakers=stats)

    async def reset_cursor(self, entity_type: str) -> SyncCursorDTO:
        cursor = await self.engine.reset_cursor(entity_type)
        return _cursor_dto(cursor)
