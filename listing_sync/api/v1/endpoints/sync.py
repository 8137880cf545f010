"""
Endpoints para sincronizacion del feed RESO.
Permite disparar corridas, sincronizar registros puntuales y monitorear el motor.
"""
from typing import List, Optional, Union

from apscheduler.triggers.interval import IntervalTrigger
from fastapi import APIRouter, Depends, Query, Request, Response, status
from loguru import logger

from listing_sync.application.dto.sync_dto import (
    CancelResponseDTO,
    CircuitBreakerResetResponseDTO,
    SyncCursorDTO,
    SyncOneResponseDTO,
    SyncRunResponseDTO,
    SyncStartedDTO,
    SyncStatusDTO,
    SyncRunLogDTO,
)
from listing_sync.application.use_cases.sync_use_cases import SyncUseCases
from listing_sync.api.v1.dependencies.engine_deps import get_sync_run_repository, get_sync_use_cases
from listing_sync.core.events import INCREMENTAL_SYNC_JOB_ID
from listing_sync.infrastructure.repositories.sync_run_repository import SyncRunRepository
from listing_sync.shared.constants.sync_constants import SyncMode
from listing_sync.shared.exceptions.base import AppException


router = APIRouter(prefix="/sync", tags=["Sync"])


async def _trigger(
    use_cases: SyncUseCases,
    mode: SyncMode,
    entities: Optional[List[str]],
    wait: bool,
    response: Response,
) -> Union[SyncRunResponseDTO, SyncStartedDTO]:
    logger.info(
        f"Sync {mode.value} solicitada desde API "
        f"(entidades={entities or 'todas'}, wait={wait})"
    )
    if not wait:
        response.status_code = status.HTTP_202_ACCEPTED
        return use_cases.start_sync(mode, entities)
    return await use_cases.run_sync(mode, entities)


@router.post(
    "/full",
    response_model=Union[SyncRunResponseDTO, SyncStartedDTO],
    summary="Sincronizacion completa"
)
async def run_full_sync(
    response: Response,
    entities: Optional[List[str]] = Query(
        default=None,
        description="Entidades a sincronizar (property, media, room, open_house). Por defecto todas."
    ),
    wait: bool = Query(
        default=False,
        description="Si True, espera el resultado. Si False, la corrida queda en background (202)."
    ),
    use_cases: SyncUseCases = Depends(get_sync_use_cases),
):
    """
    Recorre el feed completo (ignorando cursores) y hace upsert de todo.

    Los cursores avanzan igual, de modo que la siguiente incremental parte
    desde donde terminó esta corrida.
    """
    return await _trigger(use_cases, SyncMode.FULL, entities, wait, response)


@router.post(
    "/incremental",
    response_model=Union[SyncRunResponseDTO, SyncStartedDTO],
    summary="Sincronizacion incremental"
)
async def run_incremental_sync(
    response: Response,
    entities: Optional[List[str]] = Query(default=None),
    wait: bool = Query(default=False),
    use_cases: SyncUseCases = Depends(get_sync_use_cases),
):
    """
    Sincroniza solo los registros posteriores al cursor (timestamp, clave) de cada entidad.
    """
    return await _trigger(use_cases, SyncMode.INCREMENTAL, entities, wait, response)


@router.get(
    "/status",
    response_model=SyncStatusDTO,
    summary="Estado del motor de sincronizacion"
)
async def get_sync_status(
    use_cases: SyncUseCases = Depends(get_sync_use_cases),
) -> SyncStatusDTO:
    return await use_cases.get_status()


@router.post(
    "/cancel",
    response_model=CancelResponseDTO,
    summary="Cancelar la corrida en curso"
)
async def cancel_sync(
    use_cases: SyncUseCases = Depends(get_sync_use_cases),
) -> CancelResponseDTO:
    return use_cases.cancel()


@router.get(
    "/runs",
    response_model=List[SyncRunLogDTO],
    summary="Historial de corridas"
)
async def list_sync_runs(
    limit: int = Query(default=20, ge=1, le=200),
    repository: SyncRunRepository = Depends(get_sync_run_repository),
) -> List[SyncRunLogDTO]:
    runs = await repository.list_recent(limit)
    return [SyncRunLogDTO.model_validate(run) for run in runs]


@router.post(
    "/circuit-breakers/reset",
    response_model=CircuitBreakerResetResponseDTO,
    summary="Resetear circuit breakers de esquema"
)
async def reset_circuit_breakers(
    table: Optional[str] = Query(default=None, description="Tabla a resetear. Por defecto todas."),
    use_cases: SyncUseCases = Depends(get_sync_use_cases),
) -> CircuitBreakerResetResponseDTO:
    return use_cases.reset_circuit_breakers(table)


@router.post(
    "/cursors/{entity_type}/reset",
    response_model=SyncCursorDTO,
    summary="Resetear el cursor de una entidad a epoch"
)
async def reset_cursor(
    entity_type: str,
    use_cases: SyncUseCases = Depends(get_sync_use_cases),
) -> SyncCursorDTO:
    """
    Fuerza que la proxima incremental de la entidad recorra el feed desde el inicio.
    """
    return await use_cases.reset_cursor(entity_type)


@router.post(
    "/schedule",
    summary="Cambiar el intervalo de la incremental agendada"
)
async def update_sync_interval(
    request: Request,
    minutes: int = Query(..., ge=1, le=1440),
):
    """
    Reagenda el job de sincronizacion incremental en el scheduler activo.
    """
    scheduler = getattr(request.app.state, "scheduler", None)
    if scheduler is None:
        raise AppException(
            message="El scheduler de sincronizacion no esta habilitado (SYNC_SCHEDULER_ENABLED)",
            status_code=409,
            error_code="SCHEDULER_DISABLED",
        )
    scheduler.reschedule_job(INCREMENTAL_SYNC_JOB_ID, trigger=IntervalTrigger(minutes=minutes))
    logger.info(f"Sync incremental reagendada cada {minutes} min")
    return {"message": f"Intervalo actualizado a {minutes} min", "success": True}


@router.post(
    "/{entity_type}/{key}",
    response_model=SyncOneResponseDTO,
    status_code=status.HTTP_200_OK,
    summary="Sincronizar un registro puntual"
)
async def sync_one(
    entity_type: str,
    key: str,
    use_cases: SyncUseCases = Depends(get_sync_use_cases),
) -> SyncOneResponseDTO:
    """
    Trae un registro del feed por clave, lo persiste y (si es padre) sincroniza sus hijos.
    No mueve cursores.
    """
    return await use_cases.sync_one(entity_type, key)
