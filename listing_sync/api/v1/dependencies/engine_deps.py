"""
Dependencias para inyección del motor de sincronización y casos de uso.
"""
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from listing_sync.application.use_cases.property_use_cases import PropertyUseCases
from listing_sync.application.use_cases.sync_use_cases import SyncUseCases
from listing_sync.core.config import settings
from listing_sync.infrastructure.database.session import AsyncSessionLocal, get_db
from listing_sync.infrastructure.external.reso_sync.sync_service import SyncEngine
from listing_sync.infrastructure.repositories.sync_run_repository import SyncRunRepository
from listing_sync.shared.exceptions.base import AppException


def get_sync_engine(request: Request) -> SyncEngine:
    """
    Retorna el SyncEngine del proceso (creado en el startup).

    Raises:
        AppException: si la aplicación no inicializó el motor
    """
    engine = getattr(request.app.state, "sync_engine", None)
    if engine is None:
        raise AppException(
            message="Motor de sincronizacion no inicializado",
            status_code=503,
            error_code="SYNC_ENGINE_UNAVAILABLE",
        )
    return engine


def get_sync_use_cases(
    engine: SyncEngine = Depends(get_sync_engine)
) -> SyncUseCases:
    return SyncUseCases(engine, scheduler_enabled=settings.SYNC_SCHEDULER_ENABLED)


async def get_property_use_cases(
    db: AsyncSession = Depends(get_db)
) -> PropertyUseCases:
    """
    Dependencia para obtener los casos de uso de listados.

    Args:
        db: Sesion de base de datos

    Returns:
        PropertyUseCases: Instancia de casos de uso de listados
    """
    return PropertyUseCases(db)


def get_sync_run_repository() -> SyncRunRepository:
    return SyncRunRepository(AsyncSessionLocal)
