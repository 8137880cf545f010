"""
DTOs para la API de sincronización del feed RESO.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class RecordErrorDTO(BaseModel):
    """Falla de un registro (key=None cuando falló la página completa)."""

    key: Optional[str] = None
    stage: str
    message: str


class SyncCursorDTO(BaseModel):
    entity_type: str
    last_timestamp: datetime
    last_key: str = ""


class EntitySyncResultDTO(BaseModel):
    """Resultado agregado de una entidad dentro de una corrida."""

    entity_type: str
    total_available: Optional[int] = None
    pages_fetched: int = 0
    pages_failed: int = 0
    cursor_advances: int = 0
    attempted: int = 0
    successful: int = 0
    failed: int = 0
    final_cursor: Optional[SyncCursorDTO] = None
    cancelled: bool = False
    errors: List[RecordErrorDTO] = Field(default_factory=list)


class SyncRunResponseDTO(BaseModel):
    """Resultado de una corrida full / incremental."""

    run_id: str
    mode: str
    status: str
    started_at: datetime
    finished_at: Optional[datetime] = None
    duration_seconds: Optional[float] = None
    attempted: int = 0
    successful: int = 0
    failed: int = 0
    error_count: int = 0
    cancelled: bool = False
    error: Optional[str] = None
    entities: List[EntitySyncResultDTO] = Field(default_factory=list)


class SyncStartedDTO(BaseModel):
    """Respuesta inmediata cuando la corrida queda en background."""

    mode: str
    entities: List[str]
    message: str


class BatchResultDTO(BaseModel):
    entity_type: str
    attempted: int = 0
    successful: int = 0
    failed: int = 0
    errors: List[RecordErrorDTO] = Field(default_factory=list)


class SyncOneResponseDTO(BaseModel):
    """Resultado de sincronizar un registro puntual y sus hijos."""

    entity_type: str
    key: str
    persisted: bool
    result: BatchResultDTO
    children: Dict[str, BatchResultDTO] = Field(default_factory=dict)


class SyncStatusDTO(BaseModel):
    """Estado del motor para monitoreo."""

    running: bool
    cursors: Dict[str, Optional[SyncCursorDTO]]
    circuit_breakers: Dict[str, Any]
    orchestrator_states: Dict[str, str]
    last_run: Optional[Dict[str, Any]] = None
    scheduler_enabled: bool = False


class CancelResponseDTO(BaseModel):
    cancelled: bool
    message: str


class CircuitBreakerResetResponseDTO(BaseModel):
    table: Optional[str] = None
    circuit_breakers: Dict[str, Any]


class SyncRunLogDTO(BaseModel):
    """Fila de la bitácora sync_runs."""

    run_id: str
    mode: str
    status: str
    entities: Optional[List[str]] = None
    started_at: datetime
    finished_at: Optional[datetime] = None
    duration_seconds: Optional[float] = None
    total_processed: Optional[int] = 0
    total_successful: Optional[int] = 0
    total_failed: Optional[int] = 0
    error_count: Optional[int] = 0
    last_error_message: Optional[str] = None

    class Config:
        from_attributes = True
