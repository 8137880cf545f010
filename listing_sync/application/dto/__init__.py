"""
Data Transfer Objects (DTOs) para la capa de aplicacion.
"""
from .sync_dto import (
    RecordErrorDTO,
    SyncCursorDTO,
    EntitySyncResultDTO,
    SyncRunResponseDTO,
    SyncStartedDTO,
    BatchResultDTO,
    SyncOneResponseDTO,
    SyncStatusDTO,
    CancelResponseDTO,
    CircuitBreakerResetResponseDTO,
    SyncRunLogDTO,
)
from .property_dto import (
    PropertySummaryDTO,
    PropertyListResponseDTO,
    MediaDTO,
    RoomDTO,
    OpenHouseDTO,
    PropertyDetailDTO,
)

__all__ = [
    "RecordErrorDTO",
    "SyncCursorDTO",
    "EntitySyncResultDTO",
    "SyncRunResponseDTO",
    "SyncStartedDTO",
    "BatchResultDTO",
    "SyncOneResponseDTO",
    "SyncStatusDTO",
    "CancelResponseDTO",
    "CircuitBreakerResetResponseDTO",
    "SyncRunLogDTO",
    "PropertySummaryDTO",
    "PropertyListResponseDTO",
    "MediaDTO",
    "RoomDTO",
    "OpenHouseDTO",
    "PropertyDetailDTO",
]
