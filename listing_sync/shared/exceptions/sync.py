"""
Taxonomía de errores del motor de sincronización.

Errores aislados a un registro (MappingError, ReferentialViolation), a un chunk
(PersistenceError) o a una página (TransportError) se registran en el resultado
del batch y nunca abortan la corrida. CursorStoreError es la única condición
que se propaga al caller: sin cursor confiable no se puede continuar.
"""
from typing import Any, Optional

from listing_sync.shared.exceptions.base import AppException


class SyncException(AppException):
    """Excepción base del pipeline de sincronización."""

    def __init__(
        self,
        message: str,
        error_code: str = "SYNC_ERROR",
        status_code: int = 500,
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            status_code=status_code,
            error_code=error_code,
            details=details
        )


class MappingError(SyncException):
    """Un registro crudo no pudo transformarse al esquema destino."""

    def __init__(self, message: str, key: Any = None, error_code: str = "MAPPING_ERROR"):
        super().__init__(
            message=message,
            error_code=error_code,
            status_code=422,
            details={"key": None if key is None else str(key)},
        )
        self.key = key


class InvalidPrimaryKey(MappingError):
    """El campo clave del registro está ausente o vacío."""

    def __init__(self, entity: str, key_field: str):
        super().__init__(
            message=f"Registro de {entity} sin clave primaria valida ({key_field})",
            error_code="INVALID_PRIMARY_KEY",
        )
        self.details.update({"entity": entity, "key_field": key_field})


class SchemaUnavailable(SyncException):
    """No se pudo descubrir el esquema de una tabla (probe fallido o tabla vacía)."""

    def __init__(self, table: str, reason: str):
        super().__init__(
            message=f"Esquema de '{table}' no disponible: {reason}",
            error_code="SCHEMA_UNAVAILABLE",
            status_code=503,
            details={"table": table, "reason": reason},
        )


class ReferentialViolation(SyncException):
    """Un registro hijo referencia un padre inexistente."""

    def __init__(self, parent_table: str, parent_key: Any):
        super().__init__(
            message=f"Padre {parent_table}={parent_key} no existe",
            error_code="REFERENTIAL_VIOLATION",
            status_code=409,
            details={"parent_table": parent_table, "parent_key": None if parent_key is None else str(parent_key)},
        )


class PersistenceError(SyncException):
    """Un chunk fue rechazado por la base de datos."""

    def __init__(self, table: str, reason: str, keys: Optional[list[str]] = None):
        super().__init__(
            message=f"Error persistiendo en '{table}': {reason}",
            error_code="PERSISTENCE_ERROR",
            details={"table": table, "keys": keys or []},
        )


class TransportError(SyncException):
    """El feed no respondió o respondió con error no recuperable."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(
            message=message,
            error_code="FEED_TRANSPORT_ERROR",
            status_code=502,
            details={"status": status},
        )
        self.status = status


class CursorStoreError(SyncException):
    """El almacén de cursores no está disponible o contiene datos inválidos."""

    def __init__(self, entity_type: str, reason: str):
        super().__init__(
            message=f"Cursor store no disponible para '{entity_type}': {reason}",
            error_code="CURSOR_STORE_ERROR",
            status_code=503,
            details={"entity_type": entity_type},
        )


class SyncAlreadyRunningError(SyncException):
    """Ya hay una corrida en curso para este motor."""

    def __init__(self):
        super().__init__(
            message="Ya hay una sincronizacion en curso",
            error_code="SYNC_ALREADY_RUNNING",
            status_code=409,
        )


class UnknownEntityError(SyncException):
    """Tipo de entidad no configurado."""

    def __init__(self, entity_type: str, valid: list[str]):
        super().__init__(
            message=f"Tipo de entidad desconocido: '{entity_type}'",
            error_code="UNKNOWN_ENTITY",
            status_code=400,
            details={"entity_type": entity_type, "valid_entities": valid},
        )
