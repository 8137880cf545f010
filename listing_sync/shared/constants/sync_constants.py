"""
Constantes del motor de sincronización.
Define entidades, etapas de error, estados del circuit breaker y del orquestador.
"""
from enum import Enum


class EntityType(str, Enum):
    """Entidades replicadas desde el feed."""
    PROPERTY = "property"
    MEDIA = "media"
    ROOM = "room"
    OPEN_HOUSE = "open_house"


# Padres antes que hijos: el filtro referencial consulta la base en vivo
ENTITY_SYNC_ORDER = (
    EntityType.PROPERTY,
    EntityType.MEDIA,
    EntityType.ROOM,
    EntityType.OPEN_HOUSE,
)


class FeedType(str, Enum):
    """Tipo de feed (define el token a usar)."""
    IDX = "idx"
    VOW = "vow"


class FieldKind(str, Enum):
    """Tipo de transformación de un campo mapeado."""
    SCALAR = "scalar"
    MULTI = "multi"
    INTEGER = "integer"
    DECIMAL = "decimal"
    BOOLEAN = "boolean"
    TIMESTAMP = "timestamp"
    DATE = "date"
    TIME_OF_DAY = "time_of_day"


class ErrorStage(str, Enum):
    """Etapa del pipeline donde falló un registro."""
    MAPPING = "mapping"
    VALIDATION = "validation"
    REFERENTIAL = "referential"
    PERSISTENCE = "persistence"
    TRANSPORT = "transport"


class SchemaState(str, Enum):
    """Estado del esquema cacheado de una tabla."""
    UNKNOWN = "unknown"
    KNOWN = "known"
    EMPTY = "empty"
    TRIPPED = "tripped"


class OrchestratorState(str, Enum):
    """Estados de la máquina de estados por entidad."""
    IDLE = "idle"
    FETCHING = "fetching"
    PROCESSING = "processing"
    PERSISTING = "persisting"
    ADVANCING = "advancing"
    FAILED_BATCH = "failed_batch"
    DONE = "done"


class SyncMode(str, Enum):
    """Modo de corrida."""
    FULL = "full"
    INCREMENTAL = "incremental"


class SyncRunStatus(str, Enum):
    """Estado final de una corrida (tabla sync_runs)."""
    RUNNING = "running"
    SUCCESS = "success"
    PARTIAL = "partial"
    ERROR = "error"
    CANCELLED = "cancelled"


class ReferentialCheckPolicy(str, Enum):
    """Qué hacer si la verificación de padres falla."""
    FAIL_OPEN = "fail_open"
    FAIL_CLOSED = "fail_closed"
