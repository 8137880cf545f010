"""
Configuracion central del servicio de sincronizacion.
Gestiona variables de entorno y configuraciones globales.
Soporta configuracion dinamica para desarrollo (ENVIRONMENT=development)
y produccion (ENVIRONMENT=production).
"""
import json
from typing import List
from pydantic_settings import BaseSettings
from pydantic import Field, computed_field


class Settings(BaseSettings):
    """
    Clase de configuracion de la aplicacion.
    Lee variables de entorno y proporciona valores por defecto.

    Grupos:
    - Aplicacion / servidor / base de datos
    - Feed RESO (URL base, tokens por tipo de feed, reintentos)
    - Motor de sync (tamanos de pagina y chunk, circuit breaker, politica referencial)
    - Scheduler (sync incremental periodico)
    """

    # Configuracion de la aplicacion
    APP_NAME: str = Field(default="Listing Sync")
    APP_VERSION: str = Field(default="1.0.0")
    DEBUG: bool = Field(default=False)
    ENVIRONMENT: str = Field(default="production")

    # Configuracion del servidor
    HOST: str = Field(default="0.0.0.0")
    PORT: int = Field(default=8000)

    # Base de datos - Componentes separados
    DATABASE_HOST: str = Field(default="localhost")
    DATABASE_PORT: int = Field(default=5432)
    DATABASE_USER: str = Field(default="listings_user")
    DATABASE_PASSWORD: str = Field(default="listings_pass")
    DATABASE_NAME: str = Field(default="listings_db")

    # Base de datos - URL completa (override de componentes si se proporciona)
    DATABASE_URL: str = Field(default="")
    DB_POOL_SIZE: int = Field(default=5)
    DB_MAX_OVERFLOW: int = Field(default=10)

    # CORS (acepta lista JSON o "*" para todos los origenes)
    CORS_ORIGINS: str = Field(default="*")

    # Feed RESO (OData)
    FEED_BASE_URL: str = Field(default="https://query.ampre.ca/odata")
    FEED_ACCESS_TOKEN: str = Field(default="")
    FEED_IDX_TOKEN: str = Field(default="")
    FEED_VOW_TOKEN: str = Field(default="")
    FEED_TIMEOUT_SECONDS: float = Field(default=60.0)
    FEED_MAX_RETRIES: int = Field(default=5)
    # Zona usada para extraer la hora local de campos "time of day"
    FEED_TIMEZONE: str = Field(default="America/Toronto")

    # Motor de sync
    PROPERTY_BATCH_SIZE: int = Field(default=1000)
    MEDIA_BATCH_SIZE: int = Field(default=500)
    ROOM_BATCH_SIZE: int = Field(default=1000)
    OPEN_HOUSE_BATCH_SIZE: int = Field(default=1000)
    DB_CHUNK_SIZE: int = Field(default=100)
    PROPERTY_FEED_FILTER: str = Field(default="")
    MEDIA_FEED_FILTER: str = Field(default="MediaModificationTimestamp ge 2025-01-01T00:00:00Z")
    MAX_CONSECUTIVE_PAGE_FAILURES: int = Field(default=3)
    REFERENTIAL_FAIL_OPEN: bool = Field(default=True)

    # Cache de esquema / circuit breaker
    SCHEMA_PROBE_ENABLED: bool = Field(default=True)
    SCHEMA_CACHE_TTL_SECONDS: int = Field(default=300)
    SCHEMA_MAX_FAILURES: int = Field(default=3)
    SCHEMA_FAILURE_COOLDOWN_SECONDS: int = Field(default=1800)
    SCHEMA_EMPTY_RECHECK_SECONDS: int = Field(default=600)

    # Scheduler
    SYNC_SCHEDULER_ENABLED: bool = Field(default=False)
    SYNC_INTERVAL_MINUTES: int = Field(default=30)

    # Logging
    LOG_LEVEL: str = Field(default="INFO")
    LOG_FILE: str = Field(default="logs/sync.log")

    @computed_field
    @property
    def effective_database_url(self) -> str:
        """
        Retorna la URL de base de datos efectiva.
        Si DATABASE_URL esta definida, la usa directamente.
        Si no, construye la URL desde los componentes individuales.
        """
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql+asyncpg://{self.DATABASE_USER}:{self.DATABASE_PASSWORD}"
            f"@{self.DATABASE_HOST}:{self.DATABASE_PORT}/{self.DATABASE_NAME}"
        )

    class Config:
        """Configuracion de Pydantic."""
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"  # Ignorar campos extra del .env


def get_cors_origins(cors_string: str) -> List[str]:
    """
    Parsea la configuracion de CORS.
    Acepta "*" para todos los origenes o una lista JSON.
    """
    if cors_string == "*":
        return ["*"]
    try:
        return json.loads(cors_string)
    except json.JSONDecodeError:
        return [origin.strip() for origin in cors_string.split(",")]


# Instancia global de configuracion
settings = Settings()
