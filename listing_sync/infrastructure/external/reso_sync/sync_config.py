"""
Configuración del sync (feed RESO -> tablas destino).

Define por entidad:
- recurso del feed y tabla destino
- campo clave y campo timestamp (orden total estable del cursor)
- mapeos de campos
- relación con la tabla padre (filtro referencial)
- tamaños de página (fetch) y de chunk (persistencia)

Este módulo no realiza I/O: solo define configuración.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import tzinfo
from typing import Optional
from zoneinfo import ZoneInfo

from listing_sync.shared.constants.sync_constants import (
    ENTITY_SYNC_ORDER,
    EntityType,
    FeedType,
    ReferentialCheckPolicy,
)

from .entity_mappings import (
    MEDIA_MAPPINGS,
    OPEN_HOUSE_MAPPINGS,
    PROPERTY_MAPPINGS,
    ROOM_MAPPINGS,
    ROOM_SUMMARY_COLUMNS,
)
from .types import FieldMapping


@dataclass(frozen=True)
class ParentReference:
    """Clave foránea de una entidad hija: field -> table.column."""

    field: str
    table: str
    column: str


@dataclass(frozen=True)
class EntitySyncConfig:
    """Config de una entidad del feed -> una tabla destino."""

    entity_type: EntityType
    resource: str
    table: str
    key_field: str
    timestamp_field: str
    field_mappings: list[FieldMapping]
    batch_size: int = 1000
    chunk_size: int = 100
    feed_filter: Optional[str] = None
    feed_type: FeedType = FeedType.IDX
    parent: Optional[ParentReference] = None
    # Agrega las columnas resumen del ambiente representativo (solo Property)
    room_summary: bool = False

    @property
    def order_by(self) -> str:
        return f"{self.timestamp_field},{self.key_field}"

    @property
    def declared_columns(self) -> frozenset[str]:
        columns = {m.target for m in self.field_mappings}
        if self.room_summary:
            columns.update(ROOM_SUMMARY_COLUMNS)
        columns.add("UpdatedAt")
        return frozenset(columns)

    @property
    def required_columns(self) -> tuple[str, ...]:
        if self.parent:
            return (self.key_field, self.parent.field)
        return (self.key_field,)


@dataclass(frozen=True)
class SchemaCachePolicy:
    """Tiempos y umbrales del cache de esquema / circuit breaker."""

    ttl_seconds: int = 300
    max_failures: int = 3
    failure_cooldown_seconds: int = 1800
    empty_recheck_seconds: int = 600
    probe_enabled: bool = True


@dataclass(frozen=True)
class EngineConfig:
    """Config completa del motor."""

    entities: list[EntitySyncConfig]
    schema_policy: SchemaCachePolicy = field(default_factory=SchemaCachePolicy)
    referential_policy: ReferentialCheckPolicy = ReferentialCheckPolicy.FAIL_OPEN
    max_consecutive_page_failures: int = 3
    feed_timezone: Optional[tzinfo] = None

    def entity(self, entity_type: EntityType) -> Optional[EntitySyncConfig]:
        for config in self.entities:
            if config.entity_type == entity_type:
                return config
        return None

    def children_of(self, table: str) -> list[EntitySyncConfig]:
        return [c for c in self.entities if c.parent and c.parent.table == table]


def build_entity_configs(settings) -> list[EntitySyncConfig]:
    """
    Construye las configs por entidad desde Settings, en orden padre -> hijos.
    """
    property_ref = ParentReference(field="ListingKey", table="Property", column="ListingKey")
    chunk = settings.DB_CHUNK_SIZE

    configs = {
        EntityType.PROPERTY: EntitySyncConfig(
            entity_type=EntityType.PROPERTY,
            resource="Property",
            table="Property",
            key_field="ListingKey",
            timestamp_field="ModificationTimestamp",
            field_mappings=PROPERTY_MAPPINGS,
            batch_size=settings.PROPERTY_BATCH_SIZE,
            chunk_size=chunk,
            feed_filter=settings.PROPERTY_FEED_FILTER or None,
            room_summary=True,
        ),
        EntityType.MEDIA: EntitySyncConfig(
            entity_type=EntityType.MEDIA,
            resource="Media",
            table="Media",
            key_field="MediaKey",
            timestamp_field="MediaModificationTimestamp",
            field_mappings=MEDIA_MAPPINGS,
            batch_size=settings.MEDIA_BATCH_SIZE,
            chunk_size=chunk,
            feed_filter=settings.MEDIA_FEED_FILTER or None,
            parent=ParentReference(field="ResourceRecordKey", table="Property", column="ListingKey"),
        ),
        EntityType.ROOM: EntitySyncConfig(
            entity_type=EntityType.ROOM,
            resource="PropertyRooms",
            table="PropertyRooms",
            key_field="RoomKey",
            timestamp_field="ModificationTimestamp",
            field_mappings=ROOM_MAPPINGS,
            batch_size=settings.ROOM_BATCH_SIZE,
            chunk_size=chunk,
            parent=property_ref,
        ),
        EntityType.OPEN_HOUSE: EntitySyncConfig(
            entity_type=EntityType.OPEN_HOUSE,
            resource="OpenHouse",
            table="OpenHouse",
            key_field="OpenHouseKey",
            timestamp_field="ModificationTimestamp",
            field_mappings=OPEN_HOUSE_MAPPINGS,
            batch_size=settings.OPEN_HOUSE_BATCH_SIZE,
            chunk_size=chunk,
            parent=property_ref,
        ),
    }
    return [configs[entity_type] for entity_type in ENTITY_SYNC_ORDER]


def build_engine_config(settings) -> EngineConfig:
    """Traduce Settings a EngineConfig."""
    return EngineConfig(
        entities=build_entity_configs(settings),
        schema_policy=SchemaCachePolicy(
            ttl_seconds=settings.SCHEMA_CACHE_TTL_SECONDS,
            max_failures=settings.SCHEMA_MAX_FAILURES,
            failure_cooldown_seconds=settings.SCHEMA_FAILURE_COOLDOWN_SECONDS,
            empty_recheck_seconds=settings.SCHEMA_EMPTY_RECHECK_SECONDS,
            probe_enabled=settings.SCHEMA_PROBE_ENABLED,
        ),
        referential_policy=(
            ReferentialCheckPolicy.FAIL_OPEN
            if settings.REFERENTIAL_FAIL_OPEN
            else ReferentialCheckPolicy.FAIL_CLOSED
        ),
        max_consecutive_page_failures=settings.MAX_CONSECUTIVE_PAGE_FAILURES,
        feed_timezone=ZoneInfo(settings.FEED_TIMEZONE) if settings.FEED_TIMEZONE else None,
    )
