"""
Mapper puro: registro crudo del feed -> registro con forma de la tabla destino.

Reglas:
- Todas las columnas declaradas aparecen en el resultado (None si faltan en el
  origen) para que el UPSERT sobrescriba de forma determinista.
- Un campo faltante o inválido nunca lanza error; solo una clave primaria
  ausente/vacía (InvalidPrimaryKey), y eso afecta a un único registro.
"""

from __future__ import annotations

import json
import math
from collections.abc import Mapping, Sequence
from datetime import date, datetime, time, tzinfo
from typing import Any, Optional

from listing_sync.shared.constants.sync_constants import FieldKind
from listing_sync.shared.exceptions.sync import InvalidPrimaryKey
from listing_sync.shared.utils.datetime_utils import DateTimeUtils

from .entity_mappings import ROOM_FEATURE_FIELDS
from .sync_config import EntitySyncConfig
from .types import MappedRecord, RawRecord


_TRUE_STRINGS = {"true", "t", "yes", "y", "1"}
_FALSE_STRINGS = {"false", "f", "no", "n", "0"}


def _clean_items(items: Sequence[Any]) -> Optional[list[str]]:
    cleaned = []
    for item in items:
        if item is None:
            continue
        text = str(item).strip()
        if text:
            cleaned.append(text)
    return cleaned or None


def normalize_multi_value(value: Any) -> Optional[list[str]]:
    """
    Normaliza un campo multi-valor a lista de strings no vacíos.

    - lista/tupla: trim y descarta vacíos
    - string: intenta JSON array; si no, el string completo es un único elemento
    - otro tipo: str(value) como único elemento
    - resultado vacío -> None (nunca lista vacía)

    Es idempotente: normalizar una lista ya normalizada la deja igual.
    """
    if value is None:
        return None
    if isinstance(value, (list, tuple)):
        return _clean_items(value)
    if isinstance(value, str):
        try:
            parsed = json.loads(value)
        except ValueError:
            parsed = None
        if isinstance(parsed, list):
            return _clean_items(parsed)
        text = value.strip()
        return [text] if text else None
    text = str(value).strip()
    return [text] if text else None


def _to_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(str(value).strip()) if not isinstance(value, (int, float)) else float(value)
    except ValueError:
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def to_int(value: Any) -> Optional[int]:
    """Parsea como float y trunca hacia cero ("2019.0" -> 2019). Inválido -> None."""
    number = _to_float(value)
    if number is None:
        return None
    return math.trunc(number)


def to_decimal(value: Any) -> Optional[float]:
    return _to_float(value)


def to_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if value is None:
        return None
    text = str(value).strip().lower()
    if text in _TRUE_STRINGS:
        return True
    if text in _FALSE_STRINGS:
        return False
    return None


def to_timestamp(value: Any) -> Optional[datetime]:
    """ISO 8601 -> datetime aware UTC. Los valores sin zona se toman como UTC."""
    parsed = DateTimeUtils.parse_iso(value)
    if parsed is None:
        return None
    return DateTimeUtils.ensure_utc(parsed)


def to_date(value: Any) -> Optional[date]:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    parsed = DateTimeUtils.parse_iso(value)
    return parsed.date() if parsed else None


def to_time_of_day(value: Any, tz: Optional[tzinfo] = None) -> Optional[time]:
    """
    Extrae la hora local (HH:MM:SS) de un timestamp completo.

    Si el timestamp trae zona y se indica `tz`, se convierte antes de extraer.
    """
    parsed = DateTimeUtils.parse_iso(value)
    if parsed is None:
        return None
    if tz is not None and parsed.tzinfo is not None:
        parsed = parsed.astimezone(tz)
    return parsed.time().replace(microsecond=0)


def _room_order(room: Mapping[str, Any]) -> int:
    order = to_int(room.get("Order"))
    return 0 if order is None else order


def select_representative_room(rooms: Sequence[Mapping[str, Any]]) -> Optional[Mapping[str, Any]]:
    """Ambiente con menor Order (sin Order = 0); empates por orden original."""
    candidates = [r for r in rooms if isinstance(r, Mapping)]
    if not candidates:
        return None
    return min(candidates, key=_room_order)


def merge_room_features(records: Sequence[Mapping[str, Any]]) -> Optional[list[str]]:
    """Une RoomFeature1..3 y RoomFeatures de todos los registros, sin duplicados y en orden."""
    merged: list[str] = []
    for record in records:
        if not isinstance(record, Mapping):
            continue
        values: list[str] = []
        for name in ROOM_FEATURE_FIELDS:
            values.extend(normalize_multi_value(record.get(name)) or [])
        values.extend(normalize_multi_value(record.get("RoomFeatures")) or [])
        for value in values:
            if value not in merged:
                merged.append(value)
    return merged or None


def build_room_summary(
    raw: Mapping[str, Any],
    rooms: Optional[Sequence[Mapping[str, Any]]] = None,
) -> dict[str, Any]:
    """
    Columnas resumen del ambiente representativo de un listado.

    Con lista auxiliar de ambientes se elige el de menor Order y se unen las
    características de todos; sin ella se usan los campos planos del registro.
    """
    source: Optional[Mapping[str, Any]] = None
    features: Optional[list[str]]
    if rooms:
        source = select_representative_room(rooms)
        features = merge_room_features(rooms)
    else:
        features = merge_room_features([raw])
    if source is None:
        source = raw

    return {
        "RoomType": source.get("RoomType"),
        "RoomLevel": source.get("RoomLevel"),
        "RoomDescription": source.get("RoomDescription"),
        "RoomLength": to_decimal(source.get("RoomLength")),
        "RoomWidth": to_decimal(source.get("RoomWidth")),
        "RoomLengthWidthUnits": source.get("RoomLengthWidthUnits"),
        "RoomFeatures": features,
    }


def _has_value(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    return True


class FieldMapper:
    """
    Transforma registros crudos según los FieldMapping de cada entidad.
    """

    def __init__(self, *, timezone: Optional[tzinfo] = None) -> None:
        self._timezone = timezone

    def map(
        self,
        raw: RawRecord,
        config: EntitySyncConfig,
        *,
        synced_at: datetime,
        children: Optional[Sequence[Mapping[str, Any]]] = None,
    ) -> MappedRecord:
        """
        Mapea un registro crudo.

        Args:
            raw: registro tal como lo entrega el feed
            config: config de la entidad (mapeos, clave)
            synced_at: marca de tiempo de la corrida (columna UpdatedAt)
            children: ambientes del listado, para el resumen (solo Property)

        Raises:
            InvalidPrimaryKey: si la clave está ausente o vacía
        """
        if not isinstance(raw, Mapping) or not _has_value(raw.get(config.key_field)):
            raise InvalidPrimaryKey(config.entity_type.value, config.key_field)

        row: MappedRecord = {}
        for mapping in config.field_mappings:
            row[mapping.target] = self._convert(raw.get(mapping.source_field), mapping.kind)

        key = raw.get(config.key_field)
        row[config.key_field] = key.strip() if isinstance(key, str) else str(key)

        if config.room_summary:
            row.update(build_room_summary(raw, children))

        row["UpdatedAt"] = DateTimeUtils.ensure_utc(synced_at)
        return row

    def _convert(self, value: Any, kind: FieldKind) -> Any:
        if kind == FieldKind.SCALAR:
            return value
        if kind == FieldKind.MULTI:
            return normalize_multi_value(value)
        if kind == FieldKind.INTEGER:
            return to_int(value)
        if kind == FieldKind.DECIMAL:
            return to_decimal(value)
        if kind == FieldKind.BOOLEAN:
            return to_bool(value)
        if kind == FieldKind.TIMESTAMP:
            return to_timestamp(value)
        if kind == FieldKind.DATE:
            return to_date(value)
        if kind == FieldKind.TIME_OF_DAY:
            return to_time_of_day(value, self._timezone)
        raise ValueError(f"FieldKind no soportado: {kind}")
