"""
Utilidades para manejo de fechas y horas.

El feed entrega timestamps ISO 8601 con sufijo 'Z' u offset explícito;
internamente todo se compara y persiste como datetime aware en UTC.
"""
from datetime import date, datetime, timezone
from typing import Any, Optional


EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class DateTimeUtils:
    """Clase de utilidades para operaciones con fechas y horas."""

    @staticmethod
    def now_utc() -> datetime:
        """Fecha y hora actual en UTC (aware)."""
        return datetime.now(timezone.utc)

    @staticmethod
    def ensure_utc(dt: datetime) -> datetime:
        """
        Normaliza un datetime a UTC (aware).

        Los datetime naive se interpretan como UTC.
        """
        if dt.tzinfo is None:
            return dt.replace(tzinfo=timezone.utc)
        return dt.astimezone(timezone.utc)

    @staticmethod
    def parse_iso(value: Any) -> Optional[datetime]:
        """
        Convierte un valor ISO 8601 a datetime, conservando su zona.

        Args:
            value: str, datetime o date

        Returns:
            Optional[datetime]: datetime (naive si el texto no trae zona) o None si no es parseable
        """
        if value is None:
            return None
        if isinstance(value, datetime):
            return value
        if isinstance(value, date):
            return datetime(value.year, value.month, value.day)
        text = str(value).strip()
        if not text:
            return None
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            return datetime.fromisoformat(text)
        except ValueError:
            return None

    @staticmethod
    def to_odata_string(dt: datetime) -> str:
        """
        Serializa a literal de fecha OData (UTC con 'Z').

        Se conservan los milisegundos cuando existen para no perder
        precisión en el cursor.
        """
        dt_utc = DateTimeUtils.ensure_utc(dt)
        if dt_utc.microsecond:
            return dt_utc.isoformat(timespec="milliseconds").replace("+00:00", "Z")
        return dt_utc.replace(microsecond=0).isoformat().replace("+00:00", "Z")
