"""
Tracker de cursores por entidad.

Cache en memoria respaldado por un CursorStore (load-on-start, save-on-advance).
Los avances son monotónicos: una posición que no supera estrictamente a la
guardada se ignora.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from loguru import logger

from listing_sync.application.interfaces.sync_ports import CursorStore
from listing_sync.shared.exceptions.sync import CursorStoreError

from .types import SyncCursor


class SyncStateTracker:
    def __init__(self, store: CursorStore) -> None:
        self._store = store
        self._cursors: dict[str, SyncCursor] = {}

    async def get_cursor(self, entity_type: str) -> SyncCursor:
        """
        Retorna el cursor de la entidad, creándolo en epoch si no existe.

        Raises:
            CursorStoreError: si el store no responde o devuelve datos inválidos
        """
        cached = self._cursors.get(entity_type)
        if cached is not None:
            return cached

        try:
            cursor = await self._store.load(entity_type)
        except CursorStoreError:
            raise
        except Exception as e:
            raise CursorStoreError(entity_type, str(e)) from e

        if cursor is None:
            cursor = SyncCursor.initial(entity_type)
            await self._save(cursor)
            logger.info(f"Cursor creado para '{entity_type}' en epoch")

        self._cursors[entity_type] = cursor
        return cursor

    async def advance_cursor(self, entity_type: str, timestamp: datetime, key: str) -> bool:
        """
        Avanza el cursor si (timestamp, key) es estrictamente mayor.

        Returns:
            True si avanzó, False si fue no-op
        """
        current = await self.get_cursor(entity_type)
        if not current.precedes(timestamp, key):
            logger.debug(
                f"Cursor de '{entity_type}' no avanza: ({timestamp.isoformat()}, {key}) "
                f"<= {current.position[0].isoformat()}, {current.last_key}"
            )
            return False

        cursor = SyncCursor(entity_type=entity_type, last_timestamp=timestamp, last_key=key)
        await self._save(cursor)
        self._cursors[entity_type] = cursor
        return True

    async def reset_cursor(self, entity_type: str) -> SyncCursor:
        """Reinicia explícitamente el cursor a epoch (fuerza reproceso completo)."""
        cursor = SyncCursor.initial(entity_type)
        await self._save(cursor)
        self._cursors[entity_type] = cursor
        logger.info(f"Cursor reseteado para '{entity_type}'")
        return cursor

    async def peek_cursor(self, entity_type: str) -> Optional[SyncCursor]:
        """
        Cursor en cache o en el store, sin crearlo; None si la entidad nunca sincronizo.

        Raises:
            CursorStoreError: si el store no responde
        """
        cached = self._cursors.get(entity_type)
        if cached is not None:
            return cached
        try:
            return await self._store.load(entity_type)
        except CursorStoreError:
            raise
        except Exception as e:
            raise CursorStoreError(entity_type, str(e)) from e

    def cached(self, entity_type: str) -> Optional[SyncCursor]:
        return self._cursors.get(entity_type)

    async def _save(self, cursor: SyncCursor) -> None:
        try:
            await self._store.save(cursor)
        except CursorStoreError:
            raise
        except Exception as e:
            raise CursorStoreError(cursor.entity_type, str(e)) from e
