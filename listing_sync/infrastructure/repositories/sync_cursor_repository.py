"""
Repositorio de cursores incrementales (tabla sync_cursors).
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from listing_sync.infrastructure.database.models import SyncCursorModel
from listing_sync.infrastructure.external.reso_sync.types import SyncCursor
from listing_sync.shared.exceptions.sync import CursorStoreError
from listing_sync.shared.utils.datetime_utils import DateTimeUtils


class SyncCursorRepository:
    """CursorStore persistido en la base: una fila por entidad."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def load(self, entity_type: str) -> Optional[SyncCursor]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(SyncCursorModel).where(SyncCursorModel.entity_type == entity_type)
            )
            row = result.scalars().first()

        if row is None:
            return None
        if row.last_timestamp is None:
            raise CursorStoreError(entity_type, "cursor persistido sin timestamp")
        return SyncCursor(
            entity_type=entity_type,
            last_timestamp=DateTimeUtils.ensure_utc(row.last_timestamp),
            last_key=row.last_key or "",
        )

    async def save(self, cursor: SyncCursor) -> None:
        async with self._session_factory() as session:
            async with session.begin():
                await session.merge(
                    SyncCursorModel(
                        entity_type=cursor.entity_type,
                        last_timestamp=DateTimeUtils.ensure_utc(cursor.last_timestamp),
                        last_key=cursor.last_key,
                        updated_at=DateTimeUtils.now_utc(),
                    )
                )

