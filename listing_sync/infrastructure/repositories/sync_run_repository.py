"""
Bitácora de corridas (tabla sync_runs).
"""

from __future__ import annotations

from typing import List

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from listing_sync.infrastructure.database.models import SyncRunModel
from listing_sync.infrastructure.external.reso_sync.types import SyncRunResult


class SyncRunRepository:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def record_started(self, run: SyncRunResult) -> None:
        async with self._session_factory() as session:
            async with session.begin():
                session.add(
                    SyncRunModel(
                        run_id=run.run_id,
                        mode=run.mode.value,
                        status=run.status.value,
                        started_at=run.started_at,
                    )
                )

    async def record_finished(self, run: SyncRunResult) -> None:
        errors = run.errors
        last_error = run.error or (errors[-1].message if errors else None)
        async with self._session_factory() as session:
            async with session.begin():
                await session.execute(
                    update(SyncRunModel)
                    .where(SyncRunModel.run_id == run.run_id)
                    .values(
                        status=run.status.value,
                        entities=sorted(run.entities),
                        finished_at=run.finished_at,
                        duration_seconds=run.duration_seconds,
                        total_processed=run.attempted,
                        total_successful=run.successful,
                        total_failed=run.failed,
                        error_count=len(errors),
                        last_error_message=last_error[:2000] if last_error else None,
                    )
                )

    async def list_recent(self, limit: int = 20) -> List[SyncRunModel]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(SyncRunModel).order_by(SyncRunModel.started_at.desc()).limit(limit)
            )
            return list(result.scalars().all())
