"""
Repositorio de persistencia del motor de sync (Persistence Client).

- UPSERT idempotente por clave primaria, en chunks con transacción propia
- consulta de existencia de claves (filtro referencial)
- descubrimiento de columnas (metadata y fallback de una fila)

Soporta PostgreSQL (asyncpg) y SQLite (aiosqlite, tests) vía el `insert`
de cada dialecto (ON CONFLICT DO UPDATE).
"""

from __future__ import annotations

from typing import Any, Iterable, Sequence

import sqlalchemy as sa
from loguru import logger
from sqlalchemy import inspect, select, text
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from listing_sync.infrastructure.database.session import Base
from listing_sync.infrastructure.external.reso_sync.types import (
    MappedRecord,
    RecordError,
    UpsertResult,
)
from listing_sync.shared.constants.sync_constants import ErrorStage
from listing_sync.shared.exceptions.sync import PersistenceError


EXISTS_CHUNK_SIZE = 500


def _short_error(exc: Exception) -> str:
    # Los errores de driver incluyen el SQL completo; nos quedamos con la causa
    original = getattr(exc, "orig", None)
    message = str(original if original is not None else exc)
    return message.splitlines()[0][:500] if message else exc.__class__.__name__


class ListingRepository:
    """Persistence Client sobre SQLAlchemy async."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], engine: AsyncEngine) -> None:
        self._session_factory = session_factory
        self._engine = engine

    # ------------------------------------------------------------------
    # UPSERT
    # ------------------------------------------------------------------

    async def upsert(
        self,
        table: str,
        rows: Sequence[MappedRecord],
        *,
        key_field: str,
        chunk_size: int = 100,
    ) -> UpsertResult:
        """
        UPSERT en chunks de `chunk_size`; cada chunk en su propia transacción.

        Un chunk rechazado se reporta con un error por fila (etapa persistence)
        y no impide intentar los siguientes.
        """
        successful = 0
        failed = 0
        errors: list[RecordError] = []
        chunk_size = max(1, chunk_size)

        for start in range(0, len(rows), chunk_size):
            chunk = list(rows[start:start + chunk_size])
            try:
                statement = self._build_upsert(table, chunk, key_field)
                async with self._session_factory() as session:
                    async with session.begin():
                        await session.execute(statement)
                successful += len(chunk)
            except (SQLAlchemyError, PersistenceError) as e:
                reason = e.message if isinstance(e, PersistenceError) else _short_error(e)
                keys = [None if row.get(key_field) is None else str(row.get(key_field)) for row in chunk]
                error = PersistenceError(table, reason, [k for k in keys if k])
                logger.error(
                    f"Chunk {start // chunk_size + 1} de '{table}' rechazado "
                    f"({len(chunk)} filas): {reason}"
                )
                failed += len(chunk)
                errors.extend(
                    RecordError(key=key, stage=ErrorStage.PERSISTENCE, message=error.message)
                    for key in keys
                )

        return UpsertResult(successful=successful, failed=failed, errors=errors)

    def _build_upsert(self, table: str, chunk: list[MappedRecord], key_field: str):
        # Última ocurrencia gana: ON CONFLICT no admite la misma clave dos veces
        deduped: dict[Any, MappedRecord] = {}
        for row in chunk:
            deduped[row.get(key_field)] = row

        columns: list[str] = []
        for row in deduped.values():
            for name in row:
                if name not in columns:
                    columns.append(name)
        if key_field not in columns:
            raise PersistenceError(table, f"filas sin columna clave '{key_field}'")

        target = self._table(table, columns)
        values = [{name: row.get(name) for name in columns} for row in deduped.values()]

        insert = self._dialect_insert()
        statement = insert(target).values(values)
        update_columns = {name: statement.excluded[name] for name in columns if name != key_field}
        if update_columns:
            return statement.on_conflict_do_update(index_elements=[key_field], set_=update_columns)
        return statement.on_conflict_do_nothing(index_elements=[key_field])

    def _dialect_insert(self):
        dialect = self._engine.dialect.name
        if dialect == "postgresql":
            return pg_insert
        if dialect == "sqlite":
            return sqlite_insert
        raise PersistenceError("*", f"dialecto no soportado para UPSERT: {dialect}")

    @staticmethod
    def _table(table: str, columns: Iterable[str]) -> sa.TableClause:
        columns = list(columns)
        declared = Base.metadata.tables.get(table)
        if declared is not None and all(name in declared.c for name in columns):
            return declared
        return sa.table(table, *[sa.column(name) for name in columns])

    # ------------------------------------------------------------------
    # Existencia
    # ------------------------------------------------------------------

    async def exists(self, table: str, key: str, values: Iterable[Any]) -> set[Any]:
        """Subconjunto de `values` presente en `table.key`."""
        pending = [v for v in set(values) if v is not None]
        found: set[Any] = set()
        if not pending:
            return found

        column = self._table(table, [key]).c[key]
        async with self._session_factory() as session:
            for start in range(0, len(pending), EXISTS_CHUNK_SIZE):
                chunk = pending[start:start + EXISTS_CHUNK_SIZE]
                result = await session.execute(select(column).where(column.in_(chunk)))
                found.update(result.scalars().all())
        return found

    # ------------------------------------------------------------------
    # Descubrimiento de esquema
    # ------------------------------------------------------------------

    async def probe_columns(self, table: str) -> set[str]:
        """Columnas según metadata (information_schema en PostgreSQL)."""
        async with self._engine.connect() as conn:
            names = await conn.run_sync(
                lambda sync_conn: [c["name"] for c in inspect(sync_conn).get_columns(table)]
            )
        return set(names)

    async def sample_columns(self, table: str) -> set[str]:
        """Claves de una fila cualquiera; vacío si la tabla no tiene filas."""
        statement = select(text("*")).select_from(sa.table(table)).limit(1)
        async with self._session_factory() as session:
            result = await session.execute(statement)
            row = result.mappings().first()
        return set(row.keys()) if row else set()
