"""
Engine y sesiones de la base destino.

- el motor de sync abre una sesión por chunk / consulta (AsyncSessionLocal)
- la API de listados solo lee: get_db no hace commit
"""
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import declarative_base

from listing_sync.core.config import settings


# Tablas de listados, cursores y bitácora de corridas
Base = declarative_base()


def build_engine(database_url: str) -> AsyncEngine:
    """
    Crea el engine async para `database_url`.

    El pool solo se dimensiona en PostgreSQL (asyncpg); SQLite usa el suyo.
    """
    options = {"echo": settings.DEBUG}
    if database_url.startswith("postgresql"):
        options.update(
            pool_size=settings.DB_POOL_SIZE,
            max_overflow=settings.DB_MAX_OVERFLOW,
            pool_pre_ping=True,
        )
    return create_async_engine(database_url, **options)


engine = build_engine(settings.effective_database_url)

AsyncSessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Sesión de solo lectura para los endpoints de listados.

    Las escrituras del motor usan sus propias transacciones por chunk.
    """
    async with AsyncSessionLocal() as session:
        yield session


async def init_db() -> None:
    """Crea las tablas que falten (sin migraciones)."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """Cierra el pool de conexiones."""
    await engine.dispose()
