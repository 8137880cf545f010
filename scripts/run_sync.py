"""
CLI: feed RESO -> PostgreSQL.

Uso recomendado:
  - Ejecutar como job (cron/systemd timer) cuando el scheduler del API está deshabilitado.
  - Comparte cursores y bitácora (sync_cursors / sync_runs) con el API.

Variables de entorno (ver listing_sync/core/config.py):
  - FEED_ACCESS_TOKEN o FEED_IDX_TOKEN
  - DATABASE_URL (postgresql+asyncpg://...) o DATABASE_HOST/PORT/USER/PASSWORD/NAME

Ejecución:
  python scripts/run_sync.py                       # incremental, todas las entidades
  python scripts/run_sync.py --full
  python scripts/run_sync.py --entity property --entity media
  python scripts/run_sync.py --listing-key X12345
  python scripts/run_sync.py --reset-cursor media
  python scripts/run_sync.py --full --reset-breakers
  python scripts/run_sync.py --status
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path

from dotenv import load_dotenv
from loguru import logger

# Permite ejecutar este script desde cualquier cwd sin instalar el paquete.
_PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(_PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(_PROJECT_ROOT))

load_dotenv(_PROJECT_ROOT / ".env", override=False)

from listing_sync.core.config import settings
from listing_sync.infrastructure.database.session import close_db, init_db
from listing_sync.infrastructure.external.reso_sync.sync_service import build_sync_engine
from listing_sync.shared.constants.sync_constants import EntityType, SyncRunStatus
from listing_sync.shared.exceptions.base import AppException


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Sincroniza el feed RESO con la base relacional.")
    parser.add_argument(
        "--full",
        action="store_true",
        help="Recorre el feed completo ignorando los cursores.",
    )
    parser.add_argument(
        "--entity",
        action="append",
        choices=[e.value for e in EntityType],
        help="Entidad a sincronizar (repetible). Por defecto todas.",
    )
    parser.add_argument(
        "--listing-key",
        help="Sincroniza un solo listado (y sus hijos) por ListingKey.",
    )
    parser.add_argument(
        "--reset-cursor",
        choices=[e.value for e in EntityType],
        help="Reinicia el cursor de la entidad a epoch y termina.",
    )
    parser.add_argument(
        "--reset-breakers",
        action="store_true",
        help="Limpia cache de columnas y circuit breakers antes de correr.",
    )
    parser.add_argument(
        "--status",
        action="store_true",
        help="Imprime el estado del motor (cursores, breakers) y termina.",
    )
    return parser


async def _run(args: argparse.Namespace) -> int:
    await init_db()
    engine = build_sync_engine(settings)
    try:
        if args.status:
            print(json.dumps(await engine.get_status(), indent=2, default=str))
            return 0

        if args.reset_cursor:
            cursor = await engine.reset_cursor(args.reset_cursor)
            logger.info(f"Cursor reiniciado: {cursor.to_dict()}")
            return 0

        if args.reset_breakers:
            engine.reset_circuit_breaker()
            logger.info("Circuit breakers de esquema reseteados")

        if args.listing_key:
            result = await engine.sync_one(EntityType.PROPERTY, args.listing_key)
            print(json.dumps(
                {
                    "key": result.key,
                    "persisted": result.persisted,
                    "result": result.batch.to_dict(),
                    "children": {k: v.to_dict() for k, v in result.child_results.items()},
                },
                indent=2,
                default=str,
            ))
            return 0 if result.persisted else 1

        if args.full:
            run = await engine.run_full_sync(args.entity)
        else:
            run = await engine.run_incremental_sync(args.entity)

        print(json.dumps(run.summary(), indent=2, default=str))
        return 0 if run.status == SyncRunStatus.SUCCESS else 1
    finally:
        await engine.close()
        await close_db()


def main() -> int:
    args = _build_parser().parse_args()
    try:
        return asyncio.run(_run(args))
    except AppException as e:
        logger.error(f"Sync fallo [{e.error_code}]: {e.message}")
        return 2
    except KeyboardInterrupt:
        logger.warning("Sync interrumpida por el usuario")
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
