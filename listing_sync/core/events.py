"""
Manejadores de eventos de inicio y cierre de la aplicacion.
"""
from typing import Callable

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from fastapi import FastAPI
from loguru import logger

from listing_sync.core.config import settings
from listing_sync.infrastructure.database.session import init_db, close_db
from listing_sync.infrastructure.external.reso_sync.sync_service import SyncEngine, build_sync_engine
from listing_sync.shared.exceptions.sync import SyncAlreadyRunningError


INCREMENTAL_SYNC_JOB_ID = "reso_incremental_sync"


def startup_handler(app: FastAPI) -> Callable:
    """
    Manejador de eventos de inicio de la aplicacion.

    Args:
        app: Instancia de FastAPI

    Returns:
        Callable: Funcion asincrona de inicio
    """
    async def startup() -> None:
        """Inicializa base de datos, motor de sync y scheduler."""
        try:
            logger.info(f"Iniciando {settings.APP_NAME} v{settings.APP_VERSION}")
            logger.info(f"Entorno: {settings.ENVIRONMENT}")

            # Configurar logging adicional
            logger.add(
                settings.LOG_FILE,
                rotation="500 MB",
                retention="10 days",
                level=settings.LOG_LEVEL
            )

            # Inicializar base de datos (crea tablas si no existen)
            await init_db()
            logger.info("Base de datos inicializada")

            engine = build_sync_engine(settings)
            app.state.sync_engine = engine
            logger.info(
                f"Motor de sincronizacion listo: "
                f"{', '.join(c.entity_type.value for c in engine.config.entities)}"
            )

            app.state.scheduler = _start_scheduler(engine)

            logger.success("Aplicacion iniciada correctamente")
            _print_available_urls()

        except Exception as e:
            logger.error(f"Error durante startup: {e}")
            logger.exception("Detalle del error:")
            raise

    return startup


def _start_scheduler(engine: SyncEngine):
    """Agenda la incremental periodica si SYNC_SCHEDULER_ENABLED."""
    if not settings.SYNC_SCHEDULER_ENABLED:
        logger.info("Scheduler de sincronizacion deshabilitado")
        return None

    scheduler = AsyncIOScheduler(timezone="UTC")
    scheduler.add_job(
        scheduled_incremental_sync,
        trigger=IntervalTrigger(minutes=settings.SYNC_INTERVAL_MINUTES),
        args=[engine],
        id=INCREMENTAL_SYNC_JOB_ID,
        max_instances=1,
        coalesce=True,
        replace_existing=True,
    )
    scheduler.start()
    logger.info(f"Sync incremental agendada cada {settings.SYNC_INTERVAL_MINUTES} min")
    return scheduler


async def scheduled_incremental_sync(engine: SyncEngine) -> None:
    """Job del scheduler: omite el tick si ya hay una corrida en curso."""
    if engine.is_running:
        logger.info("Sync agendada omitida: ya hay una corrida en curso")
        return
    try:
        await engine.run_incremental_sync()
    except SyncAlreadyRunningError:
        logger.info("Sync agendada omitida: ya hay una corrida en curso")
    except Exception as e:
        logger.error(f"Sync agendada fallo: {e}")


def _print_available_urls() -> None:
    """Imprime las URLs disponibles de la aplicacion."""
    if settings.HOST == "0.0.0.0":
        access_host = "localhost"
    else:
        access_host = settings.HOST

    base_url = f"http://{access_host}:{settings.PORT}"

    logger.opt(colors=True).info("<bold><green>" + "=" * 80 + "</green></bold>")
    logger.opt(colors=True).info("<bold><green>URLS DISPONIBLES:</green></bold>")
    logger.opt(colors=True).info("<bold><green>" + "=" * 80 + "</green></bold>")
    logger.opt(colors=True).info(f"<cyan>  Swagger UI:  {base_url}/docs</cyan>")
    logger.opt(colors=True).info(f"<cyan>  Sync status: {base_url}/api/v1/sync/status</cyan>")
    logger.opt(colors=True).info(f"<cyan>  Health:      {base_url}/health</cyan>")
    logger.opt(colors=True).info("<bold><green>" + "=" * 80 + "</green></bold>")


def shutdown_handler(app: FastAPI) -> Callable:
    """
    Manejador de eventos de cierre de la aplicacion.

    Args:
        app: Instancia de FastAPI

    Returns:
        Callable: Funcion asincrona de cierre
    """
    async def shutdown() -> None:
        """Libera recursos al cerrar la aplicacion."""
        logger.info("Cerrando aplicacion...")

        scheduler = getattr(app.state, "scheduler", None)
        if scheduler is not None:
            scheduler.shutdown(wait=False)
            logger.info("Scheduler detenido")

        engine = getattr(app.state, "sync_engine", None)
        if engine is not None:
            if engine.cancel():
                logger.info("Esperando que la corrida en curso cierre su pagina...")
                await engine.wait_idle()
            await engine.close()
            logger.info("Cliente del feed cerrado")

        # Cerrar conexiones de base de datos
        await close_db()
        logger.info("Conexiones de base de datos cerradas")

        logger.success("Aplicacion cerrada correctamente")

    return shutdown
