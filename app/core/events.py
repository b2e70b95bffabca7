"""
Manejadores de inicio y cierre del servicio de sincronizacion.

Al iniciar: valida la configuracion de lectura de hojas, crea las tablas
destino si no existen y registra el sink de archivo de loguru.
Al cerrar: pide la cancelacion de las corridas activas y libera el pool.
"""
from typing import Callable, List

from fastapi import FastAPI
from loguru import logger

from app.core.config import settings
from app.application.services.table_schemas import list_schemas
from app.application.use_cases.sync_use_cases import run_registry
from app.infrastructure.database.session import init_db, close_db


def startup_handler(app: FastAPI) -> Callable:
    """
    Construye el callback de inicio.

    Args:
        app: Instancia de FastAPI

    Returns:
        Callable: Funcion asincrona de inicio
    """
    async def startup() -> None:
        try:
            logger.info(f"Iniciando {settings.APP_NAME} v{settings.APP_VERSION} ({settings.ENVIRONMENT})")

            for warning in _config_warnings():
                logger.warning(f"CONFIG: {warning}")

            await init_db()
            logger.info("Tablas destino y de control verificadas")

            logger.add(
                settings.LOG_FILE,
                rotation="500 MB",
                retention="10 days",
                level=settings.LOG_LEVEL
            )

            tables = ", ".join(schema.table for schema in list_schemas())
            logger.info(f"Tablas sincronizables: {tables}")
            logger.info(
                f"Sync: batch={settings.SYNC_BATCH_SIZE}, reintentos={settings.SYNC_MAX_RETRIES}, "
                f"cache hojas={int(settings.SHEETS_CACHE_TTL_S)}s"
            )

            logger.success("Servicio de sincronizacion listo")
            _print_available_urls()

        except Exception as e:
            logger.error(f"Error durante startup: {e}")
            logger.exception("Detalle del error:")
            raise

    return startup


def _config_warnings() -> List[str]:
    """Revisa la configuracion que no impide arrancar pero si sincronizar."""
    warnings = []

    if not settings.SHEETS_ACCESS_TOKEN and not settings.SHEETS_API_KEY:
        warnings.append(
            "SHEETS_ACCESS_TOKEN / SHEETS_API_KEY no configurados - la lectura de hojas fallara"
        )
    elif settings.SHEETS_API_KEY and not settings.SHEETS_ACCESS_TOKEN:
        warnings.append("Solo SHEETS_API_KEY configurada - unicamente hojas publicas seran legibles")

    if settings.SYNC_BATCH_SIZE <= 0:
        warnings.append(f"SYNC_BATCH_SIZE invalido ({settings.SYNC_BATCH_SIZE})")
    if settings.SYNC_STORAGE_TIMEOUT_S <= 0:
        warnings.append(f"SYNC_STORAGE_TIMEOUT_S invalido ({settings.SYNC_STORAGE_TIMEOUT_S})")

    return warnings


def _print_available_urls() -> None:
    access_host = "localhost" if settings.HOST == "0.0.0.0" else settings.HOST
    base_url = f"http://{access_host}:{settings.PORT}"

    logger.opt(colors=True).info("<bold><green>" + "=" * 80 + "</green></bold>")
    logger.opt(colors=True).info(f"<cyan>  Swagger UI:   {base_url}/docs</cyan>")
    logger.opt(colors=True).info(f"<cyan>  Sync API:     {base_url}/api/v1/sync</cyan>")
    logger.opt(colors=True).info(f"<cyan>  Progreso WS:  ws://{access_host}:{settings.PORT}/api/v1/sync/ws/{{run_id}}</cyan>")
    logger.opt(colors=True).info(f"<cyan>  Health:       {base_url}/health</cyan>")
    logger.opt(colors=True).info("<bold><green>" + "=" * 80 + "</green></bold>")


def shutdown_handler(app: FastAPI) -> Callable:
    """
    Construye el callback de cierre.

    Las corridas activas reciben cancelacion cooperativa: terminan el batch
    en curso y devuelven un resultado parcial.
    """
    async def shutdown() -> None:
        logger.info("Cerrando servicio de sincronizacion...")

        active = run_registry.active_runs()
        for run in active:
            run.cancel()
            logger.warning(f"Corrida {run.run_id} ({run.target_table}) cancelada por cierre")

        await close_db()
        logger.info("Conexiones de base de datos cerradas")

    return shutdown
