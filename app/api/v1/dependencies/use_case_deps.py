"""
Dependencias para inyeccion de casos de uso.
"""
from functools import lru_cache

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.application.use_cases.sync_use_cases import SheetSyncUseCases
from app.core.config import settings
from app.infrastructure.database.session import get_db
from app.infrastructure.external.sheets import GoogleSheetsClient, SheetCache


@lru_cache
def get_sheet_cache() -> SheetCache:
    """Cache de lecturas de hojas compartido por el proceso."""
    return SheetCache(
        ttl_s=settings.SHEETS_CACHE_TTL_S,
        max_entries=settings.SHEETS_CACHE_MAX_ENTRIES,
    )


@lru_cache
def get_sheets_client() -> GoogleSheetsClient:
    """
    Cliente de Google Sheets configurado desde settings.

    Returns:
        GoogleSheetsClient: Cliente con el cache compartido
    """
    return GoogleSheetsClient(
        access_token=settings.SHEETS_ACCESS_TOKEN or None,
        api_key=settings.SHEETS_API_KEY or None,
        cache=get_sheet_cache(),
        base_url=settings.SHEETS_API_BASE_URL,
        timeout_s=settings.SHEETS_TIMEOUT_S,
        max_retries=settings.SHEETS_MAX_RETRIES,
    )


async def get_sheet_sync_use_cases(
    db: AsyncSession = Depends(get_db),
    sheets_client: GoogleSheetsClient = Depends(get_sheets_client),
) -> SheetSyncUseCases:
    """
    Dependencia para obtener los casos de uso de sincronizacion.

    Args:
        db: Sesion de base de datos
        sheets_client: Cliente de Google Sheets

    Returns:
        SheetSyncUseCases: Instancia de casos de uso de sync
    """
    return SheetSyncUseCases(db, sheets_client)
