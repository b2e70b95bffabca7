"""
Interfaz del almacen de historial de sync.
"""
from abc import ABC, abstractmethod
from typing import Optional

from app.domain.entities.sync_run import SyncHistoryEntry


class ISyncHistoryStore(ABC):
    """Ultima sincronizacion por (tabla, spreadsheet)."""

    @abstractmethod
    async def get(self, target_table: str, spreadsheet_id: str) -> Optional[SyncHistoryEntry]:
        """Retorna la entrada de historial o None si nunca se sincronizo."""
        pass

    @abstractmethod
    async def record(self, entry: SyncHistoryEntry) -> None:
        """Registra (o reemplaza) la entrada de historial del par."""
        pass
