"""
Casos de uso de la aplicacion.
"""
from .sync_use_cases import SheetSyncUseCases, SyncRunRegistry

__all__ = ["SheetSyncUseCases", "SyncRunRegistry"]
