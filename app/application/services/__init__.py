"""
Servicios de aplicacion.

Contiene la logica de negocio reutilizable que no pertenece
a un caso de uso especifico.
"""
from app.application.services.column_mapper import suggest_mapping, validate_mapping
from app.application.services.row_normalizer import RowNormalizer
from app.application.services.reconciler import Reconciler
from app.application.services.sync_executor import SyncExecutor
from app.application.services.progress_channel import ProgressChannel, ProgressChannelRegistry
from app.application.services.table_schemas import get_schema, list_schemas

__all__ = [
    # Mapeo y normalizacion
    "suggest_mapping",
    "validate_mapping",
    "RowNormalizer",
    # Reconciliacion y ejecucion
    "Reconciler",
    "SyncExecutor",
    # Progreso
    "ProgressChannel",
    "ProgressChannelRegistry",
    # Esquemas de tablas destino
    "get_schema",
    "list_schemas",
]
