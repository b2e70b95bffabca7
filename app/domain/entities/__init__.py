"""
Entidades del dominio.
"""
from app.domain.entities.sync_schema import FieldDescriptor, TableSchema
from app.domain.entities.sync_records import (
    ExternalRow,
    NormalizedRecord,
    StoredRecord,
    ValidationIssue,
)
from app.domain.entities.sync_run import (
    ErrorDetail,
    ProgressEvent,
    SyncHistoryEntry,
    SyncResult,
    SyncRun,
)

__all__ = [
    "FieldDescriptor",
    "TableSchema",
    "ExternalRow",
    "NormalizedRecord",
    "StoredRecord",
    "ValidationIssue",
    "ErrorDetail",
    "ProgressEvent",
    "SyncHistoryEntry",
    "SyncResult",
    "SyncRun",
]
