"""
Contexto de ejecucion de una corrida de sync y su resultado.

SyncRun es propiedad exclusiva del executor durante la corrida: solo el
executor muta los contadores. Al terminar se congela en un SyncResult.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from app.shared.constants.sync_constants import ProgressEventType, SyncMode
from app.shared.utils.datetime_utils import DateTimeUtils


@dataclass
class ErrorDetail:
    """Detalle de un error de fila (validacion o storage)."""

    row_index: Optional[int]
    external_key: Optional[str]
    message: str
    field: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rowIndex": self.row_index,
            "externalKey": self.external_key,
            "field": self.field,
            "message": self.message,
        }


@dataclass
class ProgressEvent:
    """
    Evento de progreso emitido durante una corrida.

    Variantes: start, info, progress, error, complete. Los eventos complete
    traen success y summary.
    """

    type: ProgressEventType
    processed: int = 0
    total: int = 0
    message: str = ""
    run_id: Optional[str] = None
    success: Optional[bool] = None
    summary: Optional[Dict[str, Any]] = None
    timestamp: datetime = field(default_factory=DateTimeUtils.now_utc)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "type": self.type.value,
            "processed": self.processed,
            "total": self.total,
            "message": self.message,
            "run_id": self.run_id,
            "timestamp": self.timestamp.isoformat(),
        }
        if self.success is not None:
            data["success"] = self.success
        if self.summary is not None:
            data["summary"] = self.summary
        return data

    @property
    def is_terminal(self) -> bool:
        return self.type == ProgressEventType.COMPLETE


@dataclass
class SyncRun:
    """Contexto mutable de una corrida."""

    run_id: str
    target_table: str
    spreadsheet_id: str
    sheet_name: str
    column_mapping: Dict[str, str]
    mode: SyncMode
    started_at: datetime = field(default_factory=DateTimeUtils.now_utc)
    total: int = 0
    processed: int = 0
    inserted: int = 0
    updated: int = 0
    skipped: int = 0
    errors: int = 0
    error_details: List[ErrorDetail] = field(default_factory=list)
    _cancel_requested: bool = field(default=False, repr=False)

    def cancel(self) -> None:
        """Solicita cancelacion cooperativa: el executor no emite mas batches."""
        self._cancel_requested = True

    @property
    def cancelled(self) -> bool:
        return self._cancel_requested

    def record_error(
        self,
        message: str,
        *,
        row_index: Optional[int] = None,
        external_key: Optional[str] = None,
        field_name: Optional[str] = None,
        count: bool = True,
    ) -> ErrorDetail:
        """
        Agrega un detalle de error. count=False agrega el detalle sin sumar
        al contador (varios errores de campo de una misma fila cuentan una vez).
        """
        detail = ErrorDetail(
            row_index=row_index,
            external_key=external_key,
            message=message,
            field=field_name,
        )
        self.error_details.append(detail)
        if count:
            self.errors += 1
        return detail


@dataclass
class SyncResult:
    """Resultado estructurado de una corrida, incluso si fallo parcial o totalmente."""

    success: bool
    message: str
    run_id: Optional[str] = None
    target_table: Optional[str] = None
    mode: Optional[SyncMode] = None
    total: int = 0
    processed: int = 0
    inserted: int = 0
    updated: int = 0
    skipped: int = 0
    errors: int = 0
    error_details: List[ErrorDetail] = field(default_factory=list)
    orphaned: List[str] = field(default_factory=list)
    conflicts: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    cancelled: bool = False
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    def summary(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "processed": self.processed,
            "inserted": self.inserted,
            "updated": self.updated,
            "skipped": self.skipped,
            "errors": self.errors,
            "orphaned": len(self.orphaned),
            "cancelled": self.cancelled,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "message": self.message,
            "data": {
                "runId": self.run_id,
                "targetTable": self.target_table,
                "mode": self.mode.value if self.mode else None,
                "total": self.total,
                "processed": self.processed,
                "inserted": self.inserted,
                "updated": self.updated,
                "skipped": self.skipped,
                "errors": self.errors,
                "errorDetails": [d.to_dict() for d in self.error_details],
                "orphaned": list(self.orphaned),
                "conflicts": list(self.conflicts),
                "warnings": list(self.warnings),
                "cancelled": self.cancelled,
                "startedAt": DateTimeUtils.to_iso_string(self.started_at),
                "finishedAt": DateTimeUtils.to_iso_string(self.finished_at),
            },
        }


@dataclass
class FullSyncResult:
    """Resultado de la corrida combinada reservas + tours."""

    results: Dict[str, SyncResult] = field(default_factory=dict)
    # tabla -> mensaje de las corridas que fallaron antes de escribir
    failures: Dict[str, str] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return not self.failures and all(result.success for result in self.results.values())

    @property
    def message(self) -> str:
        parts = [f"{table}: {result.message}" for table, result in self.results.items()]
        parts += [f"{table}: {message}" for table, message in self.failures.items()]
        status = "completada" if self.success else "con errores"
        return f"Sincronizacion completa {status}. " + "; ".join(parts)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "message": self.message,
            "results": {table: result.to_dict() for table, result in self.results.items()},
            "failures": dict(self.failures),
        }


@dataclass(frozen=True)
class SyncHistoryEntry:
    """Ultima sincronizacion exitosa por (tabla, spreadsheet)."""

    target_table: str
    spreadsheet_id: str
    last_sync_time: datetime
    record_count: int
