"""
Excepciones del motor de sincronizacion hoja de calculo -> base de datos.

Dos familias:
- Errores de ejecucion interna (StorageError, TransientError): los lanzan los
  adaptadores y el executor los convierte en datos (ErrorDetail); nunca
  llegan al cliente HTTP como excepcion.
- Errores fatales de corrida (AppException): se lanzan antes de escribir nada
  y se renderizan por el handler global como {error, message, details}.
"""
from typing import Any, Dict, List, Optional

from app.shared.exceptions.base import AppException


class StorageError(RuntimeError):
    """Fallo de escritura/lectura en el storage para una fila o un batch."""

    def __init__(self, message: str, external_key: Optional[str] = None):
        super().__init__(message)
        self.external_key = external_key


class TransientError(StorageError):
    """Fallo recuperable (timeout, rate limit, red). Se reintenta con backoff."""


class SyncException(AppException):
    """Excepción base para errores fatales de una corrida de sync."""

    def __init__(
        self,
        message: str,
        error_code: str = "SYNC_ERROR",
        status_code: int = 400,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            status_code=status_code,
            error_code=error_code,
            details=details,
        )


class MappingException(SyncException):
    """El mapeo de columnas no cubre los campos requeridos: la corrida no arranca."""

    def __init__(self, message: str, unmapped_fields: Optional[List[str]] = None, **extra: Any):
        details: Dict[str, Any] = {"unmapped_fields": unmapped_fields or []}
        details.update(extra)
        super().__init__(
            message=message,
            error_code="MAPPING_ERROR",
            details=details,
        )
        self.unmapped_fields = unmapped_fields or []


class UnknownTargetTableException(SyncException):
    """La tabla destino no tiene un esquema de sync registrado."""

    def __init__(self, table: str, available: List[str]):
        super().__init__(
            message=f"La tabla '{table}' no admite sincronizacion",
            error_code="UNKNOWN_TARGET_TABLE",
            status_code=404,
            details={"table": table, "available_tables": available},
        )


class SyncInProgressException(SyncException):
    """Ya hay una corrida activa para el mismo par (tabla, spreadsheet)."""

    def __init__(self, table: str, spreadsheet_id: str, run_id: str):
        super().__init__(
            message=f"Ya existe una sincronizacion en curso para {table} ({spreadsheet_id})",
            error_code="SYNC_IN_PROGRESS",
            status_code=409,
            details={"table": table, "spreadsheet_id": spreadsheet_id, "run_id": run_id},
        )


# Mapeo kind -> (status HTTP, codigo de error)
_SHEET_ERROR_STATUS = {
    "not_found": (404, "SHEET_NOT_FOUND"),
    "forbidden": (403, "SHEET_FORBIDDEN"),
    "rate_limited": (429, "SHEET_RATE_LIMITED"),
    "transient": (502, "SHEET_UNAVAILABLE"),
}


class SheetSourceException(SyncException):
    """La hoja de origen no se pudo leer (corrida fatal antes de escribir)."""

    def __init__(self, message: str, kind: str, spreadsheet_id: str, sheet_name: Optional[str] = None):
        status_code, error_code = _SHEET_ERROR_STATUS.get(kind, (502, "SHEET_UNAVAILABLE"))
        super().__init__(
            message=message,
            error_code=error_code,
            status_code=status_code,
            details={"kind": kind, "spreadsheet_id": spreadsheet_id, "sheet_name": sheet_name},
        )
        self.kind = kind
