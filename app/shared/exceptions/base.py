"""
Excepción base de la aplicación.

Toda excepcion que deba llegar al cliente HTTP hereda de AppException y se
renderiza como {error, message, details} con su status_code.
"""
from typing import Optional, Dict, Any


class AppException(Exception):
    """
    Error con codigo estable para el cliente.

    Args:
        message: Mensaje legible
        status_code: Código de estado HTTP
        error_code: Código estable (MAPPING_ERROR, SHEET_NOT_FOUND, ...)
        details: Datos adicionales (campos sin mapear, tabla, run_id...)
    """

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        error_code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.error_code,
            "message": self.message,
            "details": self.details,
        }
