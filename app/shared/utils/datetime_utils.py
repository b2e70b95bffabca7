"""
Utilidades para manejo de fechas y horas.
"""
from datetime import datetime, timezone
from typing import Optional


class DateTimeUtils:
    """Clase de utilidades para operaciones con fechas y horas."""

    @staticmethod
    def now_utc() -> datetime:
        """
        Obtiene la fecha y hora actual en UTC.

        Returns:
            datetime: Fecha y hora actual en UTC
        """
        return datetime.now(timezone.utc)

    @staticmethod
    def ensure_utc(dt: datetime) -> datetime:
        """
        Normaliza un datetime a UTC (aware).

        Los datetime naive se asumen en UTC; SQLite los devuelve asi aunque
        la columna sea timezone=True.
        """
        if dt.tzinfo is None:
            return dt.replace(tzinfo=timezone.utc)
        return dt.astimezone(timezone.utc)

    @staticmethod
    def to_iso_string(dt: Optional[datetime]) -> Optional[str]:
        """
        Convierte un datetime a string ISO 8601 (None se conserva).

        Args:
            dt: Objeto datetime

        Returns:
            Optional[str]: Fecha en formato ISO 8601
        """
        if dt is None:
            return None
        return dt.isoformat()

    @staticmethod
    def from_iso_string(iso_string: str) -> Optional[datetime]:
        """
        Convierte un string ISO 8601 a datetime.
        Acepta el sufijo 'Z' que devuelven las APIs de Google.

        Args:
            iso_string: String en formato ISO 8601

        Returns:
            Optional[datetime]: Objeto datetime o None si hay error
        """
        try:
            return datetime.fromisoformat(str(iso_string).strip().replace("Z", "+00:00"))
        except (ValueError, TypeError):
            return None
