"""
Excepciones de recursos del dominio de sincronizacion (mapeos guardados,
corridas activas).
"""
from typing import Any

from app.shared.exceptions.base import AppException


class EntityNotFoundException(AppException):
    """El recurso pedido no existe (o la corrida ya termino)."""

    def __init__(self, entity_name: str, entity_id: Any):
        super().__init__(
            message=f"{entity_name} '{entity_id}' no encontrado",
            status_code=404,
            error_code="ENTITY_NOT_FOUND",
            details={"entity": entity_name, "id": str(entity_id)}
        )
