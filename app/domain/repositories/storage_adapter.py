"""
Interfaz del adaptador de storage usado por el motor de sync.
Define el contrato minimo de lectura/escritura sobre las tablas destino.
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence, Set

from app.domain.entities.sync_records import StoredRecord, UpsertOutcome


class IStorageAdapter(ABC):
    """
    Contrato del storage relacional.

    El sync solo lee un snapshot y emite instrucciones de upsert; nunca asume
    un lock sobre la tabla. delete_records jamas se invoca automaticamente:
    solo la accion explicita de borrar huerfanos lo usa.
    """

    # True si upsert_batch escribe un batch completo en una sola llamada
    supports_batch_upsert: bool = True

    @abstractmethod
    async def query(self, table: str, filter: Optional[Dict[str, Any]] = None) -> List[StoredRecord]:
        """
        Lee los registros de una tabla destino.

        Args:
            table: Tabla destino
            filter: Igualdades columna -> valor (opcional)

        Returns:
            List[StoredRecord]: Snapshot de registros
        """
        pass

    @abstractmethod
    async def upsert_batch(
        self,
        table: str,
        records: Sequence[Dict[str, Any]],
        conflict_key: str,
    ) -> UpsertOutcome:
        """
        Inserta o actualiza un batch de filas resolviendo por conflict_key.

        Raises:
            StorageError: si el batch completo falla
            TransientError: si el fallo es recuperable (timeout, red)
        """
        pass

    @abstractmethod
    async def upsert_one(
        self,
        table: str,
        record: Dict[str, Any],
        conflict_key: str,
    ) -> UpsertOutcome:
        """Inserta o actualiza una sola fila."""
        pass

    @abstractmethod
    async def delete_records(self, table: str, external_keys: Sequence[str], key_field: str) -> int:
        """Borra registros por clave externa. Retorna cuantos se borraron."""
        pass

    async def existing_values(self, table: str, column: str, values: Sequence[Any]) -> Set[Any]:
        """
        Retorna los valores de values que existen en table.column.
        Lo usa la validacion de referencias entre tablas destino.
        """
        raise NotImplementedError(f"{type(self).__name__} no soporta validacion de referencias")
