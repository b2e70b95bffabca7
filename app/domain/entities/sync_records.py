"""
Filas y registros que fluyen por el pipeline de sync.

ExternalRow -> (normalizador) -> NormalizedRecord -> (reconciliador, contra
StoredRecord) -> ReconcilePartition -> (executor).
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, FrozenSet, List, Optional

from app.shared.constants.sync_constants import RecordSource


@dataclass(frozen=True)
class ExternalRow:
    """
    Fila cruda de la hoja: encabezado -> valor de celda (string).

    row_number es la fila en la hoja (1 = encabezado, 2 = primera fila de
    datos). Es el indice que se reporta en los errores.
    """

    row_number: int
    values: Dict[str, str]

    def get(self, column: str) -> str:
        return self.values.get(column, "") or ""

    @property
    def columns(self) -> List[str]:
        return list(self.values.keys())


@dataclass(frozen=True)
class ValidationIssue:
    """Error local a una fila (celda invalida, requerido vacio, clave duplicada)."""

    row_number: int
    message: str
    field: Optional[str] = None
    external_key: Optional[str] = None


@dataclass
class NormalizedRecord:
    """Registro tipado listo para reconciliar."""

    external_key: str
    row_number: int
    values: Dict[str, Any]
    modified_at: Optional[datetime] = None
    # Campos cuya celda venia vacia (el valor es el default del descriptor)
    empty_fields: FrozenSet[str] = frozenset()


@dataclass
class NormalizationResult:
    """
    Resultado etiquetado de normalizar una fila: o bien un registro, o bien
    la lista de errores de campo. Nunca ambos.
    """

    row_number: int
    record: Optional[NormalizedRecord] = None
    errors: List[ValidationIssue] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.record is not None and not self.errors


@dataclass
class StoredRecord:
    """Snapshot de un registro persistido."""

    primary_key: Any
    external_key: str
    values: Dict[str, Any]
    source: RecordSource = RecordSource.SYNC
    updated_at: Optional[datetime] = None


@dataclass
class RecordUpdate:
    """Actualizacion de un registro existente: solo los campos que cambian."""

    record: NormalizedRecord
    primary_key: Any
    changes: Dict[str, Any]
    source: RecordSource = RecordSource.SYNC


@dataclass
class ReconcilePartition:
    """Particion insert/update/skip/orphaned producida por el reconciliador."""

    to_insert: List[NormalizedRecord] = field(default_factory=list)
    to_update: List[RecordUpdate] = field(default_factory=list)
    to_skip: List[NormalizedRecord] = field(default_factory=list)
    orphaned: List[StoredRecord] = field(default_factory=list)
    # Filas descartadas por clave repetida dentro del batch
    duplicates: List[ValidationIssue] = field(default_factory=list)
    # Claves de registros manuales que el sync no tocó
    conflicts: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.to_insert) + len(self.to_update) + len(self.to_skip)


@dataclass
class UpsertOutcome:
    """Resultado de una llamada de escritura al storage."""

    inserted: int = 0
    updated: int = 0
    # external_key -> mensaje, para backends que reportan fallos por fila
    errors: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class CustomerContact:
    """Datos de cliente tomados de una fila de reserva."""

    email: str
    name: Optional[str] = None
    phone: Optional[str] = None
