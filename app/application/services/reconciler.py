"""
Reconciliador: particiona filas normalizadas contra el estado del storage.

Une por clave externa y decide insert / update / skip, reporta huerfanos en
modo full y nunca borra. Los valores se comparan normalizados (strings
recortados, montos a la misma precision, fechas como fechas) para no generar
updates espurios por formato.
"""
from __future__ import annotations

from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Sequence

from loguru import logger

from app.application.services.value_coercion import is_empty, values_equal
from app.domain.entities.sync_records import (
    NormalizedRecord,
    ReconcilePartition,
    RecordUpdate,
    StoredRecord,
    ValidationIssue,
)
from app.domain.entities.sync_schema import TableSchema
from app.shared.constants.sync_constants import FieldType, RecordSource, SyncMode
from app.shared.utils.datetime_utils import DateTimeUtils


def infer_field_type(value: Any) -> FieldType:
    """Tipo de comparacion para valores sin descriptor."""
    if isinstance(value, bool):
        return FieldType.BOOLEAN
    if isinstance(value, (int, Decimal, float)):
        return FieldType.DECIMAL
    if isinstance(value, datetime):
        return FieldType.DATETIME
    if isinstance(value, date):
        return FieldType.DATE
    if isinstance(value, time):
        return FieldType.TIME
    if isinstance(value, list):
        return FieldType.LIST
    if isinstance(value, dict):
        return FieldType.JSON
    return FieldType.STRING


def filter_incremental(
    rows: Sequence[NormalizedRecord],
    last_sync_time: Optional[datetime],
) -> List[NormalizedRecord]:
    """
    Filtra filas modificadas despues de last_sync_time. Las filas sin marca
    de modificacion se conservan (no se puede probar que no cambiaron).
    """
    if last_sync_time is None:
        return list(rows)
    since = DateTimeUtils.ensure_utc(last_sync_time)
    return [
        row for row in rows
        if row.modified_at is None or DateTimeUtils.ensure_utc(row.modified_at) > since
    ]


class Reconciler:
    """
    Reconciliador para una tabla destino.

    Uso:
        partition = Reconciler(schema).reconcile(records, existing, SyncMode.FULL)
    """

    def __init__(self, schema: Optional[TableSchema] = None):
        self.schema = schema

    def _field_type(self, name: str, sample: Any) -> FieldType:
        if self.schema is not None:
            descriptor = self.schema.get_field(name)
            if descriptor is not None:
                return descriptor.field_type
        return infer_field_type(sample)

    def reconcile(
        self,
        normalized_rows: Sequence[NormalizedRecord],
        existing: Sequence[StoredRecord],
        mode: SyncMode,
        last_sync_time: Optional[datetime] = None,
        *,
        allow_manual_overwrite: bool = False,
        sheet_keys: Optional[Iterable[str]] = None,
    ) -> ReconcilePartition:
        """
        Calcula la particion insert/update/skip/orphaned.

        Args:
            normalized_rows: Registros validos en orden de hoja
            existing: Snapshot actual del storage
            mode: full o incremental (los huerfanos solo se calculan en full)
            last_sync_time: En incremental, limite de la ventana; las filas
                se vuelven a filtrar contra este valor
            allow_manual_overwrite: Permite actualizar registros creados a mano
            sheet_keys: Claves presentes en la hoja cuya fila no paso la
                normalizacion; no cuentan como huerfanas

        Returns:
            ReconcilePartition
        """
        partition = ReconcilePartition()
        key_label = self.schema.key_field if self.schema else None

        # Indice del storage por clave externa; duplicados -> warning, gana el primero
        index: Dict[str, StoredRecord] = {}
        for stored in existing:
            key = (stored.external_key or "").strip()
            if not key:
                continue
            if key in index:
                partition.warnings.append(
                    f"Clave '{key}' duplicada en el storage; se usa el registro {index[key].primary_key}"
                )
                continue
            index[key] = stored

        rows = list(normalized_rows)
        if mode == SyncMode.INCREMENTAL:
            rows = filter_incremental(rows, last_sync_time)

        seen: Dict[str, NormalizedRecord] = {}
        for record in rows:
            key = record.external_key.strip()
            first = seen.get(key)
            if first is not None:
                partition.duplicates.append(ValidationIssue(
                    row_number=record.row_number,
                    field=key_label,
                    external_key=key,
                    message=(
                        f"Clave '{key}' duplicada en la hoja (primera aparicion en fila "
                        f"{first.row_number}); la fila no se procesa"
                    ),
                ))
                continue
            seen[key] = record

            stored = index.get(key)
            if stored is None:
                partition.to_insert.append(record)
                continue

            changes = self._diff(record, stored)
            if not changes:
                partition.to_skip.append(record)
            elif stored.source == RecordSource.MANUAL and not allow_manual_overwrite:
                partition.to_skip.append(record)
                partition.conflicts.append(key)
            else:
                partition.to_update.append(RecordUpdate(
                    record=record,
                    primary_key=stored.primary_key,
                    changes=changes,
                    source=stored.source,
                ))

        if mode == SyncMode.FULL:
            present = set(seen) | {k.strip() for k in (sheet_keys or []) if k}
            partition.orphaned = [
                stored for key, stored in index.items() if key not in present
            ]

        for warning in partition.warnings:
            logger.warning(warning)
        logger.info(
            f"Reconciliacion ({mode.value}): insert={len(partition.to_insert)} "
            f"update={len(partition.to_update)} skip={len(partition.to_skip)} "
            f"orphaned={len(partition.orphaned)} duplicates={len(partition.duplicates)} "
            f"conflicts={len(partition.conflicts)}"
        )
        return partition

    def _diff(self, record: NormalizedRecord, stored: StoredRecord) -> Dict[str, Any]:
        """Campos entrantes que difieren del registro persistido."""
        changes: Dict[str, Any] = {}
        for name, incoming in record.values.items():
            current = stored.values.get(name)
            field_type = self._field_type(name, incoming if incoming is not None else current)
            if values_equal(incoming, current, field_type):
                continue
            # Edicion manual gana sobre una celda vacia, aunque el campo tenga default
            if (
                stored.source == RecordSource.MANUAL_OVERRIDE
                and (is_empty(incoming) or name in record.empty_fields)
                and not is_empty(current)
            ):
                continue
            changes[name] = incoming
        return changes


def reconcile(
    normalized_rows: Sequence[NormalizedRecord],
    existing: Sequence[StoredRecord],
    mode: SyncMode,
    last_sync_time: Optional[datetime] = None,
    *,
    schema: Optional[TableSchema] = None,
    allow_manual_overwrite: bool = False,
    sheet_keys: Optional[Iterable[str]] = None,
) -> ReconcilePartition:
    """Atajo funcional de Reconciler.reconcile."""
    return Reconciler(schema).reconcile(
        normalized_rows,
        existing,
        mode,
        last_sync_time,
        allow_manual_overwrite=allow_manual_overwrite,
        sheet_keys=sheet_keys,
    )
