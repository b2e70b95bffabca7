"""
Normalizador de filas de hoja de calculo.

Convierte una ExternalRow (celdas string) en un NormalizedRecord tipado segun
el TableSchema de la tabla destino. Nunca lanza por datos malos: devuelve un
NormalizationResult con el registro o con la lista de errores de campo, y la
corrida sigue con las demas filas.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from loguru import logger

from app.application.services.column_mapper import fields_to_columns
from app.application.services.value_coercion import CoercionError, coerce_value, is_empty
from app.domain.entities.sync_records import (
    ExternalRow,
    NormalizationResult,
    NormalizedRecord,
    ValidationIssue,
)
from app.domain.entities.sync_schema import TableSchema


class RowNormalizer:
    """
    Normalizador de filas para una tabla destino y un mapeo dado.

    Solo los campos mapeados entran en el registro: un campo sin columna no
    se toca en el storage. Las celdas vacias de campos opcionales toman el
    default del descriptor y quedan marcadas en empty_fields: para un
    registro editado a mano cuentan como vacias, no como el default.

    Uso:
        normalizer = RowNormalizer(schema, mapping)
        result = normalizer.normalize(row)
        records, issues = normalizer.normalize_rows(rows)
    """

    def __init__(self, schema: TableSchema, mapping: Dict[str, str]):
        self.schema = schema
        self.mapping = dict(mapping)
        self._columns_by_field = fields_to_columns(self.mapping)

    def normalize(self, row: ExternalRow) -> NormalizationResult:
        """
        Normaliza una fila. Evalua todos los campos para reportar todos los
        problemas de la fila de una vez.
        """
        key_column = self._columns_by_field.get(self.schema.key_field)
        raw_key = row.get(key_column).strip() if key_column else ""
        external_key = raw_key or None

        values: Dict[str, Any] = {}
        issues: List[ValidationIssue] = []
        empty_fields: Set[str] = set()

        for descriptor in self.schema.fields:
            column = self._columns_by_field.get(descriptor.name)
            if column is None:
                if descriptor.required:
                    issues.append(ValidationIssue(
                        row_number=row.row_number,
                        field=descriptor.name,
                        message=f"El campo requerido '{descriptor.name}' no tiene columna mapeada",
                        external_key=external_key,
                    ))
                continue

            raw = row.get(column)
            if is_empty(raw):
                if descriptor.required:
                    issues.append(ValidationIssue(
                        row_number=row.row_number,
                        field=descriptor.name,
                        message=f"El campo requerido '{descriptor.name}' esta vacio (columna '{column}')",
                        external_key=external_key,
                    ))
                else:
                    values[descriptor.name] = descriptor.default
                    empty_fields.add(descriptor.name)
                continue

            try:
                values[descriptor.name] = coerce_value(raw, descriptor)
            except CoercionError as e:
                issues.append(ValidationIssue(
                    row_number=row.row_number,
                    field=descriptor.name,
                    message=f"{descriptor.name}: {e}",
                    external_key=external_key,
                ))

        if issues:
            return NormalizationResult(row_number=row.row_number, errors=issues)

        if self.schema.derive is not None:
            try:
                values = self.schema.derive(dict(values))
            except (CoercionError, ValueError) as e:
                return NormalizationResult(
                    row_number=row.row_number,
                    errors=[ValidationIssue(
                        row_number=row.row_number,
                        message=str(e),
                        external_key=external_key,
                    )],
                )

        key_value = values.get(self.schema.key_field)
        if is_empty(key_value):
            return NormalizationResult(
                row_number=row.row_number,
                errors=[ValidationIssue(
                    row_number=row.row_number,
                    field=self.schema.key_field,
                    message=f"La clave externa '{self.schema.key_field}' esta vacia",
                )],
            )

        record = NormalizedRecord(
            external_key=str(key_value).strip(),
            row_number=row.row_number,
            values=values,
            modified_at=self._modified_at(values),
            empty_fields=frozenset(empty_fields),
        )
        return NormalizationResult(row_number=row.row_number, record=record)

    def normalize_rows(
        self, rows: Iterable[ExternalRow]
    ) -> Tuple[List[NormalizedRecord], List[ValidationIssue]]:
        """
        Normaliza todas las filas.

        Returns:
            Tuple con (registros validos en orden de hoja, errores de campo)
        """
        records: List[NormalizedRecord] = []
        issues: List[ValidationIssue] = []
        invalid_rows = 0

        for row in rows:
            result = self.normalize(row)
            if result.ok:
                records.append(result.record)
            else:
                invalid_rows += 1
                issues.extend(result.errors)

        if invalid_rows:
            logger.warning(
                f"{self.schema.table}: {invalid_rows} filas invalidas excluidas "
                f"({len(issues)} errores de campo)"
            )
        return records, issues

    def _modified_at(self, values: Dict[str, Any]) -> Optional[datetime]:
        if not self.schema.modified_field:
            return None
        value = values.get(self.schema.modified_field)
        return value if isinstance(value, datetime) else None


def normalize(row: ExternalRow, mapping: Dict[str, str], schema: TableSchema) -> NormalizationResult:
    """Normaliza una sola fila (ver RowNormalizer)."""
    return RowNormalizer(schema, mapping).normalize(row)
