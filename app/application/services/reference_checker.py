"""
Validacion de referencias entre tablas destino.

Para cada FieldReference del esquema, los valores de la hoja se buscan en
la tabla apuntada; una fila con un valor inexistente se reporta como error
de fila y no se escribe. Las celdas vacias no se validan.
"""
from typing import List, Sequence, Set, Tuple

from loguru import logger

from app.application.services.value_coercion import is_empty
from app.domain.entities.sync_records import NormalizedRecord, ValidationIssue
from app.domain.entities.sync_schema import TableSchema
from app.domain.repositories.storage_adapter import IStorageAdapter


async def check_references(
    records: Sequence[NormalizedRecord],
    schema: TableSchema,
    storage: IStorageAdapter,
) -> Tuple[List[NormalizedRecord], List[ValidationIssue]]:
    """
    Separa los registros con referencias validas de los que apuntan a filas
    inexistentes.

    Returns:
        (registros validos, issues por campo invalido)

    Raises:
        StorageError: si la tabla referenciada no se puede consultar
    """
    if not schema.references:
        return list(records), []

    issues: List[ValidationIssue] = []
    rejected: Set[int] = set()

    for reference in schema.references:
        wanted = {
            record.values[reference.field]
            for record in records
            if not is_empty(record.values.get(reference.field))
        }
        if not wanted:
            continue

        found = await storage.existing_values(reference.table, reference.column, list(wanted))
        missing = wanted - found
        if not missing:
            continue

        logger.warning(
            f"{schema.table}.{reference.field}: {len(missing)} valores sin fila en "
            f"{reference.table}.{reference.column}: {sorted(str(v) for v in missing)}"
        )
        for record in records:
            value = record.values.get(reference.field)
            if is_empty(value) or value not in missing:
                continue
            rejected.add(record.row_number)
            issues.append(ValidationIssue(
                row_number=record.row_number,
                field=reference.field,
                external_key=record.external_key,
                message=f"{reference.field}: '{value}' no existe en {reference.table}",
            ))

    valid = [record for record in records if record.row_number not in rejected]
    return valid, issues
