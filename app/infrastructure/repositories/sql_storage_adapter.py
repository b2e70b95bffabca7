"""
Adaptador de storage del sync sobre SQLAlchemy (async).

Implementa IStorageAdapter para las tablas destino registradas en
TABLE_MODELS. Cada llamada de escritura es una transaccion: un batch que
falla se revierte completo y el executor decide si reintentar fila por fila.
"""
from collections import defaultdict
from typing import Any, Dict, List, Optional, Sequence, Set, Type

from loguru import logger
from sqlalchemy import Table, bindparam, delete, func, insert, select, update
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.domain.entities.sync_records import StoredRecord, UpsertOutcome
from app.domain.repositories.storage_adapter import IStorageAdapter
from app.infrastructure.database.models import (
    PaymentMethodModel,
    ReservationExpenseModel,
    ReservationModel,
    TourExpenseModel,
    TourModel,
)
from app.shared.constants.sync_constants import SOURCE_COLUMN, RecordSource
from app.shared.exceptions.sync import StorageError, TransientError

# tabla -> (modelo ORM, columna de clave externa)
TABLE_MODELS: Dict[str, tuple] = {
    "reservations": (ReservationModel, "reservation_number"),
    "tours": (TourModel, "tour_number"),
    "payment_methods": (PaymentMethodModel, "method_code"),
    "reservation_expenses": (ReservationExpenseModel, "expense_code"),
    "tour_expenses": (TourExpenseModel, "expense_code"),
}

# Columnas que no forman parte de los valores sincronizados
TECHNICAL_COLUMNS = {"id", SOURCE_COLUMN, "created_at", "updated_at"}

_SOURCE_VALUES = {source.value for source in RecordSource}

# Dialectos con INSERT ... ON CONFLICT DO UPDATE
_DIALECT_INSERTS = {
    "postgresql": postgresql_insert,
    "sqlite": sqlite_insert,
}


class SqlStorageAdapter(IStorageAdapter):
    """
    Storage relacional del sync.

    Usa la sesion inyectada (request o job) y hace commit por llamada de
    escritura para que los batches ya escritos sobrevivan a fallos
    posteriores de la corrida.
    """

    supports_batch_upsert = True

    def __init__(self, db: AsyncSession):
        """
        Args:
            db: Sesion asincrona de SQLAlchemy
        """
        self.db = db

    def _model(self, table: str) -> tuple:
        entry = TABLE_MODELS.get(table)
        if entry is None:
            raise StorageError(f"Tabla destino desconocida: {table}")
        return entry

    @staticmethod
    def _value_columns(model: Type) -> List[str]:
        return [c.name for c in model.__table__.columns if c.name not in TECHNICAL_COLUMNS]

    async def query(self, table: str, filter: Optional[Dict[str, Any]] = None) -> List[StoredRecord]:
        model, key_field = self._model(table)
        stmt = select(model)
        for column, value in (filter or {}).items():
            if column not in model.__table__.columns:
                raise StorageError(f"Columna de filtro desconocida en {table}: {column}")
            stmt = stmt.where(getattr(model, column) == value)
        # Las escrituras son Core: refrescar instancias ya cargadas en la sesion
        stmt = stmt.order_by(model.id).execution_options(populate_existing=True)

        try:
            result = await self.db.execute(stmt)
        except SQLAlchemyError as e:
            raise self._wrap(e, f"query {table}") from e

        columns = self._value_columns(model)
        records = []
        for row in result.scalars().all():
            source = row.source if row.source in _SOURCE_VALUES else RecordSource.MANUAL.value
            records.append(StoredRecord(
                primary_key=row.id,
                external_key=getattr(row, key_field),
                values={column: getattr(row, column) for column in columns},
                source=RecordSource(source),
                updated_at=row.updated_at,
            ))
        return records

    async def existing_values(self, table: str, column: str, values: Sequence[Any]) -> Set[Any]:
        """Subconjunto de values presente en la columna de la tabla destino."""
        model, _ = self._model(table)
        if column not in model.__table__.columns:
            raise StorageError(f"Columna desconocida en {table}: {column}")
        wanted = list({value for value in values if value is not None})
        if not wanted:
            return set()
        target = model.__table__.c[column]
        try:
            result = await self.db.execute(select(target).where(target.in_(wanted)))
        except SQLAlchemyError as e:
            raise self._wrap(e, f"lookup {table}.{column}") from e
        return set(result.scalars().all())

    async def upsert_batch(
        self,
        table: str,
        records: Sequence[Dict[str, Any]],
        conflict_key: str,
    ) -> UpsertOutcome:
        model, _ = self._model(table)
        try:
            outcome = await self._upsert(model, records, conflict_key)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self._rollback()
            raise self._wrap(e, f"upsert_batch {table}") from e
        except BaseException:
            # Incluye CancelledError del timeout del executor
            await self._rollback()
            raise

        logger.debug(f"upsert {table}: {outcome.inserted} insertados, {outcome.updated} actualizados")
        return outcome

    async def upsert_one(
        self,
        table: str,
        record: Dict[str, Any],
        conflict_key: str,
    ) -> UpsertOutcome:
        model, _ = self._model(table)
        try:
            outcome = await self._upsert(model, [record], conflict_key)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self._rollback()
            raise self._wrap(e, f"upsert {table} {record.get(conflict_key)}", record.get(conflict_key)) from e
        except BaseException:
            await self._rollback()
            raise
        return outcome

    def _insert_statement(self, table: Table):
        dialect_insert = _DIALECT_INSERTS.get(self.db.get_bind().dialect.name)
        return dialect_insert(table) if dialect_insert is not None else None

    async def _upsert(self, model: Type, records: Sequence[Dict[str, Any]], conflict_key: str) -> UpsertOutcome:
        """
        Escribe el batch en la transaccion actual.

        - Claves nuevas: INSERT ... ON CONFLICT (clave) DO UPDATE, un statement
          por grupo de columnas. Si otro escritor inserto la clave entretanto,
          la fila se actualiza sin tocar su source.
        - Claves existentes: UPDATE executemany por grupo de columnas; solo
          se tocan las columnas presentes en el payload.
        """
        table = model.__table__
        columns = set(table.columns.keys())
        unknown = {name for record in records for name in record if name not in columns}
        if unknown:
            raise StorageError(f"Columnas desconocidas en {model.__tablename__}: {sorted(unknown)}")

        key_column = table.c[conflict_key]
        keys = [record[conflict_key] for record in records]
        result = await self.db.execute(select(key_column).where(key_column.in_(keys)))
        existing = set(result.scalars().all())

        new_groups: Dict[frozenset, List[Dict[str, Any]]] = defaultdict(list)
        update_groups: Dict[frozenset, List[Dict[str, Any]]] = defaultdict(list)
        outcome = UpsertOutcome()
        for record in records:
            if record[conflict_key] in existing:
                update_groups[frozenset(record)].append(record)
                outcome.updated += 1
            else:
                new_groups[frozenset(record)].append(record)
                outcome.inserted += 1

        for group_columns, rows in new_groups.items():
            stmt = self._insert_statement(table)
            if stmt is None:
                await self.db.execute(insert(table).values(rows))
                continue
            set_ = {
                name: stmt.excluded[name]
                for name in group_columns
                if name not in (conflict_key, SOURCE_COLUMN)
            }
            set_["updated_at"] = func.now()
            await self.db.execute(
                stmt.values(rows).on_conflict_do_update(index_elements=[conflict_key], set_=set_)
            )

        for group_columns, rows in update_groups.items():
            if group_columns == {conflict_key}:
                continue
            params = [
                {**{name: value for name, value in row.items() if name != conflict_key}, "match_key": row[conflict_key]}
                for row in rows
            ]
            await self.db.execute(
                update(table).where(key_column == bindparam("match_key")),
                params,
            )

        return outcome

    async def delete_records(self, table: str, external_keys: Sequence[str], key_field: str) -> int:
        model, _ = self._model(table)
        if not external_keys:
            return 0
        try:
            result = await self.db.execute(
                delete(model).where(getattr(model, key_field).in_(list(external_keys)))
            )
            await self.db.commit()
        except SQLAlchemyError as e:
            await self._rollback()
            raise self._wrap(e, f"delete {table}") from e
        except BaseException:
            await self._rollback()
            raise

        logger.info(f"Borrados {result.rowcount} registros de {table}")
        return result.rowcount or 0

    async def count_by_source(self, table: str) -> Dict[str, int]:
        """Cantidad de registros por origen (sync / manual / manual-override)."""
        model, _ = self._model(table)
        try:
            result = await self.db.execute(
                select(model.source, func.count(model.id)).group_by(model.source)
            )
        except SQLAlchemyError as e:
            raise self._wrap(e, f"count {table}") from e
        return {source: count for source, count in result.all()}

    async def _rollback(self) -> None:
        try:
            await self.db.rollback()
        except SQLAlchemyError as e:
            logger.warning(f"Rollback fallido: {e}")

    @staticmethod
    def _wrap(error: SQLAlchemyError, action: str, external_key: Optional[str] = None) -> StorageError:
        """Errores de conexion/bloqueo son transitorios; el resto, de datos."""
        message = f"{action}: {getattr(error, 'orig', None) or error}"
        if isinstance(error, OperationalError):
            return TransientError(message, external_key)
        return StorageError(message, external_key)
