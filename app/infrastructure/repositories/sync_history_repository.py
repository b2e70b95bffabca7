"""
Repositorio del historial de sincronizacion.
Una fila por (tabla destino, spreadsheet) con la ultima corrida exitosa.
"""
from typing import List, Optional

from loguru import logger
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.domain.entities.sync_run import SyncHistoryEntry
from app.domain.repositories.sync_history_store import ISyncHistoryStore
from app.infrastructure.database.models import SyncHistoryModel
from app.shared.exceptions.sync import StorageError
from app.shared.utils.datetime_utils import DateTimeUtils


class SyncHistoryRepository(ISyncHistoryStore):
    """Implementacion SQLAlchemy de ISyncHistoryStore."""

    def __init__(self, db: AsyncSession):
        self.db = db

    @staticmethod
    def _to_entry(model: SyncHistoryModel) -> SyncHistoryEntry:
        return SyncHistoryEntry(
            target_table=model.target_table,
            spreadsheet_id=model.spreadsheet_id,
            last_sync_time=DateTimeUtils.ensure_utc(model.last_sync_time),
            record_count=model.record_count,
        )

    async def _get_model(self, target_table: str, spreadsheet_id: str) -> Optional[SyncHistoryModel]:
        result = await self.db.execute(
            select(SyncHistoryModel).where(
                SyncHistoryModel.target_table == target_table,
                SyncHistoryModel.spreadsheet_id == spreadsheet_id,
            )
        )
        return result.scalar_one_or_none()

    async def get(self, target_table: str, spreadsheet_id: str) -> Optional[SyncHistoryEntry]:
        model = await self._get_model(target_table, spreadsheet_id)
        return self._to_entry(model) if model else None

    async def record(self, entry: SyncHistoryEntry) -> None:
        """Crea o reemplaza la entrada del par (tabla, spreadsheet)."""
        try:
            model = await self._get_model(entry.target_table, entry.spreadsheet_id)
            if model is None:
                model = SyncHistoryModel(
                    target_table=entry.target_table,
                    spreadsheet_id=entry.spreadsheet_id,
                )
                self.db.add(model)
            model.last_sync_time = entry.last_sync_time
            model.record_count = entry.record_count
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise StorageError(f"No se pudo guardar el historial de {entry.target_table}: {e}") from e

        logger.info(
            f"Historial de sync: {entry.target_table}/{entry.spreadsheet_id} "
            f"last_sync_time={entry.last_sync_time.isoformat()} registros={entry.record_count}"
        )

    async def list_entries(self, target_table: Optional[str] = None, spreadsheet_id: Optional[str] = None) -> List[SyncHistoryEntry]:
        stmt = select(SyncHistoryModel)
        if target_table:
            stmt = stmt.where(SyncHistoryModel.target_table == target_table)
        if spreadsheet_id:
            stmt = stmt.where(SyncHistoryModel.spreadsheet_id == spreadsheet_id)
        stmt = stmt.order_by(SyncHistoryModel.last_sync_time.desc())
        result = await self.db.execute(stmt)
        return [self._to_entry(model) for model in result.scalars().all()]
