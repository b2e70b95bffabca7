"""
Repositorio de mapeos de columnas confirmados.
Un mapeo por (nombre de hoja, tabla destino); solo cambia por accion explicita.
"""
from typing import Dict, Optional

from loguru import logger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.infrastructure.database.models import ColumnMappingModel


class ColumnMappingRepository:
    """Persistencia de ColumnMapping (columna de hoja -> campo interno)."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _get_model(self, sheet_name: str, target_table: str) -> Optional[ColumnMappingModel]:
        result = await self.db.execute(
            select(ColumnMappingModel).where(
                ColumnMappingModel.sheet_name == sheet_name,
                ColumnMappingModel.target_table == target_table,
            )
        )
        return result.scalar_one_or_none()

    async def get(self, sheet_name: str, target_table: str) -> Optional[Dict[str, str]]:
        """
        Obtiene el mapeo guardado.

        Returns:
            Dict columna -> campo, o None si nunca se confirmo un mapeo
        """
        model = await self._get_model(sheet_name, target_table)
        return dict(model.mapping) if model else None

    async def save(self, sheet_name: str, target_table: str, mapping: Dict[str, str]) -> Dict[str, str]:
        """Crea o reemplaza el mapeo del par (hoja, tabla)."""
        model = await self._get_model(sheet_name, target_table)
        if model is None:
            model = ColumnMappingModel(sheet_name=sheet_name, target_table=target_table)
            self.db.add(model)
        model.mapping = dict(mapping)
        await self.db.commit()

        logger.info(f"Mapeo de columnas guardado: {sheet_name} -> {target_table} ({len(mapping)} columnas)")
        return dict(mapping)

    async def delete(self, sheet_name: str, target_table: str) -> bool:
        model = await self._get_model(sheet_name, target_table)
        if model is None:
            return False
        await self.db.delete(model)
        await self.db.commit()
        return True
