"""
Data Transfer Objects (DTOs) para la capa de aplicacion.
"""
from .sync_dto import (
    ColumnMappingDTO,
    MappingSuggestRequestDTO,
    MappingSuggestResponseDTO,
    OrphanDeleteRequestDTO,
    SyncHistoryDTO,
    SyncRequestDTO,
    SyncResultDTO,
    TargetTableDTO,
)

__all__ = [
    "ColumnMappingDTO",
    "MappingSuggestRequestDTO",
    "MappingSuggestResponseDTO",
    "OrphanDeleteRequestDTO",
    "SyncHistoryDTO",
    "SyncRequestDTO",
    "SyncResultDTO",
    "TargetTableDTO",
]
