"""
DTOs para la sincronizacion hoja de calculo -> base de datos.

Los requests aceptan snake_case y camelCase (spreadsheetId, sheetName...);
las respuestas de corrida se serializan en camelCase.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from app.shared.constants.sync_constants import MatchConfidence, SyncMode


class SheetListResponseDTO(BaseModel):
    """Hojas disponibles en un spreadsheet."""

    spreadsheet_id: str
    prefix: Optional[str] = None
    sheets: List[str] = Field(default_factory=list)


class FieldDescriptorDTO(BaseModel):
    name: str
    type: str
    required: bool = False
    default: Any = None
    synonyms: List[str] = Field(default_factory=list)
    choices: List[str] = Field(default_factory=list)
    description: str = ""


class TargetTableDTO(BaseModel):
    """Tabla destino sincronizable y sus campos."""

    table: str
    display_name: str
    key_field: str
    modified_field: Optional[str] = None
    track_history: bool = True
    fields: List[FieldDescriptorDTO] = Field(default_factory=list)
    derived_fields: List[str] = Field(default_factory=list)
    # Campos que apuntan a otra tabla destino: {field, table, column}
    references: List[Dict[str, str]] = Field(default_factory=list)


class MappingSuggestRequestDTO(BaseModel):
    """Solicitud de sugerencia de mapeo para una hoja."""

    spreadsheet_id: str = Field(..., alias="spreadsheetId", min_length=1)
    sheet_name: str = Field(..., alias="sheetName", min_length=1)
    target_table: str = Field(..., alias="targetTable", min_length=1)

    class Config:
        populate_by_name = True


class MappingSuggestionDTO(BaseModel):
    column: Optional[str] = None
    confidence: MatchConfidence = MatchConfidence.NONE


class MappingSuggestResponseDTO(BaseModel):
    """
    Sugerencia de mapeo. default_mapping solo contiene matches exact/synonym;
    requires_confirmation indica que hay campos fuzzy o sin mapear.
    """

    target_table: str
    sheet_name: str
    columns: List[str] = Field(default_factory=list)
    suggestions: Dict[str, MappingSuggestionDTO] = Field(default_factory=dict)
    default_mapping: Dict[str, str] = Field(default_factory=dict)
    unmapped_fields: List[str] = Field(default_factory=list)
    missing_required_fields: List[str] = Field(default_factory=list)
    requires_confirmation: bool = False
    saved_mapping: Optional[Dict[str, str]] = None


class ColumnMappingDTO(BaseModel):
    """Mapeo confirmado columna de hoja -> campo, por (hoja, tabla)."""

    sheet_name: str = Field(..., alias="sheetName", min_length=1)
    target_table: str = Field(..., alias="targetTable", min_length=1)
    column_mapping: Dict[str, str] = Field(..., alias="columnMapping")

    class Config:
        populate_by_name = True


class SyncRequestDTO(BaseModel):
    """Solicitud de corrida de sincronizacion."""

    spreadsheet_id: str = Field(..., alias="spreadsheetId", min_length=1)
    sheet_name: str = Field(..., alias="sheetName", min_length=1)
    target_table: str = Field(..., alias="targetTable", min_length=1)
    column_mapping: Optional[Dict[str, str]] = Field(
        None,
        alias="columnMapping",
        description="Mapeo explicito; si falta se usa el guardado o el sugerido (exact/synonym)",
    )
    mode: SyncMode = Field(default=SyncMode.FULL)
    allow_manual_overwrite: bool = Field(
        default=False,
        alias="allowManualOverwrite",
        description="Permite actualizar registros creados a mano",
    )
    use_cache: bool = Field(
        default=False,
        alias="useCache",
        description="Reutiliza una lectura cacheada de la hoja en lugar de releerla",
    )
    run_id: Optional[str] = Field(
        None,
        alias="runId",
        description="ID de corrida elegido por el cliente (para suscribirse al WebSocket antes de iniciar)",
    )

    class Config:
        populate_by_name = True


class ErrorDetailDTO(BaseModel):
    row_index: Optional[int] = Field(None, alias="rowIndex")
    external_key: Optional[str] = Field(None, alias="externalKey")
    field: Optional[str] = None
    message: str

    class Config:
        populate_by_name = True


class SyncResultDataDTO(BaseModel):
    run_id: Optional[str] = Field(None, alias="runId")
    target_table: Optional[str] = Field(None, alias="targetTable")
    mode: Optional[SyncMode] = None
    total: int = 0
    processed: int = 0
    inserted: int = 0
    updated: int = 0
    skipped: int = 0
    errors: int = 0
    error_details: List[ErrorDetailDTO] = Field(default_factory=list, alias="errorDetails")
    orphaned: List[str] = Field(default_factory=list)
    conflicts: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    cancelled: bool = False
    started_at: Optional[datetime] = Field(None, alias="startedAt")
    finished_at: Optional[datetime] = Field(None, alias="finishedAt")

    class Config:
        populate_by_name = True


class SyncResultDTO(BaseModel):
    """Resultado de corrida: {success, message, data}."""

    success: bool
    message: str
    data: SyncResultDataDTO


class FullSyncRequestDTO(BaseModel):
    """Corrida combinada: reservas y luego tours del mismo spreadsheet."""

    spreadsheet_id: str = Field(..., alias="spreadsheetId", min_length=1)
    reservations_sheet: str = Field(..., alias="reservationsSheet", min_length=1)
    tours_sheet: str = Field(..., alias="toursSheet", min_length=1)
    mode: SyncMode = Field(default=SyncMode.FULL)
    allow_manual_overwrite: bool = Field(default=False, alias="allowManualOverwrite")
    use_cache: bool = Field(default=False, alias="useCache")

    class Config:
        populate_by_name = True


class FullSyncResultDTO(BaseModel):
    """Resultado por tabla; failures trae las tablas que no llegaron a escribir."""

    success: bool
    message: str
    results: Dict[str, SyncResultDTO] = Field(default_factory=dict)
    failures: Dict[str, str] = Field(default_factory=dict)


class CancelRunResponseDTO(BaseModel):
    run_id: str
    cancelled: bool
    message: str


class SyncHistoryDTO(BaseModel):
    target_table: str
    spreadsheet_id: str
    last_sync_time: datetime
    record_count: int

    class Config:
        from_attributes = True


class SyncHistoryListDTO(BaseModel):
    items: List[SyncHistoryDTO] = Field(default_factory=list)
    total: int = 0


class OrphanDeleteRequestDTO(BaseModel):
    """Borrado explicito de huerfanos (decision humana)."""

    target_table: str = Field(..., alias="targetTable", min_length=1)
    external_keys: List[str] = Field(..., alias="externalKeys", min_length=1)

    class Config:
        populate_by_name = True


class OrphanDeleteResponseDTO(BaseModel):
    target_table: str
    requested: int
    deleted: int


class SyncStatsDTO(BaseModel):
    """Registros de una tabla destino por origen."""

    target_table: str
    total: int
    by_source: Dict[str, int] = Field(default_factory=dict)
    last_syncs: List[SyncHistoryDTO] = Field(default_factory=list)
