"""
Endpoints para sincronizacion de hojas de calculo con la base de datos.
Permite listar hojas, confirmar mapeos de columnas y ejecutar corridas desde la UI.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from loguru import logger

from app.api.v1.dependencies.use_case_deps import get_sheet_sync_use_cases
from app.application.dto.sync_dto import (
    CancelRunResponseDTO,
    ColumnMappingDTO,
    FullSyncRequestDTO,
    FullSyncResultDTO,
    MappingSuggestRequestDTO,
    MappingSuggestResponseDTO,
    OrphanDeleteRequestDTO,
    OrphanDeleteResponseDTO,
    SheetListResponseDTO,
    SyncHistoryDTO,
    SyncHistoryListDTO,
    SyncRequestDTO,
    SyncResultDTO,
    SyncStatsDTO,
    TargetTableDTO,
)
from app.application.use_cases.sync_use_cases import SheetSyncUseCases


router = APIRouter(prefix="/sync", tags=["Sync"])


@router.get(
    "/sheets",
    response_model=SheetListResponseDTO,
    summary="Listar hojas de un spreadsheet"
)
async def list_sheets(
    spreadsheet_id: str = Query(..., min_length=1, description="ID del spreadsheet"),
    prefix: Optional[str] = Query(None, description="Filtra hojas cuyo nombre empieza con el prefijo"),
    use_cases: SheetSyncUseCases = Depends(get_sheet_sync_use_cases)
) -> SheetListResponseDTO:
    """Lista los nombres de hojas del spreadsheet."""
    sheets = await use_cases.list_sheets(spreadsheet_id, prefix)
    return SheetListResponseDTO(spreadsheet_id=spreadsheet_id, prefix=prefix, sheets=sheets)


@router.get(
    "/tables",
    response_model=List[TargetTableDTO],
    summary="Listar tablas destino sincronizables"
)
async def list_tables(
    use_cases: SheetSyncUseCases = Depends(get_sheet_sync_use_cases)
) -> List[TargetTableDTO]:
    """Retorna las tablas destino y la descripcion de sus campos."""
    return [TargetTableDTO(**schema.to_dict()) for schema in use_cases.list_tables()]


@router.post(
    "/mapping/suggest",
    response_model=MappingSuggestResponseDTO,
    summary="Sugerir mapeo de columnas"
)
async def suggest_mapping(
    request: MappingSuggestRequestDTO,
    use_cases: SheetSyncUseCases = Depends(get_sheet_sync_use_cases)
) -> MappingSuggestResponseDTO:
    """
    Lee los encabezados de la hoja y sugiere una columna por campo.

    Los matches fuzzy no entran en default_mapping: requieren confirmacion
    (PUT /sync/mapping) antes de ejecutar.
    """
    suggestion = await use_cases.suggest_mapping(
        request.spreadsheet_id,
        request.sheet_name,
        request.target_table,
    )
    return MappingSuggestResponseDTO(**suggestion)


@router.get(
    "/mapping",
    response_model=ColumnMappingDTO,
    response_model_by_alias=False,
    summary="Obtener mapeo guardado"
)
async def get_mapping(
    sheet_name: str = Query(..., min_length=1),
    target_table: str = Query(..., min_length=1),
    use_cases: SheetSyncUseCases = Depends(get_sheet_sync_use_cases)
) -> ColumnMappingDTO:
    mapping = await use_cases.get_mapping(sheet_name, target_table)
    return ColumnMappingDTO(sheet_name=sheet_name, target_table=target_table, column_mapping=mapping)


@router.put(
    "/mapping",
    response_model=ColumnMappingDTO,
    response_model_by_alias=False,
    summary="Guardar mapeo confirmado"
)
async def save_mapping(
    request: ColumnMappingDTO,
    use_cases: SheetSyncUseCases = Depends(get_sheet_sync_use_cases)
) -> ColumnMappingDTO:
    """Guarda el mapeo confirmado por el usuario para (hoja, tabla)."""
    mapping = await use_cases.save_mapping(request.sheet_name, request.target_table, request.column_mapping)
    return ColumnMappingDTO(
        sheet_name=request.sheet_name,
        target_table=request.target_table,
        column_mapping=mapping,
    )


@router.post(
    "/sheets",
    response_model=SyncResultDTO,
    status_code=status.HTTP_200_OK,
    summary="Sincronizar una hoja con su tabla destino"
)
async def sync_sheet(
    request: SyncRequestDTO,
    use_cases: SheetSyncUseCases = Depends(get_sheet_sync_use_cases)
) -> SyncResultDTO:
    """
    Ejecuta una corrida de sincronizacion.

    - full: considera todas las filas y reporta huerfanos (nunca los borra)
    - incremental: solo filas modificadas desde la ultima corrida exitosa

    Los errores de fila vienen en data.errorDetails; la corrida se considera
    exitosa si hubo progreso (errors == 0 o errors < processed).
    """
    logger.info(
        f"Sync solicitado: {request.sheet_name} -> {request.target_table} ({request.mode.value})"
    )
    result = await use_cases.run_sync(request)
    return SyncResultDTO.model_validate(result.to_dict())


@router.post(
    "/full",
    response_model=FullSyncResultDTO,
    status_code=status.HTTP_200_OK,
    summary="Sincronizar reservas y tours en una sola llamada"
)
async def sync_full(
    request: FullSyncRequestDTO,
    use_cases: SheetSyncUseCases = Depends(get_sheet_sync_use_cases)
) -> FullSyncResultDTO:
    """
    Corre reservations y luego tours. Cada tabla tiene su propia corrida;
    si una falla antes de escribir, la otra igual se ejecuta y el error
    queda en failures.
    """
    logger.info(
        f"Sync completo solicitado: {request.reservations_sheet} + {request.tours_sheet} ({request.mode.value})"
    )
    result = await use_cases.run_full_sync(request)
    return FullSyncResultDTO.model_validate(result.to_dict())


@router.post(
    "/runs/{run_id}/cancel",
    response_model=CancelRunResponseDTO,
    summary="Cancelar una corrida en curso"
)
async def cancel_run(
    run_id: str,
    use_cases: SheetSyncUseCases = Depends(get_sheet_sync_use_cases)
) -> CancelRunResponseDTO:
    """La corrida termina el batch actual y devuelve un resultado parcial."""
    run = use_cases.cancel_run(run_id)
    return CancelRunResponseDTO(
        run_id=run.run_id,
        cancelled=True,
        message=f"Cancelacion solicitada para {run.target_table}",
    )


@router.get(
    "/history",
    response_model=SyncHistoryListDTO,
    summary="Historial de sincronizaciones"
)
async def get_history(
    target_table: Optional[str] = Query(None),
    spreadsheet_id: Optional[str] = Query(None),
    use_cases: SheetSyncUseCases = Depends(get_sheet_sync_use_cases)
) -> SyncHistoryListDTO:
    entries = await use_cases.get_history(target_table, spreadsheet_id)
    items = [SyncHistoryDTO.model_validate(entry) for entry in entries]
    return SyncHistoryListDTO(items=items, total=len(items))


@router.post(
    "/orphans/delete",
    response_model=OrphanDeleteResponseDTO,
    summary="Borrar registros huerfanos (accion explicita)"
)
async def delete_orphans(
    request: OrphanDeleteRequestDTO,
    use_cases: SheetSyncUseCases = Depends(get_sheet_sync_use_cases)
) -> OrphanDeleteResponseDTO:
    """
    Borra los registros indicados. Las corridas nunca borran: esta es la
    unica via, y requiere la lista explicita de claves.
    """
    deleted = await use_cases.delete_orphans(request.target_table, request.external_keys)
    return OrphanDeleteResponseDTO(
        target_table=request.target_table,
        requested=len(request.external_keys),
        deleted=deleted,
    )


@router.get(
    "/stats/{target_table}",
    response_model=SyncStatsDTO,
    summary="Estadisticas de una tabla destino"
)
async def get_stats(
    target_table: str,
    use_cases: SheetSyncUseCases = Depends(get_sheet_sync_use_cases)
) -> SyncStatsDTO:
    stats = await use_cases.get_stats(target_table)
    return SyncStatsDTO(
        target_table=stats["target_table"],
        total=stats["total"],
        by_source=stats["by_source"],
        last_syncs=[SyncHistoryDTO.model_validate(entry) for entry in stats["last_syncs"]],
    )
