"""
Casos de uso de sincronizacion hoja de calculo -> base de datos.

Orquesta: lectura de hoja -> mapeo de columnas -> normalizacion ->
reconciliacion (con historial y estado actual del storage) -> ejecucion.
Los errores fatales (hoja inaccesible, mapeo incompleto, corrida duplicada)
se lanzan antes de escribir; los errores de fila vuelven como datos en el
SyncResult.
"""
import asyncio
import uuid
from typing import Any, Dict, List, Optional, Sequence, Tuple

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from app.application.dto.sync_dto import FullSyncRequestDTO, SyncRequestDTO
from app.application.services.column_mapper import (
    AUTO_CONFIDENCES,
    default_mapping,
    suggest_mapping,
    validate_mapping,
)
from app.application.services.progress_channel import ProgressChannel, ProgressChannelRegistry
from app.application.services.reconciler import Reconciler, filter_incremental
from app.application.services.reference_checker import check_references
from app.application.services.row_normalizer import RowNormalizer
from app.application.services.sync_executor import SyncExecutor
from app.application.services.table_schemas import get_schema, list_schemas
from app.core.config import settings
from app.domain.entities.sync_records import CustomerContact, NormalizedRecord, ValidationIssue
from app.domain.entities.sync_run import FullSyncResult, ProgressEvent, SyncHistoryEntry, SyncResult, SyncRun
from app.domain.entities.sync_schema import TableSchema
from app.infrastructure.external.sheets import GoogleSheetsClient, SheetData, SheetReadError
from app.infrastructure.repositories.column_mapping_repository import ColumnMappingRepository
from app.infrastructure.repositories.customer_repository import CustomerRepository, normalize_email
from app.infrastructure.repositories.sql_storage_adapter import SqlStorageAdapter
from app.infrastructure.repositories.sync_history_repository import SyncHistoryRepository
from app.shared.constants.sync_constants import ProgressEventType, SyncMode
from app.shared.exceptions.base import AppException
from app.shared.exceptions.domain import EntityNotFoundException
from app.shared.exceptions.sync import (
    SheetSourceException,
    StorageError,
    SyncException,
    SyncInProgressException,
)


class SyncRunRegistry:
    """
    Registro en proceso de corridas activas.

    Garantiza una sola corrida por (tabla, spreadsheet) dentro del proceso
    y permite cancelar por run_id. No es un lock distribuido.
    """

    def __init__(self):
        self._by_pair: Dict[Tuple[str, str], SyncRun] = {}
        self._by_id: Dict[str, SyncRun] = {}

    def begin(self, run: SyncRun) -> None:
        pair = (run.target_table, run.spreadsheet_id)
        active = self._by_pair.get(pair)
        if active is not None:
            raise SyncInProgressException(run.target_table, run.spreadsheet_id, active.run_id)
        if run.run_id in self._by_id:
            raise SyncException(
                f"El run_id {run.run_id} ya esta en uso",
                error_code="DUPLICATE_RUN_ID",
                status_code=409,
            )
        self._by_pair[pair] = run
        self._by_id[run.run_id] = run

    def finish(self, run: SyncRun) -> None:
        self._by_pair.pop((run.target_table, run.spreadsheet_id), None)
        self._by_id.pop(run.run_id, None)

    def get(self, run_id: str) -> Optional[SyncRun]:
        return self._by_id.get(run_id)

    def active_runs(self) -> List[SyncRun]:
        return list(self._by_id.values())


# Estado compartido del proceso (una instancia por worker)
run_registry = SyncRunRegistry()
progress_channels = ProgressChannelRegistry()


class SheetSyncUseCases:
    """
    Casos de uso del motor de sync.

    Uso:
        use_cases = SheetSyncUseCases(db, sheets_client)
        result = await use_cases.run_sync(SyncRequestDTO(...))
    """

    def __init__(
        self,
        db: AsyncSession,
        sheets_client: GoogleSheetsClient,
        *,
        executor: Optional[SyncExecutor] = None,
        registry: Optional[SyncRunRegistry] = None,
        channels: Optional[ProgressChannelRegistry] = None,
    ):
        self.db = db
        self.sheets = sheets_client
        self.storage = SqlStorageAdapter(db)
        self.history = SyncHistoryRepository(db)
        self.mappings = ColumnMappingRepository(db)
        self.customers = CustomerRepository(db)
        self.executor = executor or SyncExecutor(
            history_store=self.history,
            batch_size=settings.SYNC_BATCH_SIZE,
            max_retries=settings.SYNC_MAX_RETRIES,
            retry_backoff_s=settings.SYNC_RETRY_BACKOFF_S,
            storage_timeout_s=settings.SYNC_STORAGE_TIMEOUT_S,
        )
        self.registry = registry if registry is not None else run_registry
        self.channels = channels if channels is not None else progress_channels

    # ------------------------------------------------------------------
    # Lectura de hojas
    # ------------------------------------------------------------------

    async def list_sheets(self, spreadsheet_id: str, prefix: Optional[str] = None) -> List[str]:
        try:
            return await asyncio.to_thread(self.sheets.list_sheets, spreadsheet_id, prefix)
        except SheetReadError as e:
            raise SheetSourceException(str(e), e.kind, spreadsheet_id) from e

    async def _read_sheet(self, spreadsheet_id: str, sheet_name: str, use_cache: bool) -> SheetData:
        try:
            return await asyncio.to_thread(self.sheets.read_sheet, spreadsheet_id, sheet_name, use_cache)
        except SheetReadError as e:
            logger.error(f"No se pudo leer la hoja {spreadsheet_id}/{sheet_name}: {e}")
            raise SheetSourceException(str(e), e.kind, spreadsheet_id, sheet_name) from e

    # ------------------------------------------------------------------
    # Tablas y mapeos
    # ------------------------------------------------------------------

    def list_tables(self) -> List[TableSchema]:
        return list_schemas()

    async def suggest_mapping(self, spreadsheet_id: str, sheet_name: str, target_table: str) -> Dict[str, Any]:
        """
        Sugiere un mapeo para la hoja. Los encabezados se leen con cache.

        Returns:
            Dict con columns, suggestions, default_mapping, unmapped_fields,
            missing_required_fields, requires_confirmation y saved_mapping
        """
        schema = get_schema(target_table)
        data = await self._read_sheet(spreadsheet_id, sheet_name, use_cache=True)
        suggestions = suggest_mapping(data.headers, target_table, schema.fields)
        auto = default_mapping(suggestions)
        auto_fields = set(auto.values())

        return {
            "target_table": target_table,
            "sheet_name": sheet_name,
            "columns": data.headers,
            "suggestions": {name: s.to_dict() for name, s in suggestions.items()},
            "default_mapping": auto,
            "unmapped_fields": [name for name, s in suggestions.items() if s.unmapped],
            "missing_required_fields": [name for name in schema.required_fields if name not in auto_fields],
            "requires_confirmation": any(
                s.confidence not in AUTO_CONFIDENCES for s in suggestions.values() if not s.unmapped
            ) or any(name not in auto_fields for name in schema.required_fields),
            "saved_mapping": await self.mappings.get(sheet_name, target_table),
        }

    async def get_mapping(self, sheet_name: str, target_table: str) -> Dict[str, str]:
        get_schema(target_table)
        mapping = await self.mappings.get(sheet_name, target_table)
        if mapping is None:
            raise EntityNotFoundException("ColumnMapping", f"{sheet_name}/{target_table}")
        return mapping

    async def save_mapping(self, sheet_name: str, target_table: str, mapping: Dict[str, str]) -> Dict[str, str]:
        """Guarda un mapeo confirmado por el usuario (se valida contra el esquema)."""
        schema = get_schema(target_table)
        validate_mapping(mapping, schema)
        return await self.mappings.save(sheet_name, target_table, mapping)

    async def _resolve_mapping(
        self,
        request: SyncRequestDTO,
        schema: TableSchema,
        headers: Sequence[str],
    ) -> Dict[str, str]:
        """
        Mapeo en vigor: explicito del request > guardado > sugerido
        (solo exact/synonym). Falla si no cubre los campos requeridos.
        """
        if request.column_mapping:
            mapping = dict(request.column_mapping)
            origin = "request"
        else:
            saved = await self.mappings.get(request.sheet_name, request.target_table)
            if saved:
                mapping, origin = saved, "guardado"
            else:
                mapping = default_mapping(suggest_mapping(headers, schema.table, schema.fields))
                origin = "sugerido"

        validate_mapping(mapping, schema, headers)
        logger.info(f"Mapeo {origin} para {request.sheet_name} -> {schema.table}: {mapping}")

        if origin == "request":
            await self.mappings.save(request.sheet_name, request.target_table, mapping)
        return mapping

    # ------------------------------------------------------------------
    # Corridas
    # ------------------------------------------------------------------

    async def run_sync(self, request: SyncRequestDTO) -> SyncResult:
        """
        Ejecuta una corrida completa.

        Raises:
            UnknownTargetTableException, SyncInProgressException,
            SheetSourceException, MappingException: antes de escribir
        """
        schema = get_schema(request.target_table)
        run = SyncRun(
            run_id=request.run_id or uuid.uuid4().hex,
            target_table=schema.table,
            spreadsheet_id=request.spreadsheet_id,
            sheet_name=request.sheet_name,
            column_mapping={},
            mode=request.mode,
        )
        self.registry.begin(run)
        # El canal puede existir si un WebSocket se conecto antes de iniciar
        channel = self.channels.get(run.run_id)
        if channel is None or channel.closed:
            channel = self.channels.create(run.run_id)

        try:
            await channel.publish(ProgressEvent(
                type=ProgressEventType.INFO,
                message=f"Leyendo hoja '{request.sheet_name}'",
            ))
            data = await self._read_sheet(request.spreadsheet_id, request.sheet_name, request.use_cache)
            run.column_mapping = await self._resolve_mapping(request, schema, data.headers)

            records, issues = RowNormalizer(schema, run.column_mapping).normalize_rows(data.rows)
            run.total = len(data.rows)

            last_sync_time = None
            if request.mode == SyncMode.INCREMENTAL:
                entry = await self.history.get(schema.table, request.spreadsheet_id)
                last_sync_time = entry.last_sync_time if entry else None
                before = len(records)
                records = filter_incremental(records, last_sync_time)
                logger.info(
                    f"[{run.run_id}] Incremental desde {last_sync_time}: {len(records)}/{before} filas"
                )

            if schema.references:
                records, reference_issues = await self._check_references(run, records, schema)
                issues = issues + reference_issues

            link_warnings: List[str] = []
            if schema.links_customer:
                link_warnings = await self._link_customers(run, records)

            try:
                existing = await self.storage.query(schema.table)
            except StorageError as e:
                raise SyncException(
                    f"No se pudo leer {schema.table}: {e}",
                    error_code="STORAGE_UNAVAILABLE",
                    status_code=503,
                ) from e

            partition = Reconciler(schema).reconcile(
                records,
                existing,
                request.mode,
                last_sync_time,
                allow_manual_overwrite=request.allow_manual_overwrite,
                sheet_keys=[issue.external_key for issue in issues if issue.external_key],
            )
            partition.warnings.extend(link_warnings)

            return await self.executor.execute(
                run,
                partition,
                self.storage,
                channel.publish,
                schema=schema,
                validation_issues=issues,
            )
        except AppException as e:
            await self._publish_failure(channel, run, e.message)
            raise
        finally:
            self.registry.finish(run)
            if not channel.closed:
                channel.close()

    async def _check_references(
        self,
        run: SyncRun,
        records: List[NormalizedRecord],
        schema: TableSchema,
    ) -> Tuple[List[NormalizedRecord], List[ValidationIssue]]:
        try:
            valid, issues = await check_references(records, schema, self.storage)
        except StorageError as e:
            raise SyncException(
                f"No se pudieron validar referencias de {schema.table}: {e}",
                error_code="STORAGE_UNAVAILABLE",
                status_code=503,
            ) from e
        if issues:
            logger.warning(f"[{run.run_id}] {len(issues)} filas con referencias inexistentes")
        return valid, issues

    async def _link_customers(self, run: SyncRun, records: List[NormalizedRecord]) -> List[str]:
        """
        Asigna customer_id a cada registro con email, buscando o creando el
        cliente. Un fallo no detiene la corrida: vuelve como warning.
        """
        contacts = [
            CustomerContact(
                email=record.values["customer_email"],
                name=record.values.get("customer_name"),
                phone=record.values.get("customer_phone"),
            )
            for record in records
            if normalize_email(record.values.get("customer_email"))
        ]
        if not contacts:
            return []

        try:
            ids = await self.customers.resolve_ids(contacts)
        except StorageError as e:
            logger.error(f"[{run.run_id}] {e}")
            return [str(e)]

        linked = 0
        for record in records:
            customer_id = ids.get(normalize_email(record.values.get("customer_email")))
            if customer_id is not None:
                record.values["customer_id"] = customer_id
                linked += 1
        logger.info(f"[{run.run_id}] {linked} reservas vinculadas a {len(ids)} clientes")
        return []

    async def run_full_sync(self, request: FullSyncRequestDTO) -> FullSyncResult:
        """
        Sincroniza reservas y luego tours del mismo spreadsheet.

        Cada tabla es una corrida propia (run_id, canal e historial). Un error
        fatal en una tabla queda en failures y no impide la siguiente.
        """
        outcome = FullSyncResult()
        steps = (("reservations", request.reservations_sheet), ("tours", request.tours_sheet))
        for table, sheet_name in steps:
            step_request = SyncRequestDTO(
                spreadsheet_id=request.spreadsheet_id,
                sheet_name=sheet_name,
                target_table=table,
                mode=request.mode,
                allow_manual_overwrite=request.allow_manual_overwrite,
                use_cache=request.use_cache,
            )
            try:
                outcome.results[table] = await self.run_sync(step_request)
            except AppException as e:
                logger.error(f"Sync completo: {table} fallo antes de escribir: {e.message}")
                outcome.failures[table] = e.message

        logger.info(outcome.message)
        return outcome

    async def _publish_failure(self, channel: ProgressChannel, run: SyncRun, message: str) -> None:
        await channel.publish(ProgressEvent(type=ProgressEventType.ERROR, message=message, run_id=run.run_id))
        await channel.publish(ProgressEvent(
            type=ProgressEventType.COMPLETE,
            message=message,
            run_id=run.run_id,
            success=False,
            summary={"processed": 0, "errors": 0, "cancelled": False},
        ))

    def cancel_run(self, run_id: str) -> SyncRun:
        """
        Solicita la cancelacion de una corrida activa.

        Raises:
            EntityNotFoundException: si no hay corrida activa con ese ID
        """
        run = self.registry.get(run_id)
        if run is None:
            raise EntityNotFoundException("SyncRun", run_id)
        run.cancel()
        logger.warning(f"[{run_id}] Cancelacion solicitada ({run.target_table})")
        return run

    # ------------------------------------------------------------------
    # Historial, huerfanos y estadisticas
    # ------------------------------------------------------------------

    async def get_history(
        self,
        target_table: Optional[str] = None,
        spreadsheet_id: Optional[str] = None,
    ) -> List[SyncHistoryEntry]:
        if target_table:
            get_schema(target_table)
        return await self.history.list_entries(target_table, spreadsheet_id)

    async def delete_orphans(self, target_table: str, external_keys: Sequence[str]) -> int:
        """
        Borra registros por clave externa. Es la unica via de borrado: nunca
        la dispara una corrida, solo una decision explicita del usuario.
        """
        schema = get_schema(target_table)
        keys = sorted({key.strip() for key in external_keys if key and key.strip()})
        try:
            deleted = await self.storage.delete_records(schema.table, keys, schema.key_field)
        except StorageError as e:
            raise SyncException(
                f"No se pudieron borrar registros de {schema.table}: {e}",
                error_code="STORAGE_ERROR",
                status_code=503,
            ) from e
        logger.warning(f"Borrado manual de huerfanos en {schema.table}: {deleted}/{len(keys)}")
        return deleted

    async def get_stats(self, target_table: str) -> Dict[str, Any]:
        schema = get_schema(target_table)
        try:
            by_source = await self.storage.count_by_source(schema.table)
        except StorageError as e:
            raise SyncException(
                f"No se pudieron contar registros de {schema.table}: {e}",
                error_code="STORAGE_UNAVAILABLE",
                status_code=503,
            ) from e
        return {
            "target_table": schema.table,
            "total": sum(by_source.values()),
            "by_source": by_source,
            "last_syncs": await self.history.list_entries(schema.table),
        }
