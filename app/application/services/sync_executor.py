"""
Executor de sincronizacion.

Aplica la particion del reconciliador contra el storage en batches
secuenciales de tamaño fijo, acumula contadores en el SyncRun, emite eventos
de progreso y devuelve siempre un SyncResult estructurado, incluso con
fallos parciales. Una fila que falla nunca aborta el batch ni la corrida.
"""
from __future__ import annotations

import asyncio
import inspect
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, TypeVar

from loguru import logger

from app.application.services.value_coercion import to_storage_value
from app.domain.entities.sync_records import (
    NormalizedRecord,
    ReconcilePartition,
    RecordUpdate,
    UpsertOutcome,
    ValidationIssue,
)
from app.domain.entities.sync_run import ProgressEvent, SyncHistoryEntry, SyncResult, SyncRun
from app.domain.entities.sync_schema import TableSchema
from app.domain.repositories.storage_adapter import IStorageAdapter
from app.domain.repositories.sync_history_store import ISyncHistoryStore
from app.shared.constants.sync_constants import (
    DEFAULT_BATCH_SIZE,
    SOURCE_COLUMN,
    ProgressEventType,
    RecordSource,
)
from app.shared.exceptions.sync import StorageError, TransientError
from app.shared.utils.datetime_utils import DateTimeUtils

T = TypeVar("T")

ProgressCallback = Callable[[ProgressEvent], Any]


class SyncExecutor:
    """
    Ejecuta una particion contra el storage.

    Uso:
        executor = SyncExecutor(history_store=history_repo, batch_size=200)
        result = await executor.execute(run, partition, storage, on_progress, schema=schema)
    """

    def __init__(
        self,
        history_store: Optional[ISyncHistoryStore] = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
        max_retries: int = 3,
        retry_backoff_s: float = 0.5,
        storage_timeout_s: float = 30.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        if batch_size < 1:
            raise ValueError("batch_size debe ser >= 1")
        self.history_store = history_store
        self.batch_size = batch_size
        self.max_retries = max_retries
        self.retry_backoff_s = retry_backoff_s
        self.storage_timeout_s = storage_timeout_s
        self._sleep = sleep

    async def execute(
        self,
        run: SyncRun,
        partition: ReconcilePartition,
        storage: IStorageAdapter,
        on_progress: Optional[ProgressCallback] = None,
        *,
        schema: TableSchema,
        validation_issues: Sequence[ValidationIssue] = (),
    ) -> SyncResult:
        """
        Ejecuta la corrida.

        Args:
            run: Contexto de la corrida (se muta durante la ejecucion)
            partition: Salida del reconciliador
            storage: Adaptador de storage
            on_progress: Callback (sync o async) por cada ProgressEvent
            schema: Esquema de la tabla destino
            validation_issues: Errores de normalizacion a reportar en el resultado

        Returns:
            SyncResult: Resultado estructurado (nunca lanza por errores de fila)
        """
        table = schema.table
        conflict_key = schema.key_field
        work_total = partition.total
        if run.total == 0:
            run.total = work_total + len(partition.duplicates)

        async def emit(event_type: ProgressEventType, message: str, **extra: Any) -> None:
            if on_progress is None:
                return
            event = ProgressEvent(
                type=event_type,
                processed=run.processed,
                total=work_total,
                message=message,
                run_id=run.run_id,
                **extra,
            )
            try:
                result = on_progress(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.warning(f"[{run.run_id}] Error notificando progreso: {e}")

        logger.info(
            f"[{run.run_id}] Sync {table} ({run.mode.value}): insert={len(partition.to_insert)} "
            f"update={len(partition.to_update)} skip={len(partition.to_skip)}"
        )
        await emit(ProgressEventType.START, f"Iniciando sincronizacion de {table}")

        # Errores de validacion: una fila cuenta una vez aunque tenga varios campos malos
        counted_rows = set()
        for issue in list(validation_issues) + list(partition.duplicates):
            first_for_row = issue.row_number not in counted_rows
            counted_rows.add(issue.row_number)
            run.record_error(
                issue.message,
                row_index=issue.row_number,
                external_key=issue.external_key,
                field_name=issue.field,
                count=first_for_row,
            )
            await emit(ProgressEventType.ERROR, f"Fila {issue.row_number}: {issue.message}")

        if partition.to_skip:
            run.skipped += len(partition.to_skip)
            run.processed += len(partition.to_skip)
            await emit(ProgressEventType.INFO, f"{len(partition.to_skip)} filas sin cambios")

        inserts = [
            (record, self._insert_payload(record, conflict_key))
            for record in partition.to_insert
        ]
        updates = [
            (update.record, self._update_payload(update, conflict_key))
            for update in partition.to_update
        ]
        work = inserts + updates
        batches = [work[i:i + self.batch_size] for i in range(0, len(work), self.batch_size)]

        for number, batch in enumerate(batches, start=1):
            if run.cancelled:
                logger.warning(
                    f"[{run.run_id}] Corrida cancelada antes del batch {number}/{len(batches)}"
                )
                await emit(ProgressEventType.INFO, "Sincronizacion cancelada")
                break

            failures = await self._write_batch(run, table, conflict_key, batch, storage)
            for detail in failures:
                await emit(ProgressEventType.ERROR, detail)

            await emit(
                ProgressEventType.PROGRESS,
                f"Batch {number}/{len(batches)}: {run.inserted} insertados, "
                f"{run.updated} actualizados, {run.errors} errores",
            )

        result = self._finalize(run, partition)

        if (
            schema.track_history
            and self.history_store is not None
            and result.success
            and not result.cancelled
        ):
            await self._record_history(run, result)

        await emit(
            ProgressEventType.COMPLETE,
            result.message,
            success=result.success,
            summary=result.summary(),
        )
        logger.info(f"[{run.run_id}] {result.message}")
        return result

    # ------------------------------------------------------------------
    # Escritura
    # ------------------------------------------------------------------

    def _insert_payload(self, record: NormalizedRecord, conflict_key: str) -> Dict[str, Any]:
        payload = {name: to_storage_value(value) for name, value in record.values.items()}
        payload[conflict_key] = record.external_key
        payload[SOURCE_COLUMN] = RecordSource.SYNC.value
        return payload

    def _update_payload(self, update: RecordUpdate, conflict_key: str) -> Dict[str, Any]:
        payload = {name: to_storage_value(value) for name, value in update.changes.items()}
        payload[conflict_key] = update.record.external_key
        return payload

    async def _write_batch(
        self,
        run: SyncRun,
        table: str,
        conflict_key: str,
        batch: List[tuple],
        storage: IStorageAdapter,
    ) -> List[str]:
        """
        Escribe un batch. Retorna los mensajes de error registrados.

        Con soporte de batch: una llamada; si falla de forma no transitoria se
        reintenta fila por fila para aislar las filas malas.
        """
        if not storage.supports_batch_upsert:
            return await self._write_rows(run, table, conflict_key, batch, storage)

        payloads = [payload for _, payload in batch]
        try:
            outcome = await self._call_with_retry(
                lambda: storage.upsert_batch(table, payloads, conflict_key),
                f"upsert_batch {table} ({len(payloads)} filas)",
            )
        except TransientError as e:
            logger.error(f"[{run.run_id}] Batch fallido tras reintentos: {e}")
            return [
                self._record_row_failure(run, record, f"Error transitorio de storage: {e}")
                for record, _ in batch
            ]
        except StorageError as e:
            logger.warning(f"[{run.run_id}] Batch fallido ({e}); reintentando fila por fila")
            return await self._write_rows(run, table, conflict_key, batch, storage)

        return self._apply_outcome(run, outcome, batch)

    async def _write_rows(
        self,
        run: SyncRun,
        table: str,
        conflict_key: str,
        batch: List[tuple],
        storage: IStorageAdapter,
    ) -> List[str]:
        failures: List[str] = []
        for record, payload in batch:
            try:
                outcome = await self._call_with_retry(
                    lambda: storage.upsert_one(table, payload, conflict_key),
                    f"upsert_one {table} {record.external_key}",
                )
            except StorageError as e:
                failures.append(self._record_row_failure(run, record, str(e)))
                continue
            failures.extend(self._apply_outcome(run, outcome, [(record, payload)]))
        return failures

    def _apply_outcome(self, run: SyncRun, outcome: UpsertOutcome, batch: List[tuple]) -> List[str]:
        failures: List[str] = []
        for record, _ in batch:
            message = outcome.errors.get(record.external_key)
            if message is not None:
                failures.append(self._record_row_failure(run, record, message))
        run.inserted += outcome.inserted
        run.updated += outcome.updated
        run.processed += outcome.inserted + outcome.updated
        return failures

    def _record_row_failure(self, run: SyncRun, record: NormalizedRecord, message: str) -> str:
        run.record_error(
            message,
            row_index=record.row_number,
            external_key=record.external_key,
        )
        return f"Fila {record.row_number} ({record.external_key}): {message}"

    async def _call_with_retry(self, operation: Callable[[], Awaitable[T]], description: str) -> T:
        """
        Ejecuta una llamada al storage con timeout, reintentando timeouts y
        TransientError con backoff exponencial.

        Raises:
            TransientError: si se agotan los reintentos
            StorageError: fallos no transitorios (sin reintento)
        """
        attempt = 0
        while True:
            try:
                return await asyncio.wait_for(operation(), timeout=self.storage_timeout_s)
            except (asyncio.TimeoutError, TransientError) as e:
                attempt += 1
                reason = str(e) or f"timeout tras {self.storage_timeout_s}s"
                if attempt > self.max_retries:
                    raise TransientError(
                        f"{description}: {reason} (reintentos agotados: {self.max_retries})"
                    ) from e
                delay = self.retry_backoff_s * (2 ** (attempt - 1))
                logger.warning(
                    f"{description}: {reason}. Reintento {attempt}/{self.max_retries} en {delay:.2f}s"
                )
                await self._sleep(delay)

    # ------------------------------------------------------------------
    # Cierre
    # ------------------------------------------------------------------

    def _finalize(self, run: SyncRun, partition: ReconcilePartition) -> SyncResult:
        attempted = len(partition.to_insert) + len(partition.to_update)
        written = run.inserted + run.updated
        success = run.errors == 0 or run.errors < run.processed
        # Si hubo escrituras y ninguna llego al storage, las filas sin cambios no salvan la corrida
        if success and attempted > 0 and written == 0 and run.errors > 0:
            logger.warning(
                f"[{run.run_id}] Ninguna de las {attempted} escrituras tuvo exito; "
                f"la corrida se marca como fallida"
            )
            success = False
        if run.cancelled:
            message = (
                f"Sincronizacion cancelada: {run.processed} procesados, "
                f"{run.inserted} insertados, {run.updated} actualizados, {run.errors} errores"
            )
        elif success:
            message = (
                f"Sincronizacion completada: {run.inserted} insertados, "
                f"{run.updated} actualizados, {run.skipped} sin cambios, {run.errors} errores"
            )
        else:
            message = f"Sincronizacion fallida: {run.errors} errores, {run.processed} procesados"

        return SyncResult(
            success=success,
            message=message,
            run_id=run.run_id,
            target_table=run.target_table,
            mode=run.mode,
            total=run.total,
            processed=run.processed,
            inserted=run.inserted,
            updated=run.updated,
            skipped=run.skipped,
            errors=run.errors,
            error_details=list(run.error_details),
            orphaned=[stored.external_key for stored in partition.orphaned],
            conflicts=list(partition.conflicts),
            warnings=list(partition.warnings),
            cancelled=run.cancelled,
            started_at=run.started_at,
            finished_at=DateTimeUtils.now_utc(),
        )

    async def _record_history(self, run: SyncRun, result: SyncResult) -> None:
        entry = SyncHistoryEntry(
            target_table=run.target_table,
            spreadsheet_id=run.spreadsheet_id,
            last_sync_time=run.started_at,
            record_count=run.processed,
        )
        try:
            await self.history_store.record(entry)
        except StorageError as e:
            logger.error(f"[{run.run_id}] No se pudo registrar el historial de sync: {e}")
            result.warnings.append(f"No se pudo registrar el historial de sync: {e}")
