"""
Tests de integracion de SheetSyncUseCases sobre SQLite en memoria.

El cliente de Google Sheets se mockea; storage, historial y mapeos usan los
repositorios reales.
"""
from typing import List
from unittest.mock import Mock

import pytest
from sqlalchemy import update

from app.application.dto.sync_dto import SyncRequestDTO
from app.application.use_cases.sync_use_cases import SheetSyncUseCases
from app.domain.entities.sync_run import SyncRun
from app.infrastructure.database.models import ReservationModel
from app.infrastructure.external.sheets import SheetReadError
from app.infrastructure.external.sheets.sheets_client import build_rows
from app.infrastructure.repositories.sql_storage_adapter import SqlStorageAdapter
from app.shared.constants.sync_constants import ProgressEventType, RecordSource, SyncMode
from app.shared.exceptions.domain import EntityNotFoundException
from app.shared.exceptions.sync import (
    MappingException,
    SheetSourceException,
    SyncInProgressException,
    UnknownTargetTableException,
)


HEADERS = ["예약번호", "고객명", "성인", "투어날짜", "수정일시"]

BASE_ROWS = [
    ["R1", "Kim", "2", "2024-03-09", "2024-03-01 09:00"],
    ["R2", "Lee", "1", "2024-03-10", "2024-03-01 09:00"],
    ["R3", "Park", "4", "2024-03-11", "2024-03-01 09:00"],
]


class FakeSheets:
    """Doble del cliente de hojas: devuelve la matriz configurada."""

    def __init__(self, rows: List[List[str]], headers: List[str] = HEADERS):
        self.headers = headers
        self.rows = rows
        self.read_sheet = Mock(side_effect=self._read)
        self.list_sheets = Mock(return_value=["Reservas", "Tours"])

    def _read(self, spreadsheet_id, sheet_name, use_cache=True):
        return build_rows(sheet_name, [self.headers] + self.rows)


def _request(**overrides) -> SyncRequestDTO:
    data = {
        "spreadsheet_id": "sheet-1",
        "sheet_name": "Reservas",
        "target_table": "reservations",
    }
    data.update(overrides)
    return SyncRequestDTO(**data)


@pytest.fixture
def sheets() -> FakeSheets:
    return FakeSheets([list(row) for row in BASE_ROWS])


@pytest.fixture
def use_cases(db_session, sheets, registry, channels) -> SheetSyncUseCases:
    return SheetSyncUseCases(db_session, sheets, registry=registry, channels=channels)


async def _stored(db_session) -> dict:
    records = await SqlStorageAdapter(db_session).query("reservations")
    return {record.external_key: record for record in records}


async def test_full_sync_inserts_rows(use_cases, db_session):
    result = await use_cases.run_sync(_request())

    assert result.success
    assert result.inserted == 3
    assert result.total == 3
    assert result.errors == 0

    stored = await _stored(db_session)
    assert set(stored) == {"R1", "R2", "R3"}
    assert stored["R1"].values["customer_name"] == "Kim"
    assert stored["R1"].values["adults"] == 2
    assert stored["R1"].source == RecordSource.SYNC


async def test_second_run_without_changes_skips_everything(use_cases):
    await use_cases.run_sync(_request())

    result = await use_cases.run_sync(_request())

    assert result.inserted == 0
    assert result.updated == 0
    assert result.skipped == 3
    assert result.orphaned == []


async def test_edited_cell_updates_only_that_record(use_cases, sheets, db_session):
    await use_cases.run_sync(_request())
    sheets.rows[1][2] = "3"

    result = await use_cases.run_sync(_request())

    assert result.updated == 1
    assert result.skipped == 2
    stored = await _stored(db_session)
    assert stored["R2"].values["adults"] == 3


async def test_removed_row_is_reported_as_orphan_and_kept(use_cases, sheets, db_session):
    await use_cases.run_sync(_request())
    sheets.rows = sheets.rows[:2]

    result = await use_cases.run_sync(_request())

    assert result.orphaned == ["R3"]
    assert "R3" in await _stored(db_session)

    deleted = await use_cases.delete_orphans("reservations", ["R3"])

    assert deleted == 1
    assert "R3" not in await _stored(db_session)


async def test_malformed_row_is_reported_and_others_written(use_cases, sheets, db_session):
    sheets.rows[1][2] = "two"

    result = await use_cases.run_sync(_request())

    assert result.success
    assert result.inserted == 2
    assert result.errors == 1
    detail = result.error_details[0]
    assert detail.row_index == 3
    assert detail.external_key == "R2"
    assert detail.field == "adults"
    assert "R2" not in await _stored(db_session)


async def test_manual_record_is_not_overwritten(use_cases, db_session):
    db_session.add(ReservationModel(reservation_number="R2", customer_name="Walk-in", source="manual"))
    await db_session.commit()

    result = await use_cases.run_sync(_request())

    assert result.conflicts == ["R2"]
    assert result.inserted == 2
    stored = await _stored(db_session)
    assert stored["R2"].values["customer_name"] == "Walk-in"


async def test_manual_record_overwrite_when_allowed(use_cases, db_session):
    db_session.add(ReservationModel(reservation_number="R2", customer_name="Walk-in", source="manual"))
    await db_session.commit()

    result = await use_cases.run_sync(_request(allow_manual_overwrite=True))

    assert result.conflicts == []
    assert result.updated == 1
    stored = await _stored(db_session)
    assert stored["R2"].values["customer_name"] == "Lee"
    assert stored["R2"].source == RecordSource.MANUAL


async def test_manual_override_survives_empty_cell(use_cases, sheets, db_session):
    await use_cases.run_sync(_request())
    await db_session.execute(
        update(ReservationModel)
        .where(ReservationModel.reservation_number == "R1")
        .values(source="manual-override", customer_name="Kim (VIP)")
    )
    await db_session.commit()
    sheets.rows[0][1] = ""

    result = await use_cases.run_sync(_request())

    assert result.updated == 0
    stored = await _stored(db_session)
    assert stored["R1"].values["customer_name"] == "Kim (VIP)"
    assert stored["R1"].source == RecordSource.MANUAL_OVERRIDE


async def test_manual_override_survives_empty_cell_of_defaulted_fields(db_session, registry, channels):
    headers = HEADERS + ["상태"]
    sheets = FakeSheets([row + ["confirmed"] for row in BASE_ROWS], headers=headers)
    use_cases = SheetSyncUseCases(db_session, sheets, registry=registry, channels=channels)
    await use_cases.run_sync(_request())
    await db_session.execute(
        update(ReservationModel)
        .where(ReservationModel.reservation_number == "R1")
        .values(source="manual-override", adults=5)
    )
    await db_session.commit()
    sheets.rows[0][2] = ""
    sheets.rows[0][5] = ""

    result = await use_cases.run_sync(_request())

    assert result.updated == 0
    stored = await _stored(db_session)
    assert stored["R1"].values["adults"] == 5
    assert stored["R1"].values["status"] == "confirmed"


async def test_duplicate_key_in_sheet(use_cases, sheets, db_session):
    sheets.rows.append(["R1", "Kim again", "9", "2024-03-12", ""])

    result = await use_cases.run_sync(_request())

    assert result.inserted == 3
    assert result.errors == 1
    assert result.error_details[0].row_index == 5
    stored = await _stored(db_session)
    assert stored["R1"].values["customer_name"] == "Kim"


async def test_missing_required_mapping_aborts_before_writing(db_session, registry, channels):
    sheets = FakeSheets([["Kim", "2"]], headers=["고객명", "성인"])
    use_cases = SheetSyncUseCases(db_session, sheets, registry=registry, channels=channels)

    with pytest.raises(MappingException) as exc_info:
        await use_cases.run_sync(_request(run_id="bad-mapping"))

    assert exc_info.value.unmapped_fields == ["reservation_number"]
    assert await _stored(db_session) == {}
    assert registry.active_runs() == []
    events = channels.get("bad-mapping").events
    assert events[-1].type == ProgressEventType.COMPLETE
    assert events[-1].success is False


async def test_explicit_mapping_is_saved(use_cases, sheets):
    mapping = {"예약번호": "reservation_number", "고객명": "customer_name"}

    result = await use_cases.run_sync(_request(column_mapping=mapping))

    assert result.inserted == 3
    assert await use_cases.get_mapping("Reservas", "reservations") == mapping


async def test_saved_mapping_is_used_when_request_has_none(use_cases, db_session):
    await use_cases.save_mapping("Reservas", "reservations", {"예약번호": "reservation_number"})

    await use_cases.run_sync(_request())

    stored = await _stored(db_session)
    assert stored["R1"].values["customer_name"] is None


async def test_explicit_mapping_with_unknown_column(use_cases):
    with pytest.raises(MappingException) as exc_info:
        await use_cases.run_sync(_request(column_mapping={"Booking": "reservation_number"}))

    assert exc_info.value.details["missing_columns"] == ["Booking"]


async def test_get_mapping_not_found(use_cases):
    with pytest.raises(EntityNotFoundException):
        await use_cases.get_mapping("Reservas", "reservations")


async def test_concurrent_run_for_same_pair_is_rejected(use_cases, registry):
    registry.begin(SyncRun(
        run_id="running",
        target_table="reservations",
        spreadsheet_id="sheet-1",
        sheet_name="Reservas",
        column_mapping={},
        mode=SyncMode.FULL,
    ))

    with pytest.raises(SyncInProgressException) as exc_info:
        await use_cases.run_sync(_request())

    assert exc_info.value.status_code == 409
    assert exc_info.value.details["run_id"] == "running"


async def test_unknown_table(use_cases):
    with pytest.raises(UnknownTargetTableException):
        await use_cases.run_sync(_request(target_table="customers"))


async def test_sheet_read_error_is_fatal(use_cases, sheets):
    sheets.read_sheet.side_effect = SheetReadError("Requested entity was not found", "not_found", 404)

    with pytest.raises(SheetSourceException) as exc_info:
        await use_cases.run_sync(_request())

    assert exc_info.value.status_code == 404
    assert exc_info.value.error_code == "SHEET_NOT_FOUND"


async def test_incremental_run_only_processes_rows_modified_after_last_sync(use_cases, sheets, db_session):
    await use_cases.run_sync(_request())
    history = await use_cases.get_history("reservations")
    assert history[0].record_count == 3

    sheets.rows[0][1] = "Kim (changed, old timestamp)"
    sheets.rows[1][1] = "Lee (changed)"
    sheets.rows[1][4] = "2099-01-01 00:00"
    sheets.rows.append(["R4", "Choi", "2", "2024-03-12", ""])

    result = await use_cases.run_sync(_request(mode="incremental"))

    assert result.updated == 1
    assert result.inserted == 1
    assert result.orphaned == []
    stored = await _stored(db_session)
    assert stored["R1"].values["customer_name"] == "Kim"
    assert stored["R2"].values["customer_name"] == "Lee (changed)"


async def test_progress_events_published_on_channel(use_cases, channels):
    await use_cases.run_sync(_request(run_id="ui-run"))

    channel = channels.get("ui-run")
    types = [event.type for event in channel.events]
    assert types[0] == ProgressEventType.INFO
    assert ProgressEventType.START in types
    assert types[-1] == ProgressEventType.COMPLETE
    assert channel.closed


async def test_cancel_unknown_run(use_cases):
    with pytest.raises(EntityNotFoundException):
        use_cases.cancel_run("missing")


async def test_suggest_mapping(use_cases, db_session):
    suggestion = await use_cases.suggest_mapping("sheet-1", "Reservas", "reservations")

    assert suggestion["columns"] == HEADERS
    assert suggestion["default_mapping"]["예약번호"] == "reservation_number"
    assert suggestion["suggestions"]["modified_at"] == {"column": "수정일시", "confidence": "synonym"}
    assert suggestion["missing_required_fields"] == []
    assert suggestion["saved_mapping"] is None


async def test_list_sheets(use_cases, sheets):
    assert await use_cases.list_sheets("sheet-1") == ["Reservas", "Tours"]
    sheets.list_sheets.assert_called_once_with("sheet-1", None)


async def test_stats_by_source(use_cases, db_session):
    db_session.add(ReservationModel(reservation_number="M1", source="manual"))
    await db_session.commit()
    await use_cases.run_sync(_request())

    stats = await use_cases.get_stats("reservations")

    assert stats["total"] == 4
    assert stats["by_source"] == {"sync": 3, "manual": 1}
    assert len(stats["last_syncs"]) == 1
