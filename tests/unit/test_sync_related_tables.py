"""
Tests de integracion de las corridas que cruzan tablas: vinculacion de
clientes en reservas, referencias de tour_expenses a tours y la corrida
combinada reservas + tours.
"""
from decimal import Decimal
from typing import Dict, List
from unittest.mock import Mock

import pytest
from sqlalchemy import func, select

from app.application.dto.sync_dto import FullSyncRequestDTO, SyncRequestDTO
from app.application.use_cases.sync_use_cases import SheetSyncUseCases
from app.infrastructure.database.models import CustomerModel
from app.infrastructure.external.sheets import SheetReadError
from app.infrastructure.external.sheets.sheets_client import build_rows
from app.infrastructure.repositories.sql_storage_adapter import SqlStorageAdapter


class SheetsByName:
    """Doble del cliente de hojas con una matriz por nombre de hoja."""

    def __init__(self, sheets: Dict[str, List[List[str]]]):
        self.sheets = sheets
        self.read_sheet = Mock(side_effect=self._read)

    def _read(self, spreadsheet_id, sheet_name, use_cache=True):
        if sheet_name not in self.sheets:
            raise SheetReadError(f"Unable to parse range: {sheet_name}", "not_found", 400)
        return build_rows(sheet_name, self.sheets[sheet_name])


RESERVATION_SHEET = [
    ["예약번호", "고객명", "이메일", "전화번호"],
    ["R1", "Kim", "kim@example.com", "010-1111"],
    ["R2", "Kim Min", " KIM@example.com ", ""],
    ["R3", "Park", "park@example.com", ""],
    ["R4", "Lee", "", ""],
]

RESERVATION_MAPPING = {
    "예약번호": "reservation_number",
    "고객명": "customer_name",
    "이메일": "customer_email",
    "전화번호": "customer_phone",
}

EXPENSE_SHEET = [
    ["ID", "Tour ID", "Tour Date", "Submitted by", "Paid for", "Amount"],
    ["E1", "T1", "2024-03-09", "guide@example.com", "Fuel", "120.50"],
    ["E2", "T9", "2024-03-09", "guide@example.com", "Lunch", "45"],
    ["E3", "", "2024-03-10", "office@example.com", "Parking", "10"],
]

EXPENSE_MAPPING = {
    "ID": "expense_code",
    "Tour ID": "tour_id",
    "Tour Date": "tour_date",
    "Submitted by": "submitted_by",
    "Paid for": "paid_for",
    "Amount": "amount",
}

TOUR_SHEET = [
    ["투어ID", "투어날짜", "투어상태"],
    ["T1", "2024-03-09", "Confirmed"],
    ["T2", "2024-03-10", ""],
]

BOOKING_SHEET = [
    ["예약번호", "고객명", "성인", "투어날짜"],
    ["R1", "Kim", "2", "2024-03-09"],
    ["R2", "Lee", "1", "2024-03-10"],
]


def _use_cases(db_session, registry, channels, sheets: Dict[str, List[List[str]]]) -> SheetSyncUseCases:
    return SheetSyncUseCases(db_session, SheetsByName(sheets), registry=registry, channels=channels)


async def _stored(db_session, table: str) -> dict:
    records = await SqlStorageAdapter(db_session).query(table)
    return {record.external_key: record for record in records}


async def _customer_count(db_session) -> int:
    result = await db_session.execute(select(func.count(CustomerModel.id)))
    return result.scalar_one()


# ---------------------------------------------------------------------------
# Clientes
# ---------------------------------------------------------------------------

async def test_reservations_are_linked_to_customers_by_email(db_session, registry, channels):
    existing = CustomerModel(name="Park Ji", email="park@example.com", language="en")
    db_session.add(existing)
    await db_session.commit()
    use_cases = _use_cases(db_session, registry, channels, {"Reservas": RESERVATION_SHEET})
    request = SyncRequestDTO(
        spreadsheet_id="sheet-1",
        sheet_name="Reservas",
        target_table="reservations",
        column_mapping=RESERVATION_MAPPING,
    )

    result = await use_cases.run_sync(request)

    assert result.success
    assert result.inserted == 4
    stored = await _stored(db_session, "reservations")
    assert stored["R1"].values["customer_id"] is not None
    assert stored["R1"].values["customer_id"] == stored["R2"].values["customer_id"]
    assert stored["R3"].values["customer_id"] == existing.id
    assert stored["R4"].values["customer_id"] is None
    assert await _customer_count(db_session) == 2

    created = (await db_session.execute(
        select(CustomerModel).where(CustomerModel.email == "kim@example.com")
    )).scalar_one()
    assert created.name == "Kim"
    assert created.phone == "010-1111"
    assert created.language == "ko"
    # Un cliente existente no se modifica
    await db_session.refresh(existing)
    assert existing.name == "Park Ji"

    second = await use_cases.run_sync(request)

    assert second.skipped == 4
    assert second.updated == 0
    assert await _customer_count(db_session) == 2


async def test_customer_linking_failure_becomes_warning(db_session, registry, channels, monkeypatch):
    from app.shared.exceptions.sync import StorageError

    use_cases = _use_cases(db_session, registry, channels, {"Reservas": RESERVATION_SHEET})

    async def broken(contacts):
        raise StorageError("No se pudieron vincular clientes: customers locked")

    monkeypatch.setattr(use_cases.customers, "resolve_ids", broken)

    result = await use_cases.run_sync(SyncRequestDTO(
        spreadsheet_id="sheet-1",
        sheet_name="Reservas",
        target_table="reservations",
        column_mapping=RESERVATION_MAPPING,
    ))

    assert result.success
    assert result.inserted == 4
    assert any("customers locked" in warning for warning in result.warnings)
    stored = await _stored(db_session, "reservations")
    assert stored["R1"].values["customer_id"] is None


# ---------------------------------------------------------------------------
# Referencias
# ---------------------------------------------------------------------------

async def test_tour_expense_with_unknown_tour_is_reported_and_not_written(db_session, registry, channels):
    await SqlStorageAdapter(db_session).upsert_batch(
        "tours", [{"tour_number": "T1", "source": "sync"}], "tour_number"
    )
    use_cases = _use_cases(db_session, registry, channels, {"Gastos": EXPENSE_SHEET})

    result = await use_cases.run_sync(SyncRequestDTO(
        spreadsheet_id="sheet-1",
        sheet_name="Gastos",
        target_table="tour_expenses",
        column_mapping=EXPENSE_MAPPING,
    ))

    assert result.success
    assert result.inserted == 2
    assert result.errors == 1
    detail = result.error_details[0]
    assert detail.external_key == "E2"
    assert detail.field == "tour_id"
    assert detail.row_index == 3
    assert "T9" in detail.message

    stored = await _stored(db_session, "tour_expenses")
    assert set(stored) == {"E1", "E3"}
    assert stored["E1"].values["amount"] == Decimal("120.50")
    assert stored["E3"].values["tour_id"] is None


async def test_tour_expense_is_written_once_its_tour_exists(db_session, registry, channels):
    use_cases = _use_cases(db_session, registry, channels, {"Gastos": EXPENSE_SHEET})
    request = SyncRequestDTO(
        spreadsheet_id="sheet-1",
        sheet_name="Gastos",
        target_table="tour_expenses",
        column_mapping=EXPENSE_MAPPING,
    )
    first = await use_cases.run_sync(request)
    assert first.inserted == 1
    assert first.errors == 2

    await SqlStorageAdapter(db_session).upsert_batch(
        "tours",
        [{"tour_number": "T1", "source": "sync"}, {"tour_number": "T9", "source": "sync"}],
        "tour_number",
    )
    second = await use_cases.run_sync(request)

    assert second.inserted == 2
    assert second.errors == 0
    assert set(await _stored(db_session, "tour_expenses")) == {"E1", "E2", "E3"}


# ---------------------------------------------------------------------------
# Corrida combinada
# ---------------------------------------------------------------------------

async def test_full_sync_runs_reservations_then_tours(db_session, registry, channels):
    use_cases = _use_cases(db_session, registry, channels, {"Reservas": BOOKING_SHEET, "Tours": TOUR_SHEET})

    outcome = await use_cases.run_full_sync(FullSyncRequestDTO(
        spreadsheet_id="sheet-1", reservations_sheet="Reservas", tours_sheet="Tours"
    ))

    assert outcome.success
    assert list(outcome.results) == ["reservations", "tours"]
    assert outcome.results["reservations"].inserted == 2
    assert outcome.results["tours"].inserted == 2
    assert outcome.results["reservations"].run_id != outcome.results["tours"].run_id
    assert outcome.failures == {}
    assert "completada" in outcome.message
    tours = await _stored(db_session, "tours")
    assert tours["T1"].values["tour_status"] == "Confirmed"
    assert tours["T2"].values["tour_status"] == "Recruiting"


async def test_full_sync_keeps_going_when_one_sheet_fails(db_session, registry, channels):
    use_cases = _use_cases(db_session, registry, channels, {"Reservas": BOOKING_SHEET})

    outcome = await use_cases.run_full_sync(FullSyncRequestDTO(
        spreadsheet_id="sheet-1", reservations_sheet="Reservas", tours_sheet="Tours"
    ))

    assert not outcome.success
    assert outcome.results["reservations"].inserted == 2
    assert "tours" not in outcome.results
    assert "Tours" in outcome.failures["tours"]
    assert "con errores" in outcome.message
    payload = outcome.to_dict()
    assert payload["results"]["reservations"]["data"]["inserted"] == 2
    assert payload["failures"] == outcome.failures
    assert registry.active_runs() == []
