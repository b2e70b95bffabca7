"""
Tests para GoogleSheetsClient con requests.Session mockeada.
"""
from unittest.mock import Mock

import pytest
import requests

from app.infrastructure.external.sheets import GoogleSheetsClient, SheetCache, SheetReadError
from app.infrastructure.external.sheets.sheets_client import build_rows


def _response(status_code: int = 200, payload=None, headers=None, text: str = "") -> Mock:
    resp = Mock()
    resp.status_code = status_code
    resp.json.return_value = payload or {}
    resp.headers = headers or {}
    resp.text = text
    return resp


VALUES = {
    "values": [
        ["예약번호", "고객명", "", "성인"],
        ["R1", "Kim", "ignored", "2"],
        [],
        ["R2", "Lee"],
        ["", " ", ""],
    ]
}


@pytest.fixture
def session() -> Mock:
    return Mock(spec=requests.Session)


@pytest.fixture
def sleeps() -> list:
    return []


@pytest.fixture
def client(session, sleeps) -> GoogleSheetsClient:
    return GoogleSheetsClient(
        access_token="token-123",
        cache=SheetCache(),
        session=session,
        max_retries=2,
        sleep=sleeps.append,
    )


class TestBuildRows:

    def test_headers_and_row_numbers(self):
        data = build_rows("Reservas", VALUES["values"])

        assert data.headers == ["예약번호", "고객명", "성인"]
        assert [row.row_number for row in data.rows] == [2, 4]
        assert data.rows[0].values == {"예약번호": "R1", "고객명": "Kim", "성인": "2"}

    def test_short_rows_are_padded(self):
        data = build_rows("Reservas", VALUES["values"])
        assert data.rows[1].values["성인"] == ""

    def test_duplicate_headers_keep_first(self):
        data = build_rows("S", [["ID", "ID", "Name"], ["1", "2", "x"]])

        assert data.headers == ["ID", "Name"]
        assert data.rows[0].values["ID"] == "1"

    def test_empty_sheet(self):
        data = build_rows("S", [])
        assert data.headers == []
        assert data.rows == []


def test_read_sheet_uses_bearer_token_and_quoted_range(client, session):
    session.request.return_value = _response(payload=VALUES)

    data = client.read_sheet("sheet-1", "Tour's 2024")

    kwargs = session.request.call_args.kwargs
    assert kwargs["headers"]["Authorization"] == "Bearer token-123"
    assert kwargs["url"].endswith("/sheet-1/values/%27Tour%27%27s%202024%27")
    assert kwargs["params"]["valueRenderOption"] == "FORMATTED_VALUE"
    assert len(data.rows) == 2


def test_read_sheet_is_cached(client, session):
    session.request.return_value = _response(payload=VALUES)

    client.read_sheet("sheet-1", "Reservas")
    client.read_sheet("sheet-1", "Reservas")
    client.read_sheet("sheet-1", "Reservas", use_cache=False)

    assert session.request.call_count == 2


def test_read_rows_returns_external_rows(client, session):
    session.request.return_value = _response(payload=VALUES)

    rows = client.read_rows("sheet-1", "Reservas")

    assert [row.get("예약번호") for row in rows] == ["R1", "R2"]


def test_list_sheets_with_prefix(client, session):
    session.request.return_value = _response(payload={
        "sheets": [
            {"properties": {"title": "Tour 2024"}},
            {"properties": {"title": "Reservas"}},
            {"properties": {"title": "Tour 2025"}},
        ]
    })

    assert client.list_sheets("sheet-1", prefix="Tour") == ["Tour 2024", "Tour 2025"]
    assert client.list_sheets("sheet-1") == ["Tour 2024", "Reservas", "Tour 2025"]
    assert session.request.call_count == 1
    assert session.request.call_args.kwargs["params"]["fields"] == "sheets.properties.title"


def test_api_key_goes_in_query(session, sleeps):
    client = GoogleSheetsClient(api_key="k-1", session=session, sleep=sleeps.append)
    session.request.return_value = _response(payload=VALUES)

    client.read_sheet("sheet-1", "Reservas")

    kwargs = session.request.call_args.kwargs
    assert kwargs["params"]["key"] == "k-1"
    assert "Authorization" not in kwargs["headers"]


def test_rate_limit_honors_retry_after(client, session, sleeps):
    session.request.side_effect = [
        _response(429, headers={"Retry-After": "3"}),
        _response(payload=VALUES),
    ]

    data = client.read_sheet("sheet-1", "Reservas")

    assert len(data.rows) == 2
    assert sleeps == [3.0]


def test_server_errors_use_exponential_backoff(client, session, sleeps):
    session.request.side_effect = [_response(503), _response(502), _response(payload=VALUES)]

    client.read_sheet("sheet-1", "Reservas")

    assert sleeps == [pytest.approx(0.92), pytest.approx(1.84)]


def test_rate_limit_exhausted(client, session, sleeps):
    session.request.return_value = _response(429, text="quota")

    with pytest.raises(SheetReadError) as exc_info:
        client.read_sheet("sheet-1", "Reservas")

    assert exc_info.value.kind == "rate_limited"
    assert exc_info.value.status_code == 429
    assert session.request.call_count == 3


def test_network_errors_are_retried(client, session, sleeps):
    session.request.side_effect = [requests.ConnectionError("reset"), _response(payload=VALUES)]

    data = client.read_sheet("sheet-1", "Reservas")

    assert len(data.rows) == 2
    assert len(sleeps) == 1


def test_network_errors_exhausted_are_transient(client, session):
    session.request.side_effect = requests.Timeout("slow")

    with pytest.raises(SheetReadError) as exc_info:
        client.read_sheet("sheet-1", "Reservas")

    assert exc_info.value.kind == "transient"


@pytest.mark.parametrize("status,kind", [(404, "not_found"), (400, "not_found"), (403, "forbidden"), (401, "forbidden")])
def test_non_retryable_errors(client, session, sleeps, status, kind):
    session.request.return_value = _response(status, text="error")

    with pytest.raises(SheetReadError) as exc_info:
        client.read_sheet("sheet-1", "Reservas")

    assert exc_info.value.kind == kind
    assert session.request.call_count == 1
    assert sleeps == []


def test_invalidate_sheet_and_spreadsheet(client, session):
    session.request.return_value = _response(payload=VALUES)
    client.read_sheet("sheet-1", "Reservas")
    client.read_sheet("sheet-1", "Tours")

    assert client.invalidate("sheet-1", "Reservas") == 1
    assert client.invalidate("sheet-1") == 1
    assert len(client.cache) == 0
