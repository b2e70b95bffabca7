"""
Cliente minimo de Google Sheets REST API v4 (sin SDKs externos).

Requisitos cubiertos:
- requests
- listado de hojas de un spreadsheet (con filtro por prefijo)
- lectura de valores: primera fila = encabezado
- rate-limit/backoff (429, 5xx, timeouts de red)
- clasificacion de errores: not_found, forbidden, rate_limited, transient
- cache explicito por spreadsheet+hoja

La autenticacion no se resuelve aca: se recibe un access token ya emitido
o una API key desde la configuracion.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import quote

import requests
from loguru import logger

from app.domain.entities.sync_records import ExternalRow

from .sheet_cache import SheetCache

NOT_FOUND = "not_found"
FORBIDDEN = "forbidden"
RATE_LIMITED = "rate_limited"
TRANSIENT = "transient"


class SheetReadError(RuntimeError):
    """Error leyendo la hoja, clasificado por kind."""

    def __init__(self, message: str, kind: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.kind = kind
        self.status_code = status_code


@dataclass(frozen=True)
class SheetData:
    """Contenido de una hoja: encabezados y filas de datos."""

    sheet_name: str
    headers: List[str]
    rows: List[ExternalRow] = field(default_factory=list)


def _quote_sheet_name(sheet_name: str) -> str:
    """Rango A1 para una hoja completa: 'Mi hoja' (comillas simples escapadas)."""
    return "'" + sheet_name.replace("'", "''") + "'"


def build_rows(sheet_name: str, values: List[List[Any]]) -> SheetData:
    """
    Convierte la matriz de valores de la API en encabezados + ExternalRow.

    - La primera fila es el encabezado; columnas sin encabezado se ignoran.
    - Encabezados repetidos: se usa la primera aparicion.
    - Filas vacias se saltan; filas cortas se completan con "".
    - row_number es la fila en la hoja (encabezado = 1).
    """
    if not values:
        return SheetData(sheet_name=sheet_name, headers=[])

    raw_headers = [str(cell).strip() for cell in values[0]]
    columns: List[tuple] = []
    seen = set()
    for position, header in enumerate(raw_headers):
        if not header:
            continue
        if header in seen:
            logger.warning(f"Hoja '{sheet_name}': encabezado repetido '{header}' (columna {position + 1}) ignorado")
            continue
        seen.add(header)
        columns.append((position, header))

    rows: List[ExternalRow] = []
    for offset, raw_row in enumerate(values[1:]):
        cells = ["" if cell is None else str(cell) for cell in raw_row]
        if not any(cell.strip() for cell in cells):
            continue
        cells += [""] * (len(raw_headers) - len(cells))
        rows.append(ExternalRow(
            row_number=offset + 2,
            values={header: cells[position] for position, header in columns},
        ))

    return SheetData(sheet_name=sheet_name, headers=[header for _, header in columns], rows=rows)


class GoogleSheetsClient:
    """
    Cliente HTTP de Google Sheets.

    Importante:
    - No hace cast de tipos: las celdas llegan como texto formateado y el
      normalizador decide el tipo.
    - Es sincrono; desde codigo async usar asyncio.to_thread.
    """

    def __init__(
        self,
        *,
        access_token: Optional[str] = None,
        api_key: Optional[str] = None,
        cache: Optional[SheetCache] = None,
        session: Optional[requests.Session] = None,
        base_url: str = "https://sheets.googleapis.com/v4/spreadsheets",
        timeout_s: int = 30,
        max_retries: int = 4,
        min_backoff_s: float = 0.8,
        max_backoff_s: float = 20.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._access_token = access_token
        self._api_key = api_key
        self._cache = cache
        self._base_url = base_url.rstrip("/")
        self._timeout_s = timeout_s
        self._max_retries = max_retries
        self._min_backoff_s = min_backoff_s
        self._max_backoff_s = max_backoff_s
        self._session = session or requests.Session()
        self._sleep = sleep

    @property
    def cache(self) -> Optional[SheetCache]:
        return self._cache

    def list_sheets(self, spreadsheet_id: str, prefix: Optional[str] = None) -> List[str]:
        """
        Lista los nombres de hojas del spreadsheet en el orden de la planilla.

        Args:
            spreadsheet_id: ID del spreadsheet
            prefix: Si se indica, solo hojas cuyo nombre empieza con el prefijo
        """
        cache_key = SheetCache.key(spreadsheet_id, "__sheets__")
        names = self._cache.get(cache_key) if self._cache else None

        if names is None:
            payload = self._request_json(
                f"{self._base_url}/{spreadsheet_id}",
                params={"fields": "sheets.properties.title"},
            )
            names = [
                sheet.get("properties", {}).get("title", "")
                for sheet in payload.get("sheets") or []
            ]
            names = [name for name in names if name]
            if self._cache:
                self._cache.set(cache_key, names)

        if prefix:
            return [name for name in names if name.startswith(prefix)]
        return list(names)

    def read_sheet(self, spreadsheet_id: str, sheet_name: str, use_cache: bool = True) -> SheetData:
        """Lee encabezados y filas de una hoja."""
        cache_key = SheetCache.key(spreadsheet_id, sheet_name)
        if use_cache and self._cache:
            cached = self._cache.get(cache_key)
            if cached is not None:
                logger.debug(f"Hoja {cache_key} servida desde cache")
                return cached

        url = f"{self._base_url}/{spreadsheet_id}/values/{quote(_quote_sheet_name(sheet_name), safe='')}"
        payload = self._request_json(
            url,
            params={
                "valueRenderOption": "FORMATTED_VALUE",
                "dateTimeRenderOption": "FORMATTED_STRING",
                "majorDimension": "ROWS",
            },
        )
        data = build_rows(sheet_name, payload.get("values") or [])
        logger.info(f"Hoja {cache_key}: {len(data.headers)} columnas, {len(data.rows)} filas")

        if self._cache:
            self._cache.set(cache_key, data)
        return data

    def read_rows(self, spreadsheet_id: str, sheet_name: str, use_cache: bool = True) -> List[ExternalRow]:
        return self.read_sheet(spreadsheet_id, sheet_name, use_cache=use_cache).rows

    def invalidate(self, spreadsheet_id: str, sheet_name: Optional[str] = None) -> int:
        """Invalida el cache de una hoja o de todo el spreadsheet."""
        if not self._cache:
            return 0
        if sheet_name is not None:
            return int(self._cache.invalidate(SheetCache.key(spreadsheet_id, sheet_name)))
        return self._cache.invalidate_pattern(f"^{spreadsheet_id}:")

    def _request_json(self, url: str, *, params: Dict[str, Any]) -> Dict[str, Any]:
        """
        GET con backoff para 429/5xx/errores de red.

        Estrategia:
        - 429: respeta Retry-After si existe, si no exponencial con jitter simple.
        - 5xx y timeouts: exponencial con jitter.
        - 401/403: forbidden; 404/400 (rango inexistente): not_found. Sin reintento.
        """
        headers = {"Accept": "application/json"}
        query = dict(params)
        if self._access_token:
            headers["Authorization"] = f"Bearer {self._access_token}"
        if self._api_key:
            query["key"] = self._api_key

        for attempt in range(self._max_retries + 1):
            try:
                resp = self._session.request(
                    method="GET",
                    url=url,
                    params=query,
                    headers=headers,
                    timeout=self._timeout_s,
                )
            except (requests.Timeout, requests.ConnectionError) as e:
                if attempt >= self._max_retries:
                    raise SheetReadError(
                        f"Google Sheets no responde tras {attempt} reintentos: {e}", TRANSIENT
                    ) from e
                self._backoff(attempt, None, reason=str(e))
                continue

            if 200 <= resp.status_code < 300:
                return resp.json()

            # Errores recuperables
            if resp.status_code == 429 or 500 <= resp.status_code < 600:
                if attempt >= self._max_retries:
                    kind = RATE_LIMITED if resp.status_code == 429 else TRANSIENT
                    raise SheetReadError(
                        f"Google Sheets error {resp.status_code} tras {attempt} reintentos: {resp.text}",
                        kind,
                        resp.status_code,
                    )
                self._backoff(attempt, resp.headers.get("Retry-After"), reason=f"HTTP {resp.status_code}")
                continue

            # Errores no recuperables
            if resp.status_code in (401, 403):
                kind = FORBIDDEN
            elif resp.status_code in (400, 404):
                kind = NOT_FOUND
            else:
                kind = TRANSIENT
            raise SheetReadError(
                f"Google Sheets request fallo {resp.status_code}: {resp.text}",
                kind,
                resp.status_code,
            )

        raise SheetReadError("Google Sheets: reintentos agotados", TRANSIENT)

    def _backoff(self, attempt: int, retry_after: Optional[str], *, reason: str) -> None:
        if retry_after:
            try:
                sleep_s = float(retry_after)
            except ValueError:
                sleep_s = self._min_backoff_s
        else:
            # Exponencial simple + jitter proporcional
            base = min(self._max_backoff_s, self._min_backoff_s * (2 ** attempt))
            sleep_s = base + (0.15 * base)

        logger.warning(f"Google Sheets: {reason}. Reintento {attempt + 1}/{self._max_retries} en {sleep_s:.2f}s")
        self._sleep(sleep_s)
