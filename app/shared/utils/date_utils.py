"""
Parseo de fechas y horas tal como aparecen en hojas de calculo editadas a mano.

Las hojas mezclan formatos segun quien las edite y el locale de la cuenta de
Google (ko_KR, en_US). Estas funciones devuelven None cuando no reconocen el
valor; la decision de fallar el campo es del normalizador.
"""
import re
from datetime import date, datetime, time, timedelta
from typing import Optional

from app.shared.utils.datetime_utils import DateTimeUtils

# Epoch de numeros de serie de Google Sheets / Excel
SHEETS_EPOCH = date(1899, 12, 30)

_KOREAN_DATE_RE = re.compile(r"^(\d{4})\s*년\s*(\d{1,2})\s*월\s*(\d{1,2})\s*일?$")
# 2024-01-05, 2024/1/5, 2024.01.05, "2024. 1. 5."
_YMD_DATE_RE = re.compile(r"^(\d{4})\s*[./-]\s*(\d{1,2})\s*[./-]\s*(\d{1,2})\.?$")
# 1/5/2024, 01/05/24 (mes primero, locale en_US)
_US_DATE_RE = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{2}|\d{4})$")
_SERIAL_RE = re.compile(r"^\d{5}(\.\d+)?$")
_TEXT_DATE_FORMATS = (
    "%d-%b-%Y",
    "%d-%b-%y",
    "%b %d, %Y",
    "%B %d, %Y",
    "%d %b %Y",
    "%d %B %Y",
    "%Y%m%d",
)

_TIME_RE = re.compile(
    r"^(?:(오전|오후|am|pm)\s*)?(\d{1,2}):(\d{2})(?::(\d{2}))?(?:\.\d+)?\s*(오전|오후|am|pm)?$",
    re.IGNORECASE,
)
_DATETIME_SPLIT_RE = re.compile(
    r"^(?P<date>.+?)(?:T|\s+)"
    r"(?P<time>(?:(?:오전|오후|am|pm)\s*)?\d{1,2}:\d{2}(?::\d{2})?(?:\.\d+)?\s*(?:오전|오후|am|pm)?)$",
    re.IGNORECASE,
)


def _safe_date(year: int, month: int, day: int) -> Optional[date]:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def parse_sheet_date(raw: str) -> Optional[date]:
    """
    Parsea una fecha de hoja de calculo.

    Formatos aceptados: ISO, Y/M/D, Y.M.D, "2024. 1. 5.", "2024년 1월 5일",
    M/D/YYYY, M/D/YY, "5-Jan-2024", "Jan 5, 2024", YYYYMMDD y numeros de
    serie de Sheets (dias desde 1899-12-30).
    """
    value = (raw or "").strip()
    if not value:
        return None

    match = _YMD_DATE_RE.match(value) or _KOREAN_DATE_RE.match(value)
    if match:
        return _safe_date(int(match.group(1)), int(match.group(2)), int(match.group(3)))

    match = _US_DATE_RE.match(value)
    if match:
        year = int(match.group(3))
        if year < 100:
            year += 2000
        return _safe_date(year, int(match.group(1)), int(match.group(2)))

    if _SERIAL_RE.match(value):
        return SHEETS_EPOCH + timedelta(days=int(float(value)))

    for fmt in _TEXT_DATE_FORMATS:
        try:
            return datetime.strptime(value, fmt).date()
        except ValueError:
            continue

    # Ultimo recurso: ISO con hora ("2024-01-05T10:00:00Z")
    parsed = DateTimeUtils.from_iso_string(value)
    return parsed.date() if parsed else None


def parse_sheet_time(raw: str) -> Optional[time]:
    """
    Parsea una hora: "14:30", "14:30:15", "2:30 PM", "오후 2:30".
    """
    value = (raw or "").strip()
    match = _TIME_RE.match(value)
    if not match:
        return None

    meridiem = (match.group(1) or match.group(5) or "").lower()
    hour = int(match.group(2))
    minute = int(match.group(3))
    second = int(match.group(4) or 0)

    if meridiem in ("pm", "오후") and hour < 12:
        hour += 12
    elif meridiem in ("am", "오전") and hour == 12:
        hour = 0

    try:
        return time(hour, minute, second)
    except ValueError:
        return None


def parse_sheet_datetime(raw: str) -> Optional[datetime]:
    """
    Parsea fecha y hora. El resultado siempre es aware en UTC; los valores
    sin zona horaria se interpretan como UTC.
    """
    value = (raw or "").strip()
    if not value:
        return None

    parsed = DateTimeUtils.from_iso_string(value)
    if parsed is not None:
        return DateTimeUtils.ensure_utc(parsed)

    match = _DATETIME_SPLIT_RE.match(value)
    if match:
        day = parse_sheet_date(match.group("date"))
        moment = parse_sheet_time(match.group("time"))
        if day is not None and moment is not None:
            return DateTimeUtils.ensure_utc(datetime.combine(day, moment))
        return None

    # Solo fecha: medianoche UTC
    day = parse_sheet_date(value)
    if day is not None:
        return DateTimeUtils.ensure_utc(datetime.combine(day, time()))
    return None
