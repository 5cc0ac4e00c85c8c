# cobrina/utils/fechas.py
from __future__ import annotations

import re
from datetime import date, datetime, timedelta, timezone

EXCEL_EPOCH = date(1899, 12, 30)

_DMY = re.compile(r"^(\d{1,2})-(\d{1,2})-(\d{4})$")
_YMD = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})$")
_HMS = re.compile(r"^(\d{1,2}):(\d{2})(?::(\d{2}))?$")


def _year_in_range(y: int) -> bool:
    return 2000 <= y <= 2100


def from_excel_serial(n) -> date | None:
    try:
        days = int(float(n))
    except (TypeError, ValueError):
        return None
    return EXCEL_EPOCH + timedelta(days=days)


def to_date_only(raw) -> date | None:
    """
    Normalise a date-ish value to a calendar day.

    Accepts date/datetime objects, Excel serials, dd-mm-yyyy, dd/mm/yyyy and
    yyyy-mm-dd (any trailing time part is ignored). Returns None when the
    value cannot be understood.
    """
    if raw is None:
        return None
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw

    s_raw = str(raw).strip()
    if not s_raw:
        return None

    try:
        num = float(s_raw)
    except ValueError:
        num = None
    if num is not None:
        # plausible spreadsheet serial range (1970..2064)
        if 25569 <= num <= 60000:
            return from_excel_serial(num)
        return None

    solo_fecha = re.split(r"[ T]", s_raw)[0]
    s = solo_fecha.replace("/", "-")

    m = _DMY.match(s)
    if m:
        dd, mm, yyyy = (int(x) for x in m.groups())
    else:
        m = _YMD.match(s)
        if not m:
            return None
        yyyy, mm, dd = (int(x) for x in m.groups())

    if not _year_in_range(yyyy):
        return None
    try:
        return date(yyyy, mm, dd)
    except ValueError:
        return None


def day_bounds_utc(raw) -> tuple[datetime, datetime] | None:
    d = to_date_only(raw)
    if d is None:
        return None
    start = datetime(d.year, d.month, d.day, tzinfo=timezone.utc)
    return start, start + timedelta(days=1) - timedelta(microseconds=1)


def normalizar_hora(h) -> str:
    """
    Always returns "HH:MM:SS".

    Handles "H:mm", "HH:mm:ss", dotted "9.35" / "91.35" (read as 09:35) and
    bare digits ("935" -> 09:35, "0915" -> 09:15, "174412" -> 17:44:12).
    """
    s = str(h if h is not None else "").strip()
    if not s:
        return "00:00:00"

    hh = mm = ss = 0

    m = _HMS.match(s)
    if m:
        hh = int(m.group(1))
        mm = int(m.group(2))
        ss = int(m.group(3) or 0)
        return _fmt(hh, mm, ss)

    if "." in s:
        left, right = s.split(".", 1)
        h_left = re.sub(r"\D", "", left)
        m_right = re.sub(r"\D", "", right)
        if not h_left and not m_right:
            return "00:00:00"
        mm = int(m_right.ljust(2, "0")[:2] or 0)
        h_num = int(h_left) if h_left else 0
        if len(h_left) == 2 and h_num > 23:
            hh = int(h_left[0])
        else:
            hh = h_num
        return _fmt(hh, mm, 0)

    digits = re.sub(r"\D", "", s)
    if not digits:
        return "00:00:00"

    if len(digits) <= 2:
        hh = int(digits)
    elif len(digits) == 3:
        hh = int(digits[0])
        mm = int(digits[1:])
    elif len(digits) == 4:
        h2 = int(digits[:2])
        mm = int(digits[2:4])
        hh = int(digits[0]) if h2 > 23 else h2
    else:
        p = digits[:6].rjust(6, "0")
        hh, mm, ss = int(p[:2]), int(p[2:4]), int(p[4:6])

    return _fmt(hh, mm, ss)


def _fmt(hh: int, mm: int, ss: int) -> str:
    hh = max(0, min(23, hh))
    mm = max(0, min(59, mm))
    ss = max(0, min(59, ss))
    return f"{hh:02d}:{mm:02d}:{ss:02d}"


def hora_a_segundos(hora: str) -> int:
    hh, mm, ss = (int(x) for x in normalizar_hora(hora).split(":"))
    return hh * 3600 + mm * 60 + ss
