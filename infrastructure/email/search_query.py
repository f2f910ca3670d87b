# infrastructure/email/search_query.py
# ISO-8601 "since" -> criterio de búsqueda IMAP (SINCE DD-Mon-YYYY)
from __future__ import annotations
import logging
import re
from datetime import date, datetime, timedelta, timezone
from typing import Optional

logger = logging.getLogger(__name__)

DEFAULT_LOOKBACK_DAYS = 7
SEARCH_ALL = "ALL"

# Los nombres de mes de IMAP son fijos en inglés; no se usa %b porque depende del locale
_MONTHS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")

_RFC3339 = re.compile(
    r"^(?P<y>\d{4})-(?P<m>\d{2})-(?P<d>\d{2})[Tt ]"
    r"(?P<H>\d{2}):(?P<M>\d{2}):(?P<S>\d{2})(?:\.\d+)?"
    r"(?:[Zz]|[+-](?P<oh>\d{2}):(?P<om>\d{2}))$"
)


def imap_date(value: date) -> str:
    return f"{value.day:02d}-{_MONTHS[value.month - 1]}-{value.year:04d}"


def parse_rfc3339_date(value: str) -> Optional[date]:
    """
    Fecha (en el offset propio del valor) de un date-time RFC 3339, o None si no lo es.
    """
    m = _RFC3339.match(value.strip())
    if not m:
        return None
    try:
        # valida rangos; un segundo intercalar (60) se acepta
        dt = datetime(
            int(m["y"]), int(m["m"]), int(m["d"]),
            int(m["H"]), int(m["M"]), min(int(m["S"]), 59),
        )
        if m["oh"] is not None and (int(m["oh"]) > 23 or int(m["om"]) > 59):
            return None
    except ValueError:
        return None
    return dt.date()


def build_search_query(since: Optional[str], now: Optional[datetime] = None) -> str:
    """
    - since válido      -> "SINCE 15-Jan-2024"
    - since no parseable -> "ALL" (mejor buscar de más que perder correo)
    - sin since          -> últimos 7 días
    Nunca lanza.
    """
    if since is None:
        now = now or datetime.now(timezone.utc)
        return f"SINCE {imap_date((now - timedelta(days=DEFAULT_LOOKBACK_DAYS)).date())}"

    parsed = parse_rfc3339_date(since)
    if parsed is None:
        logger.warning("Fecha 'since' no válida (%r); se busca ALL", since)
        return SEARCH_ALL
    return f"SINCE {imap_date(parsed)}"
