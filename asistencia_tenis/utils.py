import re
import uuid
from datetime import date, datetime, timezone
from typing import Optional

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_TIME_RANGE_RE = re.compile(r"^([0-1][0-9]|2[0-3]):[0-5][0-9]-([0-1][0-9]|2[0-3]):[0-5][0-9]$")


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def parse_iso(value: str) -> Optional[datetime]:
    """Parsea un timestamp ISO-8601 (acepta sufijo Z). Retorna None si no es válido."""
    if not value:
        return None
    try:
        dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def generate_id(prefix: str = "ID") -> str:
    """ID opaco y único con prefijo (AST..., PENDING..., REP...)."""
    return f"{prefix}{uuid.uuid4().hex[:16]}".upper()


def parse_date(value: str) -> Optional[date]:
    """Fecha en formato YYYY-MM-DD; None si el formato o el día no son válidos."""
    if not isinstance(value, str) or not _DATE_RE.match(value.strip()):
        return None
    try:
        return date.fromisoformat(value.strip())
    except ValueError:
        return None


def is_valid_date(value: str) -> bool:
    return parse_date(value) is not None


def is_valid_time_range(value: str) -> bool:
    """Formato HH:MM-HH:MM (ej: 15:00-16:30)."""
    return bool(value) and bool(_TIME_RANGE_RE.match(str(value).strip()))


def sanitize_time_token(hora: str) -> str:
    # 15:45-16:30 -> 15-45-16-30
    return re.sub(r"\s+", "", re.sub(r"[:-]", "-", str(hora or "")))


def sanitize_group_token(codigo: str) -> str:
    return re.sub(r"[^a-zA-Z0-9]", "-", str(codigo or ""))
