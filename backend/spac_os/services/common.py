"""Small helpers shared by the derived-state services (record access, UTC clock)."""
from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any, Optional


class InvalidDateError(ValueError):
    def __init__(self, value: Any) -> None:
        super().__init__(f"Not a valid date: {value!r}")
        self.value = value


def read_field(record: Any, name: str, default: Any = None) -> Any:
    """Read `name` from an ORM row, dataclass or plain dict."""
    if isinstance(record, dict):
        value = record.get(name, default)
    else:
        value = getattr(record, name, default)
    return default if value is None else value


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_utc_datetime(value: Any) -> Optional[datetime]:
    """Normalise a date/datetime/ISO string to a naive UTC datetime.

    Dates without a time component are taken as midnight UTC. Blank values
    yield None; anything else that is not a date raises InvalidDateError.
    """
    if value is None or value == "":
        return None
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            value = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError as exc:
            raise InvalidDateError(value) from exc
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            return value.astimezone(timezone.utc).replace(tzinfo=None)
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    raise InvalidDateError(value)


def as_date(value: Any) -> Optional[date]:
    moment = as_utc_datetime(value)
    return moment.date() if moment else None


def safe_ratio(numerator: float, denominator: float) -> float:
    if not denominator:
        return 0.0
    return numerator / denominator
