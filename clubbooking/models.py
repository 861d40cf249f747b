"""Club, computer and booking records with their JSON representation."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping

ZERO_TIME = datetime(1, 1, 1, tzinfo=timezone.utc)

_RFC3339 = re.compile(
    r"^\d{4}-\d{2}-\d{2}[Tt]\d{2}:\d{2}:\d{2}(\.\d+)?([Zz]|[+-]\d{2}:\d{2})$"
)
_FRACTION = re.compile(r"\.(\d+)")
_MISSING = object()


def parse_time(value: Any) -> datetime:
    """Parse an RFC 3339 timestamp (or pass a datetime through) into an aware datetime.

    Naive datetimes are taken to be UTC; strings must carry an offset.
    """
    if isinstance(value, datetime):
        return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)
    if not isinstance(value, str):
        raise ValueError(f"cannot parse {value!r} as time")
    text = value.strip()
    if not _RFC3339.match(text):
        raise ValueError(f"cannot parse {value!r} as RFC 3339 time")
    if text[-1] in "Zz":
        text = text[:-1] + "+00:00"
    text = _FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)
    try:
        return datetime.fromisoformat(text)
    except ValueError as exc:
        raise ValueError(f"cannot parse {value!r} as RFC 3339 time") from exc


def format_time(value: datetime) -> str:
    """Format a datetime as RFC 3339, using ``Z`` for UTC and trimming zero fractions."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    text = (
        f"{value.year:04d}-{value.month:02d}-{value.day:02d}"
        f"T{value.hour:02d}:{value.minute:02d}:{value.second:02d}"
    )
    if value.microsecond:
        text += "." + f"{value.microsecond:06d}".rstrip("0")
    offset = value.utcoffset() or timedelta(0)
    if offset == timedelta(0):
        return text + "Z"
    sign = "+" if offset > timedelta(0) else "-"
    minutes = abs(int(offset.total_seconds())) // 60
    return f"{text}{sign}{minutes // 60:02d}:{minutes % 60:02d}"


def _lookup(data: Mapping[str, Any], key: str) -> Any:
    if key in data:
        return data[key]
    lowered = key.lower()
    for name, value in data.items():
        if isinstance(name, str) and name.lower() == lowered:
            return value
    return _MISSING


def _require_mapping(data: Any) -> Mapping[str, Any]:
    if not isinstance(data, Mapping):
        raise ValueError(f"expected a JSON object, got {type(data).__name__}")
    return data


def _text(data: Mapping[str, Any], key: str) -> str:
    value = _lookup(data, key)
    if value is _MISSING or value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"field {key!r} must be a string")
    return value


def _integer(data: Mapping[str, Any], key: str) -> int:
    value = _lookup(data, key)
    if value is _MISSING or value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"field {key!r} must be an integer")
    return value


def _number(data: Mapping[str, Any], key: str) -> float:
    value = _lookup(data, key)
    if value is _MISSING or value is None:
        return 0.0
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"field {key!r} must be a number")
    return float(value)


def _flag(data: Mapping[str, Any], key: str) -> bool:
    value = _lookup(data, key)
    if value is _MISSING or value is None:
        return False
    if not isinstance(value, bool):
        raise ValueError(f"field {key!r} must be a boolean")
    return value


def _moment(data: Mapping[str, Any], key: str) -> datetime:
    value = _lookup(data, key)
    if value is _MISSING or value is None:
        return ZERO_TIME
    return parse_time(value)


@dataclass
class ComputerClub:
    """A computer club with its hourly price and number of free machines."""

    id: str = ""
    name: str = ""
    address: str = ""
    price_per_hour: float = 0.0
    available_pcs: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "address": self.address,
            "price_per_hour": self.price_per_hour,
            "available_pcs": self.available_pcs,
        }

    @classmethod
    def from_dict(cls, data: Any) -> ComputerClub:
        data = _require_mapping(data)
        return cls(
            id=_text(data, "id"),
            name=_text(data, "name"),
            address=_text(data, "address"),
            price_per_hour=_number(data, "price_per_hour"),
            available_pcs=_integer(data, "available_pcs"),
        )


@dataclass
class Booking:
    """A reservation of one computer in a club for a span of time."""

    id: str = ""
    club_id: str = ""
    club_name: str = ""
    user_id: str = ""
    pc_number: int = 0
    start_time: datetime = ZERO_TIME
    end_time: datetime = ZERO_TIME
    total_price: float = 0.0
    status: str = ""
    created_at: datetime = ZERO_TIME

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"id": self.id, "club_id": self.club_id}
        if self.club_name:
            result["club_name"] = self.club_name
        result.update(
            {
                "user_id": self.user_id,
                "pc_number": self.pc_number,
                "start_time": format_time(self.start_time),
                "end_time": format_time(self.end_time),
                "total_price": self.total_price,
                "status": self.status,
                "created_at": format_time(self.created_at),
            }
        )
        return result

    @classmethod
    def from_dict(cls, data: Any) -> Booking:
        data = _require_mapping(data)
        return cls(
            id=_text(data, "id"),
            club_id=_text(data, "club_id"),
            club_name=_text(data, "club_name"),
            user_id=_text(data, "user_id"),
            pc_number=_integer(data, "pc_number"),
            start_time=_moment(data, "start_time"),
            end_time=_moment(data, "end_time"),
            total_price=_number(data, "total_price"),
            status=_text(data, "status"),
            created_at=_moment(data, "created_at"),
        )


@dataclass
class Computer:
    """A single numbered computer in a club."""

    id: str = ""
    club_id: str = ""
    number: int = 0
    description: str = ""
    is_available: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "club_id": self.club_id,
            "number": self.number,
            "description": self.description,
            "is_available": self.is_available,
        }

    @classmethod
    def from_dict(cls, data: Any) -> Computer:
        data = _require_mapping(data)
        return cls(
            id=_text(data, "id"),
            club_id=_text(data, "club_id"),
            number=_integer(data, "number"),
            description=_text(data, "description"),
            is_available=_flag(data, "is_available"),
        )