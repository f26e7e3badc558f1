"""Turns inventory dataclasses into header + row form for the storage sinks."""

from __future__ import annotations
from dataclasses import fields, is_dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from framework_inventory.domain.entities import Project


def record_header(record_type: type) -> list[str]:
    """Column names, taken from the dataclass field names in declaration order."""
    return [f.name for f in fields(record_type)]


def record_values(record: Any) -> list[Any]:
    """
    Field values ready for a database driver: enums become their value and
    nested projects their name. datetimes and None are left for the driver.
    """
    if not is_dataclass(record):
        raise TypeError(f"{type(record).__name__} is not a record")
    values = []
    for f in fields(record):
        value = getattr(record, f.name)
        if isinstance(value, Enum):
            value = value.value
        elif isinstance(value, Project):
            value = value.name
        values.append(value)
    return values


def invariant_text(value: Any) -> str:
    """Locale-independent text for one value."""
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, float):
        return repr(value)
    return str(value)


def record_row(record: Any) -> list[str]:
    return [invariant_text(value) for value in record_values(record)]
