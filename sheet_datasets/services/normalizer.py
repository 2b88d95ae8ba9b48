"""Symmetric conversion of row and dataset values between storage and external form.

Writes reinterpret date-like strings as timestamps, truncate timestamps to
millisecond precision and keep integers beyond 64 bits as decimal text. Reads
render object ids as hex strings and timestamps as `YYYY-MM-DDTHH:MM:SS.sssZ`.
A value that cannot be converted is kept as is.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from datetime import UTC, date, datetime, time
from typing import Any

from bson import ObjectId
from dateutil import parser as date_parser

INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1

_DATE_LIKE = re.compile(
    r"^\d{4}-\d{1,2}-\d{1,2}"
    r"(?:[T ]\d{1,2}:\d{2}(?::\d{2}(?:[.,]\d{1,9})?)?)?"
    r"\s*(?:Z|[+-]\d{2}(?::?\d{2})?)?$",
    re.IGNORECASE,
)


def looks_date_like(value: str) -> bool:
    return bool(_DATE_LIKE.match(value.strip()))


def parse_timestamp(value: str) -> datetime:
    """Parse a loose ISO string into a naive UTC datetime at millisecond precision.

    Raises ValueError when the text is not a date.
    """
    try:
        parsed = date_parser.isoparse(value.strip())
    except (ValueError, OverflowError):
        try:
            parsed = date_parser.parse(value.strip())
        except (ValueError, OverflowError) as error:
            raise ValueError(f"Not a timestamp: {value!r}") from error
    return to_storage_datetime(parsed)


def to_storage_datetime(value: datetime | date) -> datetime:
    if not isinstance(value, datetime):
        value = datetime.combine(value, time.min)
    if value.tzinfo is not None:
        value = value.astimezone(UTC).replace(tzinfo=None)
    return value.replace(microsecond=(value.microsecond // 1000) * 1000)


def format_timestamp(value: datetime) -> str:
    if value.tzinfo is not None:
        value = value.astimezone(UTC)
    return value.replace(tzinfo=None).isoformat(timespec="milliseconds") + "Z"


def parse_object_id(value: Any) -> ObjectId | None:
    """Return an ObjectId for valid ids or id strings, None otherwise."""
    if isinstance(value, ObjectId):
        return value
    if isinstance(value, str) and ObjectId.is_valid(value.strip()):
        return ObjectId(value.strip())
    return None


def to_storage(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {str(key): to_storage(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_storage(item) for item in value]
    if isinstance(value, int) and not isinstance(value, bool) and not INT64_MIN <= value <= INT64_MAX:
        return str(value)
    try:
        if isinstance(value, (datetime, date)):
            return to_storage_datetime(value)
        if isinstance(value, str) and looks_date_like(value):
            return parse_timestamp(value)
    except (ValueError, OverflowError, TypeError):
        return value
    return value


def from_storage(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {str(key): from_storage(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [from_storage(item) for item in value]
    try:
        if isinstance(value, ObjectId):
            return str(value)
        if isinstance(value, datetime):
            return format_timestamp(value)
    except (ValueError, OverflowError, TypeError):
        return value
    return value
