"""Translate loosely typed REST query parameters into typed filter expressions.

Expressions are engine-neutral; `sheet_datasets.db.mongo_query` compiles them into
MongoDB filter documents.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any, Union

from sheet_datasets.models.dataset import DataType
from sheet_datasets.services.normalizer import looks_date_like, parse_timestamp
from sheet_datasets.utils.constants import DEFAULT_ROW_LIMIT, MAX_ROW_LIMIT, ROW_DATA_FIELD


class CompareOp(str, Enum):
    eq = "eq"
    ne = "ne"
    gt = "gt"
    gte = "gte"
    lt = "lt"
    lte = "lte"


@dataclass(frozen=True, slots=True)
class Compare:
    field: str
    op: CompareOp
    value: Any


@dataclass(frozen=True, slots=True)
class InSet:
    field: str
    values: tuple[str, ...]
    negate: bool = False


@dataclass(frozen=True, slots=True)
class Regex:
    field: str
    pattern: str
    case_insensitive: bool = True


@dataclass(frozen=True, slots=True)
class AnyOf:
    clauses: tuple["Expression", ...]


@dataclass(frozen=True, slots=True)
class AllOf:
    clauses: tuple["Expression", ...]


Expression = Union[Compare, InSet, Regex, AnyOf, AllOf]


@dataclass(frozen=True, slots=True)
class SortSpec:
    field: str
    direction: int = 1


@dataclass(frozen=True, slots=True)
class Pagination:
    skip: int = 0
    limit: int = DEFAULT_ROW_LIMIT

    @classmethod
    def from_params(
        cls,
        start: int | str | None = None,
        limit: int | str | None = None,
        *,
        max_limit: int = MAX_ROW_LIMIT,
        default_limit: int = DEFAULT_ROW_LIMIT,
    ) -> "Pagination":
        skip = max(0, _as_int(start, 0))
        requested = _as_int(limit, 0)
        resolved = requested if requested > 0 else default_limit
        return cls(skip=skip, limit=min(resolved, max_limit))


@dataclass(slots=True)
class FilterParams:
    """One field filter as received from a query string."""

    field: str
    value: str
    operator: str = "eq"
    data_type: DataType = DataType.string


def _as_int(value: int | str | None, default: int) -> int:
    if value is None:
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


# ---- type casting ----
_TRUE_TOKENS = frozenset({"true", "yes", "y", "1", "on", "t"})
_FALSE_TOKENS = frozenset({"false", "no", "n", "0", "off", "f"})
_NUMERIC = re.compile(r"^[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?$")


def is_numeric_text(raw: str) -> bool:
    return bool(_NUMERIC.match(raw.strip()))


def parse_bool_token(raw: str) -> bool:
    token = raw.strip().lower()
    if token in _TRUE_TOKENS:
        return True
    if token in _FALSE_TOKENS:
        return False
    raise ValueError(f"Not a boolean token: {raw!r}")


def _to_number(raw: str, data_type: DataType) -> int | float:
    text = raw.strip()
    if data_type is DataType.integer:
        try:
            return int(text)
        except ValueError:
            return int(float(text))
    return float(text)


def _wants_number(raw: str, data_type: DataType) -> bool:
    return is_numeric_text(raw) or data_type.is_numeric


def _wants_timestamp(raw: str, data_type: DataType) -> bool:
    return data_type.is_temporal or looks_date_like(raw)


def _always(raw: str, data_type: DataType) -> bool:
    return True


def _to_timestamp(raw: str, data_type: DataType) -> Any:
    return parse_timestamp(raw)


def _to_bool(raw: str, data_type: DataType) -> bool:
    return parse_bool_token(raw)


Caster = tuple[Callable[[str, DataType], bool], Callable[[str, DataType], Any]]

CAST_CHAIN: tuple[Caster, ...] = (
    (_wants_number, _to_number),
    (_wants_timestamp, _to_timestamp),
    (_always, _to_bool),
)
"""Ordered (predicate, converter) pairs; the first converter that succeeds wins."""


def cast_value(raw: Any, data_type: DataType = DataType.string) -> Any:
    if not isinstance(raw, str):
        return raw
    for applies, convert in CAST_CHAIN:
        if not applies(raw, data_type):
            continue
        try:
            return convert(raw, data_type)
        except (ValueError, OverflowError):
            continue
    return raw


# ---- operators ----
_REGEX_KEYS = frozenset({"regex", "r", "rgx"})
_CASE_SENSITIVE_REGEX_KEYS = frozenset({"rcs", "regex_cs", "rgxcs"})
_LIKE_KEYS = frozenset({"like", "l"})


def scoped_field(name: str, prefix: str | None = ROW_DATA_FIELD) -> str:
    cleaned = name.strip().lstrip("$").strip()
    if not cleaned:
        raise ValueError("Field name must not be empty")
    return f"{prefix}.{cleaned}" if prefix else cleaned


def split_values(raw: str) -> tuple[str, ...]:
    return tuple(part.strip() for part in raw.split(",") if part.strip())


def like_pattern(raw: str) -> str:
    return "^" + re.escape(raw).replace("%", ".*") + "$"


def safe_pattern(raw: str) -> str:
    """Keep a client regex when it compiles, otherwise match it literally."""
    try:
        re.compile(raw)
    except re.error:
        return re.escape(raw)
    return raw


def build_criterion(
    field_name: str,
    raw_value: Any,
    operator: str | None = None,
    data_type: DataType = DataType.string,
    *,
    prefix: str | None = ROW_DATA_FIELD,
) -> Expression:
    """Build one typed expression for a single field filter."""
    key = (operator or "eq").strip().lower()
    path = scoped_field(field_name, prefix)
    text = "" if raw_value is None else str(raw_value)

    if key in ("in", "nin"):
        return InSet(path, split_values(text), negate=key == "nin")
    if key in _REGEX_KEYS:
        return Regex(path, safe_pattern(text), case_insensitive=True)
    if key in _CASE_SENSITIVE_REGEX_KEYS:
        return Regex(path, safe_pattern(text), case_insensitive=False)
    if key in _LIKE_KEYS:
        return Regex(path, like_pattern(text), case_insensitive=True)
    if key == "starts":
        return Regex(path, "^" + re.escape(text), case_insensitive=True)
    if key == "ends":
        return Regex(path, re.escape(text) + "$", case_insensitive=True)

    try:
        op = CompareOp(key)
    except ValueError:
        op = CompareOp.eq
    return Compare(path, op, cast_value(raw_value, data_type))


def build_filter(params: FilterParams) -> Expression:
    return build_criterion(params.field, params.value, params.operator, params.data_type)


def combine(clauses: Sequence[Expression | None]) -> Expression | None:
    present = tuple(clause for clause in clauses if clause is not None)
    if not present:
        return None
    if len(present) == 1:
        return present[0]
    return AllOf(present)


# ---- dataset search ----
SEARCH_FIELDS: tuple[str, ...] = ("name", "imports.filename", "title", "description")
USER_REF_FIELD = "user_ref"


def build_search_criteria(search: str | None = None, user: str | None = None) -> Expression | None:
    """Match a free-text term across dataset labels and/or a user reference.

    Both criteria are ANDed when supplied together.
    """
    clauses: list[Expression] = []
    term = (search or "").strip()
    if term:
        pattern = r"\b" + re.escape(term)
        clauses.append(AnyOf(tuple(Regex(name, pattern) for name in SEARCH_FIELDS)))
    user_term = (user or "").strip()
    if user_term:
        clauses.append(Regex(USER_REF_FIELD, r"(?:^|\b)" + re.escape(user_term)))
    return combine(clauses)


# ---- sorting ----
_DESCENDING_PREFIXES = ("desc", "down", "dsc")


def parse_direction(raw: Any, default: int = 1) -> int:
    if raw is None:
        return default
    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        return -1 if raw < 0 else 1
    text = str(raw).strip().lower()
    if not text:
        return default
    if text == "asc":
        return 1
    if text == "desc":
        return -1
    try:
        return -1 if float(text) < 0 else 1
    except ValueError:
        pass
    return -1 if text.startswith(_DESCENDING_PREFIXES) else 1


def build_row_sort(field_name: str | None, direction: Any = None) -> SortSpec | None:
    if not field_name or not field_name.strip():
        return None
    return SortSpec(scoped_field(field_name), parse_direction(direction))


def build_dataset_sort(field_name: str | None = None, direction: Any = None) -> SortSpec:
    """Sort datasets by creation or last update; anything else sorts by creation."""
    key = (field_name or "").strip().lower()
    target = "created_at"
    if key.startswith(("up", "mod", "old")):
        target = "updated_at"
    return SortSpec(target, parse_direction(direction, default=-1))
