from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from sheet_datasets.services.criteria import (
    AllOf,
    AnyOf,
    Compare,
    CompareOp,
    Expression,
    InSet,
    Regex,
    SortSpec,
)


def to_mongo_filter(expression: Expression | None) -> dict[str, Any]:
    """Compile a typed expression into a MongoDB filter document."""
    if expression is None:
        return {}
    if isinstance(expression, Compare):
        if expression.op is CompareOp.eq:
            return {expression.field: expression.value}
        return {expression.field: {f"${expression.op.value}": expression.value}}
    if isinstance(expression, InSet):
        operator = "$nin" if expression.negate else "$in"
        return {expression.field: {operator: list(expression.values)}}
    if isinstance(expression, Regex):
        condition: dict[str, Any] = {"$regex": expression.pattern}
        if expression.case_insensitive:
            condition["$options"] = "i"
        return {expression.field: condition}
    if isinstance(expression, AnyOf):
        return {"$or": [to_mongo_filter(clause) for clause in expression.clauses]}
    if isinstance(expression, AllOf):
        return merge_filters(*(to_mongo_filter(clause) for clause in expression.clauses))
    raise TypeError(f"Unsupported expression type: {type(expression).__name__}")


def merge_filters(*filters: dict[str, Any]) -> dict[str, Any]:
    """AND filter documents, nesting under `$and` only when keys collide."""
    merged: dict[str, Any] = {}
    extra: list[dict[str, Any]] = []
    for document in filters:
        if not document:
            continue
        if any(key in merged for key in document):
            extra.append(document)
            continue
        merged.update(document)
    if extra:
        if "$and" in merged:
            merged["$and"] = [*merged["$and"], *extra]
        else:
            merged["$and"] = extra
    return merged


def to_mongo_sort(specs: Sequence[SortSpec | None]) -> list[tuple[str, int]]:
    return [(spec.field, 1 if spec.direction >= 0 else -1) for spec in specs if spec is not None]
