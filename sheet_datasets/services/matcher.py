from __future__ import annotations

from dataclasses import dataclass

from bson import ObjectId

from sheet_datasets.services.criteria import AllOf, Compare, CompareOp, Expression
from sheet_datasets.services.normalizer import parse_object_id


@dataclass(frozen=True, slots=True)
class DatasetMatcher:
    """Locates one dataset either by id or by its (name, sheet index) pair."""

    dataset_id: ObjectId | None = None
    name: str | None = None
    sheet_index: int = 0

    @classmethod
    def from_id(cls, dataset_id: ObjectId) -> "DatasetMatcher":
        return cls(dataset_id=dataset_id)

    @classmethod
    def from_name_index(cls, name: str | None, sheet_index: int | None = 0) -> "DatasetMatcher":
        return cls(name=name or "", sheet_index=max(0, sheet_index or 0))

    @classmethod
    def resolve(
        cls,
        *,
        dataset_id: str | None,
        name: str | None,
        sheet_index: int | None,
    ) -> "DatasetMatcher":
        """Prefer a valid dataset id; fall back to name and sheet index."""
        object_id = parse_object_id(dataset_id) if dataset_id else None
        if object_id is not None:
            return cls.from_id(object_id)
        return cls.from_name_index(name, sheet_index)

    @property
    def by_id(self) -> bool:
        return self.dataset_id is not None

    def to_expression(self) -> Expression:
        if self.dataset_id is not None:
            return Compare("_id", CompareOp.eq, self.dataset_id)
        return AllOf(
            (
                Compare("name", CompareOp.eq, self.name),
                Compare("sheet_index", CompareOp.eq, self.sheet_index),
            )
        )
