from __future__ import annotations

from bson import ObjectId

from sheet_datasets.db.mongo_query import to_mongo_filter
from sheet_datasets.services.matcher import DatasetMatcher


def test_valid_identifier_takes_precedence() -> None:
    dataset_id = ObjectId()
    matcher = DatasetMatcher.resolve(dataset_id=str(dataset_id), name="sales.xlsx", sheet_index=2)

    assert matcher.by_id
    assert to_mongo_filter(matcher.to_expression()) == {"_id": dataset_id}


def test_malformed_identifier_falls_back_to_name_and_index() -> None:
    matcher = DatasetMatcher.resolve(dataset_id="12345", name="sales.xlsx", sheet_index=2)

    assert not matcher.by_id
    assert to_mongo_filter(matcher.to_expression()) == {"name": "sales.xlsx", "sheet_index": 2}


def test_missing_name_and_index_use_defaults() -> None:
    matcher = DatasetMatcher.resolve(dataset_id=None, name=None, sheet_index=None)

    assert to_mongo_filter(matcher.to_expression()) == {"name": "", "sheet_index": 0}
