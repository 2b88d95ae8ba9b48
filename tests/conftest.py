from __future__ import annotations

import os
import tempfile

os.environ.setdefault("SHEET_DATASETS_LOG_DIR", tempfile.mkdtemp(prefix="sheet-datasets-logs-"))

import mongomock  # noqa: E402
import pytest  # noqa: E402
from pymongo.errors import ServerSelectionTimeoutError  # noqa: E402

from sheet_datasets.db.client import MongoStore  # noqa: E402
from sheet_datasets.models.dataset import CoreOptions  # noqa: E402
from sheet_datasets.services.dataset_repository import DatasetRepository  # noqa: E402
from sheet_datasets.utils.config import QueryConfig  # noqa: E402


class _UnavailableCollection:
    def __getattr__(self, name: str):
        def _raise(*args, **kwargs):
            raise ServerSelectionTimeoutError("No servers available")

        return _raise


class UnavailableStore(MongoStore):
    """Store whose every collection call fails like an unreachable server."""

    def collection(self, name: str):
        return _UnavailableCollection()


@pytest.fixture
def mongo_client() -> mongomock.MongoClient:
    return mongomock.MongoClient()


@pytest.fixture
def store(mongo_client: mongomock.MongoClient) -> MongoStore:
    return MongoStore(mongo_client, "sheet_datasets_test")


@pytest.fixture
def repository(store: MongoStore) -> DatasetRepository:
    return DatasetRepository(store, query_config=QueryConfig(max_limit=10_000, default_limit=100))


@pytest.fixture
def unavailable_repository(mongo_client: mongomock.MongoClient) -> DatasetRepository:
    return DatasetRepository(UnavailableStore(mongo_client, "unreachable"), query_config=QueryConfig())


@pytest.fixture
def sales_rows() -> list[dict[str, object]]:
    return [
        {"sku": "A-100", "region": "North", "units": 12, "price": 9.5, "sold_on": "2024-01-05"},
        {"sku": "A-200", "region": "South", "units": 30, "price": 4.25, "sold_on": "2024-02-11"},
        {"sku": "B-300", "region": "North", "units": 7, "price": 19.0, "sold_on": "2024-03-20"},
    ]


@pytest.fixture
def make_options():
    def _factory(**overrides: object) -> CoreOptions:
        values: dict[str, object] = {"filename": "sales.xlsx", "sheet_index": 0}
        values.update(overrides)
        return CoreOptions(**values)

    return _factory
