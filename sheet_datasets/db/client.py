from __future__ import annotations

from typing import Any

from pymongo import MongoClient
from pymongo.collection import Collection
from pymongo.database import Database

from sheet_datasets.utils.config import StoreConfig, load_store_config
from sheet_datasets.utils.constants import DATASETS_COLLECTION, ROWS_COLLECTION
from sheet_datasets.utils.logging import get_logger, log_event

LOGGER = get_logger(__name__)


class StorageUnavailableError(RuntimeError):
    """Raised when the document store cannot complete an operation."""


def build_client(config: StoreConfig) -> MongoClient:
    options: dict[str, Any] = {
        "connectTimeoutMS": config.connection_timeout_seconds * 1000,
        "serverSelectionTimeoutMS": config.connection_timeout_seconds * 1000,
        "minPoolSize": config.min_pool_size,
        "maxPoolSize": config.max_pool_size,
    }
    if config.compressors:
        options["compressors"] = ",".join(config.compressors)
    return MongoClient(config.uri, **options)


class MongoStore:
    """Owns the pooled client shared by every request for the life of the process."""

    def __init__(self, client: Any, database_name: str) -> None:
        self.client = client
        self.database_name = database_name

    @classmethod
    def from_config(cls, config: StoreConfig | None = None) -> "MongoStore":
        resolved = config or load_store_config()
        log_event(
            LOGGER,
            "store.client.connect",
            database=resolved.database_name,
            min_pool_size=resolved.min_pool_size,
            max_pool_size=resolved.max_pool_size,
        )
        return cls(build_client(resolved), resolved.database_name)

    @property
    def database(self) -> Database:
        return self.client[self.database_name]

    def collection(self, name: str) -> Collection:
        return self.database[name]

    @property
    def datasets(self) -> Collection:
        return self.collection(DATASETS_COLLECTION)

    @property
    def rows(self) -> Collection:
        return self.collection(ROWS_COLLECTION)

    def ensure_indexes(self) -> None:
        self.datasets.create_index([("name", 1), ("sheet_index", 1)])
        self.datasets.create_index([("created_at", -1)])
        self.rows.create_index([("dataset_id", 1), ("import_id", 1)])

    def close(self) -> None:
        log_event(LOGGER, "store.client.close", database=self.database_name)
        self.client.close()
