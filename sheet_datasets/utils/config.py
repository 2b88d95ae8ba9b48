from __future__ import annotations

import os
from dataclasses import dataclass

from sheet_datasets.utils.constants import DEFAULT_ROW_LIMIT, MAX_ROW_LIMIT

DEFAULT_MONGO_URI = "mongodb://localhost:27017"
DEFAULT_MONGO_NAME = "sheet_datasets"
DEFAULT_CONNECTION_TIMEOUT_SECONDS = 6
DEFAULT_MIN_POOL_SIZE = 2
DEFAULT_MAX_POOL_SIZE = 64
DEFAULT_COMPRESSORS = ("zlib",)

MONGO_URI_ENV = "MONGO_URI"
MONGO_NAME_ENV = "MONGO_NAME"
MONGO_TIMEOUT_ENV = "MONGO_CONNECTION_TIMEOUT"
MONGO_MIN_POOL_ENV = "MONGO_MIN_POOL_SIZE"
MONGO_MAX_POOL_ENV = "MONGO_MAX_POOL_SIZE"
MONGO_COMPRESSORS_ENV = "MONGO_COMPRESSORS"
MAX_LIMIT_ENV = "MAX_LIMIT"
DEFAULT_LIMIT_ENV = "DEFAULT_LIMIT"


@dataclass(frozen=True)
class StoreConfig:
    uri: str
    database_name: str
    connection_timeout_seconds: int
    min_pool_size: int
    max_pool_size: int
    compressors: tuple[str, ...]


@dataclass(frozen=True)
class QueryConfig:
    max_limit: int = MAX_ROW_LIMIT
    default_limit: int = DEFAULT_ROW_LIMIT


def _int_from_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def get_mongo_uri() -> str:
    return os.getenv(MONGO_URI_ENV) or DEFAULT_MONGO_URI


def get_database_name() -> str:
    return os.getenv(MONGO_NAME_ENV) or DEFAULT_MONGO_NAME


def get_compressors() -> tuple[str, ...]:
    raw = os.getenv(MONGO_COMPRESSORS_ENV)
    if not raw:
        return DEFAULT_COMPRESSORS
    return tuple(part.strip().lower() for part in raw.split(",") if part.strip())


def load_store_config() -> StoreConfig:
    return StoreConfig(
        uri=get_mongo_uri(),
        database_name=get_database_name(),
        connection_timeout_seconds=_int_from_env(MONGO_TIMEOUT_ENV, DEFAULT_CONNECTION_TIMEOUT_SECONDS),
        min_pool_size=_int_from_env(MONGO_MIN_POOL_ENV, DEFAULT_MIN_POOL_SIZE),
        max_pool_size=_int_from_env(MONGO_MAX_POOL_ENV, DEFAULT_MAX_POOL_SIZE),
        compressors=get_compressors(),
    )


def load_query_config() -> QueryConfig:
    max_limit = max(1, _int_from_env(MAX_LIMIT_ENV, MAX_ROW_LIMIT))
    default_limit = max(1, _int_from_env(DEFAULT_LIMIT_ENV, DEFAULT_ROW_LIMIT))
    return QueryConfig(max_limit=max_limit, default_limit=min(default_limit, max_limit))


def get_server_address() -> tuple[str, int]:
    host = os.getenv("LOCAL_ADDRESS") or "0.0.0.0"
    return host, _int_from_env("PORT", 3000)
