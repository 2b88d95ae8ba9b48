"""Shared constants for dataset storage, query limits and option handling."""

from __future__ import annotations

DATASETS_COLLECTION = "datasets"
ROWS_COLLECTION = "data_rows"

ROW_DATA_FIELD = "data"
"""Rows keep their source payload nested under this key."""

DEFAULT_ROW_LIMIT = 100
MAX_ROW_LIMIT = 10_000
"""Hard ceiling for a single page regardless of the requested limit."""

TRANSPORT_ONLY_OPTIONS: tuple[str, ...] = (
    "dataset_id",
    "import_id",
    "filename",
    "title",
    "description",
    "user_ref",
)
"""Option keys promoted to dataset attributes instead of being kept in `options`."""
