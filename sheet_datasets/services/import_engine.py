from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from typing import Any

from bson import ObjectId
from pymongo.errors import PyMongoError

from sheet_datasets.db.client import MongoStore
from sheet_datasets.db.mongo_query import to_mongo_filter
from sheet_datasets.models.dataset import CoreOptions
from sheet_datasets.services.matcher import DatasetMatcher
from sheet_datasets.services.normalizer import parse_object_id, to_storage_datetime
from sheet_datasets.utils.constants import TRANSPORT_ONLY_OPTIONS
from sheet_datasets.utils.logging import format_event, get_logger, log_event

LOGGER = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class ImportResolution:
    dataset_id: ObjectId
    import_id: ObjectId
    created: bool = False
    reused_import: bool = False
    import_supplied: bool = False


def options_document(options: CoreOptions) -> dict[str, Any]:
    """Processing options minus the fields stored as dataset attributes."""
    return options.model_dump(mode="json", exclude=set(TRANSPORT_ONLY_OPTIONS), exclude_none=True)


def build_import_entry(
    import_id: ObjectId,
    *,
    filename: str | None,
    sheet_index: int,
    created_at: datetime,
) -> dict[str, Any]:
    return {
        "_id": import_id,
        "dt": created_at,
        "filename": filename or "",
        "sheet_index": sheet_index,
    }


def find_import_index(imports: Sequence[Any], import_id: ObjectId) -> int | None:
    for index, entry in enumerate(imports):
        if isinstance(entry, Mapping) and entry.get("_id") == import_id:
            return index
    return None


class ImportUpsertEngine:
    """Find or create the dataset for a batch and record the import event on it."""

    def __init__(self, store: MongoStore) -> None:
        self.store = store

    def save_import(self, options: CoreOptions, import_id: str | None = None) -> ImportResolution | None:
        """Return dataset and import ids for this save, or None when storage failed."""
        matcher = DatasetMatcher.resolve(
            dataset_id=options.dataset_id,
            name=options.filename,
            sheet_index=options.sheet_index,
        )
        raw_import_id = (import_id or "").strip() or options.import_id or ""
        requested_import = parse_object_id(raw_import_id)
        settings = options_document(options)
        now = to_storage_datetime(datetime.now(UTC))
        try:
            resolution = self._update_existing(matcher, options, settings, requested_import, now)
            if resolution is None:
                resolution = self._insert_new(options, settings, now)
        except PyMongoError as error:
            LOGGER.exception(
                format_event(
                    "store.import.failed",
                    {"filename": options.filename, "dataset_id": options.dataset_id, "error": str(error)},
                )
            )
            return None

        if raw_import_id:
            resolution = replace(resolution, import_supplied=True)

        log_event(
            LOGGER,
            "store.import.resolved",
            dataset_id=resolution.dataset_id,
            import_id=resolution.import_id,
            created=resolution.created,
            reused_import=resolution.reused_import,
            import_supplied=resolution.import_supplied,
            matched_by="id" if matcher.by_id else "name_index",
        )
        return resolution

    # ---- helpers ----
    def _update_existing(
        self,
        matcher: DatasetMatcher,
        options: CoreOptions,
        settings: dict[str, Any],
        requested_import: ObjectId | None,
        now: datetime,
    ) -> ImportResolution | None:
        dataset = self.store.datasets.find_one(to_mongo_filter(matcher.to_expression()))
        if dataset is None:
            return None

        updates: dict[str, Any] = {
            "options": settings,
            "title": options.title,
            "description": options.description,
            "updated_at": now,
        }
        if options.filename:
            updates["name"] = options.filename
        if options.user_ref is not None:
            updates["user_ref"] = options.user_ref

        imports = dataset.get("imports") or []
        index = find_import_index(imports, requested_import) if requested_import is not None else None
        if index is not None:
            previous = imports[index]
            entry = build_import_entry(
                requested_import,
                filename=options.filename or previous.get("filename"),
                sheet_index=options.sheet_index,
                created_at=now,
            )
            updates[f"imports.{index}"] = entry
            update: dict[str, Any] = {"$set": updates}
        else:
            entry = build_import_entry(
                ObjectId(),
                filename=options.filename or dataset.get("name"),
                sheet_index=options.sheet_index,
                created_at=now,
            )
            update = {"$set": updates, "$push": {"imports": entry}}

        self.store.datasets.update_one({"_id": dataset["_id"]}, update)
        return ImportResolution(
            dataset_id=dataset["_id"],
            import_id=entry["_id"],
            created=False,
            reused_import=index is not None,
        )

    def _insert_new(self, options: CoreOptions, settings: dict[str, Any], now: datetime) -> ImportResolution:
        entry = build_import_entry(
            ObjectId(),
            filename=options.filename,
            sheet_index=options.sheet_index,
            created_at=now,
        )
        document = {
            "name": options.filename or "",
            "title": options.title,
            "description": options.description,
            "user_ref": options.user_ref,
            "sheet_index": options.sheet_index,
            "options": settings,
            "imports": [entry],
            "created_at": now,
            "updated_at": now,
        }
        result = self.store.datasets.insert_one(document)
        return ImportResolution(dataset_id=result.inserted_id, import_id=entry["_id"], created=True)
