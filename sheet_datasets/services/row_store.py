from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from typing import Any

import bson
from bson import ObjectId
from bson.errors import BSONError
from pymongo.errors import PyMongoError

from sheet_datasets.db.client import MongoStore, StorageUnavailableError
from sheet_datasets.models.dataset import ReplaceMode
from sheet_datasets.services.criteria import Pagination, scoped_field
from sheet_datasets.services.normalizer import to_storage
from sheet_datasets.utils.constants import ROW_DATA_FIELD
from sheet_datasets.utils.logging import get_logger, log_event, log_timing

LOGGER = get_logger(__name__)


def resolve_replace_mode(append: bool, import_id_supplied: bool) -> ReplaceMode:
    if append:
        return ReplaceMode.append
    if import_id_supplied:
        return ReplaceMode.replace_import
    return ReplaceMode.replace_all


def is_encodable(document: Mapping[str, Any]) -> bool:
    try:
        bson.encode(document)
    except (BSONError, OverflowError):
        return False
    return True


def scope_filter(dataset_id: ObjectId, import_id: ObjectId | None = None) -> dict[str, Any]:
    criteria: dict[str, Any] = {"dataset_id": dataset_id}
    if import_id is not None:
        criteria["import_id"] = import_id
    return criteria


class RowStore:
    """Writes and reads row documents scoped to a dataset and import."""

    def __init__(self, store: MongoStore) -> None:
        self.store = store

    def save_rows(
        self,
        dataset_id: ObjectId,
        import_id: ObjectId,
        rows: Iterable[Any],
        *,
        mode: ReplaceMode = ReplaceMode.replace_all,
        data_pk: str | None = None,
    ) -> int:
        """Apply the replace mode, then insert rows or upsert them by primary key.

        Rows that are not mappings or that the store cannot encode are skipped
        before anything is deleted.
        Returns the number of rows inserted or updated. The delete and the writes
        are separate operations, so readers may briefly observe an empty scope.
        """
        documents = self._build_documents(dataset_id, import_id, rows)
        try:
            with log_timing(LOGGER, "store.rows.write", dataset_id=dataset_id, mode=mode.value):
                removed = self._clear_scope(dataset_id, import_id, mode)
                if data_pk:
                    written = self._upsert_by_key(dataset_id, import_id, documents, data_pk)
                else:
                    written = self._insert(documents)
        except PyMongoError as error:
            raise StorageUnavailableError(f"Failed to save rows for dataset {dataset_id}") from error

        log_event(
            LOGGER,
            "store.rows.written",
            dataset_id=dataset_id,
            import_id=import_id,
            mode=mode.value,
            removed=removed,
            written=written,
            submitted=len(documents),
        )
        return written

    def find_rows(
        self,
        criteria: Mapping[str, Any],
        *,
        pagination: Pagination,
        sort: Sequence[tuple[str, int]] = (),
    ) -> list[dict[str, Any]]:
        try:
            cursor = self.store.rows.find(dict(criteria))
            if sort:
                cursor = cursor.sort(list(sort))
            cursor = cursor.skip(pagination.skip).limit(pagination.limit)
            return list(cursor)
        except PyMongoError as error:
            raise StorageUnavailableError("Failed to read rows") from error

    def count_rows(self, criteria: Mapping[str, Any]) -> int:
        try:
            return self.store.rows.count_documents(dict(criteria))
        except PyMongoError as error:
            raise StorageUnavailableError("Failed to count rows") from error

    # ---- helpers ----
    def _build_documents(
        self,
        dataset_id: ObjectId,
        import_id: ObjectId,
        rows: Iterable[Any],
    ) -> list[dict[str, Any]]:
        documents: list[dict[str, Any]] = []
        skipped = 0
        unencodable = 0
        for row in rows:
            if not isinstance(row, Mapping):
                skipped += 1
                continue
            document = {"dataset_id": dataset_id, "import_id": import_id, ROW_DATA_FIELD: to_storage(row)}
            if not is_encodable(document):
                unencodable += 1
                continue
            documents.append(document)
        if skipped:
            LOGGER.warning("Skipped %d rows that were not key/value records", skipped)
        if unencodable:
            LOGGER.warning("Skipped %d rows the document store cannot encode", unencodable)
        return documents

    def _clear_scope(self, dataset_id: ObjectId, import_id: ObjectId, mode: ReplaceMode) -> int:
        if mode is ReplaceMode.append:
            return 0
        scope_import = import_id if mode is ReplaceMode.replace_import else None
        result = self.store.rows.delete_many(scope_filter(dataset_id, scope_import))
        return result.deleted_count

    def _insert(self, documents: list[dict[str, Any]]) -> int:
        if not documents:
            return 0
        result = self.store.rows.insert_many(documents, ordered=True)
        return len(result.inserted_ids)

    def _upsert_by_key(
        self,
        dataset_id: ObjectId,
        import_id: ObjectId,
        documents: list[dict[str, Any]],
        data_pk: str,
    ) -> int:
        key_name = data_pk.strip()
        key_path = scoped_field(key_name)
        unkeyed: list[dict[str, Any]] = []
        written = 0
        for document in documents:
            payload = document[ROW_DATA_FIELD]
            key_value = payload.get(key_name)
            if key_value is None:
                unkeyed.append(document)
                continue
            result = self.store.rows.update_one(
                {"dataset_id": dataset_id, key_path: key_value},
                {"$set": {"import_id": import_id, ROW_DATA_FIELD: payload}},
            )
            if result.matched_count:
                written += 1
                continue
            # inserted immediately so later rows in the same batch match it
            self.store.rows.insert_one(document)
            written += 1
        return written + self._insert(unkeyed)
