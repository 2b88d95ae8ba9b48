from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from pymongo.errors import PyMongoError

from sheet_datasets.db.client import MongoStore, StorageUnavailableError
from sheet_datasets.db.mongo_query import merge_filters, to_mongo_filter, to_mongo_sort
from sheet_datasets.models.dataset import CoreOptions, DatasetListing, RowSet, SaveResult
from sheet_datasets.services.criteria import (
    Expression,
    Pagination,
    SortSpec,
    build_dataset_sort,
    build_search_criteria,
)
from sheet_datasets.services.import_engine import ImportUpsertEngine
from sheet_datasets.services.normalizer import from_storage, parse_object_id
from sheet_datasets.services.row_store import RowStore, resolve_replace_mode, scope_filter
from sheet_datasets.utils.config import QueryConfig, load_query_config
from sheet_datasets.utils.constants import ROW_DATA_FIELD
from sheet_datasets.utils.logging import get_logger, log_event
from sheet_datasets.utils.metrics import emit_store_metric, measure_store

LOGGER = get_logger(__name__)


class DatasetRepository:
    """Entry point for saving row batches and reading datasets back."""

    def __init__(self, store: MongoStore, *, query_config: QueryConfig | None = None) -> None:
        self.store = store
        self.query_config = query_config or load_query_config()
        self.imports = ImportUpsertEngine(store)
        self.rows = RowStore(store)

    def paginate(self, start: int | str | None = None, limit: int | str | None = None) -> Pagination:
        return Pagination.from_params(
            start,
            limit,
            max_limit=self.query_config.max_limit,
            default_limit=self.query_config.default_limit,
        )

    # ---- write path ----
    def save_import_with_rows(
        self,
        options: CoreOptions,
        rows: Iterable[Mapping[str, Any]],
        import_id: str | None = None,
        append: bool | None = None,
    ) -> SaveResult | None:
        """Resolve the dataset/import pair, then write rows under the derived replace mode.

        A supplied import id always limits replacement to one import. When the id is
        unknown it resolves to a fresh import, so nothing else is deleted.
        Returns None when no identifiers could be produced; no rows are written then.
        """
        resolution = self.imports.save_import(options, import_id)
        if resolution is None:
            log_event(LOGGER, "store.save.aborted", filename=options.filename, dataset_id=options.dataset_id)
            return None

        should_append = options.append if append is None else append
        mode = resolve_replace_mode(should_append, resolution.import_supplied)
        count = self.rows.save_rows(
            resolution.dataset_id,
            resolution.import_id,
            rows,
            mode=mode,
            data_pk=options.data_pk,
        )
        emit_store_metric(
            "rows.saved",
            dataset_id=str(resolution.dataset_id),
            import_id=str(resolution.import_id),
            count=count,
            mode=mode.value,
            created=resolution.created,
        )
        return SaveResult(
            dataset_id=str(resolution.dataset_id),
            import_id=str(resolution.import_id),
            count=count,
            mode=mode,
        )

    # ---- read path ----
    def get_dataset(self, dataset_id: str) -> dict[str, Any] | None:
        object_id = parse_object_id(dataset_id)
        if object_id is None:
            return None
        try:
            return self.store.datasets.find_one({"_id": object_id})
        except PyMongoError as error:
            raise StorageUnavailableError(f"Failed to load dataset {dataset_id}") from error

    def fetch_dataset(
        self,
        dataset_id: str,
        import_id: str | None = None,
        filters: Sequence[Expression] = (),
        pagination: Pagination | None = None,
        sort: SortSpec | None = None,
        *,
        with_total: bool = True,
    ) -> RowSet | None:
        """Return a page of rows for one dataset, or None when the dataset is unknown."""
        page = pagination or self.paginate()
        with measure_store("dataset.fetch", dataset_id=dataset_id, skip=page.skip, limit=page.limit):
            dataset = self.get_dataset(dataset_id)
            if dataset is None:
                return None

            import_object_id = None
            if import_id:
                import_object_id = parse_object_id(import_id)
                if import_object_id is None:
                    return None

            criteria = merge_filters(
                scope_filter(dataset["_id"], import_object_id),
                *(to_mongo_filter(expression) for expression in filters),
            )
            documents = self.rows.find_rows(criteria, pagination=page, sort=to_mongo_sort([sort]))
            rows = [
                from_storage(document[ROW_DATA_FIELD])
                for document in documents
                if isinstance(document.get(ROW_DATA_FIELD), Mapping)
            ]
            total = self.rows.count_rows(criteria) if with_total else len(rows)

        return RowSet(
            dataset=from_storage(dataset),
            rows=rows,
            total=total,
            limit=page.limit,
            skip=page.skip,
        )

    def list_datasets(
        self,
        search: str | None = None,
        user: str | None = None,
        pagination: Pagination | None = None,
        sort: SortSpec | None = None,
    ) -> DatasetListing:
        page = pagination or self.paginate()
        criteria = to_mongo_filter(build_search_criteria(search, user))
        order = to_mongo_sort([sort or build_dataset_sort()])
        with measure_store("datasets.list", skip=page.skip, limit=page.limit, searched=bool(search or user)):
            try:
                total = self.store.datasets.count_documents(criteria)
                documents = list(
                    self.store.datasets.find(criteria).sort(order).skip(page.skip).limit(page.limit)
                )
            except PyMongoError as error:
                raise StorageUnavailableError("Failed to list datasets") from error
        return DatasetListing(total=total, rows=[from_storage(document) for document in documents])
