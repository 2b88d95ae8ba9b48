from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Annotated, Any

from fastapi import Depends, FastAPI, HTTPException, Query, Request, status
from pydantic import BaseModel, ConfigDict, Field
from pymongo.errors import PyMongoError

from sheet_datasets.db.client import MongoStore, StorageUnavailableError
from sheet_datasets.models.dataset import CoreOptions, DatasetListing, DataType, RowSet, SaveResult
from sheet_datasets.services.criteria import (
    Expression,
    FilterParams,
    build_dataset_sort,
    build_filter,
    build_row_sort,
)
from sheet_datasets.services.dataset_repository import DatasetRepository
from sheet_datasets.utils.logging import get_logger

LOGGER = get_logger(__name__)

API_TITLE = "Sheet Datasets API"
API_VERSION = "0.1.0"


class SaveDatasetRequest(BaseModel):
    options: CoreOptions = Field(default_factory=CoreOptions)
    rows: list[dict[str, Any]] = Field(default_factory=list)
    import_id: str | None = None
    append: bool | None = None

    model_config = ConfigDict(extra="ignore")


def _describe_routes() -> dict[str, Any]:
    return {
        "title": API_TITLE,
        "version": API_VERSION,
        "routes": {
            "dataset": {
                "method": "GET",
                "path": "/dataset/{dataset_id}",
                "parameters": {
                    "f": "Field name within the row data",
                    "v": "Field value",
                    "o": "Operator: eq, ne, gt, gte, lt, lte, in, nin, like, rgx, rcs, starts, ends",
                    "dt": "Value type: string, float, integer, date, datetime, boolean",
                    "sort": "Sort field",
                    "dir": "Sort direction (asc or desc)",
                    "start": "Start offset",
                    "limit": "Rows per page",
                    "import_id": "Restrict rows to one import",
                },
            },
            "datasets": {
                "method": "GET",
                "path": "/datasets",
                "parameters": {
                    "q": "Free-text search over name, filename, title and description",
                    "user": "User reference prefix",
                    "sort": "created or updated",
                    "dir": "Sort direction (asc or desc)",
                    "start": "Start offset",
                    "limit": "Datasets per page",
                },
            },
            "save": {
                "method": "POST",
                "path": "/dataset",
                "description": "Save parsed rows with their processing options",
            },
        },
    }


def get_repository(request: Request) -> DatasetRepository:
    return request.app.state.repository


def create_app(*, repository: DatasetRepository | None = None) -> FastAPI:
    """Create the HTTP surface; owns a store connection unless a repository is injected."""
    store: MongoStore | None = None
    if repository is None:
        store = MongoStore.from_config()
        repository = DatasetRepository(store)

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        if store is not None:
            try:
                store.ensure_indexes()
            except PyMongoError as error:
                LOGGER.warning("Could not ensure indexes at startup: %s", error)
        try:
            yield
        finally:
            if store is not None:
                store.close()

    app = FastAPI(title=API_TITLE, version=API_VERSION, lifespan=lifespan)
    app.state.repository = repository

    @app.get("/", response_model=dict)
    def welcome() -> dict[str, Any]:
        return _describe_routes()

    @app.get("/dataset/{dataset_id}", response_model=RowSet)
    def fetch_dataset(
        dataset_id: str,
        repo: Annotated[DatasetRepository, Depends(get_repository)],
        f: str | None = None,
        v: str | None = None,
        o: str | None = None,
        dt: str | None = None,
        sort: str | None = None,
        direction: Annotated[str | None, Query(alias="dir")] = None,
        start: Annotated[int | None, Query(ge=0)] = None,
        limit: Annotated[int | None, Query(ge=0)] = None,
        import_id: str | None = None,
    ) -> RowSet:
        filters: list[Expression] = []
        try:
            if f and v is not None:
                params = FilterParams(field=f, value=v, operator=o or "eq", data_type=DataType.from_key(dt))
                filters.append(build_filter(params))
            order = build_row_sort(sort, direction)
        except ValueError as error:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(error)) from error

        try:
            row_set = repo.fetch_dataset(
                dataset_id,
                import_id,
                filters,
                repo.paginate(start, limit),
                order,
            )
        except StorageUnavailableError as error:
            raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(error)) from error
        if row_set is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Dataset not found")
        return row_set

    @app.get("/datasets", response_model=DatasetListing)
    def list_datasets(
        repo: Annotated[DatasetRepository, Depends(get_repository)],
        q: str | None = None,
        user: str | None = None,
        sort: str | None = None,
        direction: Annotated[str | None, Query(alias="dir")] = None,
        start: Annotated[int | None, Query(ge=0)] = None,
        limit: Annotated[int | None, Query(ge=0)] = None,
    ) -> DatasetListing:
        try:
            return repo.list_datasets(
                q,
                user,
                repo.paginate(start, limit),
                build_dataset_sort(sort, direction),
            )
        except StorageUnavailableError as error:
            raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(error)) from error

    @app.post("/dataset", response_model=SaveResult)
    def save_dataset(
        payload: SaveDatasetRequest,
        repo: Annotated[DatasetRepository, Depends(get_repository)],
    ) -> SaveResult:
        try:
            result = repo.save_import_with_rows(
                payload.options,
                payload.rows,
                import_id=payload.import_id,
                append=payload.append,
            )
        except StorageUnavailableError as error:
            raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(error)) from error
        if result is None:
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="Dataset could not be saved",
            )
        return result

    return app
