from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class DataType(str, Enum):
    string = "string"
    float = "float"
    integer = "integer"
    date = "date"
    datetime = "datetime"
    boolean = "boolean"

    @property
    def is_numeric(self) -> bool:
        return self in (DataType.float, DataType.integer)

    @property
    def is_temporal(self) -> bool:
        return self in (DataType.date, DataType.datetime)

    @classmethod
    def from_key(cls, key: str | None) -> "DataType":
        """Resolve loose type names sent by clients, defaulting to string."""
        if not key:
            return cls.string
        aliases = {
            "str": cls.string,
            "text": cls.string,
            "string": cls.string,
            "float": cls.float,
            "number": cls.float,
            "decimal": cls.float,
            "double": cls.float,
            "int": cls.integer,
            "integer": cls.integer,
            "date": cls.date,
            "datetime": cls.datetime,
            "bool": cls.boolean,
            "boolean": cls.boolean,
        }
        return aliases.get(key.strip().lower(), cls.string)


class ReplaceMode(str, Enum):
    append = "append"
    replace_import = "replace_import"
    replace_all = "replace_all"


class ReadMode(str, Enum):
    sync = "sync"
    async_ = "async"
    preview = "preview"


class CoreOptions(BaseModel):
    """Processing options that accompany a batch of parsed rows."""

    filename: str | None = None
    title: str | None = None
    description: str | None = None
    user_ref: str | None = None
    mode: ReadMode = ReadMode.sync
    max: int | None = Field(default=None, ge=0)
    keys: str | None = None
    lines: int | None = Field(default=None, ge=0)
    cols: str | None = None
    sheet_index: int = Field(default=0, ge=0)
    header_index: int = Field(default=0, ge=0)
    dataset_id: str | None = None
    import_id: str | None = None
    append: bool = False
    data_pk: str | None = None

    model_config = ConfigDict(extra="ignore")

    @field_validator("filename", "title", "description", "user_ref", "dataset_id", "import_id", "data_pk")
    @classmethod
    def _blank_to_none(cls, value: str | None) -> str | None:
        if value is None:
            return None
        text = value.strip()
        return text or None

    @field_validator("mode", mode="before")
    @classmethod
    def _default_mode(cls, value: Any) -> Any:
        if value is None or (isinstance(value, str) and not value.strip()):
            return ReadMode.sync
        if isinstance(value, str):
            return value.strip().lower()
        return value


class SaveResult(BaseModel):
    dataset_id: str
    import_id: str
    count: int
    mode: ReplaceMode


class RowSet(BaseModel):
    dataset: dict[str, Any]
    rows: list[dict[str, Any]] = Field(default_factory=list)
    total: int = 0
    limit: int = 0
    skip: int = 0


class DatasetListing(BaseModel):
    total: int = 0
    rows: list[dict[str, Any]] = Field(default_factory=list)
