from __future__ import annotations

import pytest
from pydantic import ValidationError

from sheet_datasets.models.dataset import CoreOptions, DataType, ReadMode


def test_core_options_blank_strings_become_none() -> None:
    options = CoreOptions(filename="  ", title=" Sales ", dataset_id="", data_pk=" sku ")

    assert options.filename is None
    assert options.title == "Sales"
    assert options.dataset_id is None
    assert options.data_pk == "sku"


def test_core_options_defaults() -> None:
    options = CoreOptions()

    assert options.mode is ReadMode.sync
    assert options.sheet_index == 0
    assert options.header_index == 0
    assert options.append is False


def test_core_options_mode_is_case_insensitive() -> None:
    assert CoreOptions(mode="PREVIEW").mode is ReadMode.preview
    assert CoreOptions(mode="").mode is ReadMode.sync


def test_core_options_rejects_negative_sheet_index() -> None:
    with pytest.raises(ValidationError):
        CoreOptions(sheet_index=-1)


@pytest.mark.parametrize(
    ("key", "expected"),
    [
        (None, DataType.string),
        ("text", DataType.string),
        ("Number", DataType.float),
        ("int", DataType.integer),
        ("datetime", DataType.datetime),
        ("bool", DataType.boolean),
        ("unknown", DataType.string),
    ],
)
def test_data_type_aliases(key: str | None, expected: DataType) -> None:
    assert DataType.from_key(key) is expected
