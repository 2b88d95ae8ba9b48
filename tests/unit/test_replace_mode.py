from __future__ import annotations

import pytest
from bson import ObjectId

from sheet_datasets.models.dataset import CoreOptions, ReplaceMode
from sheet_datasets.services.import_engine import find_import_index, options_document
from sheet_datasets.services.row_store import is_encodable, resolve_replace_mode, scope_filter


@pytest.mark.parametrize(
    ("append", "import_supplied", "expected"),
    [
        (True, True, ReplaceMode.append),
        (True, False, ReplaceMode.append),
        (False, True, ReplaceMode.replace_import),
        (False, False, ReplaceMode.replace_all),
    ],
)
def test_resolve_replace_mode(append: bool, import_supplied: bool, expected: ReplaceMode) -> None:
    assert resolve_replace_mode(append, import_supplied) is expected


def test_scope_filter_narrows_to_import_when_given() -> None:
    dataset_id, import_id = ObjectId(), ObjectId()

    assert scope_filter(dataset_id) == {"dataset_id": dataset_id}
    assert scope_filter(dataset_id, import_id) == {"dataset_id": dataset_id, "import_id": import_id}


def test_options_document_drops_promoted_fields() -> None:
    options = CoreOptions(
        filename="sales.xlsx",
        title="Sales",
        description="Quarterly",
        user_ref="ann",
        dataset_id=str(ObjectId()),
        import_id=str(ObjectId()),
        sheet_index=1,
        header_index=2,
        mode="preview",
        data_pk="sku",
    )

    document = options_document(options)

    for key in ("filename", "title", "description", "user_ref", "dataset_id", "import_id"):
        assert key not in document
    assert document["sheet_index"] == 1
    assert document["header_index"] == 2
    assert document["mode"] == "preview"
    assert document["data_pk"] == "sku"
    assert document["append"] is False


def test_find_import_index_matches_by_identity() -> None:
    first, second = ObjectId(), ObjectId()
    imports = [{"_id": first, "filename": "a"}, "junk", {"_id": second, "filename": "b"}]

    assert find_import_index(imports, second) == 2
    assert find_import_index(imports, ObjectId()) is None


def test_is_encodable_rejects_values_the_store_cannot_hold() -> None:
    assert is_encodable({"data": {"sku": "A-100", "units": 2**63 - 1}})
    assert not is_encodable({"data": {"code": 2**70}})
    assert not is_encodable({"data": {"tags": {"a", "b"}}})
