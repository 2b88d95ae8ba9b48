from __future__ import annotations

from sheet_datasets.utils import metrics
from sheet_datasets.utils.metrics import emit_store_metric, emit_store_timing, measure_store, timing_payload


def test_emit_store_metric_returns_payload() -> None:
    payload = emit_store_metric("rows.saved", count=3, mode="append")
    assert payload["event"] == "store.rows.saved"
    assert payload["count"] == 3
    assert payload["mode"] == "append"
    assert "timestamp" in payload


def test_timing_payload_includes_elapsed() -> None:
    payload = timing_payload("store.dataset.fetch", elapsed_ms=12.5, skip=0)
    assert payload["event"] == "store.dataset.fetch.timing"
    assert payload["elapsed_ms"] == 12.5


def test_emit_store_timing_prefixes_event() -> None:
    payload = emit_store_timing("datasets.list", elapsed_ms=5.0, limit=100)
    assert payload["event"] == "store.datasets.list.timing"
    assert payload["limit"] == 100


def test_measure_store_wraps_block(monkeypatch) -> None:
    calls: list[dict] = []

    def _mock_emit(event: str, *, elapsed_ms: float, **fields) -> dict:
        payload = {"event": event, "elapsed_ms": elapsed_ms, **fields}
        calls.append(payload)
        return payload

    monkeypatch.setattr(metrics, "emit_store_timing", _mock_emit)

    with measure_store("dataset.fetch", dataset_id="abc"):
        pass

    assert calls, "Expected timing emission from measure_store"
    assert calls[0]["event"] == "dataset.fetch"
    assert calls[0]["dataset_id"] == "abc"
    assert calls[0]["elapsed_ms"] >= 0
