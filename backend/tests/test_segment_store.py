from __future__ import annotations

import json
from pathlib import Path

import pytest

import bike_router.segment_store as segment_store_module
from bike_router.models import Coordinate, SlopeCategory, parse_slope
from bike_router.segment_store import (
    InMemorySegmentStore,
    JsonFileSegmentStore,
    default_segment_store,
    parse_segment,
    parse_segments,
)
from bike_router.settings import settings
from bike_router.store_errors import FROZEN_REASON_CODES, SegmentStoreError


def _doc(seg_id: str = "r1", **extra) -> dict:  # noqa: ANN003
    doc = {
        "id": seg_id,
        "points": [{"lat": 48.7758, "lng": 9.1829}, {"lat": 48.7762, "lng": 9.1840}],
    }
    doc.update(extra)
    return doc


def test_parse_segment_reads_frontend_document() -> None:
    seg = parse_segment(_doc(rating=4, slope="leicht", name="Neckarufer"))
    assert seg is not None
    assert seg.id == "r1"
    assert seg.points[0] == Coordinate(48.7758, 9.1829)
    assert seg.rating == 4.0
    assert seg.slope is SlopeCategory.LIGHT
    assert seg.name == "Neckarufer"


def test_parse_segment_accepts_lon_key_and_unknown_slope() -> None:
    doc = _doc(slope="bergig")
    doc["points"] = [{"lat": 1.0, "lon": 2.0}, {"lat": 1.5, "lon": 2.5}]
    seg = parse_segment(doc)
    assert seg is not None
    assert seg.points[1] == Coordinate(1.5, 2.5)
    assert seg.slope is None


@pytest.mark.parametrize(
    "raw",
    [
        None,
        "r1",
        {"points": []},
        _doc(seg_id="  "),
        {"id": "r1", "points": [{"lat": 1.0, "lng": 2.0}]},
        {"id": "r1", "points": [{"lat": 1.0, "lng": 2.0}, {"lat": 91.0, "lng": 2.0}]},
        {"id": "r1", "points": [{"lat": 1.0, "lng": 2.0}, {"lat": "x", "lng": 2.0}]},
        {"id": "r1", "points": "nope"},
    ],
)
def test_parse_segment_rejects_unroutable_documents(raw: object) -> None:
    assert parse_segment(raw) is None


@pytest.mark.parametrize(
    ("label", "expected"),
    [
        ("flach", SlopeCategory.FLAT),
        ("Leicht", SlopeCategory.LIGHT),
        ("mittel", SlopeCategory.MEDIUM),
        ("steil", SlopeCategory.STEEP),
        ("varierend", SlopeCategory.VARYING),
        ("steep", SlopeCategory.STEEP),
        ("", None),
        (3, None),
    ],
)
def test_parse_slope_aliases(label: object, expected: SlopeCategory | None) -> None:
    assert parse_slope(label) is expected


def test_parse_segments_skips_bad_documents_and_accepts_wrapped_payloads() -> None:
    payload = [_doc("a"), {"id": "broken"}, _doc("b")]
    assert [s.id for s in parse_segments(payload)] == ["a", "b"]
    assert [s.id for s in parse_segments({"routes": payload})] == ["a", "b"]
    assert [s.id for s in parse_segments({"segments": payload})] == ["a", "b"]


def test_parse_segments_rejects_non_list_payload() -> None:
    with pytest.raises(SegmentStoreError) as exc_info:
        parse_segments({"nothing": 1})
    assert exc_info.value.reason_code == "segment_store_invalid"


def test_json_file_store_missing_file_is_empty(tmp_path: Path) -> None:
    assert JsonFileSegmentStore(tmp_path / "missing.json").snapshot() == ()


def test_json_file_store_rereads_on_each_snapshot(tmp_path: Path) -> None:
    path = tmp_path / "routes.json"
    path.write_text(json.dumps([_doc("a")]), encoding="utf-8")
    store = JsonFileSegmentStore(path)
    assert [s.id for s in store.snapshot()] == ["a"]

    path.write_text(json.dumps([_doc("a"), _doc("b")]), encoding="utf-8")
    assert [s.id for s in store.snapshot()] == ["a", "b"]


def test_json_file_store_invalid_json_raises_unavailable(tmp_path: Path) -> None:
    path = tmp_path / "routes.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(SegmentStoreError) as exc_info:
        JsonFileSegmentStore(path).snapshot()
    assert exc_info.value.reason_code == "segment_store_unavailable"
    assert "JSONDecodeError" in exc_info.value.details["error"]


def test_default_segment_store_follows_settings(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setattr(settings, "segments_path", "")
    assert isinstance(default_segment_store(), InMemorySegmentStore)

    monkeypatch.setattr(settings, "segments_path", str(tmp_path / "routes.json"))
    store = default_segment_store()
    assert isinstance(store, JsonFileSegmentStore)
    assert store.path == tmp_path / "routes.json"


def test_skipped_documents_are_logged_with_reason_code(monkeypatch: pytest.MonkeyPatch) -> None:
    events: list[tuple[str, dict]] = []
    monkeypatch.setattr(segment_store_module, "log_warning", lambda event, **fields: events.append((event, fields)))

    parse_segments([_doc("a"), {"id": "broken"}, {"id": "worse", "points": "nope"}])

    assert events == [
        (
            "segment_documents_skipped",
            {"reason_code": "segment_document_invalid", "skipped": 2, "kept": 1},
        )
    ]
    assert "segment_document_invalid" in FROZEN_REASON_CODES


def test_clean_snapshot_logs_nothing(monkeypatch: pytest.MonkeyPatch) -> None:
    events: list[str] = []
    monkeypatch.setattr(segment_store_module, "log_warning", lambda event, **fields: events.append(event))
    parse_segments([_doc("a")])
    assert events == []
