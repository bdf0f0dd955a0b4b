"""Tests for the path-addressed value store."""
import pytest

from sow_engine.models.value_store import MISSING, ValueStore, format_path, parse_path


@pytest.mark.parametrize("text,parts", [
    ("client_name", ("client_name",)),
    ("authorization_signatures.client_signature_name", ("authorization_signatures", "client_signature_name")),
    ("deliverables[0].name", ("deliverables", 0, "name")),
    ("matrix[1][2]", ("matrix", 1, 2)),
])
def test_parse_and_format_path(text, parts):
    assert parse_path(text) == parts
    assert format_path(parts) == text


@pytest.mark.parametrize("bad", ["", "a..b", "a[x]", "a]b"])
def test_malformed_paths(bad):
    with pytest.raises(ValueError):
        parse_path(bad)


def test_get_nested(store):
    assert store.get("project_duration.start_date") == "2025-03-05"
    assert store.get("project_duration.nope") is None
    assert store.get("project_duration.nope", "x") == "x"
    assert store.has("authorization_signatures.client_signature_name")
    assert not store.has("client_name")


def test_set_creates_containers():
    store = ValueStore()
    store.set("deliverables[1].name", "Report")
    store.set("fees.rate", 100)
    assert store.values == {"deliverables": [None, {"name": "Report"}], "fees": {"rate": 100}}


def test_set_rejects_leading_index():
    with pytest.raises(ValueError):
        ValueStore().set("[0]", "x")


def test_get_with_missing_sentinel():
    store = ValueStore.from_mapping({"po": None, "sow": {"meta": {"po": "nested"}}})
    assert store.get(("po",), MISSING) is None
    assert store.get(("missing",), MISSING) is MISSING
    assert store.get("sow.meta.po") == "nested"


def test_from_mapping_copies_input(values):
    store = ValueStore.from_mapping(values)
    store.set("project_duration.start_date", "2026-01-01")
    assert values["project_duration"]["start_date"] == "2025-03-05"


def test_none_images_are_dropped(png_bytes):
    store = ValueStore.from_mapping({}, {"logo": None})
    assert store.image("logo") is None
    assert store.images == {}
