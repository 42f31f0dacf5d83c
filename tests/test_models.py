"""Tests for path normalization, entry decoding and field validation."""

from __future__ import annotations

import pytest

from ktree.errors import InvalidPath, Malformed
from ktree.models import (
    MAX_TAGS,
    Entry,
    Relation,
    normalize_path,
    priority_order,
    validate_fields,
)
from ktree.relationships import are_inverse, inverse_of, is_symmetric, is_valid_kind


class TestNormalizePath:
    def test_lowercases_and_slugifies(self):
        assert normalize_path("Backend/Redis/Connection Pooling") == "backend/redis/connection-pooling.json"

    def test_keeps_existing_suffix(self):
        assert normalize_path("backend/pool.json") == "backend/pool.json"

    def test_strips_surrounding_slashes(self):
        assert normalize_path("/backend/pool/") == "backend/pool.json"

    def test_backslashes_become_separators(self):
        assert normalize_path("backend\\pool") == "backend/pool.json"

    def test_is_idempotent(self):
        key = normalize_path("A Thing/Other Thing")
        assert normalize_path(key) == key

    @pytest.mark.parametrize("path", ["", "   ", "/", ".json"])
    def test_rejects_empty(self, path):
        with pytest.raises(InvalidPath):
            normalize_path(path)

    @pytest.mark.parametrize("path", ["backend/../secrets", "./pool", "a//b", "!!!/pool"])
    def test_rejects_illegal_components(self, path):
        with pytest.raises(InvalidPath):
            normalize_path(path)

    def test_rejects_overlong(self):
        with pytest.raises(InvalidPath):
            normalize_path("a" * 300)


class TestEntryDecoding:
    def test_round_trips_unknown_keys(self):
        entry = Entry.from_dict({"priority": "COMMON", "problem": "p", "solution": "s", "owner": "ops"})
        assert entry.extra == {"owner": "ops"}
        assert entry.to_dict()["owner"] == "ops"

    def test_missing_required_fields_decode_empty(self):
        entry = Entry.from_dict({})
        assert (entry.priority, entry.problem, entry.solution) == ("", "", "")

    def test_tags_are_deduplicated(self):
        entry = Entry.from_dict({"priority": "COMMON", "problem": "p", "solution": "s", "tags": ["a", "b", "a"]})
        assert entry.tags == ["a", "b"]

    def test_related_to_decodes_relations(self):
        entry = Entry.from_dict({
            "priority": "COMMON", "problem": "p", "solution": "s",
            "related_to": [{"path": "x.json", "relationship": "related", "description": "why"}],
        })
        assert entry.related_to == [Relation("x.json", "related", "why")]
        assert entry.has_relation_to("x.json")
        assert not entry.has_relation_to("y.json")

    @pytest.mark.parametrize("doc", [
        [],
        {"problem": 3},
        {"tags": "one"},
        {"related_to": {"path": "x"}},
        {"related_to": [{"relationship": "related"}]},
        {"related_to": [{"path": "x.json"}]},
    ])
    def test_wrong_shape_is_malformed(self, doc):
        with pytest.raises(Malformed):
            Entry.from_dict(doc, where="bad.json")

    def test_relation_omits_empty_description(self):
        assert Relation("x.json", "related").to_dict() == {"path": "x.json", "relationship": "related"}


class TestValidateFields:
    def test_valid_entry_has_no_errors(self, entry_data):
        assert validate_fields(entry_data()) == []

    def test_reports_every_violation(self):
        errors = validate_fields({"priority": "URGENT", "problem": " ", "solution": ""})
        assert len(errors) == 3

    def test_partial_checks_only_present_keys(self):
        assert validate_fields({"title": "New title"}, partial=True) == []
        assert validate_fields({"priority": "nope"}, partial=True) != []

    def test_too_many_tags(self, entry_data):
        errors = validate_fields(entry_data(tags=[f"t{i}" for i in range(MAX_TAGS + 1)]))
        assert any("tags" in e for e in errors)

    def test_invalid_relationship_kind(self, entry_data):
        errors = validate_fields(entry_data(related_to=[{"path": "x", "relationship": "likes"}]))
        assert any("invalid relationship type" in e for e in errors)

    def test_accepts_relation_objects(self, entry_data):
        assert validate_fields(entry_data(related_to=[Relation("x", "related")])) == []


class TestTaxonomy:
    def test_symmetric_kinds(self):
        assert is_symmetric("related")
        assert is_symmetric("conflicts_with")
        assert not is_symmetric("supersedes")

    def test_inverses(self):
        assert inverse_of("supersedes") == "superseded_by"
        assert inverse_of("implemented_by") == "implements"
        assert inverse_of("related") == "related"
        assert inverse_of("bogus") is None
        assert are_inverse("implements", "implemented_by")
        assert not are_inverse("implements", "supersedes")

    def test_valid_kind(self):
        assert is_valid_kind("implements")
        assert not is_valid_kind("Implements")
        assert not is_valid_kind(None)

    def test_priority_order(self):
        ranks = [priority_order(p) for p in ("CRITICAL", "REQUIRED", "COMMON", "EDGE-CASE", "??")]
        assert ranks == sorted(ranks)
