"""Tests for KnowledgeTree.create and KnowledgeTree.update."""

from __future__ import annotations

import pytest

from ktree.errors import Conflict, InvalidPath, NotFound, ValidationError
from ktree.models import Entry, Relation


class TestCreate:
    def test_normalizes_path_and_stamps_times(self, tree, entry_data, raw):
        result = tree.create("Backend/Redis/Connection Pooling", entry_data())

        assert result.path == "backend/redis/connection-pooling.json"
        doc = raw(result.path)
        assert doc["created_at"] == doc["updated_at"]
        assert doc["problem"] == entry_data()["problem"]

    def test_accepts_entry_objects(self, tree):
        result = tree.create("x", Entry(priority="EDGE-CASE", problem="p", solution="s"))
        assert tree.get("x").priority == "EDGE-CASE"
        assert result.entry is not None

    def test_duplicate_is_conflict(self, tree, entry_data):
        tree.create("a", entry_data())
        with pytest.raises(Conflict):
            tree.create("A.json", entry_data())

    def test_collects_all_field_errors(self, tree):
        with pytest.raises(ValidationError) as exc_info:
            tree.create("a", {"priority": "LOW", "problem": "", "solution": ""})
        assert len(exc_info.value.errors) == 3
        assert not tree.exists("a")

    def test_field_and_relation_errors_reported_together(self, tree, entry_data):
        with pytest.raises(ValidationError) as exc_info:
            tree.create("a", entry_data(priority="LOW", related_to=[{"path": "ghost", "relationship": "related"}]))
        errors = exc_info.value.errors
        assert any("Priority" in e for e in errors)
        assert "Related entry not found: ghost.json" in errors

    def test_self_link_rejected(self, tree, entry_data):
        with pytest.raises(ValidationError):
            tree.create("a", entry_data(related_to=[{"path": "A", "relationship": "related"}]))

    def test_invalid_path(self, tree, entry_data):
        with pytest.raises(InvalidPath):
            tree.create("../up", entry_data())

    def test_relation_targets_normalized_and_deduplicated(self, tree, entry_data):
        tree.create("b", entry_data())
        tree.create("a", entry_data(related_to=[
            {"path": "B", "relationship": "implements"},
            {"path": "b.json", "relationship": "implements"},
        ]))
        assert tree.get("a").related_to == [Relation("b.json", "implements")]

    def test_notifies_entry_added(self, tree, sink, entry_data):
        tree.create("a", entry_data())
        assert sink.events[0][0] == "entry_added"
        assert sink.events[0][1]["path"] == "a.json"
        assert sink.events[0][1]["data"]["title"] == entry_data()["title"]


class TestUpdate:
    def test_patches_fields_and_refreshes_updated_at(self, tree, entry_data, raw):
        tree.create("a", entry_data(created_at="2024-01-01T00:00:00+00:00", updated_at="2024-01-01T00:00:00+00:00"))

        tree.update("a", {"title": "Renamed", "tags": ["redis"]})

        doc = raw("a.json")
        assert doc["title"] == "Renamed"
        assert doc["tags"] == ["redis"]
        assert doc["created_at"] == "2024-01-01T00:00:00+00:00"
        assert doc["updated_at"] != "2024-01-01T00:00:00+00:00"

    def test_null_clears_optional_field(self, tree, entry_data):
        tree.create("a", entry_data(context="only on Linux"))
        tree.update("a", {"context": None})
        assert tree.get("a").context is None

    def test_clearing_required_field_fails(self, tree, entry_data):
        tree.create("a", entry_data())
        with pytest.raises(ValidationError):
            tree.update("a", {"problem": None})

    def test_unknown_field_rejected(self, tree, entry_data):
        tree.create("a", entry_data())
        with pytest.raises(ValidationError) as exc_info:
            tree.update("a", {"created_at": "yesterday", "colour": "red"})
        assert len(exc_info.value.errors) == 2

    def test_missing_entry(self, tree):
        with pytest.raises(NotFound):
            tree.update("ghost", {"title": "x"})

    def test_failed_update_writes_nothing(self, tree, entry_data, raw):
        tree.create("a", entry_data())
        before = raw("a.json")
        with pytest.raises(ValidationError):
            tree.update("a", {"title": "ok", "priority": "bogus"})
        assert raw("a.json") == before

    def test_adding_relation_mirrors(self, tree, entry_data):
        tree.create("a", entry_data())
        tree.create("b", entry_data())

        tree.update("a", {"related_to": [Relation("b", "related")]})

        assert tree.get("b").related_to == [Relation("a.json", "related")]

    def test_retyping_relation_swaps_mirror(self, tree, entry_data):
        tree.create("b", entry_data())
        tree.create("a", entry_data(related_to=[{"path": "b", "relationship": "related"}]))

        tree.update("a", {"related_to": [{"path": "b", "relationship": "supersedes"}]})

        assert tree.get("a").related_to == [Relation("b.json", "supersedes")]
        assert tree.get("b").related_to == []

    def test_update_with_new_path_moves(self, tree, sink, entry_data):
        tree.create("c", entry_data(related_to=[]))
        tree.create("a", entry_data(related_to=[{"path": "c", "relationship": "related"}]))

        result = tree.update("a", {"title": "Moved"}, new_path="archive/a")

        assert result.moved
        assert result.path == "archive/a.json"
        assert not tree.exists("a")
        assert tree.get("archive/a").title == "Moved"
        assert tree.get("c").related_to == [Relation("archive/a.json", "related")]
        assert sink.names[-1] == "entry_moved"

    def test_new_path_same_as_current_is_plain_update(self, tree, sink, entry_data):
        tree.create("a", entry_data())
        result = tree.update("A", {"title": "T"}, new_path="a.json")
        assert not result.moved
        assert sink.names[-1] == "entry_updated"

    def test_notifies_entry_updated(self, tree, sink, entry_data):
        tree.create("a", entry_data())
        tree.update("a", {"solution": "Use a pool of 10."})
        event, payload = sink.events[-1]
        assert event == "entry_updated"
        assert payload["data"]["solution"] == "Use a pool of 10."

    def test_move_conflict_leaves_mirrors_alone(self, tree, entry_data, monkeypatch):
        import ktree.engine

        tree.create("b", entry_data())
        tree.create("taken", entry_data())
        tree.create("a", entry_data(related_to=[{"path": "b", "relationship": "related"}]))
        monkeypatch.setattr(ktree.engine, "_disambiguate", lambda key, attempt: "taken.json")

        with pytest.raises(Conflict):
            tree.update("a", {"related_to": []}, new_path="taken")

        assert tree.get("a").related_to == [Relation("b.json", "related")]
        assert tree.get("b").related_to == [Relation("a.json", "related")]
