"""Tests for store-wide reference rewriting and stripping."""

from __future__ import annotations

from ktree.models import Entry, Relation
from ktree.references import ReferenceRewriter


def _entry(*relations: Relation) -> Entry:
    return Entry(priority="COMMON", problem="p", solution="s", related_to=list(relations))


class TestRewrite:
    def test_retargets_every_reference(self, store):
        store.write("old.json", _entry())
        store.write("a.json", _entry(Relation("old.json", "related"), Relation("other.json", "implements")))
        store.write("b.json", _entry(Relation("old.json", "supersedes")))
        store.write("c.json", _entry())

        report = ReferenceRewriter(store).rewrite("old.json", "new.json")

        assert sorted(report.modified) == ["a.json", "b.json"]
        assert report.scanned == 3
        assert store.read("a.json").related_to == [
            Relation("new.json", "related"),
            Relation("other.json", "implements"),
        ]
        assert store.read("b.json").related_to == [Relation("new.json", "supersedes")]

    def test_unreadable_entry_is_reported(self, store):
        store.write("a.json", _entry(Relation("old.json", "related")))
        (store.root / "broken.json").write_text("[]", encoding="utf-8")

        report = ReferenceRewriter(store).rewrite("old.json", "new.json")

        assert report.modified == ["a.json"]
        assert [f.path for f in report.failures.failures] == ["broken.json"]
        assert report.failures.failures[0].action == "rewrite"


class TestStrip:
    def test_removes_all_relations_to_dead_path(self, store):
        store.write("a.json", _entry(Relation("dead.json", "related"), Relation("dead.json", "supersedes")))
        store.write("b.json", _entry(Relation("alive.json", "related")))

        report = ReferenceRewriter(store).strip("dead.json")

        assert report.modified == ["a.json"]
        assert store.read("a.json").related_to == []
        assert store.read("b.json").related_to == [Relation("alive.json", "related")]

    def test_count_incoming(self, store):
        store.write("target.json", _entry(Relation("a.json", "related")))
        store.write("a.json", _entry(Relation("target.json", "related")))
        store.write("b.json", _entry(Relation("target.json", "implements"), Relation("target.json", "related")))
        store.write("c.json", _entry())

        assert ReferenceRewriter(store).count_incoming("target.json") == 2
