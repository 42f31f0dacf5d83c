"""Tests for KnowledgeTree.validate."""

from __future__ import annotations

from ktree.models import Entry, Relation


def _entry(*relations: Relation, **kw) -> Entry:
    return Entry(priority="COMMON", problem="p", solution="s", related_to=list(relations), **kw)


class TestValidate:
    def test_clean_store(self, tree, entry_data):
        tree.create("a", entry_data())
        tree.create("b", entry_data(related_to=[{"path": "a", "relationship": "related"}]))

        report = tree.validate()

        assert report.ok
        assert report.checked == 2

    def test_reports_missing_mirror(self, tree, store):
        store.write("a.json", _entry(Relation("b.json", "related")))
        store.write("b.json", _entry())

        report = tree.validate()

        assert report.issues == ["a.json: Missing related mirror on b.json"]
        assert store.read("b.json").related_to == []

    def test_fix_adds_missing_mirror_and_is_idempotent(self, tree, store):
        store.write("a.json", _entry(Relation("b.json", "conflicts_with")))
        store.write("b.json", _entry())

        first = tree.validate(fix=True)
        second = tree.validate(fix=True)

        assert first.fixed == 1
        assert first.ok
        assert second.fixed == 0
        assert store.read("b.json").related_to == [Relation("a.json", "conflicts_with")]

    def test_reports_field_errors_and_bad_kinds(self, tree, store):
        store.write("a.json", Entry(priority="SOMETIMES", problem="p", solution="s",
                                    related_to=[Relation("b.json", "likes")]))
        store.write("b.json", _entry())

        issues = tree.validate().issues

        assert any(i.startswith("a.json: Priority") for i in issues)
        assert any("Invalid relationship type 'likes'" in i for i in issues)

    def test_reports_unreadable_entries(self, tree, store):
        (store.root / "bad.json").write_text("{", encoding="utf-8")
        report = tree.validate()
        assert len(report.issues) == 1
        assert report.issues[0].startswith("bad.json: Malformed entry")

    def test_single_path(self, tree, store):
        store.write("a.json", _entry(Relation("ghost.json", "implements")))
        store.write("b.json", _entry(Relation("ghost.json", "implements")))

        report = tree.validate("a")

        assert report.checked == 1
        assert report.issues == ["a.json: Broken link to ghost.json"]

    def test_unsafe_link_path_is_reported_not_raised(self, tree, store):
        store.write("a.json", _entry(Relation("x/../b.json", "related"), Relation("/abs.json", "implements")))
        store.write("b.json", _entry())

        report = tree.validate()

        assert report.checked == 2
        assert "a.json: Invalid link path 'x/../b.json'" in report.issues
        assert "a.json: Invalid link path '/abs.json'" in report.issues
