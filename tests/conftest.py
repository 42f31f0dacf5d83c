"""Pytest fixtures for ktree tests."""

from __future__ import annotations

import json
from typing import Any

import pytest

from ktree.engine import KnowledgeTree
from ktree.store import EntryStore


class RecordingSink:
    """Collects (event, payload) pairs."""

    def __init__(self) -> None:
        self.events: list[tuple[str, dict[str, Any]]] = []

    def notify(self, event: str, payload: dict[str, Any]) -> None:
        self.events.append((event, payload))

    @property
    def names(self) -> list[str]:
        return [e for e, _ in self.events]


def make_entry(**overrides: Any) -> dict[str, Any]:
    data: dict[str, Any] = {
        "title": "Use connection pooling",
        "priority": "REQUIRED",
        "problem": "Opening a connection per request exhausts the server.",
        "solution": "Share a bounded pool across requests.",
    }
    data.update(overrides)
    return data


@pytest.fixture
def entry_data():
    """Factory for valid entry documents."""
    return make_entry


@pytest.fixture
def store(tmp_path):
    return EntryStore(tmp_path / "entries")


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def tree(store, sink):
    return KnowledgeTree(store, sink=sink)


@pytest.fixture
def raw(store):
    """Read a stored document as plain JSON, bypassing the model layer."""

    def _raw(key: str) -> dict[str, Any]:
        return json.loads((store.root / key).read_text(encoding="utf-8"))

    return _raw
