"""Depth-bounded, cycle-safe read of an entry and its linked neighborhood.

The graph is walked as a tree expansion. Each branch carries its own copy of
the set of ancestors already on the path from the root, so a node reachable
from two siblings is expanded under both, while a node that is its own
ancestor is replaced by a circular-reference marker.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from ktree.errors import KtreeError

if TYPE_CHECKING:
    from collections.abc import Set

    from ktree.store import EntryStore

CIRCULAR_KEY = "circular_reference"
LINKED_KEY = "linked_entries"
LOAD_ERROR = "Failed to load linked entry"


def read_with_depth(
    store: EntryStore,
    path: str,
    depth: int = 1,
    visited: Set[str] = frozenset(),
) -> dict[str, Any]:
    """Read path and embed its neighbors up to depth - 1 hops away.

    Raises NotFound / Malformed for the root. Failures further down are
    embedded as {"relationship", "description"?, "error"} instead.
    """
    if path in visited:
        return {CIRCULAR_KEY: path}

    branch = frozenset(visited) | {path}
    entry = store.read(path)
    result: dict[str, Any] = {"path": path, **entry.to_dict()}

    if depth <= 1 or not entry.related_to:
        return result

    linked: dict[str, dict[str, Any]] = {}
    for rel in entry.related_to:
        item: dict[str, Any] = {"relationship": rel.relationship}
        if rel.description:
            item["description"] = rel.description
        try:
            item["content"] = read_with_depth(store, rel.path, depth - 1, set(branch))
        except (KtreeError, OSError):
            item["error"] = LOAD_ERROR
        linked[rel.path] = item
    result[LINKED_KEY] = linked
    return result
