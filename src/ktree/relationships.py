"""Relationship taxonomy.

Symmetric kinds are mirrored onto the target entry by the link synchronizer.
Directional kinds have an inverse, but the inverse edge is never created
automatically.
"""

from __future__ import annotations

RELATED = "related"
SUPERSEDES = "supersedes"
SUPERSEDED_BY = "superseded_by"
CONFLICTS_WITH = "conflicts_with"
IMPLEMENTS = "implements"
IMPLEMENTED_BY = "implemented_by"

RELATIONSHIP_KINDS: tuple[str, ...] = (
    RELATED,
    SUPERSEDES,
    SUPERSEDED_BY,
    CONFLICTS_WITH,
    IMPLEMENTS,
    IMPLEMENTED_BY,
)

SYMMETRIC_KINDS: frozenset[str] = frozenset({RELATED, CONFLICTS_WITH})

_INVERSES: dict[str, str] = {
    SUPERSEDES: SUPERSEDED_BY,
    SUPERSEDED_BY: SUPERSEDES,
    IMPLEMENTS: IMPLEMENTED_BY,
    IMPLEMENTED_BY: IMPLEMENTS,
    RELATED: RELATED,
    CONFLICTS_WITH: CONFLICTS_WITH,
}

DISPLAY_NAMES: dict[str, str] = {
    RELATED: "Related To",
    SUPERSEDES: "Supersedes",
    SUPERSEDED_BY: "Superseded By",
    CONFLICTS_WITH: "Conflicts With",
    IMPLEMENTS: "Implements",
    IMPLEMENTED_BY: "Implemented By",
}

DESCRIPTIONS: dict[str, str] = {
    RELATED: "General connection between entries (mirrored)",
    SUPERSEDES: "This entry replaces the target entry",
    SUPERSEDED_BY: "This entry is replaced by the target entry",
    CONFLICTS_WITH: "Conflicting approaches or patterns (mirrored)",
    IMPLEMENTS: "This entry implements a pattern defined in the target",
    IMPLEMENTED_BY: "This entry has implementations in the target",
}


def is_valid_kind(kind: object) -> bool:
    return isinstance(kind, str) and kind in RELATIONSHIP_KINDS


def is_symmetric(kind: str) -> bool:
    """True for kinds whose presence on A implies the same kind on the target."""
    return kind in SYMMETRIC_KINDS


def inverse_of(kind: str) -> str | None:
    """Return the inverse kind, or None for an unknown kind."""
    return _INVERSES.get(kind)


def are_inverse(a: str, b: str) -> bool:
    return _INVERSES.get(a) == b or _INVERSES.get(b) == a
