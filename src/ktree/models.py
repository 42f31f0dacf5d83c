"""Data models for the entry store: entries, relations, paths, field rules."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from ktree.errors import InvalidPath, Malformed
from ktree.relationships import RELATIONSHIP_KINDS, is_valid_kind

PRIORITIES: tuple[str, ...] = ("CRITICAL", "REQUIRED", "COMMON", "EDGE-CASE")

PRIORITY_DESCRIPTIONS: dict[str, str] = {
    "CRITICAL": "Architecture violations, security issues, breaking changes",
    "REQUIRED": "Must-follow patterns, best practices, team standards",
    "COMMON": "Frequent issues and their solutions",
    "EDGE-CASE": "Rare but documented scenarios",
}

ENTRY_SUFFIX = ".json"
MAX_PATH_LENGTH = 255
MAX_TAGS = 20

# Fields a caller may patch through update(); everything else is engine-owned.
PATCHABLE_FIELDS: frozenset[str] = frozenset({
    "title", "slug", "priority", "category", "tags", "problem", "context",
    "solution", "examples", "code", "author", "version", "related_to",
})

_SLUG_RE = re.compile(r"[^a-z0-9_\-]+")


def now_iso() -> str:
    return datetime.now(UTC).isoformat()


def is_valid_priority(value: object) -> bool:
    return isinstance(value, str) and value in PRIORITIES


def priority_order(priority: str) -> int:
    """Sort rank: 0 for CRITICAL, growing toward EDGE-CASE; unknown sorts last."""
    try:
        return PRIORITIES.index(priority)
    except ValueError:
        return len(PRIORITIES)


def _slugify(part: str) -> str:
    return _SLUG_RE.sub("-", part).strip("-")


def normalize_path(path: str) -> str:
    """Turn a user-supplied path into a storage key.

    "Backend/Redis/Connection Pooling" -> "backend/redis/connection-pooling.json"
    """
    if not isinstance(path, str):
        raise InvalidPath(repr(path), "path must be a string")
    raw = path
    p = path.strip().lower().replace("\\", "/").strip("/")
    if p.endswith(ENTRY_SUFFIX):
        p = p[: -len(ENTRY_SUFFIX)]
    if not p:
        raise InvalidPath(raw, "path is empty")

    parts: list[str] = []
    for part in p.split("/"):
        if part in ("", ".", ".."):
            raise InvalidPath(raw, f"illegal path component {part!r}")
        slug = _slugify(part)
        if not slug:
            raise InvalidPath(raw, f"component {part!r} has no usable characters")
        parts.append(slug)

    key = "/".join(parts) + ENTRY_SUFFIX
    if len(key) > MAX_PATH_LENGTH:
        raise InvalidPath(raw, f"longer than {MAX_PATH_LENGTH} characters")
    return key


def _dedupe(items: list[str]) -> list[str]:
    seen: set[str] = set()
    out: list[str] = []
    for item in items:
        if item not in seen:
            seen.add(item)
            out.append(item)
    return out


def _opt_str(d: dict[str, Any], key: str, where: str) -> str | None:
    value = d.get(key)
    if value is None or isinstance(value, str):
        return value
    raise Malformed(where, f"{key} must be a string")


@dataclass
class Relation:
    """An outgoing, typed edge stored on the source entry's related_to list."""

    path: str
    relationship: str
    description: str | None = None

    @classmethod
    def from_dict(cls, d: Any, where: str = "<entry>") -> Relation:
        if not isinstance(d, dict):
            raise Malformed(where, "related_to items must be objects")
        path = d.get("path")
        if not isinstance(path, str) or not path:
            raise Malformed(where, "related_to item without a path")
        kind = d.get("relationship")
        if not isinstance(kind, str):
            raise Malformed(where, f"related_to item {path} without a relationship")
        return cls(path=path, relationship=kind, description=_opt_str(d, "description", where))

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"path": self.path, "relationship": self.relationship}
        if self.description:
            d["description"] = self.description
        return d

    @property
    def key(self) -> tuple[str, str]:
        return (self.path, self.relationship)


@dataclass
class Example:
    """A code sample or scenario attached to an entry."""

    title: str | None = None
    description: str | None = None
    code: str | None = None
    language: str | None = None

    @classmethod
    def from_dict(cls, d: Any, where: str = "<entry>") -> Example:
        if not isinstance(d, dict):
            raise Malformed(where, "examples items must be objects")
        return cls(
            title=_opt_str(d, "title", where),
            description=_opt_str(d, "description", where),
            code=_opt_str(d, "code", where),
            language=_opt_str(d, "language", where),
        )

    def to_dict(self) -> dict[str, Any]:
        return {k: v for k, v in (
            ("title", self.title),
            ("description", self.description),
            ("code", self.code),
            ("language", self.language),
        ) if v is not None}


@dataclass
class Entry:
    """A knowledge entry as decoded from its JSON document."""

    priority: str
    problem: str
    solution: str
    title: str | None = None
    slug: str | None = None
    category: str | None = None
    tags: list[str] = field(default_factory=list)
    context: str | None = None
    code: str | None = None
    examples: list[Example] = field(default_factory=list)
    related_to: list[Relation] = field(default_factory=list)
    author: str | None = None
    version: str | None = None
    created_at: str | None = None
    updated_at: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)   # unknown keys, round-tripped

    @classmethod
    def from_dict(cls, d: Any, where: str = "<entry>") -> Entry:
        """Decode a JSON object. Raises Malformed on a wrong shape.

        Missing required fields decode to "" and are left to validate_fields().
        """
        if not isinstance(d, dict):
            raise Malformed(where, "document is not a JSON object")

        tags = d.get("tags") or []
        if not isinstance(tags, list) or not all(isinstance(t, str) for t in tags):
            raise Malformed(where, "tags must be a list of strings")
        related = d.get("related_to") or []
        if not isinstance(related, list):
            raise Malformed(where, "related_to must be a list")
        examples = d.get("examples") or []
        if not isinstance(examples, list):
            raise Malformed(where, "examples must be a list")

        known = {f for f in cls.__dataclass_fields__ if f != "extra"}
        return cls(
            priority=_opt_str(d, "priority", where) or "",
            problem=_opt_str(d, "problem", where) or "",
            solution=_opt_str(d, "solution", where) or "",
            title=_opt_str(d, "title", where),
            slug=_opt_str(d, "slug", where),
            category=_opt_str(d, "category", where),
            tags=_dedupe(tags),
            context=_opt_str(d, "context", where),
            code=_opt_str(d, "code", where),
            examples=[Example.from_dict(e, where) for e in examples],
            related_to=[Relation.from_dict(r, where) for r in related],
            author=_opt_str(d, "author", where),
            version=_opt_str(d, "version", where),
            created_at=_opt_str(d, "created_at", where),
            updated_at=_opt_str(d, "updated_at", where),
            extra={k: v for k, v in d.items() if k not in known},
        )

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {}
        if self.title is not None:
            d["title"] = self.title
        if self.slug is not None:
            d["slug"] = self.slug
        d["priority"] = self.priority
        if self.category is not None:
            d["category"] = self.category
        if self.tags:
            d["tags"] = list(self.tags)
        d["problem"] = self.problem
        if self.context is not None:
            d["context"] = self.context
        d["solution"] = self.solution
        if self.examples:
            d["examples"] = [e.to_dict() for e in self.examples]
        if self.code is not None:
            d["code"] = self.code
        if self.related_to:
            d["related_to"] = [r.to_dict() for r in self.related_to]
        for key in ("author", "created_at", "updated_at", "version"):
            value = getattr(self, key)
            if value is not None:
                d[key] = value
        d.update(self.extra)
        return d

    def relations_to(self, path: str) -> list[Relation]:
        return [r for r in self.related_to if r.path == path]

    def has_relation_to(self, path: str) -> bool:
        return any(r.path == path for r in self.related_to)


def _non_empty(value: object) -> bool:
    return isinstance(value, str) and value.strip() != ""


def validate_fields(data: dict[str, Any], *, partial: bool = False) -> list[str]:
    """Return every field violation in data.

    With partial=True only the keys present are checked, which is what
    update() needs for a patch.
    """
    errors: list[str] = []

    def present(key: str) -> bool:
        return not partial or key in data

    if present("priority") and not is_valid_priority(data.get("priority")):
        errors.append(f"Priority must be one of: {', '.join(PRIORITIES)}")
    if present("problem") and not _non_empty(data.get("problem")):
        errors.append("Problem description is required and must be non-empty")
    if present("solution") and not _non_empty(data.get("solution")):
        errors.append("Solution description is required and must be non-empty")
    if "title" in data and data["title"] is not None and not _non_empty(data["title"]):
        errors.append("Title must be a non-empty string")

    if "tags" in data and data["tags"] is not None:
        tags = data["tags"]
        if not isinstance(tags, list) or not all(isinstance(t, str) for t in tags):
            errors.append("Tags must be a list of strings")
        elif len(tags) > MAX_TAGS:
            errors.append(f"At most {MAX_TAGS} tags are allowed")

    if "related_to" in data and data["related_to"] is not None:
        related = data["related_to"]
        if not isinstance(related, list):
            errors.append("related_to must be a list")
        else:
            for i, link in enumerate(related, 1):
                if isinstance(link, Relation):
                    link = link.to_dict()
                if not isinstance(link, dict):
                    errors.append(f"Related entry {i}: must be an object")
                    continue
                if not _non_empty(link.get("path")):
                    errors.append(f"Related entry {i}: path is required")
                if not is_valid_kind(link.get("relationship")):
                    errors.append(
                        f"Related entry {i}: invalid relationship type "
                        f"{link.get('relationship')!r} (expected one of: {', '.join(RELATIONSHIP_KINDS)})"
                    )
    return errors
