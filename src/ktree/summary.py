"""Read-only reports over the whole store: recent changes and statistics.

Both are single passes over EntryStore.iter_entries(), so broken entries are
skipped (and logged by the store). Recency comes from the entry's own
created_at / updated_at stamps; the file mtime stands in when a stamp is
missing or unparseable.
"""

from __future__ import annotations

import logging
from collections import Counter
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any

from ktree.models import PRIORITIES, priority_order

if TYPE_CHECKING:
    from ktree.models import Entry
    from ktree.store import EntryStore

logger = logging.getLogger("ktree.summary")

CHANGE_TYPES = ("all", "added", "modified")
STATS_SECTIONS = ("summary", "priorities", "categories", "orphaned", "popular", "coverage")
DEFAULT_STATS_SECTIONS = ("summary", "priorities", "categories", "orphaned", "popular")

_STALE_DAYS = 30
_TOP_N = 10


def _clip(text: str, width: int) -> str:
    return text[:width] + ("..." if len(text) > width else "")


def _parse_stamp(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        stamp = datetime.fromisoformat(value)
    except ValueError:
        return None
    return stamp if stamp.tzinfo else stamp.replace(tzinfo=UTC)


def _percent(part: int, whole: int) -> int:
    return round(part * 100 / whole) if whole else 0


def _category(key: str) -> str:
    parts = key.split("/")
    return parts[0] if len(parts) > 1 else "root"


class _Loaded:
    __slots__ = ("key", "entry", "size", "created", "modified")

    def __init__(self, store: EntryStore, key: str, entry: Entry) -> None:
        self.key = key
        self.entry = entry
        stat = (store.root / key).stat()
        self.size = stat.st_size
        mtime = datetime.fromtimestamp(stat.st_mtime, UTC)
        self.created = _parse_stamp(entry.created_at) or mtime
        self.modified = _parse_stamp(entry.updated_at) or mtime


def _load(store: EntryStore) -> list[_Loaded]:
    loaded: list[_Loaded] = []
    for key, entry in store.iter_entries():
        try:
            loaded.append(_Loaded(store, key, entry))
        except OSError as exc:
            logger.warning("skipping %s: %s", key, exc)
    return loaded


# ---------------------------------------------------------------------------
# recent
# ---------------------------------------------------------------------------


def recent(
    store: EntryStore,
    days: int = 7,
    limit: int = 20,
    change: str = "all",
    now: datetime | None = None,
) -> dict[str, Any]:
    """Entries added or modified within the last `days` days, newest first.

    An entry counts as "added" if it was created inside the window, and as
    "modified" if only its last update falls inside it.
    """
    if change not in CHANGE_TYPES:
        msg = f"change must be one of: {', '.join(CHANGE_TYPES)}"
        raise ValueError(msg)
    now = now or datetime.now(UTC)
    cutoff = now - timedelta(days=days)

    hits: list[tuple[_Loaded, str]] = []
    for item in _load(store):
        if item.created >= cutoff:
            kind = "added"
        elif item.modified >= cutoff and item.modified != item.created:
            kind = "modified"
        else:
            continue
        if change in ("all", kind):
            hits.append((item, kind))
    hits.sort(key=lambda hit: hit[0].modified, reverse=True)
    shown = hits[:limit]

    return {
        "period": {"days": days, "from": cutoff.isoformat(), "to": now.isoformat()},
        "summary": {
            "total_changes": len(hits),
            "showing": len(shown),
            "added": sum(1 for _, kind in hits if kind == "added"),
            "modified": sum(1 for _, kind in hits if kind == "modified"),
        },
        "entries": [
            {
                "path": item.key,
                "priority": item.entry.priority,
                "title": item.entry.title,
                "problem": item.entry.problem,
                "solution": _clip(item.entry.solution, 100),
                "change_type": kind,
                "created_at": item.created.isoformat(),
                "modified_at": item.modified.isoformat(),
                "relationships": len(item.entry.related_to),
            }
            for item, kind in shown
        ],
    }


# ---------------------------------------------------------------------------
# stats
# ---------------------------------------------------------------------------


def stats(
    store: EntryStore,
    include: tuple[str, ...] | list[str] = DEFAULT_STATS_SECTIONS,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Counts and breakdowns over every readable entry."""
    unknown = [s for s in include if s not in STATS_SECTIONS]
    if unknown:
        msg = f"unknown stats section(s): {', '.join(unknown)}"
        raise ValueError(msg)
    now = now or datetime.now(UTC)
    items = _load(store)
    total = len(items)
    result: dict[str, Any] = {"generated_at": now.isoformat(), "total_entries": total}

    if "summary" in include:
        result["summary"] = {
            "total_entries": total,
            "total_size_bytes": sum(i.size for i in items),
            "with_code_examples": sum(
                1 for i in items if (i.entry.code and i.entry.code.strip()) or i.entry.examples
            ),
            "with_relationships": sum(1 for i in items if i.entry.related_to),
            "total_relationships": sum(len(i.entry.related_to) for i in items),
        }

    if "priorities" in include:
        counts = Counter(i.entry.priority for i in items)
        ordered = sorted(set(PRIORITIES) | set(counts), key=lambda p: (priority_order(p), p))
        result["priorities"] = {
            "counts": {p: counts.get(p, 0) for p in ordered},
            "percentages": {p: _percent(counts.get(p, 0), total) for p in ordered},
        }

    if "categories" in include:
        categories: dict[str, dict[str, Any]] = {}
        for i in items:
            cat = categories.setdefault(
                _category(i.key), {"count": 0, "priorities": Counter(), "subcategories": set()}
            )
            cat["count"] += 1
            cat["priorities"][i.entry.priority] += 1
            parts = i.key.split("/")
            if len(parts) > 2:
                cat["subcategories"].add(parts[1])
        result["categories"] = {
            name: {
                "count": cat["count"],
                "priorities": dict(cat["priorities"]),
                "subcategories": sorted(cat["subcategories"]),
            }
            for name, cat in sorted(categories.items())
        }

    if "orphaned" in include:
        orphans = [i for i in items if not i.entry.related_to]
        result["orphaned"] = {
            "count": len(orphans),
            "percentage": _percent(len(orphans), total),
            "entries": [
                {"path": i.key, "priority": i.entry.priority, "problem": _clip(i.entry.problem, 60)}
                for i in orphans[:_TOP_N]
            ],
        }

    if "popular" in include:
        incoming = Counter(rel.path for i in items for rel in i.entry.related_to)
        by_key = {i.key: i for i in items}
        result["popular"] = {
            "most_linked": [
                {
                    "path": path,
                    "incoming_links": count,
                    "priority": by_key[path].entry.priority if path in by_key else "Unknown",
                    "problem": _clip(by_key[path].entry.problem, 60) if path in by_key else "Entry not found",
                }
                for path, count in incoming.most_common(_TOP_N)
            ],
            "average_links": round(sum(incoming.values()) / total, 1) if total else 0,
        }

    if "coverage" in include:
        def age_days(i: _Loaded) -> float:
            return (now - i.modified).total_seconds() / 86400

        stale = [i for i in items if age_days(i) > _STALE_DAYS]
        result["coverage"] = {
            "stale_entries": {
                "count": len(stale),
                "percentage": _percent(len(stale), total),
                "threshold_days": _STALE_DAYS,
            },
            "recent_activity": {
                "last_7_days": sum(1 for i in items if age_days(i) <= 7),
                "last_30_days": sum(1 for i in items if age_days(i) <= 30),
            },
        }

    return result
