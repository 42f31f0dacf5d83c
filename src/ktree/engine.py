"""KnowledgeTree: the mutation and read operations over an entry store.

Each mutation validates against the store, performs one primary write, then
runs best-effort side effects (mirror sync, reference rewrite) and notifies
the sink. Failures on the primary target raise before anything is written;
side-effect failures are returned in OperationResult.side_effects.

There are no transactions. A crash between the primary write and the end of
the side effects leaves stale mirrors or references behind; validate(fix=True)
repairs missing mirrors.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Mapping
from pathlib import Path
from typing import TYPE_CHECKING, Any

from ktree import notify as events
from ktree import summary
from ktree.errors import Conflict, InvalidPath, KtreeError, Malformed, NotFound, ValidationError
from ktree.links import LinkSynchronizer
from ktree.models import (
    ENTRY_SUFFIX,
    PATCHABLE_FIELDS,
    Entry,
    Relation,
    normalize_path,
    now_iso,
    validate_fields,
)
from ktree.notify import NullSink
from ktree.references import ReferenceRewriter
from ktree.relationships import RELATIONSHIP_KINDS, is_symmetric, is_valid_kind
from ktree.results import OperationResult, ValidationReport
from ktree.store import EntryStore
from ktree.traverse import read_with_depth

if TYPE_CHECKING:
    from ktree.config import KtreeConfig
    from ktree.notify import NotificationSink

logger = logging.getLogger("ktree.engine")

_MAX_MOVE_ATTEMPTS = 5


def _plain(value: Any) -> Any:
    """Model objects (and lists of them) back to JSON-shaped values."""
    if isinstance(value, list):
        return [_plain(v) for v in value]
    to_dict = getattr(value, "to_dict", None)
    return to_dict() if callable(to_dict) else value


def _disambiguate(key: str, attempt: int) -> str:
    """backend/pool.json -> backend/pool-1760000000000.json (epoch ms)."""
    stem = key[: -len(ENTRY_SUFFIX)]
    stamp = time.time_ns() // 1_000_000
    suffix = f"-{stamp}" if attempt == 0 else f"-{stamp}-{attempt}"
    return f"{stem}{suffix}{ENTRY_SUFFIX}"


class KnowledgeTree:
    """Entry graph engine bound to one store and one notification sink."""

    def __init__(
        self,
        store: EntryStore | Path | str,
        sink: NotificationSink | None = None,
        *,
        default_depth: int = 1,
        max_depth: int = 5,
        max_move_attempts: int = _MAX_MOVE_ATTEMPTS,
    ) -> None:
        self.store = store if isinstance(store, EntryStore) else EntryStore(store)
        self.sink: NotificationSink = sink if sink is not None else NullSink()
        self.links = LinkSynchronizer(self.store)
        self.references = ReferenceRewriter(self.store)
        self.default_depth = default_depth
        self.max_depth = max_depth
        self.max_move_attempts = max_move_attempts

    @classmethod
    def from_config(cls, cfg: KtreeConfig, sink: NotificationSink | None = None) -> KnowledgeTree:
        return cls(
            EntryStore(cfg.entries_dir),
            sink,
            default_depth=cfg.traversal.default_depth,
            max_depth=cfg.traversal.max_depth,
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, path: str) -> Entry:
        return self.store.read(normalize_path(path))

    def exists(self, path: str) -> bool:
        return self.store.exists(normalize_path(path))

    def list_all(self) -> list[str]:
        return self.store.list_all()

    def read_with_depth(self, path: str, depth: int | None = None) -> dict[str, Any]:
        """Read path with up to depth - 1 hops of linked entries embedded."""
        depth = self.default_depth if depth is None else depth
        depth = min(depth, self.max_depth)
        return read_with_depth(self.store, normalize_path(path), depth, frozenset())

    def recent(self, days: int = 7, limit: int = 20, change: str = "all") -> dict[str, Any]:
        return summary.recent(self.store, days=days, limit=limit, change=change)

    def stats(self, include: tuple[str, ...] | list[str] = summary.DEFAULT_STATS_SECTIONS) -> dict[str, Any]:
        return summary.stats(self.store, include=include)

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def create(self, path: str, entry: Entry | Mapping[str, Any]) -> OperationResult:
        key = normalize_path(path)
        if self.store.exists(key):
            raise Conflict(key)

        data = entry.to_dict() if isinstance(entry, Entry) else {k: _plain(v) for k, v in entry.items()}
        errors = validate_fields(data)
        decoded = self._decode(data, key, errors)
        if decoded is not None:
            relations, rel_errors = self._check_relations(decoded.related_to, {key})
            errors.extend(rel_errors)
            decoded.related_to = relations
        if errors or decoded is None:
            raise ValidationError(errors, path=key)

        now = now_iso()
        decoded.created_at = decoded.created_at or now
        decoded.updated_at = decoded.updated_at or now

        self.store.write(key, decoded)
        logger.info("created %s", key)

        result = OperationResult(path=key, entry=decoded)
        result.side_effects.extend(self.links.sync(key, decoded).failures)
        self._notify(events.ENTRY_ADDED, {"path": key, "data": decoded.to_dict()}, result)
        return result

    # ------------------------------------------------------------------
    # Update
    # ------------------------------------------------------------------

    def update(
        self,
        path: str,
        patch: Mapping[str, Any],
        new_path: str | None = None,
    ) -> OperationResult:
        """Apply a field-level patch; optionally relocate the entry to new_path."""
        key = normalize_path(path)
        if not self.store.exists(key):
            raise NotFound(key)
        current = self.store.read(key)

        patch = {k: _plain(v) for k, v in patch.items()}
        errors = [f"Unknown field: {k}" for k in patch if k not in PATCHABLE_FIELDS]
        errors.extend(validate_fields(patch, partial=True))

        target_key: str | None = None
        if new_path:
            try:
                target_key = normalize_path(new_path)
            except InvalidPath as exc:
                errors.extend(exc.errors)
        moving = target_key is not None and target_key != key

        merged = current.to_dict()
        for field_name, value in patch.items():
            if value is None:
                merged.pop(field_name, None)
            else:
                merged[field_name] = value

        patched = self._decode(merged, key, errors)
        if patched is not None:
            if "related_to" in patch:
                own = {key, target_key} if target_key else {key}
                relations, rel_errors = self._check_relations(patched.related_to, own)
                errors.extend(rel_errors)
                patched.related_to = relations
        if errors or patched is None:
            raise ValidationError(errors, path=key)

        patched.updated_at = now_iso()

        removed: list[Relation] = []
        added: list[Relation] = []
        if "related_to" in patch:
            old_keys = {r.key for r in current.related_to}
            new_keys = {r.key for r in patched.related_to}
            removed = [r for r in current.related_to if r.key not in new_keys]
            added = [r for r in patched.related_to if r.key not in old_keys]

        # Resolve the destination before any side effect; Conflict leaves everything untouched.
        move_warnings: list[str] = []
        resolved: str | None = None
        if moving:
            assert target_key is not None
            resolved = self._resolve_target(target_key, move_warnings)

        result = OperationResult(path=key, entry=patched)
        # Mirrors of dropped relations go first, while they still point at key.
        result.side_effects.extend(self.links.unsync(key, removed).failures)

        if resolved is not None:
            moved = self._relocate(key, resolved, move_warnings, entry=patched)
            result.path = moved.path
            result.old_path = key
            result.modified = moved.modified
            result.warnings.extend(moved.warnings)
            result.side_effects.extend(moved.side_effects)
        else:
            self.store.write(key, patched)
            logger.info("updated %s (%s)", key, ", ".join(sorted(patch)) or "no fields")

        result.side_effects.extend(self.links.sync_relations(result.path, added).failures)

        if not moving:
            self._notify(events.ENTRY_UPDATED, {"path": key, "data": patched.to_dict()}, result)
        return result

    # ------------------------------------------------------------------
    # Delete
    # ------------------------------------------------------------------

    def delete(self, path: str, cleanup_links: bool = True) -> OperationResult:
        key = normalize_path(path)
        if not self.store.exists(key):
            raise NotFound(key)

        entry: Entry | None = None
        try:
            entry = self.store.read(key)
        except (Malformed, OSError) as exc:
            logger.warning("deleting unreadable entry %s: %s", key, exc)

        self.store.delete(key)
        logger.info("deleted %s", key)

        result = OperationResult(path=key, entry=entry)
        if cleanup_links:
            report = self.references.strip(key)
            result.modified = report.count
            result.side_effects.extend(report.failures)
        self._notify(events.ENTRY_DELETED, {"path": key}, result)
        return result

    # ------------------------------------------------------------------
    # Move
    # ------------------------------------------------------------------

    def move(self, old_path: str, new_path: str) -> OperationResult:
        """Relocate an entry and retarget every reference to it.

        If new_path is taken, the entry lands at a derived unique path instead;
        the returned result.path is where it actually went.
        """
        old_key = normalize_path(old_path)
        new_key = normalize_path(new_path)

        # Validate
        if not self.store.exists(old_key):
            raise NotFound(old_key)
        if new_key == old_key:
            return OperationResult(
                path=old_key,
                entry=self.store.read(old_key),
                warnings=["Source and destination are the same; nothing moved"],
            )
        warnings: list[str] = []
        resolved = self._resolve_target(new_key, warnings)
        return self._relocate(old_key, resolved, warnings)

    def _relocate(
        self,
        old_key: str,
        resolved: str,
        warnings: list[str],
        entry: Entry | None = None,
    ) -> OperationResult:
        """Write the entry at an already-resolved free path and retire old_key."""
        incoming = self.references.count_incoming(old_key)
        if incoming:
            warnings.append(f"Entry has {incoming} incoming reference(s) that will be updated")

        # Execute
        moved = entry if entry is not None else self.store.read(old_key)
        for rel in moved.related_to:
            if rel.path == old_key:
                rel.path = resolved
        self.store.write(resolved, moved)
        rewrite = self.references.rewrite(old_key, resolved)
        self.store.delete(old_key)
        logger.info("moved %s -> %s (%d references updated)", old_key, resolved, rewrite.count)

        # Finish
        result = OperationResult(
            path=resolved,
            entry=moved,
            old_path=old_key,
            modified=rewrite.count,
            warnings=warnings,
        )
        result.side_effects.extend(rewrite.failures)
        self._notify(
            events.ENTRY_MOVED,
            {"old_path": old_key, "path": resolved, "data": moved.to_dict()},
            result,
        )
        return result

    def _resolve_target(self, requested: str, warnings: list[str]) -> str:
        candidate = requested
        for attempt in range(self.max_move_attempts + 1):
            if not self.store.exists(candidate):
                if candidate != requested:
                    warnings.append(f"Target path already exists: {requested} (moved to {candidate})")
                return candidate
            candidate = _disambiguate(requested, attempt)
        raise Conflict(requested)

    # ------------------------------------------------------------------
    # Link
    # ------------------------------------------------------------------

    def link(
        self,
        source: str,
        target: str,
        relationship: str,
        description: str | None = None,
    ) -> OperationResult:
        """Add (or retype) one relation source -> target and mirror it if symmetric."""
        src = normalize_path(source)
        dst = normalize_path(target)
        if not self.store.exists(src):
            raise NotFound(src)

        errors: list[str] = []
        if not is_valid_kind(relationship):
            errors.append(
                f"Invalid relationship type {relationship!r} "
                f"(expected one of: {', '.join(RELATIONSHIP_KINDS)})"
            )
        if dst == src:
            errors.append("An entry cannot be related to itself")
        elif not self.store.exists(dst):
            errors.append(f"Related entry not found: {dst}")
        if errors:
            raise ValidationError(errors, path=src)

        entry = self.store.read(src)
        result = OperationResult(path=src, entry=entry)
        matches = entry.relations_to(dst)
        if not matches:
            rel = Relation(dst, relationship, description or None)
            entry.related_to.append(rel)
        else:
            # One relation per target: the first match is retyped, the rest collapse into it.
            rel = matches[0]
            dropped = [Relation(dst, r.relationship) for r in matches if r.relationship != relationship]
            entry.related_to = [r for r in entry.related_to if r.path != dst or r is rel]
            result.side_effects.extend(self.links.unsync(src, dropped).failures)
            rel.relationship = relationship
            if description:
                rel.description = description
        entry.updated_at = now_iso()
        self.store.write(src, entry)
        logger.info("linked %s -[%s]-> %s", src, relationship, dst)

        if is_symmetric(relationship):
            result.side_effects.extend(self.links.sync_relations(src, [rel]).failures)
        self._notify(events.ENTRY_UPDATED, {"path": src, "data": entry.to_dict()}, result)
        return result

    # ------------------------------------------------------------------
    # Validate / repair
    # ------------------------------------------------------------------

    def validate(self, path: str | None = None, fix: bool = False) -> ValidationReport:
        """Check entries for field errors, broken links and missing mirrors.

        With fix=True, missing mirrors of symmetric relations are added.
        Running it again over the same store changes nothing.
        """
        keys = [normalize_path(path)] if path else self.store.list_all()
        report = ValidationReport(checked=len(keys))

        for key in keys:
            try:
                entry = self.store.read(key)
            except KtreeError as exc:
                report.issues.append(f"{key}: {exc.message}")
                continue

            report.issues.extend(f"{key}: {e}" for e in validate_fields(entry.to_dict()))

            for rel in entry.related_to:
                if not is_valid_kind(rel.relationship):
                    report.issues.append(
                        f"{key}: Invalid relationship type {rel.relationship!r} for link to {rel.path}"
                    )
                    continue
                try:
                    target_exists = self.store.exists(rel.path)
                except KtreeError:
                    report.issues.append(f"{key}: Invalid link path {rel.path!r}")
                    continue
                if not target_exists:
                    report.issues.append(f"{key}: Broken link to {rel.path}")
                    continue
                if not is_symmetric(rel.relationship) or rel.path == key:
                    continue
                try:
                    mirrored = self.store.read(rel.path).has_relation_to(key)
                    if not mirrored and fix:
                        self.links.add_mirror(key, rel)
                        report.fixed += 1
                    elif not mirrored:
                        report.issues.append(f"{key}: Missing {rel.relationship} mirror on {rel.path}")
                except (KtreeError, OSError) as exc:
                    report.issues.append(f"{key}: Cannot validate/fix mirror on {rel.path}: {exc}")

        if report.fixed:
            logger.info("validate: fixed %d missing mirror(s)", report.fixed)
        return report

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    @staticmethod
    def _decode(data: dict[str, Any], key: str, errors: list[str]) -> Entry | None:
        """Decode caller-supplied data; shape problems are appended to errors."""
        try:
            return Entry.from_dict(data, where=key)
        except Malformed as exc:
            if not errors:
                errors.append(exc.reason)
            return None

    def _check_relations(
        self,
        relations: list[Relation],
        own_keys: set[str],
    ) -> tuple[list[Relation], list[str]]:
        """Normalize relation targets, drop duplicates, report missing targets."""
        errors: list[str] = []
        out: list[Relation] = []
        seen: set[tuple[str, str]] = set()
        for rel in relations:
            try:
                target = normalize_path(rel.path)
            except InvalidPath as exc:
                errors.extend(exc.errors)
                continue
            if target in own_keys:
                errors.append(f"An entry cannot be related to itself: {target}")
                continue
            if not self.store.exists(target):
                errors.append(f"Related entry not found: {target}")
                continue
            normalized = Relation(target, rel.relationship, rel.description)
            if normalized.key in seen:
                continue
            seen.add(normalized.key)
            out.append(normalized)
        return out, errors

    def _notify(self, event: str, payload: dict[str, Any], result: OperationResult) -> None:
        try:
            self.sink.notify(event, payload)
        except Exception as exc:  # noqa: BLE001
            logger.warning("notification %s for %s failed: %s", event, payload.get("path"), exc)
            result.side_effects.add(str(payload.get("path")), "notify", str(exc))
