"""Reference rewriter: store-wide scans for relations that target one path.

Used by move (rewrite mode) and delete (strip mode). The scan is a plain
O(n) pass over list_all(); it is not isolated from concurrent writers, so an
entry written mid-scan may or may not be seen.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from ktree.errors import KtreeError
from ktree.results import RewriteReport

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from ktree.models import Entry
    from ktree.store import EntryStore

logger = logging.getLogger("ktree.references")


class ReferenceRewriter:
    def __init__(self, store: EntryStore) -> None:
        self.store = store

    def rewrite(self, old_path: str, new_path: str) -> RewriteReport:
        """Point every relation targeting old_path at new_path instead."""

        def retarget(entry: Entry) -> bool:
            changed = False
            for rel in entry.related_to:
                if rel.path == old_path:
                    rel.path = new_path
                    changed = True
            return changed

        return self._scan("rewrite", retarget, exclude=(old_path, new_path))

    def strip(self, dead_path: str) -> RewriteReport:
        """Remove every relation targeting dead_path."""

        def drop(entry: Entry) -> bool:
            before = len(entry.related_to)
            entry.related_to = [r for r in entry.related_to if r.path != dead_path]
            return len(entry.related_to) < before

        return self._scan("strip", drop, exclude=(dead_path,))

    def count_incoming(self, path: str) -> int:
        """Number of other entries holding at least one relation to path."""
        count = 0
        for key in self.store.list_all():
            if key == path:
                continue
            try:
                if self.store.read(key).has_relation_to(path):
                    count += 1
            except (KtreeError, OSError):
                continue
        return count

    def _scan(
        self,
        action: str,
        transform: Callable[[Entry], bool],
        exclude: Iterable[str],
    ) -> RewriteReport:
        skip = set(exclude)
        report = RewriteReport()
        for key in self.store.list_all():
            if key in skip:
                continue
            report.scanned += 1
            try:
                entry = self.store.read(key)
                if not transform(entry):
                    continue
                self.store.write(key, entry)
            except (KtreeError, OSError) as exc:
                logger.warning("%s: failed to update references in %s: %s", action, key, exc)
                report.failures.add(key, action, str(exc))
                continue
            report.modified.append(key)
        if report.modified:
            logger.info("%s: updated %d entr%s", action, report.count, "y" if report.count == 1 else "ies")
        return report
