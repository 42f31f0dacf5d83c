"""Link synchronizer: keeps symmetric relations mirrored on their targets.

Mirroring is best-effort. A target that is missing, malformed or unwritable
is logged and recorded in the returned SyncReport; it never aborts the
mutation that triggered the sync.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from ktree.errors import KtreeError
from ktree.models import Relation
from ktree.relationships import is_symmetric
from ktree.results import SyncReport

if TYPE_CHECKING:
    from collections.abc import Iterable

    from ktree.models import Entry
    from ktree.store import EntryStore

logger = logging.getLogger("ktree.links")


class LinkSynchronizer:
    def __init__(self, store: EntryStore) -> None:
        self.store = store

    def sync(self, source_path: str, entry: Entry) -> SyncReport:
        """Mirror every symmetric relation of entry onto its target."""
        return self.sync_relations(source_path, entry.related_to)

    def sync_relations(self, source_path: str, relations: Iterable[Relation]) -> SyncReport:
        report = SyncReport()
        for rel in relations:
            if not is_symmetric(rel.relationship) or rel.path == source_path:
                continue
            try:
                if self.add_mirror(source_path, rel):
                    report.changed.append(rel.path)
            except (KtreeError, OSError) as exc:
                logger.warning("mirror %s -> %s failed: %s", rel.path, source_path, exc)
                report.failures.add(rel.path, "mirror", str(exc))
        return report

    def add_mirror(self, source_path: str, rel: Relation) -> bool:
        """Add target -> source for one relation. Returns False if already present.

        Raises on read/write failure; sync_relations() is the best-effort wrapper.
        """
        target = self.store.read(rel.path)
        if target.has_relation_to(source_path):
            return False
        target.related_to.append(Relation(source_path, rel.relationship, rel.description))
        self.store.write(rel.path, target)
        logger.debug("mirrored %s -[%s]-> %s", rel.path, rel.relationship, source_path)
        return True

    def unsync(self, source_path: str, removed: Iterable[Relation]) -> SyncReport:
        """Drop the mirrors of symmetric relations removed from source_path."""
        report = SyncReport()
        for rel in removed:
            if not is_symmetric(rel.relationship) or rel.path == source_path:
                continue
            try:
                if self.remove_mirror(source_path, rel):
                    report.changed.append(rel.path)
            except (KtreeError, OSError) as exc:
                logger.warning("unmirror %s -> %s failed: %s", rel.path, source_path, exc)
                report.failures.add(rel.path, "unmirror", str(exc))
        return report

    def remove_mirror(self, source_path: str, rel: Relation) -> bool:
        """Drop the target's mirror back to source_path. Returns False if there was none.

        Mirrors are matched by path: every symmetric relation on the target
        that points at source_path goes, whatever its kind. Directional
        relations the target holds on its own are never mirrors and stay.
        """
        target = self.store.read(rel.path)
        kept = [
            r for r in target.related_to
            if not (r.path == source_path and is_symmetric(r.relationship))
        ]
        if len(kept) == len(target.related_to):
            return False
        target.related_to = kept
        self.store.write(rel.path, target)
        logger.debug("unmirrored %s -[%s]-> %s", rel.path, rel.relationship, source_path)
        return True
