"""Result records returned by engine operations.

A successful mutation returns an OperationResult. Best-effort side effects
that did not complete for every affected entry are reported in its
``side_effects`` field instead of failing the call.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from ktree.models import Entry


@dataclass
class SideEffectFailure:
    """One entry a side effect could not read or write."""

    path: str
    action: str      # mirror | unmirror | rewrite | strip | notify
    reason: str

    def __str__(self) -> str:
        return f"{self.action} {self.path}: {self.reason}"


@dataclass
class PartialFailure:
    """Side-effect failures attached to an otherwise successful operation."""

    failures: list[SideEffectFailure] = field(default_factory=list)

    def __bool__(self) -> bool:
        return bool(self.failures)

    def __len__(self) -> int:
        return len(self.failures)

    def add(self, path: str, action: str, reason: str) -> None:
        self.failures.append(SideEffectFailure(path, action, reason))

    def extend(self, other: PartialFailure) -> None:
        self.failures.extend(other.failures)

    def messages(self) -> list[str]:
        return [str(f) for f in self.failures]


@dataclass
class SyncReport:
    """Outcome of a link synchronizer pass."""

    changed: list[str] = field(default_factory=list)   # target paths written
    failures: PartialFailure = field(default_factory=PartialFailure)


@dataclass
class RewriteReport:
    """Outcome of a store-wide reference rewrite or strip."""

    modified: list[str] = field(default_factory=list)
    scanned: int = 0
    failures: PartialFailure = field(default_factory=PartialFailure)

    @property
    def count(self) -> int:
        return len(self.modified)


@dataclass
class OperationResult:
    """Success result of create/update/delete/move/link."""

    path: str
    entry: Entry | None = None
    old_path: str | None = None
    modified: int = 0                # entries touched by reference cleanup/rewrite
    warnings: list[str] = field(default_factory=list)
    side_effects: PartialFailure = field(default_factory=PartialFailure)

    @property
    def moved(self) -> bool:
        return self.old_path is not None and self.old_path != self.path

    @property
    def degraded(self) -> bool:
        """True when the primary write succeeded but a side effect did not fully complete."""
        return bool(self.side_effects)

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"path": self.path, "modified": self.modified}
        if self.old_path is not None:
            d["old_path"] = self.old_path
        if self.warnings:
            d["warnings"] = list(self.warnings)
        if self.side_effects:
            d["side_effect_failures"] = self.side_effects.messages()
        return d


@dataclass
class ValidationReport:
    """Outcome of validate(): issues found and mirrors repaired."""

    checked: int = 0
    issues: list[str] = field(default_factory=list)
    fixed: int = 0

    @property
    def ok(self) -> bool:
        return not self.issues
