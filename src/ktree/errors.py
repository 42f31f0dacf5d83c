"""Exception taxonomy for the entry graph engine.

Every failure on the *primary* target of an operation raises one of these
before anything is written. Side-effect failures (mirror sync, reference
rewrite) are never raised; they are collected in ``ktree.results.PartialFailure``.
"""

from __future__ import annotations

from typing import Any


class KtreeError(Exception):
    """Base exception for all ktree errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class NotFound(KtreeError):
    """The entry an operation targets does not exist."""

    def __init__(self, path: str) -> None:
        super().__init__(f"Entry not found: {path}", details={"path": path})
        self.path = path


class Conflict(KtreeError):
    """Create was asked to write a path that already holds an entry."""

    def __init__(self, path: str) -> None:
        super().__init__(f"Entry already exists: {path}", details={"path": path})
        self.path = path


class ValidationError(KtreeError):
    """One or more field or reference violations.

    Always carries the full list of problems, never just the first one.
    """

    def __init__(self, errors: list[str], path: str | None = None) -> None:
        self.errors = list(errors)
        self.path = path
        prefix = f"Validation failed for {path}" if path else "Validation failed"
        super().__init__(
            prefix + ":\n" + "\n".join(f"- {e}" for e in self.errors),
            details={"errors": self.errors, "path": path},
        )


class InvalidPath(ValidationError):
    """A path that cannot be normalized into a storage key."""

    def __init__(self, path: str, reason: str) -> None:
        super().__init__([f"Invalid path {path!r}: {reason}"])
        self.raw_path = path
        self.reason = reason


class Malformed(KtreeError):
    """Stored content does not decode to a valid entry."""

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"Malformed entry {path}: {reason}", details={"path": path, "reason": reason})
        self.path = path
        self.reason = reason
