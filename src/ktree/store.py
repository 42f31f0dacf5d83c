"""Read and write entry documents: one JSON file per entry.

EntryStore is the storage boundary of the engine:
    store = EntryStore("/path/to/entries")
    entry = store.read("backend/redis/pooling.json")
    store.write("backend/redis/pooling.json", entry)

The key *is* the relative file path. Nothing is cached; every call goes back
to the filesystem, so two calls only agree as of their own reads.

Writes go to a hidden temporary sibling and are renamed into place, which is
as atomic as a single file gets. There is no locking: two writers of the same
key race and the last rename wins.
"""

from __future__ import annotations

import contextlib
import json
import logging
import uuid
from pathlib import Path
from typing import TYPE_CHECKING

from ktree.errors import InvalidPath, Malformed, NotFound
from ktree.models import ENTRY_SUFFIX, Entry

if TYPE_CHECKING:
    from collections.abc import Iterator

logger = logging.getLogger("ktree.store")

# Store-level control file, never treated as an entry.
CONTROL_FILENAME = ".knowledge-tree.json"


class EntryStore:
    """JSON-file-backed entry store."""

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    def _file(self, key: str) -> Path:
        parts = key.split("/")
        if not key or key.startswith("/") or any(p in ("", ".", "..") for p in parts):
            raise InvalidPath(key, "not a relative entry key")
        return self.root.joinpath(*parts)

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def exists(self, key: str) -> bool:
        return self._file(key).is_file()

    def read(self, key: str) -> Entry:
        """Load and decode one entry. Raises NotFound or Malformed."""
        path = self._file(key)
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            raise NotFound(key) from None
        except IsADirectoryError:
            raise NotFound(key) from None
        except (OSError, UnicodeDecodeError) as exc:
            raise Malformed(key, str(exc)) from exc
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise Malformed(key, f"invalid JSON ({exc.msg} at line {exc.lineno})") from exc
        return Entry.from_dict(data, where=key)

    def list_all(self) -> list[str]:
        """All entry keys under the root. Sorted, but callers must not rely on order."""
        keys: list[str] = []
        for path in self.root.rglob(f"*{ENTRY_SUFFIX}"):
            rel = path.relative_to(self.root)
            if path.name == CONTROL_FILENAME:
                continue
            if any(part.startswith(".") for part in rel.parts):
                continue
            if not path.is_file():
                continue
            keys.append(rel.as_posix())
        return sorted(keys)

    def iter_entries(self) -> Iterator[tuple[str, Entry]]:
        """Yield (key, entry) for every readable entry, skipping broken ones."""
        for key in self.list_all():
            try:
                yield key, self.read(key)
            except (NotFound, Malformed) as exc:
                logger.warning("skipping %s: %s", key, exc.message)

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def write(self, key: str, entry: Entry) -> None:
        """Write entry at key, creating parent directories as needed."""
        path = self._file(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_name(f".{path.name}.{uuid.uuid4().hex[:8]}.tmp")
        try:
            with tmp.open("w", encoding="utf-8") as f:
                json.dump(entry.to_dict(), f, indent=2, ensure_ascii=False)
                f.write("\n")
            tmp.replace(path)
        finally:
            with contextlib.suppress(OSError):
                tmp.unlink(missing_ok=True)

    def delete(self, key: str) -> None:
        """Remove the entry file and any directories it leaves empty."""
        path = self._file(key)
        try:
            path.unlink()
        except FileNotFoundError:
            raise NotFound(key) from None
        self._prune_empty_dirs(path.parent)

    def _prune_empty_dirs(self, directory: Path) -> None:
        root = self.root.resolve()
        current = directory
        while current.resolve() != root and root in current.resolve().parents:
            try:
                current.rmdir()
            except OSError:
                return
            current = current.parent
