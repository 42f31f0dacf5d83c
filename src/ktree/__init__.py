"""File-based knowledge tree: JSON entry documents linked into a typed graph.

Layout:
    entries/
        backend/
            redis/
                connection-pooling.json   # one entry per file (git-tracked)
        .knowledge-tree.json              # store control file, never an entry

entry document:
    {"title": ..., "priority": "CRITICAL|REQUIRED|COMMON|EDGE-CASE",
     "problem": ..., "solution": ..., "tags": [...],
     "related_to": [{"path": "frontend/cache.json", "relationship": "related"}],
     "created_at": ..., "updated_at": ...}

Symmetric relations (related, conflicts_with) are mirrored onto the target.
Moves rewrite every incoming reference; deletes strip them.
"""

from ktree.config import KtreeConfig, init_config, load_config
from ktree.engine import KnowledgeTree
from ktree.errors import Conflict, InvalidPath, KtreeError, Malformed, NotFound, ValidationError
from ktree.models import Entry, Relation, normalize_path
from ktree.notify import LogSink, NullSink, Subscribers
from ktree.results import OperationResult, ValidationReport
from ktree.store import EntryStore

__all__ = [
    "Conflict",
    "Entry",
    "EntryStore",
    "InvalidPath",
    "KnowledgeTree",
    "KtreeConfig",
    "KtreeError",
    "LogSink",
    "Malformed",
    "NotFound",
    "NullSink",
    "OperationResult",
    "Relation",
    "Subscribers",
    "ValidationError",
    "ValidationReport",
    "init_config",
    "load_config",
    "normalize_path",
]
