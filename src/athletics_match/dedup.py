"""athletics_match.dedup

Batch-wide deduplication of proposals.

Several scraped records of one batch can resolve to the same edition and
propose the same change.  The persisted check (proposals already pending in
the review queue) cannot see siblings of the same batch, so an in-memory set
of (target, content hash) shared by the whole batch is checked as well.
"""

from __future__ import annotations

import hashlib
import json
import threading
from datetime import date, datetime
from enum import Enum
from typing import Any, Callable, Hashable

VOLATILE_KEYS = frozenset({"confidence", "timestamp", "created_at", "updated_at"})


def normalize_for_hashing(obj: Any) -> Any:
    """Drop volatile keys, render dates as ISO strings, recurse into containers."""
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, dict):
        return {
            str(k): normalize_for_hashing(v)
            for k, v in obj.items()
            if k not in VOLATILE_KEYS
        }
    if isinstance(obj, (list, tuple)):
        return [normalize_for_hashing(v) for v in obj]
    return obj


def hash_changes(changes: Any) -> str:
    """SHA-256 of the canonical JSON form of a proposed change."""
    canonical = json.dumps(
        normalize_for_hashing(changes),
        sort_keys=True,
        ensure_ascii=False,
        separators=(",", ":"),
        default=str,
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


PersistedCheck = Callable[[Hashable, str], bool]


class ProposalDeduplicator:
    """Thread-safe set of proposal keys seen during one batch.

    persisted_check(target, changes_hash), if given, reports whether an
    identical proposal is already pending outside this batch.
    """

    def __init__(self, persisted_check: PersistedCheck | None = None) -> None:
        self._seen: set[tuple[Hashable, str]] = set()
        self._lock = threading.Lock()
        self._persisted_check = persisted_check

    def __len__(self) -> int:
        with self._lock:
            return len(self._seen)

    def register(self, target: Hashable, changes: Any) -> bool:
        """Record a proposal; return False if it duplicates an earlier one."""
        key = (target, hash_changes(changes))
        with self._lock:
            if key in self._seen:
                return False
            if self._persisted_check is not None and self._persisted_check(*key):
                self._seen.add(key)
                return False
            self._seen.add(key)
            return True
