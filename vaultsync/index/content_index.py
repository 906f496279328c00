#!/usr/bin/env python3
"""
Content Index - searchable mirror of vault files

One IndexRecord per vault-relative path. Records are created on write or
create, replaced on later writes and carried across renames with their
identity (sync clock value) intact, so consumers keyed by path only see
new work when content changed.

Backends:
  - MemoryContentIndex: in-process, with an inverted token index for search
  - RedisContentIndex:  durable, see redis_index.py
"""

import re
import threading
import time
from abc import ABC, abstractmethod
from collections import Counter, defaultdict, deque
from dataclasses import dataclass, asdict
from typing import Dict, List, Optional, Tuple


# ============================================================================
# Data Structures
# ============================================================================

@dataclass
class IndexRecord:
    path: str
    content: str
    last_synced_at: int   # logical clock, strictly increasing per index

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class ChangeRecord:
    path: str
    timestamp: int
    change_type: str  # upserted, deleted, renamed
    target: Optional[str] = None


def normalize_prefix(prefix: str) -> str:
    prefix = prefix.strip('/')
    return prefix + '/' if prefix else ''


class ContentIndex(ABC):
    """Index capability consumed by the sync orchestrator.

    Every method raises IndexUnavailable when the backing store fails.
    """

    @abstractmethod
    def upsert(self, path: str, content: str) -> IndexRecord:
        ...

    @abstractmethod
    def delete(self, path: str) -> bool:
        """Remove a record. Returns False when there was none."""

    @abstractmethod
    def rename(self, source: str, destination: str) -> bool:
        """Move a record to a new key keeping its identity.

        Returns False when `source` has no record. An existing record at
        `destination` is replaced.
        """

    @abstractmethod
    def get(self, path: str) -> Optional[IndexRecord]:
        ...

    @abstractmethod
    def paths(self) -> List[str]:
        ...

    def paths_under(self, prefix: str) -> List[str]:
        """Indexed paths inside a directory prefix, sorted."""
        prefix = normalize_prefix(prefix)
        return sorted(p for p in self.paths() if p.startswith(prefix))

    def __contains__(self, path: str) -> bool:
        return self.get(path) is not None


# ============================================================================
# In-memory backend
# ============================================================================

class MemoryContentIndex(ContentIndex):
    """Content index with an inverted token index and change log."""

    MAX_CHANGES = 1000
    TOKEN_PATTERN = re.compile(r'[A-Za-z_][A-Za-z0-9_]*')

    def __init__(self, name: str = 'vault'):
        self.name = name
        self.session_start = int(time.time())
        self.last_indexed = 0

        # Core data structures
        self.records: Dict[str, IndexRecord] = {}
        self.inverted_index: Dict[str, Dict[str, int]] = defaultdict(dict)
        self.file_tokens: Dict[str, Counter] = {}
        self.changes = deque(maxlen=self.MAX_CHANGES)

        self._clock = 0
        self.lock = threading.RLock()

    def tokenize(self, content: str) -> Counter:
        """Lower-cased word counts for search."""
        counts = Counter()
        for match in self.TOKEN_PATTERN.finditer(content):
            token = match.group()
            if len(token) >= 2:
                counts[token.lower()] += 1
        return counts

    def _tick(self) -> int:
        self._clock += 1
        return self._clock

    def _remove_tokens(self, path: str):
        for token in self.file_tokens.pop(path, ()):
            postings = self.inverted_index.get(token)
            if postings is None:
                continue
            postings.pop(path, None)
            if not postings:
                del self.inverted_index[token]

    def _record_change(self, path: str, change_type: str, target: Optional[str] = None):
        self.changes.append(ChangeRecord(
            path=path,
            timestamp=int(time.time()),
            change_type=change_type,
            target=target,
        ))

    def upsert(self, path: str, content: str) -> IndexRecord:
        with self.lock:
            self._remove_tokens(path)
            record = IndexRecord(path=path, content=content, last_synced_at=self._tick())
            self.records[path] = record

            counts = self.tokenize(content)
            self.file_tokens[path] = counts
            for token, hits in counts.items():
                self.inverted_index[token][path] = hits

            self.last_indexed = int(time.time())
            self._record_change(path, 'upserted')
            return record

    def delete(self, path: str) -> bool:
        with self.lock:
            if path not in self.records:
                return False
            del self.records[path]
            self._remove_tokens(path)
            self._record_change(path, 'deleted')
            return True

    def rename(self, source: str, destination: str) -> bool:
        with self.lock:
            record = self.records.pop(source, None)
            if record is None:
                return False
            if source == destination:
                self.records[source] = record
                return True
            if destination in self.records:
                del self.records[destination]
                self._remove_tokens(destination)

            record.path = destination
            self.records[destination] = record

            # Postings follow the record, no re-tokenizing
            counts = self.file_tokens.pop(source, Counter())
            self.file_tokens[destination] = counts
            for token in counts:
                postings = self.inverted_index[token]
                postings[destination] = postings.pop(source)

            self._record_change(source, 'renamed', target=destination)
            return True

    def get(self, path: str) -> Optional[IndexRecord]:
        with self.lock:
            return self.records.get(path)

    def paths(self) -> List[str]:
        with self.lock:
            return sorted(self.records)

    def search(self, query: str, limit: int = 20) -> List[dict]:
        """Rank records by term hits, then most recently synced."""
        terms = list(self.tokenize(query))
        if not terms:
            return []

        with self.lock:
            scores: Dict[str, Tuple[int, int]] = {}
            for term in terms:
                for path, hits in self.inverted_index.get(term, {}).items():
                    matched, total = scores.get(path, (0, 0))
                    scores[path] = (matched + 1, total + hits)

            ranked = sorted(
                scores.items(),
                key=lambda item: (-item[1][0], -item[1][1],
                                  -self.records[item[0]].last_synced_at, item[0]),
            )
            return [
                {
                    'path': path,
                    'matched_terms': matched,
                    'hits': total,
                    'last_synced_at': self.records[path].last_synced_at,
                }
                for path, (matched, total) in ranked[:limit]
            ]

    def changes_since(self, since: int) -> List[dict]:
        with self.lock:
            return [asdict(c) for c in self.changes if c.timestamp >= since]

    def get_stats(self) -> dict:
        with self.lock:
            return {
                'name': self.name,
                'backend': 'memory',
                'records': len(self.records),
                'tokens': len(self.inverted_index),
                'clock': self._clock,
                'last_indexed': self.last_indexed,
                'session_start': self.session_start,
            }
