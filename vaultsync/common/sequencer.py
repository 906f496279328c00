"""
Per-path serialization for file mutations.

Every holder takes one ticket covering all the paths it touches. Tickets
are issued under one lock in arrival order, and a holder runs only once
no earlier holder still queued or running touches a conflicting path. Two
paths conflict when they are equal or one is a directory above the other
('' is the vault root and conflicts with everything), so a write to
`dir/x.md` and a move of `dir` never interleave. Conflicting work runs in
arrival order; an earliest ticket never waits, so multi-path holders
(moves) cannot deadlock each other.

Usage:
    sequencer = PathSequencer()
    with sequencer.hold('notes/a.md', 'archive/a.md'):
        ...
"""

import threading
from contextlib import contextmanager
from typing import Dict, Iterable, Iterator, Tuple


def paths_conflict(a: str, b: str) -> bool:
    if a == b or not a or not b:
        return True
    return a.startswith(b + '/') or b.startswith(a + '/')


class PathSequencer:
    """FIFO critical sections keyed by path, aware of directory nesting."""

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        # ticket -> keys, in ticket order
        self._holders: Dict[int, Tuple[str, ...]] = {}
        self._next_ticket = 0

    def _blocked(self, ticket: int, keys: Iterable[str]) -> bool:
        for other_ticket, other_keys in self._holders.items():
            if other_ticket >= ticket:
                return False
            if any(paths_conflict(k, o) for k in keys for o in other_keys):
                return True
        return False

    @contextmanager
    def hold(self, *paths: str) -> Iterator[None]:
        keys = tuple(sorted(set(paths)))
        with self._cond:
            ticket = self._next_ticket
            self._next_ticket += 1
            self._holders[ticket] = keys
            self._cond.wait_for(lambda: not self._blocked(ticket, keys))
        try:
            yield
        finally:
            with self._cond:
                del self._holders[ticket]
                self._cond.notify_all()

    def pending(self, path: str) -> int:
        """Holders queued or running on exactly this path."""
        with self._cond:
            return sum(1 for keys in self._holders.values() if path in keys)

    def active_paths(self) -> int:
        with self._cond:
            return len({k for keys in self._holders.values() for k in keys})
