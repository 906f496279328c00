#!/usr/bin/env python3
"""
Sync Orchestrator - keeps the content index in step with the vault on disk

Disk is the source of truth. Each mutation runs in two phases:
  1. file store operation (write / create / move)
  2. index update (upsert / rename)

A failure in phase 1 aborts with a DiskError and leaves the index alone.
A failure in phase 2 keeps the disk change, returns a DesyncError and
parks the path for reconciliation.

Mutations on the same path, or on a directory and paths below it, are
serialized in arrival order through a PathSequencer. Callers always get
a resolved SyncResult back, never a half-finished state.

Usage:
    orchestrator = SyncOrchestrator(LocalFileStore(root), MemoryContentIndex())
    result = orchestrator.sync_on_write('notes/todo.md', '- [ ] ship it')
    if not result.ok:
        print(result.error)
"""

import logging
import posixpath
import threading
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Set, Tuple, Union

from vaultsync.common.errors import (
    DesyncError, DiskError, IndexUnavailable, VaultSyncError,
)
from vaultsync.common.sequencer import PathSequencer
from vaultsync.common.synclog import SyncLog
from vaultsync.index.content_index import ContentIndex

logger = logging.getLogger(__name__)


# ============================================================================
# Mutation events and results
# ============================================================================

@dataclass
class Write:
    path: str
    content: str
    index: bool = True


@dataclass
class Create:
    path: str
    content: str


@dataclass
class Move:
    source: str
    destination: str


MutationEvent = Union[Write, Create, Move]


SYNCED = 'synced'         # disk and index updated
DISK_ONLY = 'disk_only'   # disk updated, nothing to index
DESYNCED = 'desynced'     # disk updated, index update failed
FAILED = 'failed'         # disk refused, nothing changed


@dataclass
class SyncResult:
    operation: str
    path: str
    status: str
    target: Optional[str] = None
    error: Optional[VaultSyncError] = None
    renamed: List[Tuple[str, str]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status in (SYNCED, DISK_ONLY)

    def raise_for_error(self):
        if self.error is not None:
            raise self.error

    def to_dict(self) -> dict:
        result = {
            'operation': self.operation,
            'path': self.path,
            'status': self.status,
        }
        if self.target is not None:
            result['target'] = self.target
        if self.renamed:
            result['renamed'] = [list(pair) for pair in self.renamed]
        if self.error is not None:
            result.update(self.error.to_dict())
        return result


DesyncListener = Callable[[DesyncError], None]


# ============================================================================
# Orchestrator
# ============================================================================

class SyncOrchestrator:

    def __init__(self, filestore, index: ContentIndex,
                 sequencer: Optional[PathSequencer] = None,
                 log: Optional[SyncLog] = None):
        self.filestore = filestore
        self.index = index
        self.sequencer = sequencer or PathSequencer()
        self.log = log or SyncLog()

        self._pending: Dict[str, DesyncError] = {}
        # saved with index=False and not indexed since; reconcile leaves them out
        self._unindexed: Set[str] = set()
        self._listeners: List[DesyncListener] = []
        self._lock = threading.Lock()

    # =========================================================================
    # Public operations
    # =========================================================================

    def apply_mutation(self, event: MutationEvent) -> SyncResult:
        if isinstance(event, Write):
            return self._apply_write('write', event.path, event.content,
                                     index=event.index, create_parents=False)
        if isinstance(event, Create):
            return self._apply_write('create', event.path, event.content,
                                     index=True, create_parents=True)
        if isinstance(event, Move):
            return self._apply_move(event.source, event.destination)
        raise TypeError(f"Unknown mutation event: {event!r}")

    def sync_on_write(self, path: str, content: str, index_requested: bool = True) -> SyncResult:
        return self.apply_mutation(Write(path, content, index=index_requested))

    def sync_on_create(self, path: str, content: str) -> SyncResult:
        return self.apply_mutation(Create(path, content))

    def sync_on_move(self, source: str, destination: str) -> SyncResult:
        return self.apply_mutation(Move(source, destination))

    def create_directory(self, path: str) -> SyncResult:
        """Recursive, idempotent directory creation. No index effect."""
        try:
            key = self.filestore.relative(path)
            with self.sequencer.hold(key):
                self.filestore.mkdir_recursive(key)
        except DiskError as e:
            return self._failed('mkdir', path, e)
        self.log.record('mkdir', key, DISK_ONLY)
        return SyncResult('mkdir', key, DISK_ONLY)

    # =========================================================================
    # Out-of-band changes (file watcher)
    # =========================================================================

    def sync_on_delete(self, path: str) -> SyncResult:
        """Drop index records for a file or directory already gone from disk."""
        try:
            key = self.filestore.relative(path)
        except DiskError as e:
            return self._failed('delete', path, e)

        with self.sequencer.hold(key):
            self._forget_unindexed(key)
            try:
                removed = [p for p in [key] + self.index.paths_under(key) if self.index.delete(p)]
            except IndexUnavailable as e:
                return self._desync('delete', key, e)
            self._clear_pending(key)

        status = SYNCED if removed else DISK_ONLY
        self.log.record('delete', key, status)
        return SyncResult('delete', key, status)

    def sync_on_external_move(self, source: str, destination: str) -> SyncResult:
        """Carry index records across a move that already happened on disk."""
        try:
            src = self.filestore.relative(source)
            dst = self.filestore.relative(destination)
        except DiskError as e:
            return self._failed('move', source, e)

        with self.sequencer.hold(src, dst):
            return self._rename_records('move', src, dst)

    # =========================================================================
    # Desync tracking and reconciliation
    # =========================================================================

    def add_desync_listener(self, listener: DesyncListener):
        self._listeners.append(listener)

    def desynced_paths(self) -> Dict[str, DesyncError]:
        with self._lock:
            return dict(self._pending)

    def reconcile(self, paths: Optional[List[str]] = None,
                  index_new: bool = True) -> List[SyncResult]:
        """Re-sync the index from disk.

        With no paths, sweeps every path parked by an earlier desync. A
        path that is gone from disk loses its records; a directory has
        every file below it re-checked. Files without a record are only
        indexed when `index_new` is set.
        """
        if paths is None:
            with self._lock:
                paths = sorted(self._pending)

        results = []
        for path in paths:
            try:
                key = self.filestore.relative(path)
            except DiskError as e:
                results.append(self._failed('reconcile', path, e))
                continue
            with self.sequencer.hold(key):
                results.append(self._reconcile_path(key, index_new))
        return results

    # =========================================================================
    # Internals
    # =========================================================================

    def _apply_write(self, operation: str, path: str, content: str,
                     index: bool, create_parents: bool) -> SyncResult:
        try:
            key = self.filestore.relative(path)
        except DiskError as e:
            return self._failed(operation, path, e)

        with self.sequencer.hold(key):
            try:
                parent = posixpath.dirname(key)
                if create_parents and parent:
                    self.filestore.mkdir_recursive(parent)
                self.filestore.write(key, content)
            except DiskError as e:
                return self._failed(operation, key, e)

            with self._lock:
                if index:
                    self._unindexed.discard(key)
                else:
                    self._unindexed.add(key)

            if not index:
                self.log.record(operation, key, DISK_ONLY)
                return SyncResult(operation, key, DISK_ONLY)

            try:
                self.index.upsert(key, content)
            except IndexUnavailable as e:
                return self._desync(operation, key, e)
            self._clear_pending(key)

        self.log.record(operation, key, SYNCED)
        logger.debug("%s %s synced", operation, key)
        return SyncResult(operation, key, SYNCED)

    def _apply_move(self, source: str, destination: str) -> SyncResult:
        try:
            src = self.filestore.relative(source)
            # An empty destination is the vault root
            dst = self.filestore.relative(destination or '.')
            if not dst:
                dst = posixpath.basename(src)
            elif dst != src and self.filestore.is_dir(dst):
                dst = posixpath.join(dst, posixpath.basename(src))
        except DiskError as e:
            return self._failed('move', source, e)

        with self.sequencer.hold(src, dst):
            try:
                final = self.filestore.move(src, dst)
            except DiskError as e:
                return self._failed('move', src, e)
            return self._rename_records('move', src, final)

    def _rename_records(self, operation: str, src: str, dst: str) -> SyncResult:
        if src == dst:
            self.log.record(operation, src, DISK_ONLY, target=dst)
            return SyncResult(operation, src, DISK_ONLY, target=dst)

        with self._lock:
            moved = [p for p in self._unindexed if p == src or p.startswith(src + '/')]
            for p in moved:
                self._unindexed.discard(p)
                self._unindexed.add(dst + p[len(src):])

        renamed = []
        try:
            pairs = [(src, dst)] + [
                (p, dst + p[len(src):]) for p in self.index.paths_under(src)
            ]
            for old, new in pairs:
                if self.index.rename(old, new):
                    renamed.append((old, new))
        except IndexUnavailable as e:
            return self._desync(operation, src, e, target=dst, pending=(src, dst))

        self._clear_pending(src, dst)
        status = SYNCED if renamed else DISK_ONLY
        self.log.record(operation, src, status, target=dst)
        logger.debug("%s %s -> %s (%d records)", operation, src, dst, len(renamed))
        return SyncResult(operation, src, status, target=dst, renamed=renamed)

    def _reconcile_path(self, key: str, index_new: bool) -> SyncResult:
        try:
            if self.filestore.is_dir(key):
                on_disk = {}
                for path in self.filestore.list_files(key):
                    try:
                        on_disk[path] = self.filestore.read(path)
                    except DiskError as e:
                        logger.info("reconcile skipping %s: %s", path, e)
            elif self.filestore.exists(key):
                on_disk = {key: self.filestore.read(key)}
            else:
                on_disk = {}
        except DiskError as e:
            return self._failed('reconcile', key, e)

        with self._lock:
            unindexed = set(self._unindexed)

        try:
            indexed = set(self.index.paths_under(key))
            if key and key in self.index:
                indexed.add(key)
            removed = [p for p in sorted(indexed - set(on_disk)) if self.index.delete(p)]
            updated = []
            for path, content in on_disk.items():
                record = self.index.get(path)
                if record is None and (not index_new or path in unindexed):
                    continue
                if record is None or record.content != content:
                    self.index.upsert(path, content)
                    updated.append(path)
        except IndexUnavailable as e:
            return self._desync('reconcile', key, e)

        self._clear_pending(key)
        tracked = removed or updated or indexed.intersection(on_disk)
        status = SYNCED if tracked else DISK_ONLY
        self.log.record('reconcile', key, status)
        if removed or updated:
            logger.info("reconciled %s: %d updated, %d removed",
                        key or '<vault>', len(updated), len(removed))
        return SyncResult('reconcile', key, status)

    def unindexed_paths(self) -> List[str]:
        with self._lock:
            return sorted(self._unindexed)

    def _forget_unindexed(self, key: str):
        with self._lock:
            self._unindexed = {
                p for p in self._unindexed
                if not (p == key or not key or p.startswith(key + '/'))
            }

    def _clear_pending(self, *keys: str):
        with self._lock:
            for key in keys:
                self._pending.pop(key, None)

    def _failed(self, operation: str, path: str, error: DiskError) -> SyncResult:
        logger.info("%s %s refused by file store: %s", operation, path, error)
        self.log.record(operation, path, FAILED, error=str(error))
        return SyncResult(operation, path, FAILED, error=error)

    def _desync(self, operation: str, key: str, cause: Exception,
                target: Optional[str] = None, pending: Tuple[str, ...] = ()) -> SyncResult:
        error = DesyncError(target or key, cause)
        with self._lock:
            for path in pending or (key,):
                self._pending[path] = error

        logger.warning("%s %s: disk updated but index is stale: %s", operation, key, cause)
        self.log.record(operation, key, DESYNCED, target=target, error=str(error))

        for listener in list(self._listeners):
            try:
                listener(error)
            except Exception:
                logger.exception("desync listener failed for %s", key)

        return SyncResult(operation, key, DESYNCED, target=target, error=error)
