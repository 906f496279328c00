"""
File watcher - feeds out-of-band vault edits back into the index

Edits made outside the sync API (an editor, git checkout, a sync client)
reach the index through watchdog events:

  created  -> reconcile the file (indexed if new)
  modified -> reconcile the file if it already has a record
  moved    -> rename records, identity preserved
  deleted  -> drop records

Echoes of mutations the orchestrator already applied are no-ops: the
record content already matches disk, and moves find nothing left at the
source.
"""

import logging
from pathlib import Path
from typing import Iterable, Optional

from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from vaultsync.common.config import normalize_extensions
from vaultsync.common.errors import PathOutsideVault

logger = logging.getLogger(__name__)


class VaultEventHandler(FileSystemEventHandler):

    def __init__(self, orchestrator, extensions: Optional[Iterable[str]] = None):
        self.orchestrator = orchestrator
        self.filestore = orchestrator.filestore
        self.extensions = set(normalize_extensions(extensions))

    def vault_key(self, raw_path) -> Optional[str]:
        """Vault-relative key for an event path, None when not tracked."""
        if isinstance(raw_path, bytes):
            raw_path = raw_path.decode('utf-8', errors='surrogateescape')
        try:
            key = self.filestore.relative(raw_path)
        except PathOutsideVault:
            return None
        if not key or any(part.startswith('.') for part in key.split('/')):
            return None
        return key

    def should_track_file(self, key: Optional[str]) -> bool:
        if key is None:
            return False
        if not self.extensions:
            return True
        return Path(key).suffix.lower() in self.extensions

    def on_created(self, event):
        if event.is_directory:
            return
        key = self.vault_key(event.src_path)
        if self.should_track_file(key):
            self._report(self.orchestrator.reconcile([key]))

    def on_modified(self, event):
        if event.is_directory:
            return
        key = self.vault_key(event.src_path)
        if self.should_track_file(key):
            self._report(self.orchestrator.reconcile([key], index_new=False))

    def on_moved(self, event):
        src = self.vault_key(event.src_path)
        dst = self.vault_key(event.dest_path)
        if src is None and dst is None:
            return
        if src is None:
            # Moved in from outside the vault, or out of a hidden directory
            if event.is_directory or self.should_track_file(dst):
                self._report(self.orchestrator.reconcile([dst]))
            return
        if dst is None:
            self._report([self.orchestrator.sync_on_delete(src)])
            return
        self._report([self.orchestrator.sync_on_external_move(src, dst)])

    def on_deleted(self, event):
        key = self.vault_key(event.src_path)
        if key is not None:
            self._report([self.orchestrator.sync_on_delete(key)])

    def _report(self, results):
        for result in results:
            if not result.ok:
                logger.warning("watcher %s %s: %s", result.operation, result.path, result.error)


class VaultWatcher:
    """Runs a watchdog Observer over the vault root."""

    def __init__(self, orchestrator, extensions: Optional[Iterable[str]] = None):
        self.orchestrator = orchestrator
        self.handler = VaultEventHandler(orchestrator, extensions)
        self.observer: Optional[Observer] = None

    @property
    def running(self) -> bool:
        return self.observer is not None and self.observer.is_alive()

    def start(self):
        if self.running:
            return
        root = str(self.orchestrator.filestore.root)
        self.observer = Observer()
        self.observer.schedule(self.handler, root, recursive=True)
        self.observer.start()
        logger.info("File watcher started for: %s", root)

    def stop(self):
        if self.observer is None:
            return
        self.observer.stop()
        self.observer.join()
        self.observer = None
