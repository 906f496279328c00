"""
vaultsync Sync Module - disk mutations and index synchronization

Usage:
    from vaultsync.sync import LocalFileStore, SyncOrchestrator
    from vaultsync.index import MemoryContentIndex

    orchestrator = SyncOrchestrator(LocalFileStore('/vault'), MemoryContentIndex())
    orchestrator.sync_on_create('a/b/c.md', 'x')
    orchestrator.sync_on_move('a/b/c.md', 'archive/c.md')
"""

from .filestore import LocalFileStore
from .orchestrator import (
    SyncOrchestrator, SyncResult, MutationEvent, Write, Create, Move,
    SYNCED, DISK_ONLY, DESYNCED, FAILED,
)
from .watcher import VaultEventHandler, VaultWatcher

__all__ = [
    'LocalFileStore',
    'SyncOrchestrator', 'SyncResult', 'MutationEvent', 'Write', 'Create', 'Move',
    'SYNCED', 'DISK_ONLY', 'DESYNCED', 'FAILED',
    'VaultEventHandler', 'VaultWatcher',
]
