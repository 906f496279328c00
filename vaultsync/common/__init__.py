"""
vaultsync Common Module

Shared pieces used by every vaultsync service.
"""

from .config import VaultConfig, normalize_extensions
from .errors import (
    VaultSyncError, DiskError, PathNotFound, PermissionDenied, DiskIOError,
    PathOutsideVault, DesyncError, IndexUnavailable, ContextTooSmall,
    SessionNotFound,
)
from .sequencer import PathSequencer
from .synclog import SyncLog, SyncLogEntry

__all__ = [
    'VaultConfig', 'normalize_extensions',
    'VaultSyncError', 'DiskError', 'PathNotFound', 'PermissionDenied',
    'DiskIOError', 'PathOutsideVault', 'DesyncError', 'IndexUnavailable',
    'ContextTooSmall', 'SessionNotFound',
    'PathSequencer',
    'SyncLog', 'SyncLogEntry',
]
