"""
Error taxonomy for vault sync and prompt building.

Four kinds reach callers:
  - disk:              the file store refused the operation, nothing changed
  - desync:            disk changed but the index update failed
  - context_too_small: the prompt cannot fit the session's context window
  - session_not_found: no tokenizer session for the requested id

IndexUnavailable is raised by index backends; the orchestrator wraps it
in a DesyncError once the disk side has already succeeded.
"""

import errno
from typing import Optional


class VaultSyncError(Exception):
    """Base class for every vaultsync error."""

    kind = 'error'

    def to_dict(self) -> dict:
        return {'error': str(self), 'kind': self.kind}


# =============================================================================
# Disk errors (raised before any index change)
# =============================================================================

class DiskError(VaultSyncError):
    kind = 'disk'

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message)
        self.path = path


class PathNotFound(DiskError):
    kind = 'not_found'


class PermissionDenied(DiskError):
    kind = 'permission_denied'


class DiskIOError(DiskError):
    kind = 'io_error'


class PathOutsideVault(DiskError):
    kind = 'outside_vault'


def disk_error_from_os(exc: OSError, path: str) -> DiskError:
    """Map an OSError onto the matching DiskError subclass."""
    reason = exc.strerror or str(exc)
    if isinstance(exc, FileNotFoundError) or exc.errno == errno.ENOENT:
        return PathNotFound(f"{path}: {reason}", path)
    if isinstance(exc, PermissionError) or exc.errno in (errno.EACCES, errno.EPERM):
        return PermissionDenied(f"{path}: {reason}", path)
    return DiskIOError(f"{path}: {reason}", path)


# =============================================================================
# Index errors
# =============================================================================

class IndexUnavailable(VaultSyncError):
    kind = 'index_unavailable'


class DesyncError(VaultSyncError):
    """Disk mutation succeeded, index did not follow."""

    kind = 'desync'

    def __init__(self, path: str, cause: Exception):
        super().__init__(f"Index out of sync for {path}: {cause}")
        self.path = path
        self.cause = cause


# =============================================================================
# Prompt errors
# =============================================================================

class ContextTooSmall(VaultSyncError):
    kind = 'context_too_small'

    def __init__(self, token_budget: int, required_tokens: int):
        super().__init__(
            f"Context budget of {token_budget} tokens cannot hold the prompt "
            f"({required_tokens} tokens without any file content)"
        )
        self.token_budget = token_budget
        self.required_tokens = required_tokens


class SessionNotFound(VaultSyncError):
    kind = 'session_not_found'

    def __init__(self, session_id: str):
        super().__init__(f"Session {session_id} does not exist.")
        self.session_id = session_id
