"""
Local file store rooted at the vault directory.

Paths come in vault-relative (or absolute inside the vault) and are keyed
in the index by their normalized vault-relative POSIX form. Every OSError
surfaces as a DiskError subclass; escapes from the vault root are refused
before touching the disk.
"""

import os
import shutil
from pathlib import Path, PurePosixPath

from vaultsync.common.errors import (
    DiskIOError, PathOutsideVault, disk_error_from_os,
)


class LocalFileStore:

    def __init__(self, root: str):
        self.root = Path(root).resolve()

    # =========================================================================
    # Path handling
    # =========================================================================

    def resolve(self, path: str) -> Path:
        """Absolute path for a vault path, refusing anything outside the root."""
        if not path or not str(path).strip():
            raise PathOutsideVault("Path is empty.", path)

        candidate = str(path).replace('\\', '/')
        if os.path.isabs(candidate):
            joined = Path(os.path.normpath(candidate))
        else:
            parts = [p for p in candidate.split('/') if p not in ('', '.')]
            if '..' in parts:
                raise PathOutsideVault(f"Path traversal is blocked: {path}", path)
            joined = self.root.joinpath(*parts) if parts else self.root

        if not joined.is_relative_to(self.root):
            raise PathOutsideVault(f"Path is outside the vault: {path}", path)
        # Symlinks inside the vault must not lead out of it
        if not joined.resolve().is_relative_to(self.root):
            raise PathOutsideVault(f"Path resolves outside the vault: {path}", path)
        return joined

    def relative(self, path: str) -> str:
        """Normalized vault-relative key for a path."""
        resolved = self.resolve(path)
        rel = resolved.relative_to(self.root)
        return PurePosixPath(*rel.parts).as_posix() if rel.parts else ''

    # =========================================================================
    # Byte-level operations
    # =========================================================================

    def read(self, path: str) -> str:
        full = self.resolve(path)
        try:
            return full.read_text(encoding='utf-8')
        except OSError as e:
            raise disk_error_from_os(e, path) from e
        except UnicodeDecodeError as e:
            raise DiskIOError(f"{path}: not valid UTF-8 ({e.reason})", path) from e

    def write(self, path: str, content: str):
        """Write a file. The parent directory must already exist."""
        full = self.resolve(path)
        try:
            with open(full, 'w', encoding='utf-8') as fh:
                fh.write(content)
        except OSError as e:
            raise disk_error_from_os(e, path) from e

    def exists(self, path: str) -> bool:
        return self.resolve(path).exists()

    def is_dir(self, path: str) -> bool:
        return self.resolve(path).is_dir()

    def mkdir_recursive(self, path: str):
        """Create a directory and its parents. Existing directories are fine."""
        full = self.resolve(path)
        try:
            full.mkdir(parents=True, exist_ok=True)
        except FileExistsError as e:
            raise DiskIOError(f"{path}: exists and is not a directory", path) from e
        except OSError as e:
            raise disk_error_from_os(e, path) from e

    def move(self, source: str, destination: str) -> str:
        """Move a file or directory, returning the final vault-relative path.

        An existing directory as destination receives the entry under its
        own name. Existing files are never overwritten.
        """
        src = self.resolve(source)
        dst = self.resolve(destination)

        if not src.exists() and not src.is_symlink():
            raise disk_error_from_os(FileNotFoundError(2, 'No such file or directory'), source)
        if dst.is_dir() and dst != src:
            dst = dst / src.name
        if dst == src:
            return self.relative(str(dst))
        if dst.exists():
            raise DiskIOError(f"{destination}: destination already exists", destination)
        if src.is_dir() and dst.is_relative_to(src):
            raise DiskIOError(f"Cannot move {source} into itself", source)

        try:
            dst.parent.mkdir(parents=True, exist_ok=True)
            shutil.move(str(src), str(dst))
        except OSError as e:
            raise disk_error_from_os(e, source) from e
        return self.relative(str(dst))

    def list_files(self, path: str = '') -> list:
        """Vault-relative paths of every file under a directory, sorted.

        Symlinked directories are not descended into.
        """
        base = self.resolve(path) if path else self.root

        def raise_walk_error(e: OSError):
            raise disk_error_from_os(e, path) from e

        found = []
        for dirpath, dirnames, filenames in os.walk(base, onerror=raise_walk_error):
            dirnames[:] = sorted(
                d for d in dirnames if not os.path.islink(os.path.join(dirpath, d))
            )
            for name in filenames:
                rel = Path(dirpath, name).relative_to(self.root)
                found.append(PurePosixPath(*rel.parts).as_posix())
        return sorted(found)
