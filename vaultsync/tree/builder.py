"""
Vault tree snapshots.

Walks the vault depth-first and returns a VaultEntry tree. Children are
ordered by name so the same disk state always gives the same tree.
Symlinked directories are followed once: a directory whose real path was
already visited is skipped and reported, which keeps link loops finite.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional, Set

from vaultsync.common.config import normalize_extensions

logger = logging.getLogger(__name__)

FILE = 'file'
DIRECTORY = 'directory'


@dataclass
class VaultEntry:
    name: str
    path: str             # vault-relative, '' for the root
    kind: str             # file | directory
    modified: float = 0.0
    children: List['VaultEntry'] = field(default_factory=list)

    @property
    def is_dir(self) -> bool:
        return self.kind == DIRECTORY

    def to_dict(self) -> dict:
        result = {
            'name': self.name,
            'path': self.path,
            'type': self.kind,
            'modified': self.modified,
        }
        if self.is_dir:
            result['children'] = [c.to_dict() for c in self.children]
        return result


@dataclass
class SkippedEntry:
    path: str
    reason: str  # revisited, unreadable, broken_link


@dataclass
class TreeBuildReport:
    skipped: List[SkippedEntry] = field(default_factory=list)

    def skip(self, path: str, reason: str):
        logger.debug("tree: skipping %s (%s)", path or '<root>', reason)
        self.skipped.append(SkippedEntry(path, reason))


def build_tree_with_report(root: str, extensions: Optional[Iterable[str]] = None,
                           include_hidden: bool = False, relative_to: Optional[str] = None):
    """Snapshot the tree under `root`, returning (VaultEntry, TreeBuildReport).

    Entry paths are relative to `relative_to` (default: `root` itself), so a
    subtree can be keyed by its vault paths.
    """
    root_path = Path(root)
    base_path = Path(relative_to) if relative_to else root_path
    if not root_path.is_dir():
        raise NotADirectoryError(f"Vault root is not a directory: {root}")

    wanted = set(normalize_extensions(extensions))
    report = TreeBuildReport()
    visited: Set[str] = set()

    def rel(path: Path) -> str:
        parts = path.relative_to(base_path).parts
        return '/'.join(parts)

    def mtime(path: Path) -> float:
        try:
            return path.stat().st_mtime
        except OSError:
            return 0.0

    def walk(path: Path) -> VaultEntry:
        entry = VaultEntry(name=path.name, path=rel(path), kind=DIRECTORY, modified=mtime(path))
        visited.add(os.path.realpath(path))

        try:
            listing = sorted(path.iterdir(), key=lambda p: p.name)
        except OSError:
            report.skip(entry.path, 'unreadable')
            return entry

        for child in listing:
            if not include_hidden and child.name.startswith('.'):
                continue
            if child.is_dir():
                if os.path.realpath(child) in visited:
                    report.skip(rel(child), 'revisited')
                    continue
                entry.children.append(walk(child))
            elif child.is_file():
                if wanted and child.suffix.lower() not in wanted:
                    continue
                entry.children.append(VaultEntry(
                    name=child.name,
                    path=rel(child),
                    kind=FILE,
                    modified=mtime(child),
                ))
            elif child.is_symlink():
                report.skip(rel(child), 'broken_link')

        return entry

    return walk(root_path), report


def build_tree(root: str, extensions: Optional[Iterable[str]] = None,
               include_hidden: bool = False, relative_to: Optional[str] = None) -> VaultEntry:
    tree, _ = build_tree_with_report(root, extensions, include_hidden, relative_to)
    return tree


def flatten(entry: VaultEntry) -> List[VaultEntry]:
    """File entries in depth-first order."""
    if not entry.is_dir:
        return [entry]
    files = []
    for child in entry.children:
        files.extend(flatten(child))
    return files
