"""
vaultsync Tree Module - vault structure snapshots
"""

from .builder import (
    VaultEntry, SkippedEntry, TreeBuildReport, FILE, DIRECTORY,
    build_tree, build_tree_with_report, flatten,
)

__all__ = [
    'VaultEntry', 'SkippedEntry', 'TreeBuildReport', 'FILE', 'DIRECTORY',
    'build_tree', 'build_tree_with_report', 'flatten',
]
