"""
vaultsync - Token-aware mirror of a file vault

Keeps a searchable content index in step with file mutations
(write, create, move) and builds language-model prompts that fit a
session's context window.

Subpackages:
  - common:  errors, per-path sequencing, config, sync log
  - index:   content index backends (memory, redis)
  - sync:    file store, sync orchestrator, file watcher
  - tree:    vault tree snapshots
  - prompts: context budgeting and tokenizer sessions
  - gateway: HTTP service
"""

__version__ = '0.3.0'
