"""
Service configuration from environment variables.

Usage:
    VAULT_ROOT=/path/to/vault INDEX_BACKEND=redis python -m vaultsync.gateway.service
"""

import os
from dataclasses import dataclass, field
from typing import Iterable, List, Mapping, Optional


def normalize_extensions(extensions: Optional[Iterable[str]]) -> List[str]:
    """Lowercase, dotted, de-duplicated: ['md', '.TXT'] -> ['.md', '.txt']."""
    normalized = []
    for ext in extensions or ():
        ext = ext.strip().lower()
        if not ext:
            continue
        if not ext.startswith('.'):
            ext = '.' + ext
        if ext not in normalized:
            normalized.append(ext)
    return normalized


def _int_env(environ: Mapping[str, str], name: str, default: int) -> int:
    raw = environ.get(name)
    if raw is None or raw.strip() == '':
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


def _bool_env(environ: Mapping[str, str], name: str, default: bool) -> bool:
    raw = environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() not in ('0', 'false', 'no', 'off', '')


@dataclass
class VaultConfig:
    vault_root: str = ''
    port: int = 9898
    index_backend: str = 'memory'   # memory | redis
    redis_url: str = 'redis://localhost:6379/0'
    redis_prefix: str = 'vault'
    watch_vault: bool = True
    tree_extensions: List[str] = field(default_factory=list)
    default_context_length: int = 4096
    response_reserve_tokens: int = 0
    tiktoken_encoding: str = 'cl100k_base'
    sync_log_size: int = 500

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> 'VaultConfig':
        env = os.environ if environ is None else environ

        backend = env.get('INDEX_BACKEND', 'memory').strip().lower()
        if backend not in ('memory', 'redis'):
            raise ValueError(f"INDEX_BACKEND must be 'memory' or 'redis', got {backend!r}")

        extensions = normalize_extensions(env.get('TREE_EXTENSIONS', '').split(','))

        return cls(
            vault_root=env.get('VAULT_ROOT', ''),
            port=_int_env(env, 'PORT', 9898),
            index_backend=backend,
            redis_url=env.get('REDIS_URL', 'redis://localhost:6379/0'),
            redis_prefix=env.get('REDIS_PREFIX', 'vault'),
            watch_vault=_bool_env(env, 'WATCH_VAULT', True),
            tree_extensions=extensions,
            default_context_length=_int_env(env, 'DEFAULT_CONTEXT_LENGTH', 4096),
            response_reserve_tokens=_int_env(env, 'RESPONSE_RESERVE_TOKENS', 0),
            tiktoken_encoding=env.get('TIKTOKEN_ENCODING', 'cl100k_base'),
            sync_log_size=_int_env(env, 'SYNC_LOG_SIZE', 500),
        )
