"""
Redis Content Index

Durable ContentIndex backend on redis-py.

Layout (prefix defaults to "vault"):
    <prefix>:record:<path>   hash {content, synced_at}
    <prefix>:paths           set of indexed paths
    <prefix>:clock           logical sync clock (INCR)

Renames use RENAME so the record hash moves as a unit and keeps its
synced_at value.
"""

import os
from contextlib import contextmanager
from typing import List, Optional

import redis

from vaultsync.common.errors import IndexUnavailable
from .content_index import ContentIndex, IndexRecord


class RedisClient:
    """Lazy redis-py connection."""

    def __init__(self, url: Optional[str] = None):
        """
        Args:
            url: Redis URL (defaults to REDIS_URL env var or localhost)
        """
        self.url = url or os.environ.get('REDIS_URL', 'redis://localhost:6379/0')
        self._client: Optional[redis.Redis] = None

    @property
    def client(self) -> redis.Redis:
        if self._client is None:
            self._client = redis.from_url(self.url, decode_responses=True)
        return self._client

    def ping(self) -> bool:
        """Check if Redis is available."""
        try:
            return self.client.ping()
        except redis.ConnectionError:
            return False


@contextmanager
def _index_errors(operation: str, path: str):
    try:
        yield
    except redis.RedisError as e:
        raise IndexUnavailable(f"redis {operation} failed for {path}: {e}") from e


class RedisContentIndex(ContentIndex):

    def __init__(self, client, prefix: str = 'vault'):
        """
        Args:
            client: a redis.Redis (decode_responses=True) or RedisClient
            prefix: key namespace
        """
        self.redis = client.client if isinstance(client, RedisClient) else client
        self.prefix = prefix
        self.paths_key = f"{prefix}:paths"
        self.clock_key = f"{prefix}:clock"

    def record_key(self, path: str) -> str:
        return f"{self.prefix}:record:{path}"

    def upsert(self, path: str, content: str) -> IndexRecord:
        with _index_errors('upsert', path):
            synced_at = int(self.redis.incr(self.clock_key))
            pipe = self.redis.pipeline(transaction=True)
            pipe.delete(self.record_key(path))
            pipe.hset(self.record_key(path), mapping={
                'content': content,
                'synced_at': synced_at,
            })
            pipe.sadd(self.paths_key, path)
            pipe.execute()
        return IndexRecord(path=path, content=content, last_synced_at=synced_at)

    def delete(self, path: str) -> bool:
        with _index_errors('delete', path):
            pipe = self.redis.pipeline(transaction=True)
            pipe.delete(self.record_key(path))
            pipe.srem(self.paths_key, path)
            removed, _ = pipe.execute()
        return bool(removed)

    def rename(self, source: str, destination: str) -> bool:
        with _index_errors('rename', source):
            if not self.redis.exists(self.record_key(source)):
                return False
            if source == destination:
                return True
            pipe = self.redis.pipeline(transaction=True)
            pipe.rename(self.record_key(source), self.record_key(destination))
            pipe.srem(self.paths_key, source)
            pipe.sadd(self.paths_key, destination)
            pipe.execute()
        return True

    def get(self, path: str) -> Optional[IndexRecord]:
        with _index_errors('get', path):
            data = self.redis.hgetall(self.record_key(path))
        if not data:
            return None
        return IndexRecord(
            path=path,
            content=data.get('content', ''),
            last_synced_at=int(data.get('synced_at', 0)),
        )

    def paths(self) -> List[str]:
        with _index_errors('paths', self.paths_key):
            return sorted(self.redis.smembers(self.paths_key))

    def get_stats(self) -> dict:
        with _index_errors('stats', self.prefix):
            return {
                'backend': 'redis',
                'prefix': self.prefix,
                'records': int(self.redis.scard(self.paths_key)),
                'clock': int(self.redis.get(self.clock_key) or 0),
            }
