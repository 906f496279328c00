"""
vaultsync Index Module - content index backends

Usage:
    from vaultsync.index import MemoryContentIndex

    index = MemoryContentIndex()
    index.upsert('notes/a.md', 'hello world')
    index.rename('notes/a.md', 'archive/a.md')
"""

from .content_index import ContentIndex, IndexRecord, MemoryContentIndex
from .redis_index import RedisClient, RedisContentIndex

__all__ = [
    'ContentIndex', 'IndexRecord', 'MemoryContentIndex',
    'RedisClient', 'RedisContentIndex',
]
