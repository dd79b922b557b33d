"""breachbloom: sharded bloom filters for breached-credential lookups.

A corpus of SHA-1 digests is split into 256 shards by its first two hex
characters; each shard becomes one serialised bloom filter on disk. A query
hashes the secret, loads just its shard and tests membership, so neither the
corpus nor the full set of filters ever has to be held in memory.

This package exposes the build side via `breachbloom.FilterBuilder` and the
query side via `breachbloom.QueryEngine`.
"""

from __future__ import annotations

__all__ = [
    "BloomFilter",
    "FilterBuilder",
    "FilterParams",
    "FilterCache",
    "QueryEngine",
    "QueryResult",
    "ShardStore",
    "hash_secret",
    "shard_for_digest",
    "BreachBloomError",
    "InputError",
    "DigestFormatError",
    "StoreError",
    "NotFoundError",
    "DecodeError",
    "BuildStateError",
]

from .bloom import BloomFilter
from .builder import FilterBuilder, FilterParams
from .cache import FilterCache
from .digest import hash_secret, shard_for_digest
from .errors import (
    BreachBloomError,
    BuildStateError,
    DecodeError,
    DigestFormatError,
    InputError,
    NotFoundError,
    StoreError,
)
from .query import QueryEngine, QueryResult
from .store import ShardStore
