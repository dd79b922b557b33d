"""Online membership test.

    secret ─▶ hash ─▶ route ─▶ load shard ─▶ decode ─▶ test ─▶ bool

Each call works on its own freshly decoded filter (or one borrowed from an
optional ``FilterCache``), so any number of queries may run concurrently.
A failure at any stage aborts the query; ``DecodeError`` in particular is
never reported as "not found".
"""
from __future__ import annotations

import asyncio
import enum
import logging
import time
from dataclasses import dataclass
from typing import Optional, Union

from . import codec
from .bloom import BloomFilter
from .cache import FilterCache
from .digest import hash_secret, normalise_digest, shard_for_digest
from .errors import BreachBloomError
from .store import ShardStore

__all__ = ["QueryEngine", "QueryResult", "QueryStage"]

logger = logging.getLogger(__name__)


class QueryStage(enum.Enum):
    RECEIVED = "received"
    HASHED = "hashed"
    ROUTED = "routed"
    LOADED = "loaded"
    DECODED = "decoded"
    TESTED = "tested"
    RESPONDED = "responded"


@dataclass(frozen=True)
class QueryResult:
    """Outcome of `QueryEngine.check`: either `found` or `error` is set."""

    found: Optional[bool] = None
    digest: Optional[str] = None
    shard: Optional[str] = None
    error: Optional[BreachBloomError] = None
    failed_at: Optional[QueryStage] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict[str, bool]:
        if self.error is not None:
            raise self.error
        return {"found": bool(self.found)}


class QueryEngine:
    """Answers membership queries against a built ShardStore."""

    def __init__(self, store: ShardStore, cache: Optional[FilterCache] = None):
        self.store = store
        self.cache = cache

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def contains(self, secret: Union[str, bytes]) -> bool:
        """True if the secret's digest is (probably) in the corpus."""
        return self.contains_digest(hash_secret(secret))

    def contains_digest(self, digest: str) -> bool:
        return self._run(digest, _Trace())

    def check(self, secret: Union[str, bytes]) -> QueryResult:
        """Like `contains` but returns errors as values instead of raising."""
        trace = _Trace()
        try:
            digest = hash_secret(secret)
            trace.advance(QueryStage.HASHED, digest=digest)
            found = self._run(digest, trace)
        except BreachBloomError as exc:
            logger.warning("query failed after stage %s: %s", trace.stage.value, exc)
            return QueryResult(digest=trace.digest, shard=trace.shard, error=exc, failed_at=trace.stage)
        return QueryResult(found=found, digest=trace.digest, shard=trace.shard)

    async def acontains(self, secret: Union[str, bytes]) -> bool:
        """Async-friendly wrapper around `contains`."""
        return await asyncio.to_thread(self.contains, secret)

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------
    def _run(self, digest: str, trace: "_Trace") -> bool:
        digest = normalise_digest(digest)
        trace.advance(QueryStage.HASHED, digest=digest)
        shard = shard_for_digest(digest)
        trace.advance(QueryStage.ROUTED, shard=shard)
        bf = self._load(shard, trace)
        found = digest.encode("ascii") in bf
        trace.advance(QueryStage.TESTED)
        logger.debug("digest %s in shard %s: found=%s", digest, shard, found)
        trace.advance(QueryStage.RESPONDED)
        return found

    def _load(self, shard: str, trace: "_Trace") -> BloomFilter:
        if self.cache is None:
            return self._decode(shard, trace)
        signature = self.store.signature(shard)
        return self.cache.get_or_load(shard, signature, lambda: self._decode(shard, trace))

    def _decode(self, shard: str, trace: "_Trace") -> BloomFilter:
        blob = self.store.read(shard)
        trace.advance(QueryStage.LOADED)
        start = time.perf_counter()
        bf = codec.decode(blob)
        trace.advance(QueryStage.DECODED)
        logger.debug(
            "decoded shard %s (m=%d k=%d) in %.2f ms", shard, bf.m, bf.k, (time.perf_counter() - start) * 1000
        )
        return bf


class _Trace:
    """Last stage a query reached, for error reporting."""

    __slots__ = ("stage", "digest", "shard")

    def __init__(self):
        self.stage = QueryStage.RECEIVED
        self.digest: Optional[str] = None
        self.shard: Optional[str] = None

    def advance(self, stage: QueryStage, digest: Optional[str] = None, shard: Optional[str] = None) -> None:
        self.stage = stage
        if digest is not None:
            self.digest = digest
        if shard is not None:
            self.shard = shard
