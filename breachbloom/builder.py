"""Offline construction of the 256 shard filters.

The corpus is streamed line by line; only the bit-arrays live in memory.
Each shard owns its own lock so several corpus files can be ingested in
parallel: inserts into one shard are serialised, inserts into different
shards never contend.

Lifecycle::

    INIT ──add*──▶ ACCUMULATING ──serialise()──▶ SERIALISED (terminal)
"""
from __future__ import annotations

import enum
import logging
import math
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Iterator, Mapping, Optional, Union

from tqdm import tqdm

from . import codec
from .bloom import BloomFilter, expected_fp_rate, optimal_parameters
from .compression import Compression
from .config import DEFAULT_BITS, DEFAULT_HASHES, PROGRESS_EVERY
from .digest import SHARD_KEYS, normalise_digest
from .errors import BuildStateError, DigestFormatError, StoreError
from .store import Manifest, ShardInfo, ShardStore

__all__ = [
    "BuildState",
    "FilterParams",
    "FilterBuilder",
    "read_corpus",
    "count_corpus",
]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FilterParams:
    """Bit-array length *m* and hash count *k* for one shard filter."""

    m: int = DEFAULT_BITS
    k: int = DEFAULT_HASHES

    def __post_init__(self):
        if self.m < 1 or self.k < 1:
            raise ValueError(f"filter parameters must be positive, got m={self.m} k={self.k}")

    @classmethod
    def from_capacity(cls, n: int, fp: float) -> "FilterParams":
        """Size for `n` elements at target false-positive rate `fp`."""
        m, k = optimal_parameters(n, fp)
        return cls(m, k)

    @classmethod
    def from_hashes(cls, n: int, k: int) -> "FilterParams":
        """Size for `n` elements with a fixed hash count `k` (m = ceil(n·k / ln 2))."""
        if n < 1:
            raise ValueError(f"expected element count must be positive, got {n}")
        k = max(1, k)
        return cls(math.ceil(n * k / math.log(2)), k)


class BuildState(enum.Enum):
    INIT = "init"
    ACCUMULATING = "accumulating"
    SERIALISED = "serialised"


# ----------------------------------------------------------------------
# Corpus streaming
# ----------------------------------------------------------------------
def read_corpus(path: Union[str, Path]) -> Iterator[str]:
    """Yield the digests of a newline-delimited corpus file, one at a time.

    Lines are validated as they are read; a bad line raises
    ``DigestFormatError`` naming the file and line number.
    """
    path = Path(path)
    try:
        fp = open(path, "r", encoding="ascii", newline=None)
    except OSError as exc:
        raise StoreError(f"cannot open corpus file {path}: {exc}") from exc
    with fp:
        try:
            for lineno, line in enumerate(fp, 1):
                try:
                    yield normalise_digest(line.rstrip("\n"))
                except DigestFormatError as exc:
                    raise DigestFormatError(f"{path}:{lineno}: {exc}") from None
        except UnicodeDecodeError as exc:
            raise DigestFormatError(f"{path}: corpus is not ASCII text: {exc}") from None
        except OSError as exc:
            raise StoreError(f"error reading corpus file {path}: {exc}") from exc


def count_corpus(paths: Iterable[Union[str, Path]]) -> dict[str, int]:
    """First pass for per-shard sizing: number of digests routed to each shard."""
    counts = dict.fromkeys(SHARD_KEYS, 0)
    for path in paths:
        for digest in read_corpus(path):
            counts[digest[:2].lower()] += 1
    return counts


class FilterBuilder:
    """Accumulates corpus digests into one bloom filter per shard."""

    def __init__(self, params: Union[FilterParams, Mapping[str, FilterParams], None] = None):
        if params is None or isinstance(params, FilterParams):
            params = dict.fromkeys(SHARD_KEYS, params or FilterParams())
        missing = set(SHARD_KEYS) - set(params)
        if missing:
            raise ValueError(f"no filter parameters for {len(missing)} shards")
        self._filters = {key: BloomFilter(params[key].m, params[key].k) for key in SHARD_KEYS}
        self._locks = {key: threading.Lock() for key in SHARD_KEYS}
        self._counts = dict.fromkeys(SHARD_KEYS, 0)
        self._state = BuildState.INIT
        self._state_lock = threading.Condition()
        self._inflight = 0  # adds past the state check, not yet inserted
        logger.info("initialised %d bloom filters", len(self._filters))

    @classmethod
    def per_shard(cls, counts: Mapping[str, int], fp: float) -> "FilterBuilder":
        """Size every shard from its own observed element count."""
        return cls({key: FilterParams.from_capacity(max(1, counts.get(key, 0)), fp) for key in SHARD_KEYS})

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------
    @property
    def state(self) -> BuildState:
        return self._state

    @property
    def counts(self) -> dict[str, int]:
        return dict(self._counts)

    def filter(self, shard: str) -> BloomFilter:
        return self._filters[shard]

    # ------------------------------------------------------------------
    # Accumulation
    # ------------------------------------------------------------------
    def _begin_mutation(self) -> None:
        with self._state_lock:
            if self._state is BuildState.SERIALISED:
                raise BuildStateError("filters were already serialised, no further inserts allowed")
            self._state = BuildState.ACCUMULATING
            self._inflight += 1

    def _end_mutation(self) -> None:
        with self._state_lock:
            self._inflight -= 1
            if not self._inflight:
                self._state_lock.notify_all()

    def add(self, digest: str) -> str:
        """Insert one digest and return the shard it went to."""
        digest = normalise_digest(digest)
        shard = digest[:2].lower()
        self._begin_mutation()
        try:
            with self._locks[shard]:
                self._filters[shard].add(digest.encode("ascii"))
                self._counts[shard] += 1
        finally:
            self._end_mutation()
        return shard

    def add_many(self, digests: Iterable[str]) -> int:
        n = 0
        for digest in digests:
            self.add(digest)
            n += 1
        return n

    def add_file(self, path: Union[str, Path], progress: bool = False) -> int:
        """Stream one corpus file into the filters; returns digests added."""
        path = Path(path)
        logger.info("reading hashes from file: %s", path)
        start = time.perf_counter()
        count = 0
        with tqdm(read_corpus(path), desc=path.name, unit=" hashes", disable=not progress) as digests:
            for digest in digests:
                self.add(digest)
                count += 1
                if count % PROGRESS_EVERY == 0:
                    logger.info("processed %d hashes from %s...", count, path)
        logger.info("added %d hashes from %s in %.1fs", count, path, time.perf_counter() - start)
        return count

    def add_files(self, paths: Iterable[Union[str, Path]], workers: int = 1, progress: bool = False) -> int:
        """Ingest several corpus files, `workers` at a time."""
        paths = list(paths)
        if workers <= 1 or len(paths) <= 1:
            return sum(self.add_file(p, progress=progress) for p in paths)
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="corpus") as pool:
            futures = [pool.submit(self.add_file, p, progress) for p in paths]
            return sum(f.result() for f in futures)

    # ------------------------------------------------------------------
    # Serialisation 📦
    # ------------------------------------------------------------------
    def serialise(
        self,
        store: ShardStore,
        compression: Optional[Compression] = None,
        progress: bool = False,
    ) -> Manifest:
        """Encode every shard, write it to *store* and record a manifest.

        Moves the builder into its terminal state; later inserts raise
        ``BuildStateError``. Inserts already under way finish first and are
        part of the written filters.
        """
        with self._state_lock:
            if self._state is BuildState.SERIALISED:
                raise BuildStateError("filters were already serialised")
            self._state = BuildState.SERIALISED
            self._state_lock.wait_for(lambda: not self._inflight)

        compression = compression or Compression("none")
        logger.info("serialising %d bloom filters to %s (%r)", len(self._filters), store.root, compression)
        manifest = Manifest(format_version=codec.FORMAT_VERSION, compression=compression.algorithm.name.lower())
        for shard in tqdm(SHARD_KEYS, desc="serialising", unit=" shards", disable=not progress):
            bf = self._filters[shard]
            blob = codec.encode(bf, compression)
            store.write(shard, blob)
            count = self._counts[shard]
            manifest.shards[shard] = ShardInfo(m=bf.m, k=bf.k, count=count, size=len(blob))
            logger.info(
                "bucket: %s count: %d encoded bytes: %d expected fp: %.3g",
                shard, count, len(blob), expected_fp_rate(bf.m, bf.k, count),
            )
        store.write_manifest(manifest)
        logger.info("wrote %d shards holding %d hashes", len(manifest.shards), manifest.total_count)
        return manifest
