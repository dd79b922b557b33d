"""Bloom filter over a packed bit-array.

Goals:
    • fixed, versioned hash family so shard files stay portable
    • bit layout that the codec can dump and reload byte-for-byte

Hash family 1 (the only one so far): ``blake2b(item, digest_size=16)`` split
into two big-endian u64 values ``a`` and ``b``; the *i*-th probe is
``(a + i * b) % m``. Bit *p* lives in byte ``p // 8`` under mask ``1 << (p % 8)``.
"""
from __future__ import annotations

import math
import struct
from hashlib import blake2b
from typing import ClassVar, Iterator

__all__ = ["BloomFilter", "HASH_FAMILY", "optimal_parameters", "expected_fp_rate"]

HASH_FAMILY = 1


class BloomFilter:
    """Bloom filter with *m* bits and *k* hash functions."""

    _HASH_FMT: ClassVar[struct.Struct] = struct.Struct("!QQ")

    def __init__(self, m: int, k: int):
        if m < 1 or k < 1:
            raise ValueError(f"bloom filter needs m >= 1 and k >= 1, got m={m} k={k}")
        self.m = m  # bits
        self.k = k  # hash functions
        self._bits = bytearray((m + 7) // 8)

    # -------------------------------------------------------
    # Construction helpers 🏗️
    # -------------------------------------------------------
    @classmethod
    def from_capacity(cls, n: int, fp: float = 0.01) -> "BloomFilter":
        """Create a filter that can store `n` items with ≤ `fp` false-positive rate."""
        m, k = optimal_parameters(n, fp)
        return cls(m, k)

    @classmethod
    def from_bits(cls, m: int, k: int, bits: bytes) -> "BloomFilter":
        """Rebuild a filter from an already packed bit-array (used by the codec)."""
        bf = cls(m, k)
        if len(bits) != len(bf._bits):
            raise ValueError(f"expected {len(bf._bits)} bytes for m={m}, got {len(bits)}")
        bf._bits[:] = bits
        return bf

    # -------------------------------------------------------
    # Hash helpers
    # -------------------------------------------------------
    def _hashes(self, item: bytes) -> Iterator[int]:
        a, b = self._HASH_FMT.unpack(blake2b(item, digest_size=16).digest())
        for i in range(self.k):
            yield (a + i * b) % self.m

    # -------------------------------------------------------
    # API
    # -------------------------------------------------------
    def add(self, item: bytes) -> None:
        for pos in self._hashes(item):
            self._bits[pos // 8] |= 1 << (pos % 8)

    def __contains__(self, item: bytes) -> bool:
        return all(self._bits[pos // 8] & (1 << (pos % 8)) for pos in self._hashes(item))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, BloomFilter):
            return NotImplemented
        return self.m == other.m and self.k == other.k and self._bits == other._bits

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"BloomFilter(m={self.m}, k={self.k})"

    @property
    def bits(self) -> bytes:
        """Read-only copy of the packed bit-array."""
        return bytes(self._bits)

    @property
    def nbytes(self) -> int:
        return len(self._bits)

    def popcount(self) -> int:
        return int.from_bytes(self._bits, "big").bit_count()

    def estimated_fp_rate(self) -> float:
        """False-positive probability implied by the current fill ratio."""
        return (self.popcount() / self.m) ** self.k


def optimal_parameters(n: int, fp: float) -> tuple[int, int]:
    """Return ``(m, k)`` for `n` elements at false-positive rate `fp`.

    m = ceil(-n·ln(fp) / ln(2)²), k = round(m/n · ln 2), k >= 1.
    """
    if n < 1:
        raise ValueError(f"expected element count must be positive, got {n}")
    if not 0.0 < fp < 1.0:
        raise ValueError(f"false-positive rate must be in (0, 1), got {fp}")
    m = math.ceil(-n * math.log(fp) / (math.log(2) ** 2))
    k = max(1, round((m / n) * math.log(2)))
    return m, k


def expected_fp_rate(m: int, k: int, n: int) -> float:
    """Textbook false-positive rate of an (m, k) filter holding `n` items."""
    if n <= 0:
        return 0.0
    return (1.0 - math.exp(-k * n / m)) ** k
