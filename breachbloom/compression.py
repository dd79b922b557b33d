"""Shard payload compression.

Supports multiple compression algorithms:
- Snappy (fast compression/decompression)
- Zstd (better compression ratio, good fit for sparse filters)
- None (no compression)

The enum value is what the codec stores in a shard header, so the numbers
must never be reassigned.
"""
from __future__ import annotations

import enum
from typing import Union

try:
    import snappy
    HAS_SNAPPY = True
except ImportError:
    HAS_SNAPPY = False

try:
    import zstandard as zstd
    HAS_ZSTD = True
except ImportError:
    HAS_ZSTD = False

__all__ = ["Compression", "CompressionType", "DECOMPRESSION_ERRORS", "HAS_SNAPPY", "HAS_ZSTD"]


class CompressionType(enum.Enum):
    """Available compression algorithms."""
    NONE = 0
    SNAPPY = 1
    ZSTD = 2


class Compression:
    """Compression utility class."""

    def __init__(self, algorithm: Union[str, CompressionType] = "none", level: int = 3):
        if isinstance(algorithm, str):
            try:
                algorithm = CompressionType[algorithm.upper()]
            except KeyError:
                raise ValueError(f"Unknown compression algorithm: {algorithm}") from None

        self.algorithm = algorithm
        self.level = level

        if algorithm == CompressionType.SNAPPY and not HAS_SNAPPY:
            raise ImportError("Snappy compression requested but python-snappy not installed")
        if algorithm == CompressionType.ZSTD and not HAS_ZSTD:
            raise ImportError("Zstd compression requested but zstandard not installed")

    def __repr__(self) -> str:
        return f"Compression({self.algorithm.name.lower()!r})"

    def compress(self, data: bytes) -> bytes:
        """Compress a shard payload."""
        if self.algorithm == CompressionType.NONE:
            return data
        elif self.algorithm == CompressionType.SNAPPY:
            return snappy.compress(data)
        elif self.algorithm == CompressionType.ZSTD:
            return zstd.ZstdCompressor(level=self.level).compress(data)
        raise ValueError(f"Unknown compression algorithm: {self.algorithm}")

    def decompress(self, data: bytes, size: int) -> bytes:
        """Decompress a shard payload whose uncompressed length is `size`."""
        if self.algorithm == CompressionType.NONE:
            return data
        elif self.algorithm == CompressionType.SNAPPY:
            return snappy.decompress(data)
        elif self.algorithm == CompressionType.ZSTD:
            return zstd.ZstdDecompressor().decompress(data, max_output_size=size)
        raise ValueError(f"Unknown compression algorithm: {self.algorithm}")


def _decompression_errors() -> tuple[type[BaseException], ...]:
    errors: list[type[BaseException]] = [ValueError]
    if HAS_SNAPPY:
        errors.append(getattr(snappy, "UncompressError", ValueError))
    if HAS_ZSTD:
        errors.append(zstd.ZstdError)
    return tuple(errors)


# raised by Compression.decompress on a corrupt payload
DECOMPRESSION_ERRORS = _decompression_errors()
