"""Binary encoding of a single shard filter.

    ┌──────────────────────────────────────────────────────────────┐
    │ header (32 bytes, network byte order)                        │
    │   <4s magic><u8 version><u8 compression><u16 hash family>    │
    │   <u32 k><u64 m><u64 payload_len><u32 crc32(header, bits)>   │
    ├──────────────────────────────────────────────────────────────┤
    │ payload: packed bit-array, optionally compressed             │
    └──────────────────────────────────────────────────────────────┘

The header carries everything needed to rebuild the filter, so a shard file
decodes without any outside parameters. The CRC covers the header (with its
crc field zeroed) followed by the *uncompressed* bit-array, so a damaged *k*
or *m* is caught as well as bit rot in the payload. Any mismatch is a
``DecodeError``; a partial filter is never returned.
"""
from __future__ import annotations

import logging
import struct
import zlib

from .bloom import HASH_FAMILY, BloomFilter
from .compression import DECOMPRESSION_ERRORS, Compression, CompressionType
from .errors import DecodeError

__all__ = ["encode", "decode", "FORMAT_VERSION", "MAGIC", "HEADER"]

logger = logging.getLogger(__name__)

MAGIC = b"BBLF"
FORMAT_VERSION = 1
HEADER = struct.Struct("!4sBBHIQQI")  # magic, version, compression, family, k, m, payload_len, crc


def encode(bf: BloomFilter, compression: Compression | None = None) -> bytes:
    """Serialise *bf* into a self-describing blob."""
    compression = compression or Compression("none")
    bits = bf.bits
    payload = compression.compress(bits)
    fields = (MAGIC, FORMAT_VERSION, compression.algorithm.value, HASH_FAMILY, bf.k, bf.m, len(payload))
    return HEADER.pack(*fields, _checksum(fields, bits)) + payload


def _checksum(fields: tuple, bits: bytes) -> int:
    """CRC-32 over the header (crc field zeroed) followed by the bit-array."""
    return zlib.crc32(bits, zlib.crc32(HEADER.pack(*fields, 0)))


def decode(blob: bytes) -> BloomFilter:
    """Rebuild the exact filter that `encode` produced.

    Raises ``DecodeError`` for truncated, corrupt or incompatible input.
    """
    if len(blob) < HEADER.size:
        raise DecodeError(f"blob of {len(blob)} bytes is shorter than the {HEADER.size} byte header")
    magic, version, comp_code, family, k, m, payload_len, crc = HEADER.unpack_from(blob)
    if magic != MAGIC:
        raise DecodeError(f"bad magic {magic!r}, not a shard filter")
    if version != FORMAT_VERSION:
        raise DecodeError(f"unsupported format version {version} (expected {FORMAT_VERSION})")
    if family != HASH_FAMILY:
        raise DecodeError(f"unsupported hash family {family}")
    if k < 1 or m < 1:
        raise DecodeError(f"invalid filter parameters m={m} k={k}")

    payload = memoryview(blob)[HEADER.size:]
    if len(payload) != payload_len:
        raise DecodeError(f"payload is {len(payload)} bytes, header says {payload_len}")

    try:
        compression = Compression(CompressionType(comp_code))
    except ValueError:
        raise DecodeError(f"unknown compression code {comp_code}") from None
    except ImportError as exc:
        raise DecodeError(f"cannot decompress shard: {exc}") from exc

    nbytes = (m + 7) // 8
    try:
        bits = compression.decompress(bytes(payload), nbytes)
    except DECOMPRESSION_ERRORS as exc:
        raise DecodeError(f"corrupt {compression.algorithm.name.lower()} payload: {exc}") from exc
    if len(bits) != nbytes:
        raise DecodeError(f"bit-array is {len(bits)} bytes, expected {nbytes} for m={m}")
    if _checksum((magic, version, comp_code, family, k, m, payload_len), bits) != crc:
        raise DecodeError("checksum mismatch, shard filter is corrupt")
    if m % 8 and bits[-1] >> (m % 8):
        raise DecodeError("padding bits beyond m are set")

    logger.debug("decoded bloom filter m=%d k=%d from %d bytes", m, k, len(blob))
    return BloomFilter.from_bits(m, k, bits)
