"""Digest computation and shard routing.

A secret is hashed with SHA-1 into a 40 character uppercase hex string. The
first two hex characters (lowercased) pick one of 256 shards; since the hash
output is uniform, each shard holds ~1/256 of the corpus.
"""
from __future__ import annotations

import hashlib
import string

from .errors import DigestFormatError

__all__ = [
    "HASH_NAME",
    "DIGEST_LENGTH",
    "SHARD_KEYS",
    "hash_secret",
    "normalise_digest",
    "shard_for_digest",
]

HASH_NAME = "sha1"
DIGEST_LENGTH = 40
SHARD_KEYS: tuple[str, ...] = tuple(f"{i:02x}" for i in range(256))

_HEX = frozenset(string.hexdigits)


def hash_secret(data: bytes | str) -> str:
    """Return the canonical uppercase hex digest of *data* (str is UTF-8 encoded)."""
    if isinstance(data, str):
        data = data.encode("utf-8")
    return hashlib.new(HASH_NAME, data).hexdigest().upper()


def normalise_digest(digest: str) -> str:
    """Validate *digest* and return its canonical uppercase form.

    Raises ``DigestFormatError`` for anything that is not exactly 40 hex
    characters. Wrong lengths are never truncated or padded.
    """
    if len(digest) != DIGEST_LENGTH:
        raise DigestFormatError(
            f"invalid digest length {len(digest)}, must be {DIGEST_LENGTH} characters"
        )
    if not _HEX.issuperset(digest):
        raise DigestFormatError(f"digest {digest!r} contains non-hexadecimal characters")
    return digest.upper()


def shard_for_digest(digest: str) -> str:
    """Map a digest to its two character lowercase shard key."""
    return normalise_digest(digest)[:2].lower()
