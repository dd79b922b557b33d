"""Error taxonomy shared by the build and query paths.

Every error here is fatal for the operation that raised it: nothing in the
library retries or substitutes a fallback answer. Only the CLI turns these
into exit statuses.
"""
from __future__ import annotations

__all__ = [
    "BreachBloomError",
    "InputError",
    "DigestFormatError",
    "StoreError",
    "NotFoundError",
    "DecodeError",
    "BuildStateError",
]


class BreachBloomError(Exception):
    """Base class for all breachbloom failures."""


class InputError(BreachBloomError, ValueError):
    """Malformed invocation argument or missing required field."""


class DigestFormatError(InputError):
    """Digest is not exactly 40 hexadecimal characters."""


class StoreError(BreachBloomError, OSError):
    """Shard file could not be read or written."""


class NotFoundError(StoreError, FileNotFoundError):
    """No shard file exists for the requested key."""


class DecodeError(BreachBloomError, ValueError):
    """Serialized filter is truncated, corrupt or of an unknown version."""


class BuildStateError(BreachBloomError, RuntimeError):
    """Builder was mutated after its filters were serialised."""
