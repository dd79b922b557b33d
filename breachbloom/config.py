"""Runtime configuration.

Defaults reproduce the reference build: every shard gets the same
17,971,985-bit filter with 10 hash functions. Environment variables
override the defaults; CLI flags override both.
"""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional

from .errors import InputError

__all__ = ["Settings", "DEFAULT_BITS", "DEFAULT_HASHES"]

DEFAULT_BITS = 17_971_985
DEFAULT_HASHES = 10
DEFAULT_DIR = Path("bloom_filters")
DEFAULT_CACHE_SIZE = 16  # decoded shards kept by a long-running query engine
SHARD_EXTENSION = ".dat"
MANIFEST_NAME = "manifest.msgpack"
PROGRESS_EVERY = 1_000_000  # corpus lines between progress log lines

_ENV_PREFIX = "BREACHBLOOM_"


@dataclass(frozen=True)
class Settings:
    """Resolved configuration for one process."""

    shard_dir: Path = field(default_factory=lambda: DEFAULT_DIR)
    cache_size: int = DEFAULT_CACHE_SIZE
    compression: str = "none"
    bits: int = DEFAULT_BITS
    hashes: int = DEFAULT_HASHES

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if environ is None else environ
        kwargs: dict[str, object] = {}
        if (val := env.get(_ENV_PREFIX + "DIR")):
            kwargs["shard_dir"] = Path(val)
        if (val := env.get(_ENV_PREFIX + "COMPRESSION")):
            kwargs["compression"] = val.lower()
        for name in ("cache_size", "bits", "hashes"):
            if (val := env.get(_ENV_PREFIX + name.upper())):
                try:
                    number = int(val)
                except ValueError:
                    raise InputError(f"{_ENV_PREFIX}{name.upper()} must be an integer, got {val!r}") from None
                if number < 1:
                    raise InputError(f"{_ENV_PREFIX}{name.upper()} must be positive, got {number}")
                kwargs[name] = number
        return cls(**kwargs)  # type: ignore[arg-type]
