"""On-disk shard store.

One file per shard under a root directory::

    bloom_filters/
        00.dat  01.dat  …  ff.dat
        manifest.msgpack

Shard files are written once by the offline build and only read afterwards,
so the read path takes no locks. Writes go through a temp file and
``os.replace`` so a reader never sees a half-written shard.
"""
from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import tempfile
import time
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Optional

import msgpack

from .config import MANIFEST_NAME, SHARD_EXTENSION
from .digest import SHARD_KEYS
from .errors import DecodeError, InputError, NotFoundError, StoreError

__all__ = ["ShardStore", "Manifest", "ShardInfo"]

logger = logging.getLogger(__name__)

_SHARD_SET = frozenset(SHARD_KEYS)


@dataclass
class ShardInfo:
    m: int
    k: int
    count: int
    size: int  # encoded bytes


@dataclass
class Manifest:
    """Summary written next to the shards at the end of a build."""

    format_version: int
    compression: str
    shards: dict[str, ShardInfo] = field(default_factory=dict)
    created: float = field(default_factory=time.time)

    @property
    def total_count(self) -> int:
        return sum(info.count for info in self.shards.values())

    def to_bytes(self) -> bytes:
        return msgpack.packb(asdict(self), use_bin_type=True)

    @classmethod
    def from_bytes(cls, blob: bytes) -> "Manifest":
        try:
            raw = msgpack.unpackb(blob, raw=False)
            shards = {key: ShardInfo(**info) for key, info in raw.pop("shards").items()}
            return cls(shards=shards, **raw)
        except (ValueError, TypeError, KeyError, AttributeError) as exc:
            raise DecodeError(f"corrupt manifest: {exc}") from exc


class ShardStore:
    """Key-value store mapping shard key → serialised filter bytes."""

    def __init__(self, root: str | Path, extension: str = SHARD_EXTENSION):
        self.root = Path(root)
        self.extension = extension

    def __repr__(self) -> str:
        return f"ShardStore({str(self.root)!r})"

    # ------------------------------------------------------------------
    # Addressing
    # ------------------------------------------------------------------
    def path_for(self, shard: str) -> Path:
        if shard not in _SHARD_SET:
            raise InputError(f"invalid shard key {shard!r}")
        return self.root / f"{shard}{self.extension}"

    def exists(self, shard: str) -> bool:
        return self.path_for(shard).is_file()

    def shards(self) -> list[str]:
        """Shard keys that currently have a file on disk, in key order."""
        return [key for key in SHARD_KEYS if self.exists(key)]

    def signature(self, shard: str) -> tuple[int, int, int]:
        """``(inode, mtime_ns, size)`` of a shard file.

        Writes install a fresh inode via ``os.replace``, so the signature changes
        on every rewrite even within one mtime tick.
        """
        path = self.path_for(shard)
        try:
            st = path.stat()
        except FileNotFoundError:
            raise NotFoundError(f"no shard file for {shard!r} at {path}") from None
        except OSError as exc:
            raise StoreError(f"cannot stat {path}: {exc}") from exc
        return st.st_ino, st.st_mtime_ns, st.st_size

    # ------------------------------------------------------------------
    # Write path (build time only) ✏️
    # ------------------------------------------------------------------
    def write(self, shard: str, blob: bytes) -> Path:
        path = self.path_for(shard)
        self._atomic_write(path, blob)
        return path

    def write_manifest(self, manifest: Manifest) -> Path:
        path = self.root / MANIFEST_NAME
        self._atomic_write(path, manifest.to_bytes())
        return path

    def _atomic_write(self, path: Path, blob: bytes) -> None:
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(prefix=f".{path.name}.", dir=self.root)
            try:
                with os.fdopen(fd, "wb") as fp:
                    fp.write(blob)
                    fp.flush()
                    os.fsync(fp.fileno())
                os.chmod(tmp, 0o644)
                os.replace(tmp, path)
            except BaseException:
                with contextlib.suppress(OSError):
                    os.unlink(tmp)
                raise
        except OSError as exc:
            raise StoreError(f"cannot write {path}: {exc}") from exc
        logger.debug("wrote %d bytes to %s", len(blob), path)

    # ------------------------------------------------------------------
    # Read path (query time) 🔍
    # ------------------------------------------------------------------
    def read(self, shard: str) -> bytes:
        """Return the full blob for *shard*; ``NotFoundError`` if it is missing."""
        path = self.path_for(shard)
        start = time.perf_counter()
        try:
            blob = path.read_bytes()
        except FileNotFoundError:
            raise NotFoundError(f"no shard file for {shard!r} at {path}") from None
        except OSError as exc:
            raise StoreError(f"cannot read {path}: {exc}") from exc
        logger.debug(
            "read %d bytes from %s in %.2f ms", len(blob), path, (time.perf_counter() - start) * 1000
        )
        return blob

    async def aread(self, shard: str) -> bytes:
        """Async-friendly wrapper around `read`."""
        return await asyncio.to_thread(self.read, shard)

    def read_manifest(self) -> Optional[Manifest]:
        """Load the build manifest, or ``None`` for a store built without one."""
        path = self.root / MANIFEST_NAME
        try:
            blob = path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise StoreError(f"cannot read {path}: {exc}") from exc
        return Manifest.from_bytes(blob)
