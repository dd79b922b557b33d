"""Shared fixtures for the breachbloom test-suite."""
import itertools

import pytest

from breachbloom.builder import FilterParams
from breachbloom.digest import hash_secret
from breachbloom.store import ShardStore


@pytest.fixture
def small_params():
    """Tiny per-shard filters so a full 256-shard build stays cheap."""
    return FilterParams(m=4096, k=5)


@pytest.fixture
def store(tmp_path):
    return ShardStore(tmp_path / "bloom_filters")


@pytest.fixture
def find_secret():
    """Return a helper that finds a secret whose digest starts with a prefix."""
    def _find(prefix: str, start: int = 0) -> str:
        prefix = prefix.upper()
        for i in itertools.count(start):
            secret = f"secret-{i}"
            if hash_secret(secret).startswith(prefix):
                return secret
    return _find


@pytest.fixture
def corpus_file(tmp_path):
    """Return a helper that writes digests to a newline-delimited corpus file."""
    def _write(digests, name: str = "corpus.txt"):
        path = tmp_path / name
        path.write_text("".join(f"{d}\n" for d in digests), encoding="ascii")
        return path
    return _write
