"""Unit tests for digest computation and shard routing."""
import hashlib

import pytest

from breachbloom.digest import SHARD_KEYS, hash_secret, normalise_digest, shard_for_digest
from breachbloom.errors import DigestFormatError, InputError


def test_hash_matches_sha1():
    """Digest is the uppercase hex SHA-1 of the UTF-8 bytes."""
    assert hash_secret("password") == "5BAA61E4C9B93F3F0682250B6CF8331B7EE68FD8"
    assert hash_secret("pässword") == hashlib.sha1("pässword".encode()).hexdigest().upper()


@pytest.mark.parametrize("data", [b"", "", b"\x00\xff", "x" * 10_000])
def test_hash_is_total_and_canonical(data):
    """Any input, including empty, yields 40 uppercase hex characters."""
    digest = hash_secret(data)
    assert len(digest) == 40
    assert digest == digest.upper()
    int(digest, 16)


def test_hash_is_deterministic():
    assert hash_secret(b"hunter2") == hash_secret(b"hunter2") == hash_secret("hunter2")
    assert hash_secret("hunter2") != hash_secret("hunter3")


def test_router_uses_first_two_characters():
    digest = "AA" + "0" * 38
    assert shard_for_digest(digest) == "aa"
    assert shard_for_digest("5BAA61E4C9B93F3F0682250B6CF8331B7EE68FD8") == "5b"


def test_router_accepts_lowercase_digest():
    assert shard_for_digest("5baa61e4c9b93f3f0682250b6cf8331b7ee68fd8") == "5b"
    assert normalise_digest("5baa61e4c9b93f3f0682250b6cf8331b7ee68fd8") == (
        "5BAA61E4C9B93F3F0682250B6CF8331B7EE68FD8"
    )


@pytest.mark.parametrize("length", [0, 2, 39, 41, 64])
def test_router_rejects_wrong_length(length):
    """39 or 41 characters fail rather than being truncated or padded."""
    with pytest.raises(DigestFormatError):
        shard_for_digest("A" * length)


def test_router_rejects_non_hex():
    with pytest.raises(DigestFormatError):
        shard_for_digest("ZZ" + "0" * 38)


def test_digest_format_error_is_input_error():
    with pytest.raises(InputError):
        shard_for_digest("short")


def test_shard_keys_cover_keyspace():
    assert len(SHARD_KEYS) == 256
    assert SHARD_KEYS[0] == "00" and SHARD_KEYS[-1] == "ff"
    assert len(set(SHARD_KEYS)) == 256


def test_every_router_output_is_a_shard_key():
    keys = set(SHARD_KEYS)
    for i in range(2000):
        assert shard_for_digest(hash_secret(str(i))) in keys
