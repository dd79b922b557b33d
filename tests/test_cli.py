"""End-to-end tests for the command line entry points."""
import io
import json

import pytest

from breachbloom.cli import main, parse_secret
from breachbloom.digest import SHARD_KEYS, hash_secret
from breachbloom.errors import InputError

SMALL = ["--bits", "2048", "--hashes", "4", "--quiet"]


@pytest.fixture
def shard_dir(tmp_path):
    return tmp_path / "bloom_filters"


@pytest.fixture
def built(shard_dir, corpus_file, find_secret):
    """Build shards for a corpus holding one digest from shard 'aa'."""
    secret = find_secret("aa")
    corpus = corpus_file([hash_secret(secret), hash_secret("another-leak")])
    assert main(["build", "--out", str(shard_dir), *SMALL, str(corpus)]) == 0
    return secret


def _query(shard_dir, payload):
    out = io.StringIO()
    status = main(["query", "--out", str(shard_dir), payload], stdout=out)
    return status, out.getvalue()


class TestParseSecret:
    def test_password_field(self):
        assert parse_secret('{"password": "hunter2"}') == "hunter2"

    def test_secret_alias(self):
        assert parse_secret('{"secret": "hunter2"}') == "hunter2"

    @pytest.mark.parametrize("payload", ["", "not json", "[1, 2]", "{}", '{"password": 5}', '{"user": "x"}'])
    def test_rejects_bad_payload(self, payload):
        with pytest.raises(InputError):
            parse_secret(payload)


def test_build_produces_256_shards(built, shard_dir):
    assert sorted(p.stem for p in shard_dir.glob("*.dat")) == list(SHARD_KEYS)
    assert (shard_dir / "manifest.msgpack").exists()


def test_scenario_a_found(built, shard_dir):
    status, out = _query(shard_dir, json.dumps({"password": built}))
    assert status == 0
    assert json.loads(out) == {"found": True}


def test_scenario_b_not_found(built, shard_dir):
    status, out = _query(shard_dir, '{"password": "correct horse battery staple"}')
    assert status == 0
    assert out == '{"found": false}\n'


def test_scenario_c_missing_field(built, shard_dir):
    """Omitting the secret field fails with no success record."""
    status, out = _query(shard_dir, '{"username": "bob"}')
    assert status == 2
    assert out == ""


def test_missing_payload(shard_dir):
    out = io.StringIO()
    assert main(["query", "--out", str(shard_dir)], stdout=out) == 2
    assert out.getvalue() == ""


def test_query_without_shards_fails(shard_dir):
    status, out = _query(shard_dir, '{"password": "x"}')
    assert status == 1
    assert out == ""


def test_corrupt_shard_emits_nothing(built, shard_dir):
    shard = hash_secret(built)[:2].lower()
    (shard_dir / f"{shard}.dat").write_bytes(b"garbage")
    status, out = _query(shard_dir, json.dumps({"password": built}))
    assert status == 1
    assert out == ""


def test_build_rejects_bad_corpus(shard_dir, corpus_file):
    corpus = corpus_file(["A" * 41])
    assert main(["build", "--out", str(shard_dir), *SMALL, str(corpus)]) == 2
    assert not shard_dir.exists()


def test_build_missing_corpus(shard_dir, tmp_path):
    assert main(["build", "--out", str(shard_dir), *SMALL, str(tmp_path / "absent.txt")]) == 1


def test_build_with_capacity_needs_fp_or_hashes(shard_dir, corpus_file):
    corpus = corpus_file([hash_secret("x")])
    assert main(["build", "--out", str(shard_dir), "--capacity", "100", "--quiet", str(corpus)]) == 2


@pytest.mark.parametrize("flags", [["--bits", "0", "--hashes", "4"], ["--bits", "2048", "--hashes", "0"]])
def test_build_rejects_zero_sizing(shard_dir, corpus_file, flags):
    corpus = corpus_file([hash_secret("x")])
    assert main(["build", "--out", str(shard_dir), *flags, "--quiet", str(corpus)]) == 2
    assert not shard_dir.exists()


def test_build_rejects_zero_hashes_with_capacity(shard_dir, corpus_file):
    corpus = corpus_file([hash_secret("x")])
    args = ["build", "--out", str(shard_dir), "--capacity", "100", "--hashes", "0", "--quiet", str(corpus)]
    assert main(args) == 2


@pytest.mark.parametrize("flags", [["--capacity", "100"], ["--bits", "2048"], ["--hashes", "4"]])
def test_per_shard_rejects_fixed_sizing(shard_dir, corpus_file, flags):
    corpus = corpus_file([hash_secret("x")])
    assert main(["build", "--out", str(shard_dir), "--per-shard", *flags, "--quiet", str(corpus)]) == 2
    assert not shard_dir.exists()


def test_build_per_shard(shard_dir, corpus_file):
    corpus = corpus_file([hash_secret(f"p{i}") for i in range(200)])
    assert main(["build", "--out", str(shard_dir), "--per-shard", "--fp", "0.01", "--quiet", str(corpus)]) == 0
    status, out = _query(shard_dir, '{"password": "p17"}')
    assert (status, json.loads(out)) == (0, {"found": True})


def test_stdin_mode(built, shard_dir):
    requests = "\n".join(
        [json.dumps({"password": built}), '{"password": "nope"}', "{bad json", json.dumps({"secret": built})]
    )
    out = io.StringIO()
    status = main(["query", "--out", str(shard_dir), "--stdin"], stdin=io.StringIO(requests + "\n"), stdout=out)
    records = [json.loads(line) for line in out.getvalue().splitlines()]
    assert status == 1
    assert records[0] == {"found": True}
    assert records[1] == {"found": False}
    assert "error" in records[2]
    assert records[3] == {"found": True}


def test_stdin_mode_needs_shard_dir(tmp_path):
    out = io.StringIO()
    status = main(["query", "--out", str(tmp_path / "missing"), "--stdin"], stdin=io.StringIO(""), stdout=out)
    assert status == 1
    assert out.getvalue() == ""


def test_stdin_mode_rejects_empty_cache(built, shard_dir, monkeypatch):
    monkeypatch.setenv("BREACHBLOOM_CACHE_SIZE", "0")
    out = io.StringIO()
    requests = io.StringIO(json.dumps({"password": built}) + "\n")
    status = main(["query", "--out", str(shard_dir), "--stdin"], stdin=requests, stdout=out)
    assert status == 2
    assert out.getvalue() == ""


def test_stats(built, shard_dir):
    out = io.StringIO()
    assert main(["stats", "--out", str(shard_dir), "--verbose"], stdout=out) == 0
    summary = json.loads(out.getvalue())
    assert summary["shards"] == 256
    assert summary["total_count"] == 2
    assert summary["per_shard"]["aa"]["count"] >= 1
    assert summary["per_shard"]["aa"]["m"] == 2048


def test_env_selects_shard_dir(built, shard_dir, monkeypatch):
    monkeypatch.setenv("BREACHBLOOM_DIR", str(shard_dir))
    out = io.StringIO()
    assert main(["query", json.dumps({"password": built})], stdout=out) == 0
    assert json.loads(out.getvalue()) == {"found": True}
