"""Command line entry points: ``build``, ``query`` and ``stats``.

Diagnostics go to stderr through ``logging``; stdout only ever carries the
JSON result records, and nothing is printed there when a command fails.
"""
from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Optional, Sequence, TextIO

from .bloom import expected_fp_rate
from .builder import FilterBuilder, FilterParams, count_corpus
from .cache import FilterCache
from .compression import Compression
from .config import Settings
from .errors import BreachBloomError, InputError, NotFoundError
from .query import QueryEngine
from .store import ShardStore

__all__ = ["main", "parse_secret"]

logger = logging.getLogger(__name__)

SECRET_FIELDS = ("password", "secret")
DEFAULT_FP = 0.001

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_INPUT = 2


def parse_secret(payload: str) -> str:
    """Pull the secret out of a JSON argument like ``{"password": "hunter2"}``."""
    try:
        obj = json.loads(payload)
    except json.JSONDecodeError as exc:
        raise InputError(f"unable to parse input parameters: {exc}") from None
    if not isinstance(obj, dict):
        raise InputError("input parameters must be a JSON object")
    for name in SECRET_FIELDS:
        value = obj.get(name)
        if isinstance(value, str):
            return value
    raise InputError(f"unable to parse input parameters for {SECRET_FIELDS[0]}")


# ----------------------------------------------------------------------
# build
# ----------------------------------------------------------------------
def _resolve_params(args: argparse.Namespace, settings: Settings) -> FilterParams:
    for flag, value in (("--bits", args.bits), ("--hashes", args.hashes), ("--capacity", args.capacity)):
        if value is not None and value < 1:
            raise InputError(f"{flag} must be a positive integer, got {value}")
    if args.capacity is not None:
        if args.fp is not None:
            return FilterParams.from_capacity(args.capacity, args.fp)
        if args.hashes is not None:
            return FilterParams.from_hashes(args.capacity, args.hashes)
        raise InputError("--capacity needs either --fp or --hashes")
    if args.fp is not None:
        raise InputError("--fp needs --capacity (or --per-shard)")
    bits = settings.bits if args.bits is None else args.bits
    hashes = settings.hashes if args.hashes is None else args.hashes
    return FilterParams(m=bits, k=hashes)


def _compression(name: str) -> Compression:
    try:
        return Compression(name)
    except (ValueError, ImportError) as exc:
        raise InputError(str(exc)) from None


def cmd_build(args: argparse.Namespace, settings: Settings) -> int:
    store = ShardStore(args.out or settings.shard_dir)
    compression = _compression(args.compression or settings.compression)
    progress = not args.quiet
    counts = None
    if args.per_shard:
        sizing = {"--capacity": args.capacity, "--bits": args.bits, "--hashes": args.hashes}
        fixed = [flag for flag, value in sizing.items() if value is not None]
        if fixed:
            raise InputError(f"--per-shard sizes shards from the corpus and cannot be combined with {', '.join(fixed)}")
        logger.info("counting corpus for per-shard sizing")
        counts = count_corpus(args.corpus)
    try:
        if counts is not None:
            builder = FilterBuilder.per_shard(counts, DEFAULT_FP if args.fp is None else args.fp)
        else:
            params = _resolve_params(args, settings)
            logger.info("creating bloom filters with parameters --> m: %d k: %d", params.m, params.k)
            builder = FilterBuilder(params)
    except ValueError as exc:
        raise InputError(str(exc)) from None
    builder.add_files(args.corpus, workers=args.workers, progress=progress)
    builder.serialise(store, compression, progress=progress)
    return EXIT_OK


# ----------------------------------------------------------------------
# query
# ----------------------------------------------------------------------
def _emit(record: dict, out: TextIO) -> None:
    out.write(json.dumps(record) + "\n")
    out.flush()


def cmd_query(args: argparse.Namespace, settings: Settings, stdin: TextIO, stdout: TextIO) -> int:
    store = ShardStore(args.out or settings.shard_dir)
    if args.stdin:
        return _serve_lines(store, settings, stdin, stdout)
    if args.payload is None:
        raise InputError("missing programme argument with input parameters")
    secret = parse_secret(args.payload)
    logger.info("checking secret of %d characters", len(secret))
    result = QueryEngine(store).check(secret)
    logger.info("hash: %s shard: %s", result.digest, result.shard)
    record = result.to_dict()
    logger.info("found secret in bloom filter: %s", record["found"])
    _emit(record, stdout)
    return EXIT_OK


def _serve_lines(store: ShardStore, settings: Settings, stdin: TextIO, stdout: TextIO) -> int:
    """One JSON request per input line, one JSON record per output line.

    Bad requests yield an ``{"error": ...}`` record instead of ending the
    process; only a missing shard directory is fatal.
    """
    if not store.root.is_dir():
        raise NotFoundError(f"shard directory {store.root} does not exist")
    engine = QueryEngine(store, FilterCache(settings.cache_size))
    status = EXIT_OK
    for line in stdin:
        if not line.strip():
            continue
        try:
            result = engine.check(parse_secret(line))
            record = result.to_dict()
        except BreachBloomError as exc:
            logger.error("%s", exc)
            record = {"error": str(exc)}
            status = EXIT_FAILURE
        _emit(record, stdout)
    stats = engine.cache.stats
    logger.info("filter cache: %d hits, %d misses, %d evictions", stats.hits, stats.misses, stats.evictions)
    return status


# ----------------------------------------------------------------------
# stats
# ----------------------------------------------------------------------
def cmd_stats(args: argparse.Namespace, settings: Settings, stdout: TextIO) -> int:
    store = ShardStore(args.out or settings.shard_dir)
    manifest = store.read_manifest()
    if manifest is None:
        raise NotFoundError(f"no build manifest in {store.root}")
    counts = [info.count for info in manifest.shards.values()]
    fps = {key: expected_fp_rate(info.m, info.k, info.count) for key, info in manifest.shards.items()}
    worst = max(fps, key=fps.get) if fps else None
    summary = {
        "format_version": manifest.format_version,
        "compression": manifest.compression,
        "created": manifest.created,
        "shards": len(manifest.shards),
        "total_count": manifest.total_count,
        "min_count": min(counts, default=0),
        "max_count": max(counts, default=0),
        "total_bytes": sum(info.size for info in manifest.shards.values()),
        "worst_shard": worst,
        "worst_expected_fp": fps[worst] if worst else 0.0,
    }
    if args.verbose:
        summary["per_shard"] = {
            key: {"count": info.count, "m": info.m, "k": info.k, "bytes": info.size, "expected_fp": fps[key]}
            for key, info in manifest.shards.items()
        }
    _emit(summary, stdout)
    return EXIT_OK


# ----------------------------------------------------------------------
# argument parsing
# ----------------------------------------------------------------------
def build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--debug", action="store_true")
    common.add_argument("--out", help="shard directory (default: $BREACHBLOOM_DIR or ./bloom_filters)")

    parser = argparse.ArgumentParser(prog="breachbloom", description="Sharded bloom filters for breached credentials.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    build = subparsers.add_parser("build", parents=[common], help="build the 256 shard filters from corpus files")
    build.add_argument("corpus", nargs="+", help="newline-delimited files of 40 character SHA-1 digests")
    build.add_argument("--bits", type=int, help="bits per shard filter")
    build.add_argument("--hashes", type=int, help="hash functions per filter")
    build.add_argument("--capacity", type=int, help="expected hashes per shard")
    build.add_argument("--fp", type=float, help="target false-positive rate")
    build.add_argument("--per-shard", action="store_true", help="size each shard from its own count (two passes)")
    build.add_argument("--compression", choices=["none", "snappy", "zstd"])
    build.add_argument("--workers", type=int, default=1, help="corpus files ingested in parallel")
    build.add_argument("--quiet", action="store_true", help="no progress bars")

    query = subparsers.add_parser("query", parents=[common], help="test one secret for membership")
    query.add_argument("payload", nargs="?", help='JSON object, e.g. \'{"password": "hunter2"}\'')
    query.add_argument("--stdin", action="store_true", help="read one JSON request per line from stdin")

    stats = subparsers.add_parser("stats", parents=[common], help="summarise the build manifest")
    stats.add_argument("--verbose", action="store_true", help="include every shard")
    return parser


def main(
    argv: Optional[Sequence[str]] = None,
    stdin: Optional[TextIO] = None,
    stdout: Optional[TextIO] = None,
) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        level=logging.DEBUG if args.debug else logging.INFO,
        stream=sys.stderr,
    )
    stdin = stdin or sys.stdin
    stdout = stdout or sys.stdout
    try:
        settings = Settings.from_env()
        if args.command == "build":
            return cmd_build(args, settings)
        if args.command == "query":
            return cmd_query(args, settings, stdin, stdout)
        return cmd_stats(args, settings, stdout)
    except InputError as exc:
        logger.error("%s", exc)
        return EXIT_INPUT
    except BreachBloomError as exc:
        logger.error("%s", exc)
        return EXIT_FAILURE
