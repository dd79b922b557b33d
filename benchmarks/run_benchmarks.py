#!/usr/bin/env python3
"""Benchmark suite for breachbloom: build throughput and query latency."""

import argparse
import json
import time
from pathlib import Path
from typing import Dict, List

import numpy as np
from tqdm import tqdm

from breachbloom import FilterBuilder, FilterCache, QueryEngine, ShardStore
from breachbloom.builder import FilterParams
from breachbloom.compression import Compression
from breachbloom.digest import hash_secret


class Metrics:
    def __init__(self):
        self.build_seconds: float = 0.0
        self.serialise_seconds: float = 0.0
        self.cold_latencies: List[float] = []
        self.cached_latencies: List[float] = []
        self.size_on_disk: int = 0
        self.false_positives: int = 0
        self.probes: int = 0

    def to_dict(self) -> Dict:
        return {
            "build_seconds": self.build_seconds,
            "serialise_seconds": self.serialise_seconds,
            "cold_latency_ms": self._percentiles(self.cold_latencies),
            "cached_latency_ms": self._percentiles(self.cached_latencies),
            "size_on_disk": self.size_on_disk,
            "false_positive_rate": self.false_positives / self.probes if self.probes else 0.0,
        }

    @staticmethod
    def _percentiles(values: List[float]) -> Dict:
        return {
            "p50": float(np.percentile(values, 50)),
            "p95": float(np.percentile(values, 95)),
            "p99": float(np.percentile(values, 99)),
        }


class BenchmarkSuite:
    def __init__(self, out: Path, num_entries: int, fp: float, compression: str, probes: int):
        self.store = ShardStore(out / "bloom_filters")
        self.num_entries = num_entries
        self.params = FilterParams.from_capacity(max(1, num_entries // 256), fp)
        self.compression = Compression(compression)
        self.probes = probes
        self.metrics = Metrics()

    def run_build(self):
        builder = FilterBuilder(self.params)
        start = time.perf_counter()
        for i in tqdm(range(self.num_entries), desc="Build"):
            builder.add(hash_secret(f"member-{i}"))
        self.metrics.build_seconds = time.perf_counter() - start

        start = time.perf_counter()
        builder.serialise(self.store, self.compression)
        self.metrics.serialise_seconds = time.perf_counter() - start
        self.metrics.size_on_disk = sum(f.stat().st_size for f in self.store.root.iterdir() if f.is_file())

    def run_queries(self):
        cold = QueryEngine(self.store)
        cached = QueryEngine(self.store, FilterCache(max_entries=256))
        for i in tqdm(range(self.probes), desc="Query"):
            secret = f"outsider-{i}"
            start = time.perf_counter()
            found = cold.contains(secret)
            self.metrics.cold_latencies.append((time.perf_counter() - start) * 1000)
            self.metrics.false_positives += found
            self.metrics.probes += 1

            start = time.perf_counter()
            cached.contains(secret)
            self.metrics.cached_latencies.append((time.perf_counter() - start) * 1000)


def main():
    parser = argparse.ArgumentParser()
    parser.add_argument("--size", type=int, default=1_000_000, help="Number of corpus digests")
    parser.add_argument("--fp", type=float, default=0.001, help="Target false-positive rate")
    parser.add_argument("--compression", default="none", choices=["none", "snappy", "zstd"])
    parser.add_argument("--probes", type=int, default=10_000, help="Number of non-member queries")
    parser.add_argument("--output", type=Path, default=Path("benchmark_results"), help="Output directory")
    args = parser.parse_args()

    args.output.mkdir(parents=True, exist_ok=True)

    suite = BenchmarkSuite(args.output, args.size, args.fp, args.compression, args.probes)
    suite.run_build()
    suite.run_queries()

    with open(args.output / "metrics.json", "w") as f:
        json.dump(suite.metrics.to_dict(), f, indent=2)


if __name__ == "__main__":
    main()
