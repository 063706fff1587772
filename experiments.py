"""
Benchmark: Huffman codec on synthetic byte distributions

Runs repeated compress/decompress round trips through the real codec and
records size and timing data.

Outputs (in --outdir):
  - metrics.csv     (raw row per run)
  - summary.csv     (grouped mean/stdev)
  - *.png           (charts, unless --no_plots)

How to run:
  python experiments.py --outdir results --runs 5
  python experiments.py --outdir results --runs 3 --size_kb 128 --max_kb 512
  python experiments.py --outdir results --generators uniform256,zipf128,english_like --no_plots

Notes:
  Decoding walks the tree one bit at a time, so large sizes are slow.
"""

from __future__ import annotations

import argparse
import csv
import io
import math
import random
import statistics
import time
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Callable, Dict, List, Sequence, Tuple

import matplotlib.pyplot as plt
from loguru import logger

import huffman as huff


# Utilities

def now_ns() -> int:
    return time.perf_counter_ns()

def ns_to_ms(ns: int) -> float:
    return ns / 1_000_000.0

def safe_mkdir(p: Path) -> None:
    p.mkdir(parents=True, exist_ok=True)

def entropy_bits(counts: Sequence[int]) -> float:
    """Empirical entropy (bits per byte) of the real symbols, EOF excluded."""
    total = sum(counts[:huff.ALPH_SIZE])
    if total == 0:
        return 0.0
    h = 0.0
    for c in counts[:huff.ALPH_SIZE]:
        if c:
            p = c / total
            h -= p * math.log2(p)
    return h

def avg_code_bits(counts: Sequence[int], codes: Dict[int, object]) -> float:
    total = sum(counts[:huff.ALPH_SIZE])
    if total == 0:
        return 0.0
    return sum(counts[s] * len(codes[s]) for s in range(huff.ALPH_SIZE) if counts[s]) / total


# Synthetic dataset generators

def _sample_weighted(rng: random.Random, size: int, symbols: Sequence[int], weights: Sequence[float]) -> bytes:
    total = sum(weights)
    cdf = []
    acc = 0.0
    for w in weights:
        acc += w / total
        cdf.append(acc)

    out = bytearray()
    for _ in range(size):
        r = rng.random()
        lo, hi = 0, len(cdf) - 1
        while lo < hi:
            mid = (lo + hi) // 2
            if r <= cdf[mid]:
                hi = mid
            else:
                lo = mid + 1
        out.append(symbols[lo])
    return bytes(out)

def gen_uniform(size: int, alphabet: int = 256, seed: int = 0) -> bytes:
    rng = random.Random(seed)
    return bytes(rng.randrange(0, alphabet) for _ in range(size))

def gen_repetitive(size: int, dominant: int = ord('A'), dom_frac: float = 0.90, seed: int = 0) -> bytes:
    rng = random.Random(seed)
    others = [i for i in range(256) if i != dominant]
    return bytes(dominant if rng.random() < dom_frac else rng.choice(others) for _ in range(size))

def gen_zipf_like(size: int, alphabet: int = 128, s: float = 1.2, seed: int = 0) -> bytes:
    weights = [1.0 / ((i + 1) ** s) for i in range(alphabet)]
    return _sample_weighted(random.Random(seed), size, list(range(alphabet)), weights)

def gen_english_like(size: int, seed: int = 0) -> bytes:
    chars = " etaoinshrdlcumwfgypbvkjxqETAOINSHRDLCUMWFGYPBVKJXQ\n"
    weights = []
    for ch in chars:
        if ch == ' ':
            weights.append(13.0)
        elif ch == '\n':
            weights.append(1.5)
        elif ch.lower() in "etaoinshrdlu":
            weights.append(6.0)
        elif ch.lower() in "cmfwgypbvk":
            weights.append(2.5)
        else:
            weights.append(1.2)
    return _sample_weighted(random.Random(seed), size, [ord(c) for c in chars], weights)

GENERATOR_REGISTRY: Dict[str, Callable[[int, int], bytes]] = {
    "uniform256": lambda size, seed: gen_uniform(size, alphabet=256, seed=seed),
    "uniform128": lambda size, seed: gen_uniform(size, alphabet=128, seed=seed),
    "zipf128": lambda size, seed: gen_zipf_like(size, alphabet=128, s=1.2, seed=seed),
    "zipf64": lambda size, seed: gen_zipf_like(size, alphabet=64, s=1.2, seed=seed),
    "repetitive90": lambda size, seed: gen_repetitive(size, dom_frac=0.90, seed=seed),
    "repetitive99": lambda size, seed: gen_repetitive(size, dom_frac=0.99, seed=seed),
    "english_like": lambda size, seed: gen_english_like(size, seed=seed),
    "single_symbol": lambda size, seed: bytes([seed % 256]) * size,
    "empty": lambda size, seed: b"",
}

def generate_dataset(name: str, size_bytes: int, seed: int) -> Tuple[str, bytes]:
    """Unknown names fall back to uniform256 so one typo does not kill a long run."""
    fn = GENERATOR_REGISTRY.get(name)
    if fn is None:
        logger.warning("unknown generator {!r}, using uniform256", name)
        return f"{name}_fallback_uniform256", gen_uniform(size_bytes, alphabet=256, seed=seed)
    return name, fn(size_bytes, seed)


# Experiment runner

@dataclass
class MetricRow:
    exp_name: str
    dataset_name: str
    file_size_bytes: int
    run_id: int
    unique_symbols: int  # EOF excluded

    entropy_bits: float
    avg_code_bits: float
    header_bits: int
    body_bits: int
    compressed_bytes: int
    compression_ratio: float

    encode_ms: float
    decode_ms: float
    total_ms: float
    correctness_ok: int  # 1 or 0


def run_one(data: bytes) -> MetricRow:
    counts = huff.freq_table(data)
    codes = huff.generate_huffman_codes(huff.build_huffman_tree(counts))

    out = io.BytesIO()
    t0 = now_ns()
    stats = huff.compress(io.BytesIO(data), out)
    t1 = now_ns()
    packed = out.getvalue()

    t2 = now_ns()
    decoded = huff.decompress_bytes(packed)
    t3 = now_ns()

    encode_ms = ns_to_ms(t1 - t0)
    decode_ms = ns_to_ms(t3 - t2)
    return MetricRow(
        exp_name="",
        dataset_name="",
        file_size_bytes=len(data),
        run_id=0,
        unique_symbols=sum(1 for c in counts[:huff.ALPH_SIZE] if c),
        entropy_bits=entropy_bits(counts),
        avg_code_bits=avg_code_bits(counts, codes),
        header_bits=stats.header_bits,
        body_bits=stats.body_bits,
        compressed_bytes=len(packed),
        compression_ratio=len(packed) / max(1, len(data)),
        encode_ms=encode_ms,
        decode_ms=decode_ms,
        total_ms=encode_ms + decode_ms,
        correctness_ok=1 if decoded == data else 0,
    )


def write_csv(path: Path, rows: List[MetricRow]) -> None:
    names = [f.name for f in fields(MetricRow)]
    with path.open("w", newline="", encoding="utf-8") as f:
        w = csv.DictWriter(f, fieldnames=names)
        w.writeheader()
        for r in rows:
            w.writerow({k: getattr(r, k) for k in names})


SUMMARY_METRICS = ("compression_ratio", "avg_code_bits", "encode_ms", "decode_ms", "total_ms")

def mean_stdev(vals: List[float]) -> Tuple[float, float]:
    if len(vals) == 1:
        return vals[0], 0.0
    return statistics.mean(vals), statistics.stdev(vals)

def group_summary(rows: List[MetricRow], out_path: Path) -> None:
    """Group by exp_name, dataset_name, file_size_bytes and compute mean/stdev."""
    key_to: Dict[Tuple[str, str, int], List[MetricRow]] = {}
    for r in rows:
        key_to.setdefault((r.exp_name, r.dataset_name, r.file_size_bytes), []).append(r)

    summary_fields = ["exp_name", "dataset_name", "file_size_bytes", "n_runs", "entropy_bits_mean"]
    for m in SUMMARY_METRICS:
        summary_fields += [f"{m}_mean", f"{m}_stdev"]
    summary_fields.append("correctness_ok_rate")

    with out_path.open("w", newline="", encoding="utf-8") as f:
        w = csv.DictWriter(f, fieldnames=summary_fields)
        w.writeheader()
        for (exp_name, dataset_name, size_b), items in sorted(key_to.items()):
            row = {
                "exp_name": exp_name,
                "dataset_name": dataset_name,
                "file_size_bytes": size_b,
                "n_runs": len(items),
                "entropy_bits_mean": statistics.mean(x.entropy_bits for x in items),
                "correctness_ok_rate": sum(x.correctness_ok for x in items) / len(items),
            }
            for m in SUMMARY_METRICS:
                row[f"{m}_mean"], row[f"{m}_stdev"] = mean_stdev([getattr(x, m) for x in items])
            w.writerow(row)


# Plotting

def plot_distributions(rows: List[MetricRow], outdir: Path) -> None:
    exp_rows = [r for r in rows if r.exp_name == "exp1_distribution"]
    if not exp_rows:
        return

    datasets = sorted(set(r.dataset_name for r in exp_rows))
    x = list(range(len(datasets)))

    def mean_for(dataset: str, field: str) -> float:
        return statistics.mean(getattr(r, field) for r in exp_rows if r.dataset_name == dataset)

    plt.figure()
    plt.plot(x, [mean_for(d, "avg_code_bits") for d in datasets], marker="o", label="huffman bits/byte")
    plt.plot(x, [mean_for(d, "entropy_bits") for d in datasets], marker="x", linestyle="--", label="entropy bits/byte")
    plt.xticks(x, datasets, rotation=20, ha="right")
    plt.ylabel("Bits per Input Byte")
    plt.title("Experiment 1: Code Length vs Entropy by Distribution")
    plt.legend()
    plt.tight_layout()
    plt.savefig(outdir / "exp1_code_length.png", dpi=200)
    plt.close()

    plt.figure()
    plt.plot(x, [mean_for(d, "compression_ratio") for d in datasets], marker="o")
    plt.xticks(x, datasets, rotation=20, ha="right")
    plt.ylabel("Compressed Bytes / Original Bytes")
    plt.title("Experiment 1: Compression Ratio by Distribution")
    plt.tight_layout()
    plt.savefig(outdir / "exp1_compression_ratio.png", dpi=200)
    plt.close()


def plot_size_scaling(rows: List[MetricRow], outdir: Path) -> None:
    exp_rows = [r for r in rows if r.exp_name == "exp2_size_scaling"]
    if not exp_rows:
        return

    for dist in sorted(set(r.dataset_name for r in exp_rows)):
        dist_rows = [r for r in exp_rows if r.dataset_name == dist]
        sizes = sorted(set(r.file_size_bytes for r in dist_rows))

        def mean_size(size: int, field: str) -> float:
            return statistics.mean(getattr(r, field) for r in dist_rows if r.file_size_bytes == size)

        plt.figure()
        plt.plot(sizes, [mean_size(s, "encode_ms") for s in sizes], marker="o", label="encode")
        plt.plot(sizes, [mean_size(s, "decode_ms") for s in sizes], marker="o", label="decode")
        plt.xlabel("File Size (bytes)")
        plt.ylabel("Time (ms)")
        plt.title(f"Experiment 2: Codec Time vs Size ({dist})")
        plt.legend()
        plt.tight_layout()
        plt.savefig(outdir / f"exp2_time_{dist}.png", dpi=200)
        plt.close()

        plt.figure()
        plt.plot(sizes, [mean_size(s, "compression_ratio") for s in sizes], marker="o")
        plt.xlabel("File Size (bytes)")
        plt.ylabel("Compressed Bytes / Original Bytes")
        plt.title(f"Experiment 2: Compression Ratio vs Size ({dist})")
        plt.tight_layout()
        plt.savefig(outdir / f"exp2_compression_ratio_{dist}.png", dpi=200)
        plt.close()


# Main

def parse_csv_list(s: str) -> List[str]:
    return [x.strip() for x in s.split(",") if x.strip()]

def size_steps(min_bytes: int, max_bytes: int) -> List[int]:
    sizes = []
    s = min_bytes
    while s <= max_bytes:
        sizes.append(s)
        s *= 2
    return sizes

def main(argv: List[str] | None = None) -> int:
    ap = argparse.ArgumentParser()
    ap.add_argument("--outdir", type=str, default="results", help="Output directory for CSV and plots")
    ap.add_argument("--runs", type=int, default=3, help="Repetitions per configuration")
    ap.add_argument("--seed", type=int, default=123, help="Base random seed")
    ap.add_argument("--no_exp1", action="store_true", help="Disable experiment 1 (distribution)")
    ap.add_argument("--no_exp2", action="store_true", help="Disable experiment 2 (size scaling)")
    ap.add_argument("--no_plots", action="store_true", help="Write CSVs only")

    ap.add_argument("--size_kb", type=int, default=64, help="Experiment 1 fixed file size in KB")
    ap.add_argument("--generators", type=str, default="uniform256,zipf128,repetitive90,english_like,single_symbol",
                    help="Comma-separated dataset generator names for experiment 1")
    ap.add_argument("--min_kb", type=int, default=4, help="Experiment 2 min size in KB (power-of-two growth)")
    ap.add_argument("--max_kb", type=int, default=256, help="Experiment 2 max size in KB")
    ap.add_argument("--scaling_generators", type=str, default="uniform256,english_like",
                    help="Comma-separated dataset generator names for experiment 2")

    args = ap.parse_args(argv)

    outdir = Path(args.outdir)
    safe_mkdir(outdir)
    rows: List[MetricRow] = []

    if not args.no_exp1:
        fixed_size = max(0, args.size_kb) * 1024
        for gen_name in parse_csv_list(args.generators):
            for run_id in range(1, args.runs + 1):
                dataset_name, data = generate_dataset(gen_name, fixed_size, args.seed + run_id)
                row = run_one(data)
                row.exp_name = "exp1_distribution"
                row.dataset_name = dataset_name
                row.run_id = run_id
                rows.append(row)
                logger.info("exp1 {} run {}: ratio {:.3f}", dataset_name, run_id, row.compression_ratio)

    if not args.no_exp2:
        sizes = size_steps(max(1, args.min_kb) * 1024, max(1, args.max_kb) * 1024)
        for gen_name in parse_csv_list(args.scaling_generators):
            for size_b in sizes:
                for run_id in range(1, args.runs + 1):
                    dataset_name, data = generate_dataset(gen_name, size_b, args.seed + 10_000 + size_b + run_id)
                    row = run_one(data)
                    row.exp_name = "exp2_size_scaling"
                    row.dataset_name = dataset_name
                    row.run_id = run_id
                    rows.append(row)
                    logger.info("exp2 {} {}B run {}: {:.1f} ms", dataset_name, size_b, run_id, row.total_ms)

    metrics_csv = outdir / "metrics.csv"
    summary_csv = outdir / "summary.csv"
    write_csv(metrics_csv, rows)
    group_summary(rows, summary_csv)

    if not args.no_plots:
        plot_distributions(rows, outdir)
        plot_size_scaling(rows, outdir)

    ok_rate = sum(r.correctness_ok for r in rows) / max(1, len(rows))
    print(f"Wrote {len(rows)} rows to {metrics_csv}")
    print(f"Wrote grouped summary to {summary_csv}")
    print(f"Round-trip correctness rate: {ok_rate:.3f}")
    if not args.no_plots:
        print("Charts saved in:", outdir.resolve())
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
