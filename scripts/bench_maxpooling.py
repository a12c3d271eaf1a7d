"""
scripts/bench_maxpooling.py

Benchmark script (NOT a unit test) for the keypool max-pooling kernels.

It measures, for each shape:
- maxpool2d_forward_cpu without indices (evaluation path)
- maxpool2d_forward_cpu with indices (training path)
- maxpool2d_backward_cpu (scatter-add of the upstream gradient)

Usage examples
--------------
# Default: benchmark a single small shape
python scripts/bench_maxpooling.py

# Benchmark a specific shape with overlapping windows in ceil mode
python scripts/bench_maxpooling.py --N 2 --C 8 --H 32 --W 32 --k 3 --s 2 --ceil

# A few preset shapes
python scripts/bench_maxpooling.py --presets

Notes
-----
- The kernels are Python loops over output cells; keep shapes small.
- Run with CPU scaling disabled / consistent power mode if possible.
"""

from __future__ import annotations

import os
import sys

# Ensure repo_root/src is importable when running this file directly:
# repo_root/
#   src/keypool/...
#   scripts/bench_maxpooling.py
THIS_DIR = os.path.dirname(os.path.abspath(__file__))
ROOT_DIR = os.path.abspath(os.path.join(THIS_DIR, ".."))
SRC_DIR = os.path.join(ROOT_DIR, "src")

if SRC_DIR not in sys.path:
    sys.path.insert(0, SRC_DIR)

import argparse
import statistics
import time
from typing import Callable

import numpy as np

from keypool.infrastructure.ops.pool2d_cpu import (
    maxpool2d_backward_cpu,
    maxpool2d_forward_cpu,
)
from keypool.infrastructure.pooling._pooling_meta import PoolingConfig, RoundingMode


def _time_one(fn: Callable[[], None], *, warmup: int, repeats: int) -> list[float]:
    for _ in range(warmup):
        fn()

    times: list[float] = []
    for _ in range(repeats):
        t0 = time.perf_counter()
        fn()
        t1 = time.perf_counter()
        times.append(t1 - t0)
    return times


def _fmt_seconds(x: float) -> str:
    if x < 1e-6:
        return f"{x*1e9:.2f} ns"
    if x < 1e-3:
        return f"{x*1e6:.2f} µs"
    if x < 1:
        return f"{x*1e3:.2f} ms"
    return f"{x:.3f} s"


def _print_row(name: str, samples: list[float]) -> None:
    print(
        f"{name:<20} mean={_fmt_seconds(statistics.mean(samples)):>10} "
        f"median={_fmt_seconds(statistics.median(samples)):>10} "
        f"min={_fmt_seconds(min(samples)):>10} "
        f"max={_fmt_seconds(max(samples)):>10}"
    )


def bench_one(
    *,
    N: int,
    C: int,
    H: int,
    W: int,
    k: int,
    s: int,
    rounding_mode: RoundingMode,
    dtype: np.dtype,
    warmup: int,
    repeats: int,
) -> None:
    rng = np.random.default_rng(0)
    x = rng.standard_normal((N, C, H, W)).astype(dtype, copy=False)
    cfg = PoolingConfig(k, k, s, s, rounding_mode)

    def run_fwd_values() -> None:
        out = maxpool2d_forward_cpu(x, cfg, return_indices=False)
        _ = float(np.sum(out.output))

    def run_fwd_indices() -> None:
        out = maxpool2d_forward_cpu(x, cfg)
        _ = float(np.sum(out.output)) + float(np.sum(out.index_map.indices))

    result = maxpool2d_forward_cpu(x, cfg)
    grad_out = np.ones_like(result.output)

    def run_bwd() -> None:
        gx = maxpool2d_backward_cpu(
            grad_out, result.index_map, overlapping=cfg.overlapping
        )
        _ = float(np.sum(gx))

    print("\n" + "=" * 80)
    print(
        f"Shape: N={N} C={C} H={H} W={W}  k={k} s={s} mode={rounding_mode.value}  "
        f"dtype={np.dtype(dtype).name}  (warmup={warmup}, repeats={repeats})"
    )
    print("-" * 80)
    _print_row("forward", _time_one(run_fwd_values, warmup=warmup, repeats=repeats))
    _print_row(
        "forward+indices", _time_one(run_fwd_indices, warmup=warmup, repeats=repeats)
    )
    _print_row("backward", _time_one(run_bwd, warmup=warmup, repeats=repeats))


def main() -> None:
    ap = argparse.ArgumentParser()
    ap.add_argument("--N", type=int, default=2)
    ap.add_argument("--C", type=int, default=4)
    ap.add_argument("--H", type=int, default=32)
    ap.add_argument("--W", type=int, default=32)
    ap.add_argument("--k", type=int, default=2)
    ap.add_argument("--s", type=int, default=2)
    ap.add_argument("--ceil", action="store_true", help="Use ceil rounding.")
    ap.add_argument("--warmup", type=int, default=2)
    ap.add_argument("--repeats", type=int, default=10)
    ap.add_argument(
        "--dtypes",
        nargs="*",
        default=["float32"],
        choices=["float32", "float64", "int32"],
    )
    ap.add_argument(
        "--presets",
        action="store_true",
        help="Benchmark a small set of preset shapes instead of a single shape.",
    )
    args = ap.parse_args()

    dtypes = [getattr(np, dt) for dt in args.dtypes]
    mode = RoundingMode.CEIL if args.ceil else RoundingMode.FLOOR
    shapes = (
        [(1, 8, 28, 28), (4, 16, 32, 32), (2, 32, 64, 64)]
        if args.presets
        else [(args.N, args.C, args.H, args.W)]
    )

    for dtype in dtypes:
        for N, C, H, W in shapes:
            bench_one(
                N=N,
                C=C,
                H=H,
                W=W,
                k=args.k,
                s=args.s,
                rounding_mode=mode,
                dtype=dtype,
                warmup=args.warmup,
                repeats=args.repeats,
            )


if __name__ == "__main__":
    main()
