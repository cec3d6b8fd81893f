"""Profile the O(n) accumulation kernel against the dense reference.

Measures wall-clock time for one full evaluation (accumulate, objective,
gradient and Hessian action) across sample sizes and tie densities, for
every installed backend, alongside the O(n^2) dense reference where it
still fits in memory.

Usage::

    python benchmarks/profile_kernel.py          # full grid
    python benchmarks/profile_kernel.py --quick  # reduced grid for smoke test

Outputs:
    benchmarks/results/kernel_profile.csv
"""

from __future__ import annotations

import argparse
import platform
import sys
import time
from pathlib import Path

import numpy as np
import pandas as pd

# Ensure the package is importable when running from the repo root.
sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))
from coxph_kernel import (  # noqa: E402
    RiskSetLayout,
    accumulate,
    cox_gradient,
    cox_hessian_matvec,
    cox_objective,
    reference_gradient,
    reference_hessian,
    reference_objective,
)
from coxph_kernel._config import _jax_is_available  # noqa: E402

# ------------------------------------------------------------------ #
# Configuration
# ------------------------------------------------------------------ #

N_VALUES_FULL = [100, 1_000, 10_000, 100_000, 1_000_000]
N_VALUES_QUICK = [100, 1_000, 10_000]

# Number of distinct event times as a fraction of n (1.0 means no ties).
TIE_FRACTIONS = [1.0, 0.1]

# The dense reference allocates (n, n) float64 matrices.
DENSE_MAX_N = 2_000

REPEATS = 5
SEED = 42

RESULTS_DIR = Path(__file__).resolve().parent / "results"


# ------------------------------------------------------------------ #
# Data generation
# ------------------------------------------------------------------ #


def _make_problem(
    n: int, tie_fraction: float, seed: int
) -> tuple[RiskSetLayout, np.ndarray, np.ndarray]:
    """Random right-censored data with the requested tie density."""
    rng = np.random.default_rng(seed)
    n_distinct = max(1, int(n * tie_fraction))
    times = rng.integers(0, n_distinct, size=n).astype(np.float64)
    if tie_fraction >= 1.0:
        times = rng.permutation(n).astype(np.float64)
    censoring = (rng.random(n) < 0.7).astype(np.int64)

    ordering = np.argsort(times, kind="stable")
    sorted_times = times[ordering]
    first = np.searchsorted(sorted_times, times, side="left")
    last = np.searchsorted(sorted_times, times, side="right") - 1

    layout = RiskSetLayout(censoring, ordering, first, last)
    eta = 0.5 * rng.standard_normal(n)
    z = rng.standard_normal(n)
    return layout, eta, z


# ------------------------------------------------------------------ #
# Benchmark helpers
# ------------------------------------------------------------------ #


def _time_kernel(layout, eta, z, backend: str) -> float:
    t0 = time.perf_counter()
    acc = accumulate(layout, eta, z, backend=backend)
    cox_objective(acc)
    cox_gradient(acc)
    cox_hessian_matvec(acc)
    return time.perf_counter() - t0


def _time_dense(layout, eta, z) -> float:
    t0 = time.perf_counter()
    reference_objective(layout, eta)
    reference_gradient(layout, eta)
    reference_hessian(layout, eta) @ z
    return time.perf_counter() - t0


def run_grid(
    n_values: list[int], backends: list[str], repeats: int = REPEATS
) -> pd.DataFrame:
    """Run the benchmark grid and return a DataFrame of results."""
    rows: list[dict] = []
    for n in n_values:
        for tie_fraction in TIE_FRACTIONS:
            layout, eta, z = _make_problem(n, tie_fraction, SEED)
            methods = [(f"kernel[{b}]", b) for b in backends]
            if n <= DENSE_MAX_N:
                methods.append(("dense", None))

            for label, backend in methods:
                if backend is not None:
                    # Warm-up absorbs JIT compilation under JAX.
                    _time_kernel(layout, eta, z, backend)
                    times = [_time_kernel(layout, eta, z, backend) for _ in range(repeats)]
                else:
                    times = [_time_dense(layout, eta, z) for _ in range(repeats)]
                median_time = float(np.median(times))
                rows.append(
                    {
                        "n": n,
                        "tie_fraction": tie_fraction,
                        "events": layout.n_events,
                        "method": label,
                        "median_time_s": median_time,
                        "per_subject_ns": 1e9 * median_time / n,
                    }
                )
                print(
                    f"  n={n:9,d}, ties={tie_fraction:4.2f}, "
                    f"method={label:13s}, time={median_time:.5f}s"
                )
    return pd.DataFrame(rows)


# ------------------------------------------------------------------ #
# Main
# ------------------------------------------------------------------ #


def main() -> None:
    parser = argparse.ArgumentParser(description="Profile the Cox accumulation kernel")
    parser.add_argument(
        "--quick",
        action="store_true",
        help="Run a reduced grid for quick smoke testing",
    )
    args = parser.parse_args()

    n_values = N_VALUES_QUICK if args.quick else N_VALUES_FULL
    backends = ["numpy"] + (["jax"] if _jax_is_available() else [])

    print("=" * 60)
    print("Cox Kernel Profile")
    print("=" * 60)
    print(f"  Platform:    {platform.platform()}")
    print(f"  Python:      {platform.python_version()}")
    print(f"  NumPy:       {np.__version__}")
    print(f"  Backends:    {backends}")
    print(f"  n values:    {n_values}")
    print(f"  Repeats:     {REPEATS}")
    print()

    print("Running benchmarks...")
    df = run_grid(n_values, backends, repeats=REPEATS)

    RESULTS_DIR.mkdir(parents=True, exist_ok=True)
    csv_path = RESULTS_DIR / "kernel_profile.csv"
    df.to_csv(csv_path, index=False)
    print(f"\nSaved results to {csv_path}")

    print("\n" + "=" * 60)
    print("Summary")
    print("=" * 60)
    print(
        df.pivot_table(
            index=["n", "tie_fraction"], columns="method", values="median_time_s"
        ).to_string()
    )


if __name__ == "__main__":
    main()
