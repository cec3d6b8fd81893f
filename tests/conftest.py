"""Shared fixtures: survival data generators and backend selection."""

from __future__ import annotations

from collections.abc import Callable, Iterator

import numpy as np
import pytest
from scipy.stats import rankdata

import coxph_kernel._config as _cfg
from coxph_kernel import RiskSetLayout

# ------------------------------------------------------------------ #
# Helpers
# ------------------------------------------------------------------ #


def _layout_from_times(times: np.ndarray, censoring: np.ndarray) -> RiskSetLayout:
    """Stable ascending ordering plus 0-based min / max tie ranks."""
    times = np.asarray(times, dtype=np.float64)
    ordering = np.argsort(times, kind="stable")
    rankmin = rankdata(times, method="min").astype(np.int64) - 1
    rankmax = rankdata(times, method="max").astype(np.int64) - 1
    return RiskSetLayout(censoring, ordering, rankmin, rankmax)


def _random_survival(
    n: int = 40,
    seed: int = 0,
    n_distinct_times: int | None = None,
    event_rate: float = 0.7,
) -> tuple[RiskSetLayout, np.ndarray, np.ndarray]:
    """Random layout, linear predictor and times.

    ``n_distinct_times`` draws times from a small integer grid to force
    ties; ``None`` gives continuous (tie-free) times.
    """
    rng = np.random.default_rng(seed)
    if n_distinct_times is None:
        times = rng.exponential(size=n)
    else:
        times = rng.integers(0, n_distinct_times, size=n).astype(np.float64)
    censoring = (rng.random(n) < event_rate).astype(np.int64)
    censoring[0] = 1  # at least one event
    eta = 0.5 * rng.standard_normal(n)
    return _layout_from_times(times, censoring), eta, times


# ------------------------------------------------------------------ #
# Fixtures
# ------------------------------------------------------------------ #


@pytest.fixture
def layout_from_times() -> Callable[..., RiskSetLayout]:
    return _layout_from_times


@pytest.fixture
def random_survival() -> Callable[..., tuple[RiskSetLayout, np.ndarray, np.ndarray]]:
    return _random_survival


@pytest.fixture(params=["numpy", "jax"])
def backend(request: pytest.FixtureRequest) -> str:
    """Run a test once per available backend."""
    if request.param == "jax":
        pytest.importorskip("jax")
    return request.param


@pytest.fixture(autouse=True)
def _reset_backend_policy() -> Iterator[None]:
    """Clear programmatic backend overrides between tests."""
    _cfg._backend_override = None
    yield
    _cfg._backend_override = None
