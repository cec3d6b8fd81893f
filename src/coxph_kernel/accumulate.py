"""Accumulation pass: risk-set and inverse-risk cumulative sums.

Every kernel output is assembled from four O(n) sweeps over the
ascending time ordering:

====================  =================================================
``exp_accum``         ``W[p] = sum_{sortpos(j) >= p} exp(eta_j)``
``expZ_accum``        ``WZ[p] = sum_{sortpos(j) >= p} Z_j exp(eta_j)``
``outer_1st``         ``C1[i] = sum_{j <= i} c_o[j] / W[r_o[j]]``
``outer_2nd``         ``C2[i] = sum_{j <= i} c_o[j] WZ[r_o[j]] / W[r_o[j]]^2``
====================  =================================================

with ``o = ordering`` and ``r = rankmin``.  The first two are reverse
cumulative sums (risk sets shrink as time grows); the last two are
forward cumulative sums over event times, with each tie group reading
its risk set at ``rankmin`` so tied events share one denominator.

:func:`accumulate` runs the sweeps for a given linear predictor and
returns a :class:`CoxAccumulation`.  The evaluators in
:mod:`coxph_kernel.evaluate` only accept that type, so evaluating
against stale or missing accumulations cannot happen silently.  The
four component functions are also exported for callers that manage
buffers themselves.
"""

from __future__ import annotations

import logging
import warnings
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, ClassVar

import numpy as np

from ._backends import resolve_backend
from ._compat import VectorLike, _to_numpy
from ._exceptions import InvalidInputError
from ._results import _DictAccessMixin
from .layout import RiskSetLayout

logger = logging.getLogger(__name__)

AccumulationHook = Callable[["CoxAccumulation"], None]


# ------------------------------------------------------------------ #
# Input coercion
# ------------------------------------------------------------------ #


def _as_float_array(
    obj: VectorLike,
    n: int,
    name: str,
    *,
    allow_matrix: bool = False,
) -> np.ndarray:
    """Convert *obj* to a read-only float64 array with leading length *n*."""
    arr = _to_numpy(obj, name=name, dtype=np.float64)
    if arr.ndim == 2 and not allow_matrix and arr.shape[1] == 1:
        arr = arr[:, 0]
    if arr.ndim not in ((1, 2) if allow_matrix else (1,)):
        expected = "(n,) or (n, k)" if allow_matrix else "(n,)"
        raise InvalidInputError(
            f"'{name}' must have shape {expected}, got {arr.shape}."
        )
    if arr.shape[0] != n:
        raise InvalidInputError(
            f"'{name}' has length {arr.shape[0]} but the layout has {n} subjects."
        )
    if not np.all(np.isfinite(arr)):
        raise InvalidInputError(f"'{name}' contains NaN or infinite values.")
    out = np.array(arr, dtype=np.float64, copy=True)
    out.flags.writeable = False
    return out


def _freeze(arr: np.ndarray) -> np.ndarray:
    out = np.array(arr, dtype=np.float64, copy=True)
    out.flags.writeable = False
    return out


# ------------------------------------------------------------------ #
# Component sweeps
# ------------------------------------------------------------------ #


def risk_set_sums(
    linear_predictor: np.ndarray,
    ordering: np.ndarray,
    *,
    backend: str | None = None,
) -> np.ndarray:
    """Risk-set weights ``exp_accum`` indexed by sorted position.

    ``exp_accum[p]`` is the sum of ``exp(eta_j)`` over every subject at
    sorted position ``p`` or later, so it is non-increasing in ``p``.
    No centring is applied; keep ``eta`` moderate to avoid overflow.
    """
    return resolve_backend(backend).risk_set_sums(
        np.asarray(linear_predictor, dtype=np.float64),
        np.asarray(ordering, dtype=np.int64),
    )


def weighted_risk_set_sums(
    linear_predictor: np.ndarray,
    right_vector: np.ndarray,
    ordering: np.ndarray,
    *,
    backend: str | None = None,
) -> np.ndarray:
    """Risk-set sums of ``Z * exp(eta)`` (``expZ_accum``).

    *right_vector* may be ``(n,)`` or ``(n, k)``; a matrix is swept
    column by column.
    """
    return resolve_backend(backend).risk_set_sums(
        np.asarray(linear_predictor, dtype=np.float64),
        np.asarray(ordering, dtype=np.int64),
        np.asarray(right_vector, dtype=np.float64),
    )


def inverse_risk_1st(
    exp_accum: np.ndarray,
    censoring: np.ndarray,
    ordering: np.ndarray,
    rankmin: np.ndarray,
    *,
    backend: str | None = None,
) -> np.ndarray:
    """First-order inverse-risk sums (``outer_1st``).

    ``outer_1st[i]`` is the sum of ``1 / exp_accum[rankmin[s]]`` over
    every event subject ``s`` at sorted position ``<= i``.
    """
    return resolve_backend(backend).inverse_risk_cumsum(
        np.asarray(exp_accum, dtype=np.float64),
        np.asarray(censoring, dtype=np.int64),
        np.asarray(ordering, dtype=np.int64),
        np.asarray(rankmin, dtype=np.int64),
    )


def inverse_risk_2nd(
    exp_accum: np.ndarray,
    expZ_accum: np.ndarray,
    censoring: np.ndarray,
    ordering: np.ndarray,
    rankmin: np.ndarray,
    *,
    backend: str | None = None,
) -> np.ndarray:
    """Second-order inverse-risk sums (``outer_2nd``).

    Same sweep as :func:`inverse_risk_1st` with terms
    ``expZ_accum[r] / exp_accum[r] ** 2``.
    """
    return resolve_backend(backend).inverse_risk_cumsum(
        np.asarray(exp_accum, dtype=np.float64),
        np.asarray(censoring, dtype=np.int64),
        np.asarray(ordering, dtype=np.int64),
        np.asarray(rankmin, dtype=np.int64),
        numerator_accum=np.asarray(expZ_accum, dtype=np.float64),
        power=2,
    )


# ------------------------------------------------------------------ #
# CoxAccumulation
# ------------------------------------------------------------------ #


@dataclass(frozen=True, eq=False)
class CoxAccumulation(_DictAccessMixin):
    """Accumulated sums for one linear predictor (and right vector).

    Produced by :func:`accumulate`; consumed by the evaluators.  All
    arrays are read-only snapshots, so an instance can be shared across
    threads and never goes stale in place: a new linear predictor
    means a new accumulation.
    """

    layout: RiskSetLayout
    """Validated censoring / ordering / rank arrays."""

    linear_predictor: np.ndarray
    """``(n,)`` linear predictor the sums were computed at."""

    right_vector: np.ndarray | None
    """``(n,)`` or ``(n, k)`` right vector, or ``None``."""

    exp_accum: np.ndarray
    """``(n,)`` risk-set sums, by sorted position."""

    outer_1st: np.ndarray
    """``(n,)`` first-order inverse-risk sums, by sorted position."""

    expZ_accum: np.ndarray | None
    """Weighted risk-set sums, or ``None`` without a right vector."""

    outer_2nd: np.ndarray | None
    """Second-order inverse-risk sums, or ``None`` without a right vector."""

    backend: str
    """Name of the backend that ran the sweeps."""

    _SERIALIZERS: ClassVar[dict[str, Any]] = {
        "layout": lambda layout: layout.to_dict(),
    }

    @property
    def n(self) -> int:
        """Number of subjects."""
        return self.layout.n

    @property
    def has_second_order(self) -> bool:
        """Whether the right-vector sweeps were run."""
        return self.outer_2nd is not None


def accumulate(
    layout: RiskSetLayout,
    linear_predictor: VectorLike,
    right_vector: VectorLike | None = None,
    *,
    backend: str | None = None,
    hook: AccumulationHook | None = None,
) -> CoxAccumulation:
    """Run the accumulation sweeps at *linear_predictor*.

    Always computes ``exp_accum`` and ``outer_1st`` (enough for the
    objective and gradient).  When *right_vector* is given, also
    computes ``expZ_accum`` and ``outer_2nd`` for the Hessian terms.

    Args:
        layout: Validated :class:`RiskSetLayout`.
        linear_predictor: ``(n,)`` finite linear predictor.
        right_vector: Optional ``(n,)`` or ``(n, k)`` direction(s) for
            the Hessian action.
        backend: ``"numpy"``, ``"jax"``, or ``None`` for the configured
            policy (see :func:`~coxph_kernel.set_backend`).
        hook: Optional callable invoked with the finished accumulation,
            after all sweeps have run.  Use it for tracing or metrics.

    Returns:
        A :class:`CoxAccumulation` snapshot.

    Raises:
        TypeError: If *layout* is not a :class:`RiskSetLayout`.
        InvalidInputError: If shapes disagree with the layout or the
            inputs are not finite.

    Warns:
        RuntimeWarning: If ``exp(eta)`` overflowed and the risk-set
            sums are not finite.
    """
    if not isinstance(layout, RiskSetLayout):
        raise TypeError(
            f"'layout' must be a RiskSetLayout, got {type(layout).__name__}."
        )
    n = layout.n
    eta = _as_float_array(linear_predictor, n, "linear_predictor")
    z = (
        None
        if right_vector is None
        else _as_float_array(right_vector, n, "right_vector", allow_matrix=True)
    )

    engine = resolve_backend(backend)

    exp_accum = engine.risk_set_sums(eta, layout.ordering)
    if not np.all(np.isfinite(exp_accum)):
        warnings.warn(
            "Risk-set sums overflowed (max linear predictor "
            f"{float(eta.max()):.4g}).  Centre the linear predictor "
            "before accumulating.",
            RuntimeWarning,
            stacklevel=2,
        )
    outer_1st = engine.inverse_risk_cumsum(
        exp_accum, layout.censoring, layout.ordering, layout.rankmin
    )

    expZ_accum = outer_2nd = None
    if z is not None:
        expZ_accum = engine.risk_set_sums(eta, layout.ordering, z)
        outer_2nd = engine.inverse_risk_cumsum(
            exp_accum,
            layout.censoring,
            layout.ordering,
            layout.rankmin,
            numerator_accum=expZ_accum,
            power=2,
        )

    acc = CoxAccumulation(
        layout=layout,
        linear_predictor=eta,
        right_vector=z,
        exp_accum=_freeze(exp_accum),
        outer_1st=_freeze(outer_1st),
        expZ_accum=None if expZ_accum is None else _freeze(expZ_accum),
        outer_2nd=None if outer_2nd is None else _freeze(outer_2nd),
        backend=engine.name,
    )
    logger.debug(
        "Accumulated n=%d events=%d backend=%s second_order=%s "
        "risk_set=[%.4g, %.4g]",
        n,
        layout.n_events,
        engine.name,
        acc.has_second_order,
        float(acc.exp_accum[-1]),
        float(acc.exp_accum[0]),
    )
    if hook is not None:
        hook(acc)
    return acc
