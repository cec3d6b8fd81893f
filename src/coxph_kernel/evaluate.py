"""Objective, gradient and Hessian evaluators.

Sign convention
~~~~~~~~~~~~~~~
Everything here is the **negative** Breslow log partial likelihood and
its derivatives with respect to the linear predictor ``eta``:

    L(eta) = sum_i c_i * (log W[rankmin_i] - eta_i)

so ``L >= 0`` whenever every risk set contains its own event, and a
Newton or gradient method *minimises* it.

Reading the accumulations
~~~~~~~~~~~~~~~~~~~~~~~~~
``exp_accum`` is read at ``rankmin`` (the risk set of a tie group is
everybody at or after its first sorted position).  ``outer_1st`` and
``outer_2nd`` are read at ``rankmax`` (a subject's derivative picks up
every event whose time is at or before its own, including all tied
events).  With those reads:

    grad_i = exp(eta_i) * C1[rankmax_i] - c_i
    (H Z)_i = exp(eta_i) * (Z_i * C1[rankmax_i] - C2[rankmax_i])
    H_ii = exp(eta_i) * C1[rankmax_i] - exp(2 eta_i) * D[rankmax_i]

where ``D`` is the inverse-risk sweep with unit numerator and squared
denominator.  :func:`cox_hessian` returns the Hessian term
``exp(eta_i) * (C1 - C2)`` read at ``rankmax``, which is the Hessian
action with the ``Z_i`` factor on ``C1`` dropped.
"""

from __future__ import annotations

import warnings

import numpy as np

from ._backends import resolve_backend
from ._compat import VectorLike, _to_numpy
from ._exceptions import StaleAccumulatorError
from ._results import CoxEvaluation
from .accumulate import CoxAccumulation

# ------------------------------------------------------------------ #
# Guards
# ------------------------------------------------------------------ #


def _check_accumulation(
    acc: CoxAccumulation,
    linear_predictor: VectorLike | None,
    *,
    second_order: bool = False,
) -> None:
    if not isinstance(acc, CoxAccumulation):
        raise TypeError(
            "Evaluators require a CoxAccumulation produced by accumulate(); "
            f"got {type(acc).__name__}."
        )
    if linear_predictor is not None:
        eta = _to_numpy(linear_predictor, name="linear_predictor", dtype=np.float64)
        if eta.ndim == 2 and eta.shape[1] == 1:
            eta = eta[:, 0]
        if eta.shape != acc.linear_predictor.shape or not np.array_equal(
            eta, acc.linear_predictor
        ):
            raise StaleAccumulatorError(
                "The accumulation was computed at a different linear "
                "predictor; call accumulate() again before evaluating."
            )
    if second_order and not acc.has_second_order:
        raise StaleAccumulatorError(
            "Hessian terms need the second-order sweeps; call "
            "accumulate(..., right_vector=Z) first."
        )


def _column(values: np.ndarray, like: np.ndarray) -> np.ndarray:
    """Reshape a per-subject vector to broadcast against *like*."""
    return values[:, None] if like.ndim == 2 else values


# ------------------------------------------------------------------ #
# Evaluators
# ------------------------------------------------------------------ #


def cox_objective(
    acc: CoxAccumulation,
    linear_predictor: VectorLike | None = None,
) -> float:
    """Negative log partial likelihood at the accumulated predictor.

    Args:
        acc: Accumulation from :func:`~coxph_kernel.accumulate`.
        linear_predictor: Optional predictor to check ``acc`` against.

    Returns:
        ``sum_i c_i * (log exp_accum[rankmin_i] - eta_i)``.

    Raises:
        StaleAccumulatorError: If *linear_predictor* differs from the
            one ``acc`` was computed at.

    Warns:
        RuntimeWarning: If an event's risk set underflowed to zero,
            in which case the objective is ``-inf``.
    """
    _check_accumulation(acc, linear_predictor)
    layout = acc.layout
    events = layout.censoring.astype(bool)
    risk = acc.exp_accum[layout.rankmin[events]]
    if np.any(risk <= 0):
        warnings.warn(
            "Risk-set sums underflowed to zero (min linear predictor "
            f"{float(acc.linear_predictor.min()):.4g}); the objective is "
            "not finite.  Centre the linear predictor before accumulating.",
            RuntimeWarning,
            stacklevel=2,
        )
    with np.errstate(divide="ignore"):
        log_risk = np.log(risk)
    return float(np.sum(log_risk - acc.linear_predictor[events]))


def cox_gradient(
    acc: CoxAccumulation,
    linear_predictor: VectorLike | None = None,
) -> np.ndarray:
    """Gradient of :func:`cox_objective` w.r.t. the linear predictor.

    Returns:
        ``(n,)`` array ``outer_1st[rankmax] * exp(eta) - censoring``.
    """
    _check_accumulation(acc, linear_predictor)
    layout = acc.layout
    return acc.outer_1st[layout.rankmax] * np.exp(acc.linear_predictor) - layout.censoring


def cox_hessian(
    acc: CoxAccumulation,
    linear_predictor: VectorLike | None = None,
) -> np.ndarray:
    """Per-subject Hessian term from the second-order accumulation.

    Returns:
        ``exp(eta) * (outer_1st[rankmax] - outer_2nd[rankmax])``,
        shaped like the accumulated right vector.

    Raises:
        StaleAccumulatorError: If ``acc`` has no second-order sweeps.
    """
    _check_accumulation(acc, linear_predictor, second_order=True)
    rankmax = acc.layout.rankmax
    outer_2nd = acc.outer_2nd[rankmax]
    first = _column(acc.outer_1st[rankmax], outer_2nd)
    return _column(np.exp(acc.linear_predictor), outer_2nd) * (first - outer_2nd)


def cox_hessian_matvec(
    acc: CoxAccumulation,
    linear_predictor: VectorLike | None = None,
) -> np.ndarray:
    """Exact Hessian action ``H @ Z`` for the accumulated right vector.

    For a ``(n, k)`` right vector this is the Hessian times a matrix,
    computed column by column from the same sweeps.

    Raises:
        StaleAccumulatorError: If ``acc`` has no second-order sweeps.
    """
    _check_accumulation(acc, linear_predictor, second_order=True)
    rankmax = acc.layout.rankmax
    outer_2nd = acc.outer_2nd[rankmax]
    first = _column(acc.outer_1st[rankmax], outer_2nd)
    risk = _column(np.exp(acc.linear_predictor), outer_2nd)
    return risk * (acc.right_vector * first - outer_2nd)


def cox_hessian_diag(
    acc: CoxAccumulation,
    linear_predictor: VectorLike | None = None,
) -> np.ndarray:
    """Exact diagonal of the Hessian.

    Runs one extra forward sweep (unit numerator, squared risk-set
    denominator) on the accumulation's backend; needs no right vector.
    """
    _check_accumulation(acc, linear_predictor)
    layout = acc.layout
    inv_sq = resolve_backend(acc.backend).inverse_risk_cumsum(
        acc.exp_accum, layout.censoring, layout.ordering, layout.rankmin, power=2
    )
    risk = np.exp(acc.linear_predictor)
    return risk * acc.outer_1st[layout.rankmax] - risk**2 * inv_sq[layout.rankmax]


def evaluate(
    acc: CoxAccumulation,
    linear_predictor: VectorLike | None = None,
) -> CoxEvaluation:
    """Bundle objective, gradient and (when available) Hessian terms."""
    _check_accumulation(acc, linear_predictor)
    hessian = hessian_matvec = None
    if acc.has_second_order:
        hessian = cox_hessian(acc)
        hessian_matvec = cox_hessian_matvec(acc)
    return CoxEvaluation(
        objective=cox_objective(acc),
        gradient=cox_gradient(acc),
        hessian=hessian,
        hessian_matvec=hessian_matvec,
        backend=acc.backend,
    )
