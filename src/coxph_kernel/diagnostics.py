"""Verification helpers for the accumulation kernel.

Two independent ways to check the O(n) kernel:

* **Dense reference** (:func:`reference_objective`,
  :func:`reference_gradient`, :func:`reference_hessian`): the textbook
  O(n^2) computation with an explicit risk-set indicator matrix

      R[k, j] = 1  if  rankmin[j] >= rankmin[k]

  i.e. subject ``j`` is still at risk at the (tie-group) time of
  subject ``k``.  This is the Breslow risk set that the rank arrays
  encode, written without any cumulative sums.  Memory is O(n^2), so
  keep n in the low thousands.

* **Finite differences** (:func:`check_gradient`,
  :func:`check_hessian_matvec`): central differences of the kernel's
  own objective / gradient via ``statsmodels.tools.numdiff``, which
  checks that the analytic derivatives agree with the function they
  claim to differentiate.
"""

from __future__ import annotations

import logging

import numpy as np
from statsmodels.tools.numdiff import approx_fprime

from ._compat import VectorLike, _to_numpy
from .accumulate import accumulate
from .evaluate import cox_gradient, cox_hessian_matvec, cox_objective
from .layout import RiskSetLayout

logger = logging.getLogger(__name__)

# ------------------------------------------------------------------ #
# Dense O(n^2) reference
# ------------------------------------------------------------------ #


def _risk_matrix(layout: RiskSetLayout) -> np.ndarray:
    """Boolean ``(n, n)`` matrix: row k marks the risk set at time k."""
    return layout.rankmin[None, :] >= layout.rankmin[:, None]


def _risk_probabilities(
    layout: RiskSetLayout, eta: np.ndarray
) -> tuple[np.ndarray, np.ndarray]:
    """Return ``(W, P)`` with ``P[k, i] = R[k, i] exp(eta_i) / W_k``."""
    weights = _risk_matrix(layout) * np.exp(eta)[None, :]
    W = weights.sum(axis=1)
    return W, weights / W[:, None]


def reference_objective(layout: RiskSetLayout, linear_predictor: VectorLike) -> float:
    """Negative log partial likelihood from explicit risk sets."""
    eta = _to_numpy(linear_predictor, name="linear_predictor", dtype=np.float64)
    W, _ = _risk_probabilities(layout, eta)
    events = layout.censoring.astype(bool)
    return float(np.sum(np.log(W[events]) - eta[events]))


def reference_gradient(
    layout: RiskSetLayout, linear_predictor: VectorLike
) -> np.ndarray:
    """Gradient of :func:`reference_objective`, ``(n,)``."""
    eta = _to_numpy(linear_predictor, name="linear_predictor", dtype=np.float64)
    _, P = _risk_probabilities(layout, eta)
    c = layout.censoring.astype(np.float64)
    return c @ P - c


def reference_hessian(
    layout: RiskSetLayout, linear_predictor: VectorLike
) -> np.ndarray:
    """Full ``(n, n)`` Hessian of :func:`reference_objective`.

    ``H = diag(sum_k c_k P[k]) - P' diag(c) P``.
    """
    eta = _to_numpy(linear_predictor, name="linear_predictor", dtype=np.float64)
    _, P = _risk_probabilities(layout, eta)
    c = layout.censoring.astype(np.float64)
    return np.diag(c @ P) - P.T @ (c[:, None] * P)


# ------------------------------------------------------------------ #
# Finite-difference checks
# ------------------------------------------------------------------ #


def check_gradient(
    layout: RiskSetLayout,
    linear_predictor: VectorLike,
    *,
    epsilon: float | None = None,
    backend: str | None = None,
) -> float:
    """Max abs gap between the kernel gradient and finite differences.

    Args:
        layout: Validated layout.
        linear_predictor: Point at which to compare.
        epsilon: Step size; ``None`` lets statsmodels pick one scaled
            to each coordinate.
        backend: Backend name or ``None`` for the configured policy.

    Returns:
        ``max_i |grad_i - dL/deta_i (finite difference)|``.
    """
    eta = _to_numpy(linear_predictor, name="linear_predictor", dtype=np.float64)

    def _objective(x: np.ndarray) -> float:
        return cox_objective(accumulate(layout, x, backend=backend))

    numeric = np.ravel(approx_fprime(eta, _objective, epsilon=epsilon, centered=True))
    analytic = cox_gradient(accumulate(layout, eta, backend=backend))
    gap = float(np.max(np.abs(analytic - numeric)))
    logger.debug("Gradient check: n=%d max abs gap=%.3e", layout.n, gap)
    return gap


def check_hessian_matvec(
    layout: RiskSetLayout,
    linear_predictor: VectorLike,
    right_vector: VectorLike,
    *,
    epsilon: float | None = None,
    backend: str | None = None,
) -> float:
    """Max abs gap between ``H @ Z`` and a directional finite difference.

    The reference is ``d/dt grad(eta + t Z)`` at ``t = 0``, evaluated by
    central differences of :func:`~coxph_kernel.cox_gradient`.

    Returns:
        ``max_i |(H Z)_i - finite difference_i|``.
    """
    eta = _to_numpy(linear_predictor, name="linear_predictor", dtype=np.float64)
    z = _to_numpy(right_vector, name="right_vector", dtype=np.float64)

    def _gradient_along(t: np.ndarray) -> np.ndarray:
        return cox_gradient(accumulate(layout, eta + t[0] * z, backend=backend))

    numeric = np.ravel(
        approx_fprime(np.zeros(1), _gradient_along, epsilon=epsilon, centered=True)
    )
    analytic = cox_hessian_matvec(accumulate(layout, eta, z, backend=backend))
    gap = float(np.max(np.abs(analytic - numeric)))
    logger.debug("Hessian-action check: n=%d max abs gap=%.3e", layout.n, gap)
    return gap
