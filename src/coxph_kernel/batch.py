"""Evaluate many independent linear predictors against one layout.

Each evaluation is a strictly sequential pass (every partial sum
depends on the previous one), so there is no parallelism *within* an
evaluation.  Independent predictors, e.g. candidate steps of a line
search or coefficient draws, share nothing mutable: the layout is
read-only and every :class:`~coxph_kernel.accumulate.CoxAccumulation`
owns its buffers.  They can therefore be evaluated concurrently.

Parallelism
~~~~~~~~~~~
When ``n_jobs != 1`` the loop is parallelised with
``joblib.Parallel(prefer="threads")``.  Threads avoid pickling the
layout for every task, and NumPy's ``cumsum`` / ``exp`` kernels (and
XLA under the JAX backend) release the GIL for the heavy work.
"""

from __future__ import annotations

import logging

import numpy as np
from joblib import Parallel, delayed

from ._compat import VectorLike, _to_numpy
from ._exceptions import InvalidInputError
from ._results import CoxEvaluation
from .accumulate import accumulate
from .evaluate import evaluate
from .layout import RiskSetLayout

logger = logging.getLogger(__name__)


def evaluate_batch(
    layout: RiskSetLayout,
    linear_predictors: VectorLike,
    right_vectors: VectorLike | None = None,
    *,
    backend: str | None = None,
    n_jobs: int = 1,
) -> CoxEvaluation:
    """Accumulate and evaluate ``B`` linear predictors.

    Args:
        layout: Shared :class:`RiskSetLayout`.
        linear_predictors: ``(B, n)`` stack of linear predictors.
        right_vectors: Optional ``(B, n)`` stack of right vectors, one
            per predictor, or a single ``(n,)`` vector shared by all.
        backend: Backend name or ``None`` for the configured policy.
        n_jobs: Number of worker threads; ``1`` runs sequentially and
            ``-1`` uses all cores.

    Returns:
        A :class:`CoxEvaluation` whose fields carry a leading batch
        axis: ``objective`` is ``(B,)``, ``gradient`` is ``(B, n)``,
        and the Hessian fields are ``(B, n)`` or ``None``.

    Raises:
        InvalidInputError: If the stacks do not match the layout.
    """
    etas = _to_numpy(linear_predictors, name="linear_predictors", dtype=np.float64)
    if etas.ndim != 2 or etas.shape[1] != layout.n:
        raise InvalidInputError(
            f"'linear_predictors' must have shape (B, {layout.n}), got {etas.shape}."
        )
    B = etas.shape[0]
    if B == 0:
        raise InvalidInputError("'linear_predictors' must contain at least one row.")

    zs: list[np.ndarray | None]
    if right_vectors is None:
        zs = [None] * B
    else:
        z_arr = _to_numpy(right_vectors, name="right_vectors", dtype=np.float64)
        if z_arr.ndim == 1:
            zs = [z_arr] * B
        elif z_arr.shape == etas.shape:
            zs = list(z_arr)
        else:
            raise InvalidInputError(
                f"'right_vectors' must have shape ({layout.n},) or "
                f"{etas.shape}, got {z_arr.shape}."
            )

    def _evaluate_one(eta: np.ndarray, z: np.ndarray | None) -> CoxEvaluation:
        return evaluate(accumulate(layout, eta, z, backend=backend))

    # Sequential path, used when n_jobs=1 (default) to avoid joblib
    # overhead for small B.
    if n_jobs == 1:
        results = [_evaluate_one(etas[b], zs[b]) for b in range(B)]
    else:
        results = Parallel(n_jobs=n_jobs, prefer="threads")(
            delayed(_evaluate_one)(etas[b], zs[b]) for b in range(B)
        )
    logger.debug("Evaluated batch of %d predictors (n_jobs=%d)", B, n_jobs)

    has_hessian = right_vectors is not None
    return CoxEvaluation(
        objective=np.array([r.objective for r in results]),
        gradient=np.vstack([r.gradient for r in results]),
        hessian=np.vstack([r.hessian for r in results]) if has_hessian else None,
        hessian_matvec=(
            np.vstack([r.hessian_matvec for r in results]) if has_hessian else None
        ),
        backend=results[0].backend,
    )
