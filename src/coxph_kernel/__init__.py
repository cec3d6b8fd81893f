"""coxph_kernel: O(n) Cox partial-likelihood objective, gradient and Hessian.

Evaluates the negative Breslow log partial likelihood of right-censored
survival data with tied times, its gradient, and its Hessian action
with respect to the linear predictor.  Risk sets are handled by two
cumulative sweeps over a precomputed time ordering instead of an
O(n^2) pairwise computation; ties are encoded by min / max tie-broken
ranks supplied by the caller.

Typical use inside an optimisation step::

    layout = RiskSetLayout(censoring, ordering, rankmin, rankmax)
    acc = accumulate(layout, eta, right_vector=Z)
    loss = cox_objective(acc)
    grad = cox_gradient(acc)
    hz = cox_hessian_matvec(acc)

Public API:
    .. autosummary::
        RiskSetLayout
        CoxAccumulation
        CoxEvaluation
        accumulate
        risk_set_sums
        weighted_risk_set_sums
        inverse_risk_1st
        inverse_risk_2nd
        cox_objective
        cox_gradient
        cox_hessian
        cox_hessian_matvec
        cox_hessian_diag
        evaluate
        evaluate_batch
        reference_objective
        reference_gradient
        reference_hessian
        check_gradient
        check_hessian_matvec
        get_backend
        set_backend
        CoxKernelError
        InvalidInputError
        InvalidPermutationError
        StaleAccumulatorError
"""

from ._config import get_backend, set_backend
from ._exceptions import (
    CoxKernelError,
    InvalidInputError,
    InvalidPermutationError,
    StaleAccumulatorError,
)
from ._results import CoxEvaluation
from .accumulate import (
    CoxAccumulation,
    accumulate,
    inverse_risk_1st,
    inverse_risk_2nd,
    risk_set_sums,
    weighted_risk_set_sums,
)
from .batch import evaluate_batch
from .diagnostics import (
    check_gradient,
    check_hessian_matvec,
    reference_gradient,
    reference_hessian,
    reference_objective,
)
from .evaluate import (
    cox_gradient,
    cox_hessian,
    cox_hessian_diag,
    cox_hessian_matvec,
    cox_objective,
    evaluate,
)
from .layout import RiskSetLayout

__all__ = [
    "RiskSetLayout",
    "CoxAccumulation",
    "CoxEvaluation",
    "accumulate",
    "risk_set_sums",
    "weighted_risk_set_sums",
    "inverse_risk_1st",
    "inverse_risk_2nd",
    "cox_objective",
    "cox_gradient",
    "cox_hessian",
    "cox_hessian_matvec",
    "cox_hessian_diag",
    "evaluate",
    "evaluate_batch",
    "reference_objective",
    "reference_gradient",
    "reference_hessian",
    "check_gradient",
    "check_hessian_matvec",
    "get_backend",
    "set_backend",
    "CoxKernelError",
    "InvalidInputError",
    "InvalidPermutationError",
    "StaleAccumulatorError",
]

__version__ = "0.1.0"
