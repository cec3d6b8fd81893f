"""Exception hierarchy for contract violations at the kernel boundary.

The accumulation sweeps index arrays through ``ordering``, ``rankmin``
and ``rankmax``; with inconsistent inputs they would silently read the
wrong risk set.  Every precondition is therefore checked once when a
:class:`~coxph_kernel.layout.RiskSetLayout` or a
:class:`~coxph_kernel.accumulate.CoxAccumulation` is built, and a
violation raises one of the classes below.

The input errors subclass :class:`ValueError` so callers that already
catch ``ValueError`` keep working.
"""

from __future__ import annotations


class CoxKernelError(Exception):
    """Base class for all errors raised by coxph_kernel."""


class InvalidInputError(CoxKernelError, ValueError):
    """Array shapes, lengths, dtypes or values violate the kernel contract."""


class InvalidPermutationError(InvalidInputError):
    """``ordering`` is not a bijection on ``[0, n)``."""


class StaleAccumulatorError(CoxKernelError, RuntimeError):
    """An evaluator was handed accumulations that do not match its request.

    Raised when the linear predictor passed for checking differs from
    the one the accumulation was computed at, or when a Hessian term is
    requested from an accumulation built without a right vector.
    """
