"""Backend abstraction layer for the accumulation sweeps.

Each backend implements the :class:`BackendProtocol` interface, which
defines the two O(n) cumulative sweeps that every kernel quantity is
built from:

* :meth:`~BackendProtocol.risk_set_sums`: reverse cumulative sum over
  the ascending time ordering (risk-set weights, optionally weighted by
  a right vector).
* :meth:`~BackendProtocol.inverse_risk_cumsum`: forward cumulative sum
  of ``censoring * numerator / exp_accum ** power`` read at ``rankmin``.

The accumulation module dispatches to the active backend via
:func:`resolve_backend` rather than branching on the backend name at
every call site.

Resolution follows the policy set by :mod:`._config`:

1. Programmatic override via :func:`~coxph_kernel.set_backend`.
2. ``COXPH_KERNEL_BACKEND`` environment variable.
3. Auto-detection: ``"jax"`` if importable, else ``"numpy"``.

When ``"jax"`` is explicitly requested but JAX is not installed, an
:class:`ImportError` is raised; explicit requests are never silently
degraded.  The ``"auto"`` policy is the only mode that falls back from
JAX to NumPy.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

import numpy as np

from .._config import get_backend

# ------------------------------------------------------------------ #
# BackendProtocol
# ------------------------------------------------------------------ #


@runtime_checkable
class BackendProtocol(Protocol):
    """Interface that every compute backend must implement.

    All methods accept NumPy arrays and return NumPy arrays.  Index
    arrays (``ordering``, ``rankmin``) and the censoring indicator are
    ``int64``; everything else is ``float64``.

    Attributes:
        name: Short identifier (e.g. ``"numpy"``, ``"jax"``).
    """

    @property
    def name(self) -> str: ...

    @property
    def is_available(self) -> bool:
        """Whether the backend's dependencies are importable."""
        ...

    def risk_set_sums(
        self,
        linear_predictor: np.ndarray,
        ordering: np.ndarray,
        right_vector: np.ndarray | None = None,
    ) -> np.ndarray:
        """Reverse cumulative sum of ``Z * exp(eta)`` in sorted order.

        Args:
            linear_predictor: ``(n,)`` linear predictor, natural order.
            ordering: ``(n,)`` ascending time ordering.
            right_vector: Optional ``(n,)`` or ``(n, k)`` weights in
                natural order; ``None`` means all ones.

        Returns:
            ``(n,)`` (or ``(n, k)``) sums indexed by sorted position.
        """
        ...

    def inverse_risk_cumsum(
        self,
        exp_accum: np.ndarray,
        censoring: np.ndarray,
        ordering: np.ndarray,
        rankmin: np.ndarray,
        numerator_accum: np.ndarray | None = None,
        power: int = 1,
    ) -> np.ndarray:
        """Forward cumulative sum of inverse risk-set terms.

        Term ``j`` (sorted position) is
        ``c[o[j]] * N[r[o[j]]] / exp_accum[r[o[j]]] ** power`` with
        ``r = rankmin`` and ``N = numerator_accum`` (ones when ``None``).

        Args:
            exp_accum: ``(n,)`` unweighted risk-set sums.
            censoring: ``(n,)`` event indicator, natural order.
            ordering: ``(n,)`` ascending time ordering.
            rankmin: ``(n,)`` min tie-broken ranks, natural order.
            numerator_accum: Optional ``(n,)`` or ``(n, k)`` weighted
                risk-set sums.
            power: Exponent applied to the risk-set denominator.

        Returns:
            ``(n,)`` (or ``(n, k)``) sums indexed by sorted position.
        """
        ...


# ------------------------------------------------------------------ #
# Backend resolution
# ------------------------------------------------------------------ #

# Singleton cache, one instance per backend name.
_BACKEND_CACHE: dict[str, BackendProtocol] = {}


def resolve_backend(name: str | None = None) -> BackendProtocol:
    """Return a :class:`BackendProtocol` instance for *name*.

    When *name* is ``None`` (the default), the policy from
    :func:`~coxph_kernel._config.get_backend` is used.

    Args:
        name: ``"numpy"``, ``"jax"``, or ``None`` for policy default.

    Returns:
        A backend instance ready for accumulation.

    Raises:
        ImportError: If ``"jax"`` is explicitly requested but JAX
            is not installed.
        ValueError: If *name* is not a recognised backend.
    """
    if name is None:
        name = get_backend()

    if name in _BACKEND_CACHE:
        return _BACKEND_CACHE[name]

    if name == "numpy":
        from ._numpy import NumpyBackend

        backend: BackendProtocol = NumpyBackend()

    elif name == "jax":
        from ._jax import JaxBackend

        jax_backend = JaxBackend()
        if not jax_backend.is_available:
            msg = (
                "Backend 'jax' was explicitly requested but JAX is "
                "not installed.  Install JAX (`pip install jax`) or "
                "use set_backend('numpy')."
            )
            raise ImportError(msg)
        backend = jax_backend

    else:
        msg = f"Unknown backend {name!r}.  Choose 'numpy' or 'jax'."
        raise ValueError(msg)

    _BACKEND_CACHE[name] = backend
    return backend
