"""NumPy backend (always available).

Both sweeps are single ``np.cumsum`` calls over arrays gathered into
sorted order, so the Python interpreter never loops over subjects.

Reverse sweep
~~~~~~~~~~~~~
Risk sets shrink as time increases: the set at sorted position ``p``
is the set at ``p + 1`` plus the subject at ``p``.  Summing
``exp(eta)`` from the last sorted position down to the first therefore
yields every risk-set weight in one pass::

    w = exp(eta[ordering])            # sorted order
    exp_accum = cumsum(w[::-1])[::-1]

The reversed ``cumsum`` adds terms in the same order as an explicit
descending loop, so results are bitwise identical to one.

Forward sweep
~~~~~~~~~~~~~
Each event contributes ``1 / W`` (or ``N / W**2``) where ``W`` is the
risk-set weight of its tie group, read at ``rankmin`` so that tied
events share the largest risk set.  A forward ``cumsum`` in ascending
sorted order accumulates those contributions; evaluators later read
the result at ``rankmax`` to include every tied event.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np


@dataclass(frozen=True)
class NumpyBackend:
    """NumPy compute backend.

    The class is a frozen dataclass with no instance state; it exists
    solely to namespace the sweeps behind the :class:`BackendProtocol`
    interface.  Frozen = immutable = safe to cache in the module-level
    ``_BACKEND_CACHE`` singleton and to share across threads.
    """

    @property
    def name(self) -> str:
        return "numpy"

    @property
    def is_available(self) -> bool:  # noqa: PLR6301
        return True

    # ================================================================ #
    # Reverse sweep: risk-set sums
    # ================================================================ #

    def risk_set_sums(
        self,
        linear_predictor: np.ndarray,
        ordering: np.ndarray,
        right_vector: np.ndarray | None = None,
    ) -> np.ndarray:
        """Risk-set weights ``sum_{sortpos(j) >= p} Z_j exp(eta_j)``.

        Args:
            linear_predictor: ``(n,)`` linear predictor, natural order.
            ordering: ``(n,)`` ascending time ordering.
            right_vector: Optional ``(n,)`` or ``(n, k)`` weights.

        Returns:
            Sums indexed by sorted position, ``(n,)`` or ``(n, k)``.
        """
        terms = np.exp(linear_predictor[ordering])
        if right_vector is not None:
            z = right_vector[ordering]
            if z.ndim == 2:
                terms = terms[:, None]
            terms = z * terms
        return np.cumsum(terms[::-1], axis=0)[::-1]

    # ================================================================ #
    # Forward sweep: inverse risk-set sums
    # ================================================================ #

    def inverse_risk_cumsum(
        self,
        exp_accum: np.ndarray,
        censoring: np.ndarray,
        ordering: np.ndarray,
        rankmin: np.ndarray,
        numerator_accum: np.ndarray | None = None,
        power: int = 1,
    ) -> np.ndarray:
        """Cumulative ``censoring * N / W ** power`` in sorted order.

        Args:
            exp_accum: ``(n,)`` unweighted risk-set sums.
            censoring: ``(n,)`` event indicator, natural order.
            ordering: ``(n,)`` ascending time ordering.
            rankmin: ``(n,)`` min tie-broken ranks, natural order.
            numerator_accum: Optional ``(n,)`` or ``(n, k)`` numerator
                sums (ones when ``None``).
            power: Exponent on the risk-set denominator.

        Returns:
            Cumulative sums indexed by sorted position.
        """
        r = rankmin[ordering]
        events = censoring[ordering].astype(np.float64)
        denom = exp_accum[r] ** power
        if numerator_accum is None:
            numer = events
        else:
            numer = numerator_accum[r]
            if numer.ndim == 2:
                events = events[:, None]
                denom = denom[:, None]
            numer = events * numer
        # Censored subjects contribute exactly zero, even where an
        # underflowed risk set would otherwise give 0 / 0.
        terms = np.divide(
            numer,
            denom,
            out=np.zeros(np.broadcast_shapes(numer.shape, denom.shape)),
            where=np.broadcast_to(events, numer.shape) != 0,
        )
        return np.cumsum(terms, axis=0)
