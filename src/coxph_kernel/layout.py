"""Risk-set layout: the validated, per-dataset inputs of the kernel.

A Cox fit re-evaluates the partial likelihood many times while the
linear predictor changes, but the censoring indicator, the ascending
time ordering and the two tie-broken rank vectors stay fixed.  They are
bundled into a :class:`RiskSetLayout` and validated **once**, so each
optimisation step only pays for the O(n) sweeps.

Rank conventions
~~~~~~~~~~~~~~~~
All indices are 0-based.  For a subject ``s`` whose time is tied with
others:

* ``rankmin[s]`` is the earliest sorted position of its tie group.
  Reading ``exp_accum[rankmin[s]]`` gives the sum over everybody whose
  time is **at or after** ``t_s``, i.e. the shared (Breslow) risk set.
* ``rankmax[s]`` is the latest sorted position of its tie group.
  Reading ``outer_1st[rankmax[s]]`` gives the inverse-risk mass accrued
  **up to and including** ``t_s``, counting every tied event.

For the subject at sorted position ``p`` this implies
``rankmin[s] <= p <= rankmax[s]``, which construction checks
against ``ordering``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar

import numpy as np

from ._compat import VectorLike, _to_numpy
from ._exceptions import InvalidInputError, InvalidPermutationError
from ._results import _DictAccessMixin


def _as_index_vector(obj: VectorLike, name: str) -> np.ndarray:
    """Convert *obj* to a read-only, contiguous 1-D ``int64`` array."""
    arr = _to_numpy(obj, name=name)
    if arr.ndim == 2 and arr.shape[1] == 1:
        arr = arr[:, 0]
    if arr.ndim != 1:
        raise InvalidInputError(
            f"'{name}' must be one-dimensional, got shape {arr.shape}."
        )
    if arr.dtype.kind == "b":
        arr = arr.astype(np.int64)
    elif arr.dtype.kind == "f":
        if not np.all(np.isfinite(arr)) or not np.all(arr == np.round(arr)):
            raise InvalidInputError(f"'{name}' must contain integers only.")
        arr = arr.astype(np.int64)
    elif arr.dtype.kind not in "iu":
        raise InvalidInputError(
            f"'{name}' must be an integer array, got dtype {arr.dtype}."
        )
    out = np.ascontiguousarray(arr, dtype=np.int64)
    if out is arr or np.shares_memory(out, arr):
        out = out.copy()
    out.flags.writeable = False
    return out


@dataclass(frozen=True, eq=False)
class RiskSetLayout(_DictAccessMixin):
    """Censoring indicator plus the precomputed ordering and ranks.

    Construct with any array-like inputs; they are converted to
    read-only ``int64`` arrays and validated.  Pass ``validate=False``
    to skip the O(n) consistency checks when the inputs come from a
    trusted sort/rank step.

    Attributes:
        censoring: ``(n,)`` event indicator, 1 = event, 0 = censored.
        ordering: ``(n,)`` natural index of the subject at each
            ascending sorted position.
        rankmin: ``(n,)`` sorted position with min tie-breaking.
        rankmax: ``(n,)`` sorted position with max tie-breaking.

    Raises:
        InvalidInputError: On length, dtype, value, or rank mismatches.
        InvalidPermutationError: If ``ordering`` is not a permutation.
    """

    censoring: np.ndarray
    ordering: np.ndarray
    rankmin: np.ndarray
    rankmax: np.ndarray
    validate: bool = True

    _EXCLUDE_FROM_DICT: ClassVar[frozenset[str]] = frozenset({"validate"})

    def __post_init__(self) -> None:
        # Frozen dataclass: normalise fields through object.__setattr__.
        for name in ("censoring", "ordering", "rankmin", "rankmax"):
            object.__setattr__(self, name, _as_index_vector(getattr(self, name), name))
        if self.validate:
            self._validate()

    # ---------------------------------------------------------------- #
    # Derived quantities
    # ---------------------------------------------------------------- #

    @property
    def n(self) -> int:
        """Number of subjects."""
        return int(self.censoring.shape[0])

    @property
    def n_events(self) -> int:
        """Number of observed events."""
        return int(self.censoring.sum())

    @property
    def sorted_position(self) -> np.ndarray:
        """Inverse of ``ordering``: sorted position of each subject."""
        pos = np.empty(self.n, dtype=np.int64)
        pos[self.ordering] = np.arange(self.n, dtype=np.int64)
        return pos

    # ---------------------------------------------------------------- #
    # Validation
    # ---------------------------------------------------------------- #

    def _validate(self) -> None:
        n = self.censoring.shape[0]
        if n == 0:
            raise InvalidInputError("Layout requires at least one subject.")
        for name in ("ordering", "rankmin", "rankmax"):
            length = getattr(self, name).shape[0]
            if length != n:
                raise InvalidInputError(
                    f"'{name}' has length {length} but 'censoring' has "
                    f"length {n}."
                )

        bad = ~np.isin(self.censoring, (0, 1))
        if bad.any():
            raise InvalidInputError(
                "'censoring' must contain only 0 and 1; found "
                f"{np.unique(self.censoring[bad]).tolist()}."
            )

        if self.ordering.min() < 0 or self.ordering.max() >= n:
            raise InvalidPermutationError(
                f"'ordering' entries must lie in [0, {n})."
            )
        counts = np.bincount(self.ordering, minlength=n)
        if not np.all(counts == 1):
            repeated = np.flatnonzero(counts > 1)
            raise InvalidPermutationError(
                "'ordering' is not a permutation of range(n); repeated "
                f"indices: {repeated[:10].tolist()}."
            )

        for name in ("rankmin", "rankmax"):
            ranks = getattr(self, name)
            if ranks.min() < 0 or ranks.max() >= n:
                raise InvalidInputError(f"'{name}' entries must lie in [0, {n}).")
        if np.any(self.rankmin > self.rankmax):
            raise InvalidInputError("'rankmin' must not exceed 'rankmax'.")

        pos = self.sorted_position
        inconsistent = (self.rankmin > pos) | (pos > self.rankmax)
        if inconsistent.any():
            first = int(np.flatnonzero(inconsistent)[0])
            raise InvalidInputError(
                "Ranks are inconsistent with 'ordering': subject "
                f"{first} sits at sorted position {int(pos[first])} but has "
                f"rankmin={int(self.rankmin[first])}, "
                f"rankmax={int(self.rankmax[first])}."
            )

        # In sorted order each tie group is a contiguous block: rankmin
        # is the block start, rankmax the block end, for every member.
        positions = np.arange(n)
        first_sorted = self.rankmin[self.ordering]
        last_sorted = self.rankmax[self.ordering]
        opens = (first_sorted == positions) | (
            np.r_[False, first_sorted[1:] == first_sorted[:-1]]
        )
        closes = (last_sorted == positions) | (
            np.r_[last_sorted[:-1] == last_sorted[1:], False]
        )
        if not (opens.all() and closes.all()):
            p = int(np.flatnonzero(~(opens & closes))[0])
            raise InvalidInputError(
                "Ranks do not describe contiguous tie groups: sorted "
                f"position {p} (subject {int(self.ordering[p])}) has "
                f"rankmin={int(first_sorted[p])}, rankmax={int(last_sorted[p])}."
            )
        same_group = (self.rankmax[self.ordering[self.rankmin]] == self.rankmax) & (
            self.rankmin[self.ordering[self.rankmax]] == self.rankmin
        )
        if not same_group.all():
            s = int(np.flatnonzero(~same_group)[0])
            raise InvalidInputError(
                "'rankmin' and 'rankmax' disagree on the tie group of "
                f"subject {s}: rankmin={int(self.rankmin[s])}, "
                f"rankmax={int(self.rankmax[s])}."
            )
