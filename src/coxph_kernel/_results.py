"""Typed result objects for kernel evaluations.

Frozen dataclasses that provide:

* **Attribute access**: ``result.objective``, ``result.gradient``.
* **Dict-like access**: ``result["gradient"]``, ``result.get("key")``,
  ``"key" in result`` for consumers that prefer bracket syntax.
* **Serialisation**: ``.to_dict()`` returns a plain ``dict[str, Any]``
  with all NumPy types converted to native Python.

:class:`CoxEvaluation` is the bundle returned by
:func:`~coxph_kernel.evaluate.evaluate` (one linear predictor) and by
:func:`~coxph_kernel.batch.evaluate_batch` (a stack of predictors, with
a leading batch axis on every field).
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Any, ClassVar

import numpy as np

# ------------------------------------------------------------------ #
# Serialisation helper
# ------------------------------------------------------------------ #


def _numpy_to_python(obj: Any) -> Any:
    """Recursively convert NumPy scalars/arrays to Python-native types.

    Handles nested dicts, lists, np.ndarray, np.integer, and
    np.floating so that :meth:`to_dict` returns a fully
    JSON-serialisable structure.
    """
    if isinstance(obj, np.ndarray):
        return obj.tolist()
    if isinstance(obj, (np.integer, np.bool_)):
        return int(obj)
    if isinstance(obj, np.floating):
        return float(obj)
    if isinstance(obj, dict):
        return {k: _numpy_to_python(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        converted = [_numpy_to_python(item) for item in obj]
        return type(obj)(converted)
    return obj


# ------------------------------------------------------------------ #
# Dict-compatibility mixin
# ------------------------------------------------------------------ #


class _DictAccessMixin:
    """Dict-like access convenience for result dataclasses.

    Supports three access patterns:

    1. ``result["key"]``     raises ``KeyError`` on miss
    2. ``result.get(key, d)`` returns *d* on miss (default ``None``)
    3. ``"key" in result``   membership test

    Subclasses may override ``_SERIALIZERS`` to register conversion
    functions for non-primitive fields, and ``_EXCLUDE_FROM_DICT`` to
    drop fields from :meth:`to_dict`.
    """

    _SERIALIZERS: ClassVar[dict[str, Any]] = {}

    _EXCLUDE_FROM_DICT: ClassVar[frozenset[str]] = frozenset()

    def __getitem__(self, key: str) -> Any:
        """Attribute lookup via bracket syntax."""
        try:
            return getattr(self, key)
        except AttributeError:
            raise KeyError(key) from None

    def get(self, key: str, default: Any = None) -> Any:
        """Attribute lookup with a fallback default."""
        return getattr(self, key, default)

    def __contains__(self, key: object) -> bool:
        """Membership test: ``"key" in result``."""
        if not isinstance(key, str):
            return False
        return hasattr(self, key)

    def to_dict(self) -> dict[str, Any]:
        """Convert to a plain dictionary.

        Applies per-field serializers from ``_SERIALIZERS``, then runs
        :func:`_numpy_to_python` on every value so the returned dict
        is fully JSON-serialisable.
        """
        result: dict[str, Any] = {}
        for f in fields(self):  # type: ignore[arg-type]
            if f.name in self._EXCLUDE_FROM_DICT:
                continue
            val = getattr(self, f.name)
            if f.name in self._SERIALIZERS:
                val = self._SERIALIZERS[f.name](val)
            result[f.name] = _numpy_to_python(val)
        return result


# ------------------------------------------------------------------ #
# CoxEvaluation
# ------------------------------------------------------------------ #


@dataclass(frozen=True, eq=False)
class CoxEvaluation(_DictAccessMixin):
    """Objective, gradient and Hessian terms at one (or many) predictors.

    All quantities follow the **negative** log partial likelihood
    convention, so a minimiser moves along ``-gradient``.

    For a batch of ``B`` linear predictors every field gains a leading
    axis of length ``B``.
    """

    objective: float | np.ndarray
    """Negative log partial likelihood, scalar or ``(B,)``."""

    gradient: np.ndarray
    """Gradient w.r.t. the linear predictor, ``(n,)`` or ``(B, n)``."""

    hessian: np.ndarray | None
    """Hessian term ``exp(eta) * (outer_1st - outer_2nd)`` read at
    ``rankmax``; ``None`` when no right vector was accumulated."""

    hessian_matvec: np.ndarray | None
    """Exact Hessian action ``H @ Z``; ``None`` without a right vector."""

    backend: str
    """Compute backend that produced the accumulations."""
