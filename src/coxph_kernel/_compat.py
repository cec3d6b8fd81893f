"""Input compatibility layer for pandas and optional Polars inputs.

The kernel operates on NumPy arrays.  This module converts whatever the
caller hands in (NumPy arrays, Python sequences, ``pandas.Series``,
single-column ``pandas.DataFrame`` objects, or Polars Series) into a
NumPy array at the boundary so that the accumulation code never has to
care where the data came from.

Polars is **not** a required dependency.  If it is not installed, only
the NumPy / pandas paths are active.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING, Any, TypeAlias

import numpy as np
import pandas as pd

from ._exceptions import InvalidInputError

if TYPE_CHECKING:
    import polars as pl

    VectorLike: TypeAlias = (
        np.ndarray | pd.Series | pd.DataFrame | pl.Series | Sequence[float]
    )
else:
    VectorLike: TypeAlias = np.ndarray | pd.Series | pd.DataFrame | Sequence[float]

# Runtime detection, avoids a hard dependency on Polars.
try:
    import polars as pl

    _HAS_POLARS = True
except ImportError:
    _HAS_POLARS = False


def _to_numpy(obj: Any, *, name: str = "input", dtype: Any = None) -> np.ndarray:
    """Convert *obj* to a NumPy array.

    Accepted types:
        * ``numpy.ndarray`` and Python sequences (via ``np.asarray``).
        * ``pandas.Series`` via ``.to_numpy()``.
        * ``pandas.DataFrame`` with exactly one column, or a 2-D right
          vector for Hessian-times-matrix products (``.to_numpy()``).
        * ``polars.Series`` / ``polars.DataFrame`` via ``.to_numpy()``.

    Args:
        obj: The object to convert.
        name: Label used in error messages (e.g. ``"ordering"``).
        dtype: Optional target dtype.

    Returns:
        A NumPy array (not necessarily a copy).

    Raises:
        TypeError: If *obj* is ``None``, a string, or a mapping.
        InvalidInputError: If *obj* cannot be cast to *dtype*.
    """
    if obj is None or isinstance(obj, (str, bytes, dict)):
        raise TypeError(
            f"'{name}' must be array-like, got {type(obj).__name__}."
        )

    if isinstance(obj, (pd.Series, pd.DataFrame)):
        arr = obj.to_numpy()
    elif _HAS_POLARS and isinstance(obj, (pl.Series, pl.DataFrame)):
        arr = obj.to_numpy()
    else:
        arr = np.asarray(obj)

    if dtype is None:
        return arr
    try:
        return arr.astype(dtype, copy=False)
    except (TypeError, ValueError) as exc:
        raise InvalidInputError(
            f"'{name}' could not be converted to {np.dtype(dtype).name}: {exc}"
        ) from exc
