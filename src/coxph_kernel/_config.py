"""Process-wide choice of compute backend for the accumulation sweeps.

Every call that takes ``backend=None`` (``accumulate``, the component
sweeps, ``evaluate_batch``, the finite-difference checks) asks
:func:`get_backend` which engine to use.  The answer comes from the
first source that names one:

    1. :func:`set_backend` called in this process.
    2. ``COXPH_KERNEL_BACKEND`` in the environment (read on every call,
       so it can be changed between fits).
    3. ``"jax"`` when JAX imports, otherwise ``"numpy"``.

Passing ``backend="numpy"`` or ``backend="jax"`` to a single call
bypasses this module entirely.

Examples:
    Pin a batch job to NumPy without touching code::

        COXPH_KERNEL_BACKEND=numpy python fit_cox.py

    Compare backends inside one session::

        import coxph_kernel
        coxph_kernel.set_backend("jax")
        ...
        coxph_kernel.set_backend("auto")  # back to env var / detection
"""

from __future__ import annotations

import os

_ENV_VAR = "COXPH_KERNEL_BACKEND"

_ENGINES = ("jax", "numpy")

_VALID_BACKENDS = {*_ENGINES, "auto"}

# None and "auto" both defer to the environment / detection.
_backend_override: str | None = None


def _normalise(name: str) -> str:
    return name.strip().lower()


def _jax_is_available() -> bool:
    """Return ``True`` if JAX can be imported."""
    try:
        import jax  # noqa: F401

        return True
    except ImportError:
        return False


def get_backend() -> str:
    """Name of the engine that ``backend=None`` resolves to.

    An unrecognised ``COXPH_KERNEL_BACKEND`` value is ignored rather
    than raised, so a stale shell setting never breaks an import.

    Returns:
        ``"jax"`` or ``"numpy"``.
    """
    if _backend_override in _ENGINES:
        return _backend_override

    env = _normalise(os.environ.get(_ENV_VAR, ""))
    if env in _ENGINES:
        return env

    return "jax" if _jax_is_available() else "numpy"


def set_backend(name: str) -> None:
    """Pin the sweeps to one engine for the rest of the process.

    Args:
        name: ``"jax"``, ``"numpy"``, or ``"auto"`` to drop the pin.
            Case and surrounding whitespace are ignored.

    Raises:
        ValueError: If *name* is not one of the above.
    """
    global _backend_override
    normalised = _normalise(name)
    if normalised not in _VALID_BACKENDS:
        raise ValueError(
            f"Unknown backend '{name}' for the accumulation sweeps. "
            f"Choose from: {sorted(_VALID_BACKENDS)}"
        )
    _backend_override = normalised
