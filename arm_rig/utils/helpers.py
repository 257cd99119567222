"""
Small stateless helpers used across the arm_rig package.

Provides numerical clamping, finiteness checks for values arriving from
the wire or from form inputs, and 3-vector coercion.
"""

from __future__ import annotations

import math
from typing import Any, Optional, Sequence

import numpy as np


def clamp(value: float, lo: float, hi: float) -> float:
    """Return *value* clamped to the closed interval [*lo*, *hi*].

    Args:
        value: The scalar to clamp.
        lo: Lower bound (inclusive).
        hi: Upper bound (inclusive).

    Returns:
        The clamped scalar.
    """
    return max(lo, min(hi, value))


def is_finite_number(value: Any) -> bool:
    """Return *True* for real, finite numbers (booleans excluded).

    Args:
        value: Arbitrary object, typically decoded JSON.

    Returns:
        Whether *value* can be used as a numeric field.
    """
    if isinstance(value, bool) or not isinstance(value, (int, float, np.integer, np.floating)):
        return False
    return math.isfinite(float(value))


def finite_or(value: Any, default: float) -> float:
    """Return *value* as a float, or *default* when it is not finite."""
    return float(value) if is_finite_number(value) else default


def to_vector3(value: Sequence[float]) -> Optional[np.ndarray]:
    """Coerce *value* into a finite float64 array of shape ``(3,)``.

    Args:
        value: Any 3-element sequence.

    Returns:
        The array, or *None* when the input is malformed or non-finite.
    """
    try:
        vec = np.asarray(value, dtype=np.float64).reshape(3)
    except (TypeError, ValueError):
        return None
    if not np.all(np.isfinite(vec)):
        return None
    return vec
