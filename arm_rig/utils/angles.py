"""
Angle conventions shared by the dial display, the rig and the hardware.

Joint values live in a bounded logical domain ``[min, max]`` (degrees as
reported by the joint controllers).  Dials draw them on a circle where
0° is at the top and angles grow clockwise; the position of the logical
zero and the direction of growth are configurable per dial.

Every function here is total: non-finite inputs degrade to the logical
zero instead of raising, and results always land in the documented range.

Functions:
    wrap_degrees: Reduce an angle into the canonical ``(-180, 180]`` interval.
    canonical_in_range: Pick the alias of an angle that lies inside a range.
    to_display_angle: Logical value -> dial angle in ``[0, 360)``.
    to_value: Dial angle -> logical value in ``[min, max]``.
    quantize: Snap a value to the nearest multiple of a step.
    pointer_to_display_angle: Screen vector from the dial centre -> dial angle.
    dial_labels: Label values to print around a dial.
"""

from __future__ import annotations

import math
from typing import List

from arm_rig.utils.constants import DIAL_LABEL_SPACING, ZERO_POSITION_OFFSETS
from arm_rig.utils.helpers import clamp, finite_or, is_finite_number


# Decimal places kept by to_value
_SNAP_DECIMALS: int = 12


def _norm360(angle: float) -> float:
    """Normalize *angle* into ``[0, 360)``."""
    out = angle % 360.0
    # x % 360.0 rounds up to 360.0 for tiny negative x
    return 0.0 if out >= 360.0 else out


def _ordered(lo: float, hi: float) -> tuple:
    return (lo, hi) if lo <= hi else (hi, lo)


def _zero_offset(zero_position: str) -> float:
    """Return the dial offset for *zero_position* (unknown names mean ``'right'``)."""
    return ZERO_POSITION_OFFSETS.get(zero_position, ZERO_POSITION_OFFSETS["right"])


def wrap_degrees(angle: float) -> float:
    """Reduce *angle* into ``(-180, 180]``; both ±180 map to +180.

    Args:
        angle: Angle in degrees.

    Returns:
        The canonical representative, or ``0.0`` for non-finite input.
    """
    if not is_finite_number(angle):
        return 0.0
    angle = float(angle)
    if -180.0 < angle <= 180.0:
        return angle
    out = math.fmod(angle + 180.0, 360.0)
    if out <= 0.0:
        out += 360.0
    return out - 180.0


def canonical_in_range(angle: float, lo: float, hi: float) -> float:
    """Return the alias of *angle* that lies in ``[lo, hi]``, else the clamp.

    The canonical ``(-180, 180]`` representative is tried first, then its
    ``-360`` and ``+360`` aliases, so a range starting at -180 keeps -180
    instead of jumping to the far bound.

    Args:
        angle: Angle in degrees.
        lo: Lower bound (inclusive).
        hi: Upper bound (inclusive).

    Returns:
        An angle inside ``[lo, hi]``.
    """
    lo, hi = _ordered(lo, hi)
    wrapped = wrap_degrees(angle)
    for candidate in (wrapped, wrapped - 360.0, wrapped + 360.0):
        if lo <= candidate <= hi:
            return candidate
    return clamp(wrapped, lo, hi)


def to_display_angle(
    value: float,
    min_value: float = -180.0,
    max_value: float = 180.0,
    zero_position: str = "right",
    clockwise: bool = True,
) -> float:
    """Map a bounded logical value onto the dial circle.

    Args:
        value: Logical value; clamped into ``[min_value, max_value]`` first.
        min_value: Lower bound of the logical domain.
        max_value: Upper bound of the logical domain.
        zero_position: Where the logical zero is drawn: ``'top'``,
            ``'right'``, ``'bottom'`` or ``'left'``.
        clockwise: Whether increasing values move clockwise.

    Returns:
        Dial angle in ``[0, 360)``, 0 at the top, growing clockwise.
    """
    lo, hi = _ordered(min_value, max_value)
    v = clamp(finite_or(value, 0.0), lo, hi)
    signed = v if clockwise else -v
    return _norm360(signed + _zero_offset(zero_position))


def to_value(
    display_angle: float,
    min_value: float = -180.0,
    max_value: float = 180.0,
    zero_position: str = "right",
    clockwise: bool = True,
) -> float:
    """Invert :func:`to_display_angle`.

    Removes the zero offset and direction, reduces into ``(-180, 180]``
    (picking an in-range alias when the canonical one is outside), rounds
    to 12 decimals so step multiples round-trip exactly, and clamps into
    ``[min_value, max_value]``.

    Args:
        display_angle: Dial angle in degrees (any real number).
        min_value: Lower bound of the logical domain.
        max_value: Upper bound of the logical domain.
        zero_position: Where the logical zero is drawn.
        clockwise: Whether increasing values move clockwise.

    Returns:
        Logical value in ``[min_value, max_value]``.
    """
    lo, hi = _ordered(min_value, max_value)
    if not is_finite_number(display_angle):
        return clamp(0.0, lo, hi)
    shifted = float(display_angle) - _zero_offset(zero_position)
    signed = shifted if clockwise else -shifted
    # snap away the error of adding and removing the offset
    snapped = round(canonical_in_range(signed, lo, hi), _SNAP_DECIMALS)
    return clamp(snapped, lo, hi)


def quantize(value: float, step: float) -> float:
    """Snap *value* to the nearest multiple of *step*.

    Halves round away from zero (``quantize(7.5, 5) == 10``,
    ``quantize(-7.5, 5) == -10``).  A non-positive or non-finite step is
    treated as 1.  Non-finite values are returned unchanged.

    Args:
        value: Value to snap.
        step: Grid spacing.

    Returns:
        The snapped value.
    """
    if not is_finite_number(value):
        return float(value)
    s = float(step) if is_finite_number(step) and step > 0 else 1.0
    v = float(value)
    snapped = math.floor(abs(v) / s + 0.5) * s
    return (snapped if v >= 0 else -snapped) + 0.0


def pointer_to_display_angle(dx: float, dy: float) -> float:
    """Convert a screen-space vector from the dial centre into a dial angle.

    Screen y grows downwards, so a pointer straight above the centre gives
    0 and one to the right gives 90.

    Args:
        dx: Horizontal pointer offset from the dial centre.
        dy: Vertical pointer offset from the dial centre (down positive).

    Returns:
        Dial angle in ``[0, 360)``.
    """
    if not (is_finite_number(dx) and is_finite_number(dy)):
        return 0.0
    return _norm360(math.degrees(math.atan2(dy, dx)) + 90.0)


def dial_labels(min_value: float, max_value: float) -> List[float]:
    """Return the label values printed around a dial.

    Labels sit on every multiple of 30 inside the range, and 0 is always
    labelled when the range straddles it.

    Args:
        min_value: Lower bound of the logical domain.
        max_value: Upper bound of the logical domain.

    Returns:
        Sorted label values.
    """
    lo, hi = _ordered(finite_or(min_value, 0.0), finite_or(max_value, 0.0))
    spacing = DIAL_LABEL_SPACING
    labels = []
    v = math.ceil(lo / spacing) * spacing
    while v <= hi:
        labels.append(float(v))
        v += spacing
    if 0.0 not in labels and lo < 0.0 < hi:
        labels.append(0.0)
    return sorted(labels)
