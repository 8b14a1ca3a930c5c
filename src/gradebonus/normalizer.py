"""Conversion of raw grades onto the common 0-100 scale."""

from __future__ import annotations

import math
from typing import Optional

from .exceptions import DegenerateScaleError, InvalidGradeValueError
from .models import GradingSystem
from .ops import StructuredLogger

NORMALIZED_MIN = 0.0
NORMALIZED_MAX = 100.0


def parse_grade_value(raw_value: str) -> float:
    """Parse ``raw_value`` as a finite number.

    A single decimal comma (``"2,5"``) is accepted alongside the decimal point.
    """

    if raw_value is None:
        raise InvalidGradeValueError(raw_value, "missing value")
    text = str(raw_value).strip()
    if not text:
        raise InvalidGradeValueError(raw_value, "empty value")
    if text.count(",") == 1 and "." not in text:
        text = text.replace(",", ".")
    try:
        value = float(text)
    except ValueError as exc:
        raise InvalidGradeValueError(raw_value, "not a number") from exc
    if not math.isfinite(value):
        raise InvalidGradeValueError(raw_value, "not a finite number")
    return value


def _clamp(value: float, lower: float, upper: float) -> float:
    return min(max(value, lower), upper)


def normalize(system: GradingSystem, raw_value: str, *, logger: Optional[StructuredLogger] = None) -> float:
    """Return ``raw_value`` on a 0-100 scale where 100 is always the best grade.

    Ordinal systems expect ``raw_value`` to already be the numeric position of
    the grade. Values outside the system's range are clamped first. A flat
    scale is reported through ``logger`` and the raw value is returned,
    clamped to 0-100, instead of dividing by zero.
    """

    value = parse_grade_value(raw_value)
    if system.is_degenerate:
        if logger is not None:
            error = DegenerateScaleError(system.system_id)
            logger.log("degenerate_scale", system=system.system_id, value=value, error=str(error))
        return _clamp(value, NORMALIZED_MIN, NORMALIZED_MAX)

    low, high = system.min_value, system.max_value
    bounded = _clamp(value, low, high)
    span = high - low
    if system.best_is_highest:
        normalized = NORMALIZED_MAX * (bounded - low) / span
    else:
        normalized = NORMALIZED_MAX * (high - bounded) / span
    return _clamp(normalized, NORMALIZED_MIN, NORMALIZED_MAX)


def convert_normalized_to_scale(system: GradingSystem, normalized: float) -> float:
    """Map a 0-100 score back onto ``system``'s raw range."""

    if system.is_degenerate:
        return normalized
    low, high = system.min_value, system.max_value
    fraction = _clamp(normalized, NORMALIZED_MIN, NORMALIZED_MAX) / NORMALIZED_MAX
    if system.best_is_highest:
        return low + fraction * (high - low)
    return high - fraction * (high - low)


__all__ = ["convert_normalized_to_scale", "normalize", "parse_grade_value"]
