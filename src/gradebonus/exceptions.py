"""Custom exception hierarchy for the gradebonus package."""

from __future__ import annotations


class GradeBonusError(Exception):
    """Base class for all gradebonus specific errors."""


class InvalidGradeValueError(GradeBonusError):
    """Raised when a raw grade cannot be interpreted on its grading system."""

    def __init__(self, value: object, reason: str, *, subject_id: str | None = None) -> None:
        self.value = value
        self.reason = reason
        self.subject_id = subject_id
        prefix = f"Subject '{subject_id}': " if subject_id else ""
        super().__init__(f"{prefix}invalid grade value {value!r} ({reason}).")

    def for_subject(self, subject_id: str) -> "InvalidGradeValueError":
        """Return a copy of the error that names ``subject_id``."""

        return InvalidGradeValueError(self.value, self.reason, subject_id=subject_id)


class DegenerateScaleError(GradeBonusError):
    """Reported when a grading system has identical minimum and maximum values."""

    def __init__(self, system_id: str) -> None:
        self.system_id = system_id
        super().__init__(f"Grading system '{system_id}' has a flat scale (min == max).")


class MissingFactorError(GradeBonusError, KeyError):
    """Raised when a factor table has no value for a ``(type, key)`` pair."""

    def __init__(self, factor_type: str, factor_key: str | None) -> None:
        self.factor_type = factor_type
        self.factor_key = factor_key
        super().__init__(f"No bonus factor configured for {factor_type}/{factor_key}.")

    def __str__(self) -> str:
        return str(self.args[0])


class GradingSystemNotFoundError(GradeBonusError):
    """Raised when a grading system lookup fails."""


class QuickGradeNotFoundError(GradeBonusError):
    """Raised when a quick grade record cannot be found."""


class AlreadySettledError(GradeBonusError):
    """Raised when settling a quick grade that has already been settled."""


class NothingToSettleError(GradeBonusError):
    """Raised when a settlement would not cover any quick grade."""
