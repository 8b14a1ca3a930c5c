"""Domain models used by the gradebonus package."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Mapping, Optional, Tuple

from .money import AmountLike, ZERO, require_non_negative, to_decimal, to_factor


class ScaleKind(str, Enum):
    """Enumerates the supported kinds of grading scale."""

    NUMERIC = "numeric"
    ORDINAL = "ordinal"
    PERCENTAGE = "percentage"


class Tier(str, Enum):
    """Quality tiers, declared best-to-worst."""

    BEST = "best"
    SECOND = "second"
    THIRD = "third"
    BELOW = "below"

    @property
    def rank(self) -> int:
        """Position of the tier, ``0`` being the best."""

        return list(Tier).index(self)


class FactorType(str, Enum):
    """Factor categories understood by the calculator."""

    TIER_MULTIPLIER = "tier_multiplier"
    CORE_SUBJECT_BONUS = "core_subject_bonus"
    LEVEL_SCALING = "level_scaling"
    TERM_TYPE = "term_type"

    @property
    def is_additive(self) -> bool:
        return self is FactorType.CORE_SUBJECT_BONUS

    @property
    def fallback(self) -> Decimal:
        """Value used when the factor is missing from the table."""

        return ZERO if self.is_additive else Decimal("1.0")


CORE_SUBJECT_KEY = "flat"


class SettlementStatus(str, Enum):
    UNSETTLED = "unsettled"
    SETTLED = "settled"


@dataclass(frozen=True, slots=True)
class GradingSystem:
    """Describes one external grading scale.

    ``grade_definitions`` maps letter or ordinal grades to their numeric
    position. The engine itself never reads it; collaborators resolve letters
    before handing a value to :func:`~gradebonus.normalizer.normalize`.
    """

    system_id: str
    min_value: float
    max_value: float
    best_is_highest: bool = True
    scale_kind: ScaleKind = ScaleKind.NUMERIC
    code: str = ""
    name: str = ""
    grade_definitions: Mapping[str, float] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "scale_kind", ScaleKind(self.scale_kind))
        object.__setattr__(self, "min_value", float(self.min_value))
        object.__setattr__(self, "max_value", float(self.max_value))
        if self.min_value > self.max_value:
            raise ValueError("min_value must not exceed max_value.")
        definitions = {str(grade).strip().lower(): float(position) for grade, position in self.grade_definitions.items()}
        object.__setattr__(self, "grade_definitions", definitions)

    @property
    def is_degenerate(self) -> bool:
        """True when the scale is flat and carries no discriminating information."""

        return self.min_value == self.max_value

    @classmethod
    def percentage(cls, system_id: str = "percentage") -> "GradingSystem":
        return cls(system_id, 0, 100, True, ScaleKind.PERCENTAGE, code="PCT", name="Percentage")


@dataclass(frozen=True, slots=True)
class RawGradeEntry:
    """A single grade submission as typed by the student."""

    subject_id: str
    value: str
    is_core_subject: bool = False
    class_level: Optional[int] = None
    note: Optional[str] = None
    weight: Decimal = Decimal("1")

    def __post_init__(self) -> None:
        if self.class_level is not None and self.class_level < 1:
            raise ValueError("class_level must be a positive integer.")
        weight = to_factor(self.weight)
        if weight <= ZERO:
            raise ValueError("weight must be greater than zero.")
        object.__setattr__(self, "weight", weight)


@dataclass(frozen=True, slots=True)
class BonusFactor:
    """A named, overridable parameter of the bonus formula.

    Defaults leave ``user_id`` empty. Overrides always carry a ``user_id`` and
    optionally a ``child_id`` to narrow them to a single child.
    """

    factor_type: str
    factor_key: str
    factor_value: Decimal
    user_id: Optional[str] = None
    child_id: Optional[str] = None
    description: str = ""

    def __post_init__(self) -> None:
        factor_type = self.factor_type.value if isinstance(self.factor_type, FactorType) else str(self.factor_type)
        object.__setattr__(self, "factor_type", factor_type)
        object.__setattr__(self, "factor_key", str(self.factor_key))
        object.__setattr__(self, "factor_value", to_factor(self.factor_value))
        if self.child_id is not None and self.user_id is None:
            raise ValueError("Child scoped overrides require a user_id.")

    @property
    def key(self) -> Tuple[str, str]:
        return (self.factor_type, self.factor_key)

    @classmethod
    def default(cls, factor_type: str | FactorType, factor_key: str, value: AmountLike, description: str = "") -> "BonusFactor":
        return cls(factor_type, factor_key, to_factor(value), description=description)


@dataclass(frozen=True, slots=True)
class NormalizedResult:
    """Outcome of evaluating one grade entry."""

    subject_id: str
    normalized: float
    tier: Tier
    bonus: Decimal
    raw_bonus: Decimal
    missing_factors: Tuple[Tuple[str, str], ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "bonus", require_non_negative(to_decimal(self.bonus)))


@dataclass(frozen=True, slots=True)
class SkippedEntry:
    """A batch entry that could not be evaluated."""

    index: int
    subject_id: str
    value: str
    reason: str


@dataclass(frozen=True, slots=True)
class TermBonusResult:
    """Per-entry results, the once-rounded total and any skipped entries."""

    per_entry: Tuple[NormalizedResult, ...]
    total_bonus: Decimal
    skipped: Tuple[SkippedEntry, ...] = ()

    @property
    def is_partial(self) -> bool:
        return bool(self.skipped)


@dataclass(slots=True)
class QuickGradeRecord:
    """A stored quick grade awaiting (or past) settlement."""

    record_id: str
    user_id: str
    child_id: str
    system_id: str
    class_level: int
    entry: RawGradeEntry
    result: NormalizedResult
    settlement_status: SettlementStatus = SettlementStatus.UNSETTLED
    settlement_id: Optional[str] = None
    graded_at: datetime = field(default_factory=datetime.utcnow)

    @property
    def is_settled(self) -> bool:
        return self.settlement_status is SettlementStatus.SETTLED

    def mark_settled(self, settlement_id: str) -> None:
        self.settlement_status = SettlementStatus.SETTLED
        self.settlement_id = settlement_id


@dataclass(slots=True)
class TermGradeRecord:
    """A stored batch of subject grades for one reporting period."""

    record_id: str
    user_id: str
    child_id: str
    system_id: str
    class_level: int
    school_year: str
    term_type: Optional[str]
    result: TermBonusResult
    created_at: datetime = field(default_factory=datetime.utcnow)

    @property
    def total_bonus(self) -> Decimal:
        return self.result.total_bonus


@dataclass(frozen=True, slots=True)
class Settlement:
    """Summary of quick grades marked settled in one operation."""

    settlement_id: str
    child_id: str
    amount: Decimal
    record_ids: Tuple[str, ...]
    settled_at: datetime = field(default_factory=datetime.utcnow)
