"""High level service that ties grading systems, factors and grade records together."""

from __future__ import annotations

from collections import defaultdict
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Sequence, Tuple
from uuid import uuid4

from .calculator import BonusCalculator
from .exceptions import (
    AlreadySettledError,
    GradingSystemNotFoundError,
    NothingToSettleError,
    QuickGradeNotFoundError,
)
from .factors import BonusFactorResolver, EffectiveFactorTable
from .models import (
    BonusFactor,
    FactorType,
    GradingSystem,
    QuickGradeRecord,
    RawGradeEntry,
    Settlement,
    TermGradeRecord,
)
from .money import AmountLike, ZERO, round2, to_factor
from .ops import StructuredLogger


def resolve_grade_value(system: GradingSystem, raw_value: str) -> str:
    """Translate a letter or ordinal grade into its numeric position.

    Values without a matching definition are returned unchanged so the
    normalizer can accept or reject them.
    """

    text = (raw_value or "").strip()
    position = system.grade_definitions.get(text.lower())
    if position is None:
        return text
    return repr(float(position))


class GradeBonusService:
    """In-memory facade for recording grades and settling their bonuses."""

    __slots__ = (
        "_systems",
        "_defaults",
        "_overrides",
        "_quick_grades",
        "_term_grades",
        "_settlements",
        "_logger",
        "_calculator",
    )

    def __init__(self, *, logger: StructuredLogger | None = None) -> None:
        self._systems: Dict[str, GradingSystem] = {}
        self._defaults: Dict[Tuple[str, str], BonusFactor] = {}
        self._overrides: Dict[Tuple[str, Optional[str]], List[BonusFactor]] = {}
        self._quick_grades: Dict[str, QuickGradeRecord] = {}
        self._term_grades: Dict[str, List[TermGradeRecord]] = defaultdict(list)
        self._settlements: Dict[str, Settlement] = {}
        self._logger = logger or StructuredLogger()
        self._calculator = BonusCalculator(logger=self._logger)

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------
    def register_grading_system(self, system: GradingSystem) -> GradingSystem:
        self._systems[system.system_id] = system
        return system

    def get_grading_system(self, system_id: str) -> GradingSystem:
        try:
            return self._systems[system_id]
        except KeyError:
            raise GradingSystemNotFoundError(f"Grading system '{system_id}' does not exist.") from None

    def grading_systems(self) -> Tuple[GradingSystem, ...]:
        return tuple(self._systems.values())

    def set_default_factor(
        self, factor_type: str | FactorType, factor_key: str, value: AmountLike, *, description: str = ""
    ) -> BonusFactor:
        factor = BonusFactor.default(factor_type, factor_key, value, description)
        self._defaults[factor.key] = factor
        return factor

    def load_default_factors(self, factors: Iterable[BonusFactor]) -> None:
        for factor in factors:
            self._defaults[factor.key] = factor

    def default_factors(self) -> Tuple[BonusFactor, ...]:
        return tuple(self._defaults.values())

    def replace_overrides(
        self,
        user_id: str,
        factors: Iterable[Tuple[str, str, AmountLike]],
        *,
        child_id: Optional[str] = None,
    ) -> Tuple[BonusFactor, ...]:
        """Replace every override stored for ``(user_id, child_id)``."""

        replaced = [
            BonusFactor(factor_type, factor_key, to_factor(value), user_id=user_id, child_id=child_id)
            for factor_type, factor_key, value in factors
        ]
        self._overrides[(user_id, child_id)] = replaced
        self._logger.log("overrides_replaced", user=user_id, child=child_id, count=len(replaced))
        return tuple(replaced)

    def overrides(self, user_id: str, *, child_id: Optional[str] = None) -> Tuple[BonusFactor, ...]:
        return tuple(self._overrides.get((user_id, child_id), ()))

    def effective_factors(self, user_id: str, child_id: Optional[str] = None) -> EffectiveFactorTable:
        scoped = [*self.overrides(user_id)]
        if child_id is not None:
            scoped.extend(self.overrides(user_id, child_id=child_id))
        return BonusFactorResolver.resolve_scoped(
            self._defaults.values(), scoped, user_id=user_id, child_id=child_id
        )

    # ------------------------------------------------------------------
    # Grade submissions
    # ------------------------------------------------------------------
    def record_quick_grade(
        self,
        *,
        user_id: str,
        child_id: str,
        system_id: str,
        class_level: int,
        entry: RawGradeEntry,
    ) -> QuickGradeRecord:
        system = self.get_grading_system(system_id)
        table = self.effective_factors(user_id, child_id)
        resolved = self._resolve_entry(system, entry)
        result = self._calculator.calculate_single_grade_bonus(system, table, class_level, resolved)
        record = QuickGradeRecord(
            record_id=str(uuid4()),
            user_id=user_id,
            child_id=child_id,
            system_id=system_id,
            class_level=class_level,
            entry=entry,
            result=result,
        )
        self._quick_grades[record.record_id] = record
        self._logger.log(
            "quick_grade_recorded",
            child=child_id,
            subject=entry.subject_id,
            tier=result.tier.value,
            bonus=float(result.bonus),
        )
        return record

    def submit_term_grades(
        self,
        *,
        user_id: str,
        child_id: str,
        system_id: str,
        class_level: int,
        entries: Sequence[RawGradeEntry],
        school_year: str = "",
        term_type: Optional[str] = None,
    ) -> TermGradeRecord:
        system = self.get_grading_system(system_id)
        table = self.effective_factors(user_id, child_id)
        resolved = [self._resolve_entry(system, entry) for entry in entries]
        result = self._calculator.calculate_term_bonus(system, table, class_level, resolved, term_type=term_type)
        record = TermGradeRecord(
            record_id=str(uuid4()),
            user_id=user_id,
            child_id=child_id,
            system_id=system_id,
            class_level=class_level,
            school_year=school_year,
            term_type=term_type,
            result=result,
        )
        self._term_grades[child_id].append(record)
        self._logger.log(
            "term_grade_recorded",
            child=child_id,
            subjects=len(result.per_entry),
            skipped=len(result.skipped),
            total=float(result.total_bonus),
        )
        return record

    def term_grades(self, child_id: str) -> Tuple[TermGradeRecord, ...]:
        return tuple(self._term_grades.get(child_id, ()))

    def get_quick_grade(self, record_id: str) -> QuickGradeRecord:
        try:
            return self._quick_grades[record_id]
        except KeyError:
            raise QuickGradeNotFoundError(f"Quick grade '{record_id}' does not exist.") from None

    def quick_grades(self, child_id: str) -> Tuple[QuickGradeRecord, ...]:
        records = (record for record in self._quick_grades.values() if record.child_id == child_id)
        return tuple(sorted(records, key=lambda record: record.graded_at))

    def unsettled_quick_grades(self, child_id: str) -> Tuple[QuickGradeRecord, ...]:
        return tuple(record for record in self.quick_grades(child_id) if not record.is_settled)

    def unsettled_total(self, child_id: str) -> Decimal:
        return round2(sum((record.result.bonus for record in self.unsettled_quick_grades(child_id)), ZERO))

    # ------------------------------------------------------------------
    # Settlement
    # ------------------------------------------------------------------
    def settle_quick_grades(self, child_id: str, record_ids: Optional[Iterable[str]] = None) -> Settlement:
        """Mark quick grades as settled and return the amount paid out.

        Without ``record_ids`` every unsettled quick grade of the child is settled.
        """

        if record_ids is None:
            records = list(self.unsettled_quick_grades(child_id))
        else:
            records = []
            for record_id in dict.fromkeys(record_ids):
                record = self.get_quick_grade(record_id)
                if record.child_id != child_id:
                    raise QuickGradeNotFoundError(f"Quick grade '{record_id}' does not belong to '{child_id}'.")
                if record.is_settled:
                    raise AlreadySettledError(f"Quick grade '{record_id}' is already settled.")
                records.append(record)
        if not records:
            raise NothingToSettleError(f"No unsettled quick grades to settle for '{child_id}'.")

        settlement_id = str(uuid4())
        for record in records:
            record.mark_settled(settlement_id)
        amount = round2(sum((record.result.bonus for record in records), ZERO))
        settlement = Settlement(
            settlement_id=settlement_id,
            child_id=child_id,
            amount=amount,
            record_ids=tuple(record.record_id for record in records),
        )
        self._settlements[settlement_id] = settlement
        self._logger.log("grades_settled", child=child_id, records=len(records), amount=float(amount))
        return settlement

    def settlements(self, child_id: str) -> Tuple[Settlement, ...]:
        return tuple(item for item in self._settlements.values() if item.child_id == child_id)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    @staticmethod
    def _resolve_entry(system: GradingSystem, entry: RawGradeEntry) -> RawGradeEntry:
        value = resolve_grade_value(system, entry.value)
        if value == entry.value:
            return entry
        return RawGradeEntry(
            subject_id=entry.subject_id,
            value=value,
            is_core_subject=entry.is_core_subject,
            class_level=entry.class_level,
            note=entry.note,
            weight=entry.weight,
        )

    @property
    def logger(self) -> StructuredLogger:
        return self._logger

    @property
    def calculator(self) -> BonusCalculator:
        return self._calculator


__all__ = ["GradeBonusService", "resolve_grade_value"]
