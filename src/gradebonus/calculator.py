"""Bonus calculation for quick grades and term batches."""

from __future__ import annotations

from decimal import Decimal
from typing import Callable, List, Optional, Sequence, Tuple

from .exceptions import InvalidGradeValueError, MissingFactorError
from .factors import EffectiveFactorTable, LevelBuckets
from .models import (
    CORE_SUBJECT_KEY,
    FactorType,
    GradingSystem,
    NormalizedResult,
    RawGradeEntry,
    SkippedEntry,
    TermBonusResult,
)
from .money import ZERO, round2
from .normalizer import normalize
from .ops import StructuredLogger
from .tiers import classify

HUNDRED = Decimal("100")
UNBUCKETED_KEY = "unbucketed"

LevelBucketer = Callable[[int], Optional[str]]


class BonusCalculator:
    """Turn raw grades into bonus amounts using an effective factor table.

    The calculator holds no state between calls. ``logger`` receives the
    calculation events. A private in-memory logger is used when none is given.
    """

    def __init__(self, *, logger: StructuredLogger | None = None) -> None:
        self._logger = logger or StructuredLogger()

    @property
    def logger(self) -> StructuredLogger:
        return self._logger

    # ------------------------------------------------------------------
    # Public contracts
    # ------------------------------------------------------------------
    def calculate_single_grade_bonus(
        self,
        grading_system: GradingSystem,
        factor_table: EffectiveFactorTable,
        class_level: int,
        entry: RawGradeEntry,
        *,
        level_bucket: LevelBucketer | None = None,
    ) -> NormalizedResult:
        """Evaluate one quick grade.

        Raises :class:`~gradebonus.exceptions.InvalidGradeValueError` naming the
        entry's subject when the raw value cannot be interpreted.
        """

        bucketer = level_bucket or LevelBuckets.from_table(factor_table)
        return self._evaluate(grading_system, factor_table, class_level, entry, bucketer, None)

    def calculate_term_bonus(
        self,
        grading_system: GradingSystem,
        factor_table: EffectiveFactorTable,
        class_level: int,
        entries: Sequence[RawGradeEntry],
        *,
        term_type: str | None = None,
        level_bucket: LevelBucketer | None = None,
    ) -> TermBonusResult:
        """Evaluate a batch of subject grades belonging to one term.

        Invalid entries are reported in ``skipped`` and left out of both
        ``per_entry`` and ``total_bonus``. The total is the exact sum of the
        unrounded per-entry bonuses, rounded once.
        """

        bucketer = level_bucket or LevelBuckets.from_table(factor_table)
        results: List[NormalizedResult] = []
        skipped: List[SkippedEntry] = []
        for index, entry in enumerate(entries):
            try:
                result = self._evaluate(grading_system, factor_table, class_level, entry, bucketer, term_type)
            except InvalidGradeValueError as exc:
                skipped.append(SkippedEntry(index, entry.subject_id, entry.value, exc.reason))
                self._log("grade_skipped", index=index, subject=entry.subject_id, value=entry.value, reason=exc.reason)
                continue
            results.append(result)

        total = round2(sum((result.raw_bonus for result in results), ZERO))
        self._log(
            "term_calculated",
            system=grading_system.system_id,
            entries=len(entries),
            evaluated=len(results),
            skipped=len(skipped),
            total=float(total),
        )
        return TermBonusResult(per_entry=tuple(results), total_bonus=total, skipped=tuple(skipped))

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _evaluate(
        self,
        system: GradingSystem,
        table: EffectiveFactorTable,
        class_level: int,
        entry: RawGradeEntry,
        bucketer: LevelBucketer,
        term_type: str | None,
    ) -> NormalizedResult:
        try:
            normalized = normalize(system, entry.value, logger=self._logger)
        except InvalidGradeValueError as exc:
            raise exc.for_subject(entry.subject_id) from exc
        tier = classify(normalized)
        missing: List[Tuple[str, str]] = []

        tier_multiplier = self._factor(table, FactorType.TIER_MULTIPLIER, tier.value, missing)
        core_bonus = (
            self._factor(table, FactorType.CORE_SUBJECT_BONUS, CORE_SUBJECT_KEY, missing)
            if entry.is_core_subject
            else ZERO
        )
        level = entry.class_level or class_level
        level_scale = self._factor(table, FactorType.LEVEL_SCALING, bucketer(level), missing)
        term_scale = (
            self._factor(table, FactorType.TERM_TYPE, term_type, missing) if term_type else Decimal("1")
        )

        score = Decimal(repr(normalized))
        raw_bonus = (score / HUNDRED) * tier_multiplier * level_scale * term_scale * entry.weight + core_bonus
        if raw_bonus < ZERO:
            raw_bonus = ZERO
        return NormalizedResult(
            subject_id=entry.subject_id,
            normalized=normalized,
            tier=tier,
            bonus=round2(raw_bonus),
            raw_bonus=raw_bonus,
            missing_factors=tuple(missing),
        )

    def _factor(
        self,
        table: EffectiveFactorTable,
        factor_type: FactorType,
        factor_key: Optional[str],
        missing: List[Tuple[str, str]],
    ) -> Decimal:
        try:
            return table.value(factor_type, factor_key)
        except MissingFactorError as exc:
            missing.append((factor_type.value, UNBUCKETED_KEY if factor_key is None else str(factor_key)))
            self._log(
                "missing_factor",
                factor_type=factor_type.value,
                factor_key=factor_key,
                fallback=float(factor_type.fallback),
                error=str(exc),
            )
            return factor_type.fallback

    def _log(self, event_type: str, **fields: object) -> None:
        self._logger.log(event_type, **fields)


__all__ = ["BonusCalculator", "LevelBucketer", "UNBUCKETED_KEY"]
