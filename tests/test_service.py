from decimal import Decimal

import pytest

from gradebonus.exceptions import (
    AlreadySettledError,
    GradingSystemNotFoundError,
    InvalidGradeValueError,
    NothingToSettleError,
    QuickGradeNotFoundError,
)
from gradebonus.models import GradingSystem, RawGradeEntry, ScaleKind, SettlementStatus, Tier
from gradebonus.service import GradeBonusService, resolve_grade_value


def build_service() -> GradeBonusService:
    service = GradeBonusService()
    service.register_grading_system(GradingSystem("de_1_6", 1, 6, best_is_highest=False))
    service.register_grading_system(
        GradingSystem(
            "us_letter",
            0,
            4,
            scale_kind=ScaleKind.ORDINAL,
            grade_definitions={"A": 4, "B": 3, "C": 2, "D": 1, "F": 0},
        )
    )
    service.set_default_factor("tier_multiplier", "best", "1.5")
    service.set_default_factor("tier_multiplier", "second", "1")
    service.set_default_factor("core_subject_bonus", "flat", "2")
    service.set_default_factor("level_scaling", "5-8", "1.0")
    return service


def test_resolve_grade_value_maps_letters() -> None:
    letters = GradingSystem("us", 0, 4, grade_definitions={"A": 4, "B+": 3.3})

    assert resolve_grade_value(letters, " a ") == "4.0"
    assert resolve_grade_value(letters, "b+") == "3.3"
    assert resolve_grade_value(letters, "3") == "3"
    assert resolve_grade_value(letters, "Z") == "Z"


def test_record_quick_grade_uses_defaults() -> None:
    service = build_service()

    record = service.record_quick_grade(
        user_id="mom",
        child_id="ava",
        system_id="de_1_6",
        class_level=7,
        entry=RawGradeEntry("math", "2", is_core_subject=True),
    )

    assert record.result.bonus == Decimal("3.20")
    assert record.settlement_status is SettlementStatus.UNSETTLED
    assert service.unsettled_total("ava") == Decimal("3.20")
    assert service.logger.events("quick_grade_recorded")[0]["subject"] == "math"


def test_letter_grades_are_resolved_before_calculation() -> None:
    service = build_service()

    record = service.record_quick_grade(
        user_id="mom",
        child_id="ava",
        system_id="us_letter",
        class_level=6,
        entry=RawGradeEntry("english", "b"),
    )

    assert record.entry.value == "b"
    assert record.result.normalized == 75.0
    assert record.result.tier is Tier.BEST
    assert record.result.bonus == Decimal("1.13")


def test_overrides_are_scoped_per_child() -> None:
    service = build_service()
    service.replace_overrides("mom", [("tier_multiplier", "best", "2")])
    service.replace_overrides("mom", [("tier_multiplier", "best", "3")], child_id="ben")

    assert service.effective_factors("mom")[("tier_multiplier", "best")] == Decimal("2")
    assert service.effective_factors("mom", "ava")[("tier_multiplier", "best")] == Decimal("2")
    assert service.effective_factors("mom", "ben")[("tier_multiplier", "best")] == Decimal("3")
    assert service.effective_factors("dad", "ben")[("tier_multiplier", "best")] == Decimal("1.5")

    service.replace_overrides("mom", [], child_id="ben")
    assert service.overrides("mom", child_id="ben") == ()
    assert service.effective_factors("mom", "ben")[("tier_multiplier", "best")] == Decimal("2")


def test_quick_grade_with_invalid_value_is_not_stored() -> None:
    service = build_service()

    with pytest.raises(InvalidGradeValueError):
        service.record_quick_grade(
            user_id="mom",
            child_id="ava",
            system_id="de_1_6",
            class_level=7,
            entry=RawGradeEntry("math", "great"),
        )

    assert service.quick_grades("ava") == ()


def test_unknown_grading_system() -> None:
    service = build_service()

    with pytest.raises(GradingSystemNotFoundError):
        service.record_quick_grade(
            user_id="mom", child_id="ava", system_id="fr_20", class_level=7, entry=RawGradeEntry("math", "15")
        )


def test_submit_term_grades_reports_skipped_entries() -> None:
    service = build_service()

    record = service.submit_term_grades(
        user_id="mom",
        child_id="ava",
        system_id="de_1_6",
        class_level=7,
        school_year="2025/26",
        term_type="semester_1",
        entries=[
            RawGradeEntry("math", "2", is_core_subject=True),
            RawGradeEntry("physics", ""),
            RawGradeEntry("english", "1"),
        ],
    )

    assert record.total_bonus == Decimal("4.70")
    assert [item.subject_id for item in record.result.skipped] == ["physics"]
    assert service.term_grades("ava") == (record,)
    assert service.term_grades("ben") == ()


def test_settle_all_unsettled_quick_grades() -> None:
    service = build_service()
    for subject, value in (("math", "2"), ("english", "1")):
        service.record_quick_grade(
            user_id="mom",
            child_id="ava",
            system_id="de_1_6",
            class_level=7,
            entry=RawGradeEntry(subject, value, is_core_subject=True),
        )

    settlement = service.settle_quick_grades("ava")

    assert settlement.amount == Decimal("6.70")
    assert len(settlement.record_ids) == 2
    assert service.unsettled_quick_grades("ava") == ()
    assert all(record.settlement_id == settlement.settlement_id for record in service.quick_grades("ava"))
    assert service.settlements("ava") == (settlement,)


def test_settle_specific_records() -> None:
    service = build_service()
    first = service.record_quick_grade(
        user_id="mom", child_id="ava", system_id="de_1_6", class_level=7, entry=RawGradeEntry("math", "2")
    )
    second = service.record_quick_grade(
        user_id="mom", child_id="ava", system_id="de_1_6", class_level=7, entry=RawGradeEntry("art", "1")
    )

    settlement = service.settle_quick_grades("ava", [first.record_id])

    assert settlement.amount == Decimal("1.20")
    assert service.unsettled_quick_grades("ava") == (second,)
    with pytest.raises(AlreadySettledError):
        service.settle_quick_grades("ava", [first.record_id])
    with pytest.raises(QuickGradeNotFoundError):
        service.settle_quick_grades("ben", [second.record_id])
    with pytest.raises(QuickGradeNotFoundError):
        service.settle_quick_grades("ava", ["missing"])


def test_settle_ignores_repeated_record_ids() -> None:
    service = build_service()
    record = service.record_quick_grade(
        user_id="mom", child_id="ava", system_id="de_1_6", class_level=7, entry=RawGradeEntry("math", "2")
    )

    settlement = service.settle_quick_grades("ava", [record.record_id, record.record_id])

    assert settlement.amount == Decimal("1.20")
    assert settlement.record_ids == (record.record_id,)


def test_settle_without_records_is_rejected() -> None:
    service = build_service()

    with pytest.raises(NothingToSettleError):
        service.settle_quick_grades("ava")

    record = service.record_quick_grade(
        user_id="mom", child_id="ava", system_id="de_1_6", class_level=7, entry=RawGradeEntry("math", "2")
    )
    with pytest.raises(NothingToSettleError):
        service.settle_quick_grades("ava", [])

    service.settle_quick_grades("ava")
    with pytest.raises(NothingToSettleError):
        service.settle_quick_grades("ava")
    assert len(service.settlements("ava")) == 1
    assert record.is_settled
