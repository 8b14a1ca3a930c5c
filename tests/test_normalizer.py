import pytest

from gradebonus.exceptions import InvalidGradeValueError
from gradebonus.models import GradingSystem, ScaleKind
from gradebonus.normalizer import convert_normalized_to_scale, normalize, parse_grade_value
from gradebonus.ops import StructuredLogger


def german_scale() -> GradingSystem:
    return GradingSystem("de_1_6", 1, 6, best_is_highest=False)


def test_lower_is_better_scale_maps_extremes() -> None:
    system = german_scale()

    assert normalize(system, "1") == 100.0
    assert normalize(system, "6") == 0.0
    assert normalize(system, "2") == 80.0


def test_higher_is_better_scale() -> None:
    system = GradingSystem.percentage()

    assert system.scale_kind is ScaleKind.PERCENTAGE
    assert normalize(system, "87.5") == 87.5
    assert normalize(system, "0") == 0.0


def test_out_of_range_values_are_clamped() -> None:
    assert normalize(german_scale(), "7") == 0.0
    assert normalize(german_scale(), "-3") == 100.0
    assert normalize(GradingSystem.percentage(), "150") == 100.0


@pytest.mark.parametrize("best_is_highest", [True, False])
def test_normalize_is_monotonic(best_is_highest: bool) -> None:
    system = GradingSystem("scale", 1, 6, best_is_highest=best_is_highest)
    raw_values = [0.5 + step * 0.25 for step in range(27)]
    scores = [normalize(system, str(value)) for value in raw_values]

    for previous, current in zip(scores, scores[1:]):
        if best_is_highest:
            assert current >= previous
        else:
            assert current <= previous
    assert all(0.0 <= score <= 100.0 for score in scores)


def test_decimal_comma_is_accepted() -> None:
    assert parse_grade_value(" 2,5 ") == 2.5
    assert normalize(german_scale(), "2,5") == 70.0


@pytest.mark.parametrize("raw", ["abc", "", "   ", "nan", "inf", "1,2,3"])
def test_unparsable_values_raise(raw: str) -> None:
    with pytest.raises(InvalidGradeValueError) as excinfo:
        normalize(german_scale(), raw)

    assert excinfo.value.subject_id is None
    assert excinfo.value.value == raw


def test_ordinal_scale_expects_resolved_position() -> None:
    letters = GradingSystem("us", 0, 4, scale_kind=ScaleKind.ORDINAL, grade_definitions={"A": 4})

    assert normalize(letters, "3") == 75.0
    with pytest.raises(InvalidGradeValueError):
        normalize(letters, "A")


def test_degenerate_scale_fails_open_and_is_reported() -> None:
    logger = StructuredLogger()
    flat = GradingSystem("flat", 5, 5)

    assert flat.is_degenerate
    assert normalize(flat, "42", logger=logger) == 42.0
    assert normalize(flat, "150", logger=logger) == 100.0
    events = logger.events("degenerate_scale")
    assert len(events) == 2
    assert events[0]["system"] == "flat"


def test_inverted_bounds_are_rejected() -> None:
    with pytest.raises(ValueError):
        GradingSystem("broken", 6, 1)


def test_convert_normalized_back_to_scale() -> None:
    assert convert_normalized_to_scale(german_scale(), 80.0) == 2.0
    assert convert_normalized_to_scale(german_scale(), 100.0) == 1.0
    assert convert_normalized_to_scale(GradingSystem.percentage(), 40.0) == 40.0
    assert convert_normalized_to_scale(GradingSystem("flat", 3, 3), 55.0) == 55.0
