import json
from decimal import Decimal

import pytest

from gradebonus.money import round2, to_decimal, to_factor
from gradebonus.ops import StructuredLogger


def test_structured_logger_writes_json_lines(tmp_path) -> None:
    path = tmp_path / "logs" / "events.jsonl"
    logger = StructuredLogger(path=path)

    logger.log("quick_grade_recorded", child="ava", bonus=3.2)
    logger.log("grades_settled", child="ava", amount=3.2)

    lines = [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]
    assert [line["event"] for line in lines] == ["quick_grade_recorded", "grades_settled"]
    assert logger.tail(1)[0]["event"] == "grades_settled"
    assert len(logger.events()) == 2
    assert logger.events("grades_settled")[0]["amount"] == 3.2


def test_money_helpers_round_half_up() -> None:
    assert round2(Decimal("0.005")) == Decimal("0.01")
    assert round2(Decimal("2.675")) == Decimal("2.68")
    assert to_decimal(1.005) == Decimal("1.01")
    assert to_factor(" 1.25 ") == Decimal("1.25")


@pytest.mark.parametrize("value", ["abc", "NaN", float("inf")])
def test_to_factor_rejects_non_finite_or_malformed(value) -> None:
    with pytest.raises(ValueError):
        to_factor(value)
