import pytest

from gradebonus.models import Tier
from gradebonus.tiers import classify


@pytest.mark.parametrize(
    ("score", "expected"),
    [
        (0.0, Tier.BELOW),
        (24.999, Tier.BELOW),
        (25.0, Tier.THIRD),
        (49.99, Tier.THIRD),
        (50.0, Tier.SECOND),
        (74.99, Tier.SECOND),
        (75.0, Tier.BEST),
        (100.0, Tier.BEST),
    ],
)
def test_classify_boundaries(score: float, expected: Tier) -> None:
    assert classify(score) is expected


def test_tiers_are_ordered_best_first() -> None:
    assert [tier.value for tier in Tier] == ["best", "second", "third", "below"]
    assert Tier.BEST.rank < Tier.SECOND.rank < Tier.THIRD.rank < Tier.BELOW.rank
