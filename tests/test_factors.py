from decimal import Decimal

import pytest

from gradebonus.exceptions import MissingFactorError
from gradebonus.factors import BonusFactorResolver, EffectiveFactorTable, LevelBuckets
from gradebonus.models import BonusFactor, FactorType


def sample_defaults() -> list[BonusFactor]:
    return [
        BonusFactor.default(FactorType.TIER_MULTIPLIER, "best", "1.5"),
        BonusFactor.default(FactorType.TIER_MULTIPLIER, "second", 1),
        BonusFactor.default(FactorType.CORE_SUBJECT_BONUS, "flat", 2),
        BonusFactor.default(FactorType.LEVEL_SCALING, "5-8", 1.0),
    ]


def test_resolve_without_overrides_returns_defaults() -> None:
    defaults = sample_defaults()

    table = BonusFactorResolver.resolve(defaults, [])

    assert table.as_dict() == {factor.key: factor.factor_value for factor in defaults}
    assert table == EffectiveFactorTable.from_factors(defaults)


def test_override_replaces_default_value() -> None:
    defaults = [BonusFactor.default("tier_multiplier", "best", "1.5")]
    overrides = [BonusFactor("tier_multiplier", "best", Decimal("2.0"), user_id="parent")]

    table = BonusFactorResolver.resolve(defaults, overrides)

    assert table[("tier_multiplier", "best")] == Decimal("2.0")


def test_override_leaves_other_keys_untouched() -> None:
    overrides = [BonusFactor("core_subject_bonus", "flat", Decimal("5"), user_id="parent")]

    table = BonusFactorResolver.resolve(sample_defaults(), overrides)

    assert table.value(FactorType.CORE_SUBJECT_BONUS, "flat") == Decimal("5")
    assert table.value(FactorType.TIER_MULTIPLIER, "best") == Decimal("1.5")
    assert len(table) == 4


def test_missing_lookup_raises_missing_factor() -> None:
    table = BonusFactorResolver.resolve(sample_defaults())

    with pytest.raises(MissingFactorError) as excinfo:
        table.value(FactorType.TIER_MULTIPLIER, "below")

    assert excinfo.value.factor_type == "tier_multiplier"
    assert excinfo.value.factor_key == "below"
    assert ("tier_multiplier", "below") not in table
    assert table.get(("tier_multiplier", "below")) is None
    with pytest.raises(MissingFactorError):
        table.value(FactorType.LEVEL_SCALING, None)


def test_scoped_resolution_prefers_child_then_user() -> None:
    defaults = [BonusFactor.default("tier_multiplier", "best", "1.5")]
    overrides = [
        BonusFactor("tier_multiplier", "best", Decimal("2.0"), user_id="mom"),
        BonusFactor("tier_multiplier", "best", Decimal("3.0"), user_id="mom", child_id="ava"),
        BonusFactor("tier_multiplier", "best", Decimal("4.0"), user_id="mom", child_id="ben"),
        BonusFactor("tier_multiplier", "best", Decimal("9.0"), user_id="dad"),
    ]
    key = ("tier_multiplier", "best")

    assert BonusFactorResolver.resolve_scoped(defaults, overrides, user_id="mom", child_id="ava")[key] == Decimal("3.0")
    assert BonusFactorResolver.resolve_scoped(defaults, overrides, user_id="mom", child_id="cleo")[key] == Decimal("2.0")
    assert BonusFactorResolver.resolve_scoped(defaults, overrides, user_id="mom")[key] == Decimal("2.0")
    assert BonusFactorResolver.resolve_scoped(defaults, overrides, user_id="gran")[key] == Decimal("1.5")


def test_factor_values_are_exact_decimals() -> None:
    factor = BonusFactor.default("level_scaling", "9-13", 1.1)

    assert factor.factor_value == Decimal("1.1")
    assert FactorType.CORE_SUBJECT_BONUS.fallback == Decimal("0")
    assert FactorType.TIER_MULTIPLIER.fallback == Decimal("1.0")


def test_child_override_requires_user() -> None:
    with pytest.raises(ValueError):
        BonusFactor("tier_multiplier", "best", Decimal("2"), child_id="ava")


def test_level_buckets_match_configured_ranges() -> None:
    buckets = LevelBuckets(["1-4", "5-8", "9-13", "senior"])

    assert buckets(1) == "1-4"
    assert buckets(7) == "5-8"
    assert buckets(13) == "9-13"
    assert buckets(14) is None


def test_level_buckets_prefer_single_levels() -> None:
    buckets = LevelBuckets(["5-8", "class_7", "1-13"])

    assert buckets(7) == "class_7"
    assert buckets(6) == "5-8"
    assert buckets(11) == "1-13"
    assert LevelBuckets.recognises("class_3")
    assert LevelBuckets.recognises("9-13")
    assert not LevelBuckets.recognises("senior")


def test_level_buckets_from_table() -> None:
    table = BonusFactorResolver.resolve(sample_defaults())

    assert LevelBuckets.from_table(table)(6) == "5-8"
