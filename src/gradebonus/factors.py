"""Bonus factor tables and the default/override merge rule."""

from __future__ import annotations

import re
from collections.abc import Mapping
from decimal import Decimal
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

from .exceptions import MissingFactorError
from .models import BonusFactor, FactorType

FactorKey = Tuple[str, str]

_RANGE_PATTERN = re.compile(r"^\s*(\d+)\s*-\s*(\d+)\s*$")
_SINGLE_PATTERN = re.compile(r"^\s*(?:class_)?(\d+)\s*$")


def _type_name(factor_type: str | FactorType) -> str:
    return factor_type.value if isinstance(factor_type, FactorType) else str(factor_type)


class EffectiveFactorTable(Mapping):
    """Read-only view of ``(factor_type, factor_key) -> value``.

    Lookups of absent keys raise :class:`~gradebonus.exceptions.MissingFactorError`.
    """

    __slots__ = ("_values",)

    def __init__(self, values: Optional[Dict[FactorKey, Decimal]] = None) -> None:
        self._values: Dict[FactorKey, Decimal] = dict(values or {})

    def __getitem__(self, key: FactorKey) -> Decimal:
        factor_type, factor_key = key
        try:
            return self._values[(_type_name(factor_type), factor_key)]
        except KeyError:
            raise MissingFactorError(_type_name(factor_type), factor_key) from None

    def __iter__(self) -> Iterator[FactorKey]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"EffectiveFactorTable({self._values!r})"

    def value(self, factor_type: str | FactorType, factor_key: Optional[str]) -> Decimal:
        if factor_key is None:
            raise MissingFactorError(_type_name(factor_type), factor_key)
        return self[(_type_name(factor_type), factor_key)]

    def keys_for(self, factor_type: str | FactorType) -> Tuple[str, ...]:
        name = _type_name(factor_type)
        return tuple(key for type_name, key in self._values if type_name == name)

    def as_dict(self) -> Dict[FactorKey, Decimal]:
        return dict(self._values)

    @classmethod
    def from_factors(cls, factors: Iterable[BonusFactor]) -> "EffectiveFactorTable":
        return cls({factor.key: factor.factor_value for factor in factors})


class BonusFactorResolver:
    """Merge global default factors with user or child scoped overrides."""

    @staticmethod
    def resolve(defaults: Iterable[BonusFactor], overrides: Iterable[BonusFactor] = ()) -> EffectiveFactorTable:
        """Seed from ``defaults`` and let each override replace its key outright.

        ``overrides`` must already be narrowed to a single scope by the caller.
        """

        merged: Dict[FactorKey, Decimal] = {}
        for factor in defaults:
            merged[factor.key] = factor.factor_value
        for factor in overrides:
            merged[factor.key] = factor.factor_value
        return EffectiveFactorTable(merged)

    @classmethod
    def resolve_scoped(
        cls,
        defaults: Iterable[BonusFactor],
        overrides: Iterable[BonusFactor],
        *,
        user_id: str,
        child_id: Optional[str] = None,
    ) -> EffectiveFactorTable:
        """Resolve with precedence child override > user override > default.

        Overrides belonging to other users or other children are ignored.
        """

        user_wide: List[BonusFactor] = []
        child_specific: List[BonusFactor] = []
        for factor in overrides:
            if factor.user_id != user_id:
                continue
            if factor.child_id is None:
                user_wide.append(factor)
            elif child_id is not None and factor.child_id == child_id:
                child_specific.append(factor)
        return cls.resolve(defaults, [*user_wide, *child_specific])


class LevelBuckets:
    """Map class levels onto the ``level_scaling`` keys a configuration defines.

    Keys are opaque strings; recognised shapes are ranges (``"5-8"``), single
    levels (``"7"``) and ``"class_7"``. Single levels win over ranges, and
    narrower ranges over wider ones. Unrecognised keys never match.
    """

    def __init__(self, keys: Iterable[str]) -> None:
        bands: List[Tuple[int, int, str]] = []
        for key in keys:
            single = _SINGLE_PATTERN.match(key)
            if single:
                level = int(single.group(1))
                bands.append((level, level, key))
                continue
            ranged = _RANGE_PATTERN.match(key)
            if ranged:
                low, high = sorted((int(ranged.group(1)), int(ranged.group(2))))
                bands.append((low, high, key))
        self._bands = sorted(bands, key=lambda band: (band[1] - band[0], band[0]))

    @staticmethod
    def recognises(key: str) -> bool:
        return bool(_SINGLE_PATTERN.match(key) or _RANGE_PATTERN.match(key))

    def __call__(self, class_level: int) -> Optional[str]:
        for low, high, key in self._bands:
            if low <= class_level <= high:
                return key
        return None

    @classmethod
    def from_table(cls, table: EffectiveFactorTable) -> "LevelBuckets":
        return cls(table.keys_for(FactorType.LEVEL_SCALING))


__all__ = ["BonusFactorResolver", "EffectiveFactorTable", "FactorKey", "LevelBuckets"]
