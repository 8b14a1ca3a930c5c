"""Configuration store and JSON API for the grade bonus engine."""
from __future__ import annotations

from .application import create_app, is_valid_factor_key
from .persistence import (
    BonusFactorDefault,
    GradingSystemRow,
    QuickGradeRow,
    UserBonusFactor,
    create_db_engine,
    init_db,
    load_bonus_factors,
    load_grading_system,
)

__all__ = [
    "BonusFactorDefault",
    "GradingSystemRow",
    "QuickGradeRow",
    "UserBonusFactor",
    "create_app",
    "create_db_engine",
    "init_db",
    "is_valid_factor_key",
    "load_bonus_factors",
    "load_grading_system",
]
