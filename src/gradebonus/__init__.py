"""Grade normalization and bonus calculation for family reward portals."""

from .calculator import BonusCalculator
from .exceptions import (
    AlreadySettledError,
    DegenerateScaleError,
    GradeBonusError,
    GradingSystemNotFoundError,
    InvalidGradeValueError,
    MissingFactorError,
    NothingToSettleError,
    QuickGradeNotFoundError,
)
from .factors import BonusFactorResolver, EffectiveFactorTable, LevelBuckets
from .models import (
    BonusFactor,
    FactorType,
    GradingSystem,
    NormalizedResult,
    QuickGradeRecord,
    RawGradeEntry,
    ScaleKind,
    Settlement,
    SettlementStatus,
    SkippedEntry,
    TermBonusResult,
    TermGradeRecord,
    Tier,
)
from .normalizer import convert_normalized_to_scale, normalize
from .ops import StructuredLogger
from .service import GradeBonusService, resolve_grade_value
from .tiers import classify

__all__ = [
    "AlreadySettledError",
    "BonusCalculator",
    "BonusFactor",
    "BonusFactorResolver",
    "DegenerateScaleError",
    "EffectiveFactorTable",
    "FactorType",
    "GradeBonusError",
    "GradeBonusService",
    "GradingSystem",
    "GradingSystemNotFoundError",
    "InvalidGradeValueError",
    "LevelBuckets",
    "MissingFactorError",
    "NormalizedResult",
    "NothingToSettleError",
    "QuickGradeNotFoundError",
    "QuickGradeRecord",
    "RawGradeEntry",
    "ScaleKind",
    "Settlement",
    "SettlementStatus",
    "SkippedEntry",
    "StructuredLogger",
    "TermBonusResult",
    "TermGradeRecord",
    "Tier",
    "classify",
    "convert_normalized_to_scale",
    "normalize",
    "resolve_grade_value",
]
