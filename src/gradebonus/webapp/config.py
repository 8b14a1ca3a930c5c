"""Configuration constants for the gradebonus web service."""
from __future__ import annotations

import os
from pathlib import Path
from typing import Dict, Optional, Tuple

from dotenv import load_dotenv

load_dotenv()

SQLITE_FILE_NAME = os.environ.get("GRADEBONUS_SQLITE", "gradebonus.db")
_LOG_FILE = os.environ.get("GRADEBONUS_LOG_FILE", "")
LOG_FILE: Optional[Path] = Path(_LOG_FILE) if _LOG_FILE else None

MIN_CLASS_LEVEL = 1
MAX_CLASS_LEVEL = 20

VALID_FACTOR_TYPES: Tuple[str, ...] = ("tier_multiplier", "core_subject_bonus", "level_scaling", "term_type")
VALID_TIER_KEYS: Tuple[str, ...] = ("best", "second", "third", "below")
VALID_TERM_TYPE_KEYS: Tuple[str, ...] = (
    "semester_1",
    "semester_2",
    "midterm",
    "final",
    "quarterly",
    "trimester",
)
MAX_FACTOR_KEY_LENGTH = 30

# (factor_type, factor_key) -> (value, description)
DEFAULT_BONUS_FACTORS: Dict[Tuple[str, str], Tuple[str, str]] = {
    ("tier_multiplier", "best"): ("2.0", "Top tier grades"),
    ("tier_multiplier", "second"): ("1.0", "Good grades"),
    ("tier_multiplier", "third"): ("0.5", "Satisfactory grades"),
    ("tier_multiplier", "below"): ("0.0", "No bonus below the third tier"),
    ("core_subject_bonus", "flat"): ("1.0", "Flat extra for core subjects"),
    ("level_scaling", "1-4"): ("1.0", "Primary school"),
    ("level_scaling", "5-8"): ("1.25", "Lower secondary"),
    ("level_scaling", "9-13"): ("1.5", "Upper secondary"),
    ("term_type", "semester_1"): ("1.0", "Half-year report"),
    ("term_type", "semester_2"): ("1.0", "End of year report"),
    ("term_type", "final"): ("1.5", "Final report"),
}

# system_id -> constructor arguments for GradingSystem
DEFAULT_GRADING_SYSTEMS: Dict[str, Dict[str, object]] = {
    "de_1_6": {
        "code": "DE",
        "name": "German school grades (1-6)",
        "scale_kind": "numeric",
        "min_value": 1,
        "max_value": 6,
        "best_is_highest": False,
    },
    "percentage": {
        "code": "PCT",
        "name": "Percentage",
        "scale_kind": "percentage",
        "min_value": 0,
        "max_value": 100,
        "best_is_highest": True,
    },
    "us_letter": {
        "code": "US",
        "name": "US letter grades",
        "scale_kind": "ordinal",
        "min_value": 0,
        "max_value": 4,
        "best_is_highest": True,
        "grade_definitions": {"A": 4, "B": 3, "C": 2, "D": 1, "F": 0},
    },
}

__all__ = [
    "SQLITE_FILE_NAME",
    "LOG_FILE",
    "MIN_CLASS_LEVEL",
    "MAX_CLASS_LEVEL",
    "VALID_FACTOR_TYPES",
    "VALID_TIER_KEYS",
    "VALID_TERM_TYPE_KEYS",
    "MAX_FACTOR_KEY_LENGTH",
    "DEFAULT_BONUS_FACTORS",
    "DEFAULT_GRADING_SYSTEMS",
]
