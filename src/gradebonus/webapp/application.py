"""FastAPI application exposing the bonus calculator over JSON."""
from __future__ import annotations

from typing import Any, Dict, Iterator, List, Optional

from fastapi import Depends, FastAPI, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy.engine import Engine
from sqlmodel import Field, Session, SQLModel

from ..calculator import BonusCalculator
from ..exceptions import (
    AlreadySettledError,
    GradeBonusError,
    GradingSystemNotFoundError,
    InvalidGradeValueError,
    NothingToSettleError,
    QuickGradeNotFoundError,
)
from ..factors import BonusFactorResolver, EffectiveFactorTable, LevelBuckets
from ..models import NormalizedResult, RawGradeEntry, SkippedEntry
from ..money import to_factor
from ..ops import StructuredLogger
from ..service import resolve_grade_value
from .config import (
    LOG_FILE,
    MAX_CLASS_LEVEL,
    MAX_FACTOR_KEY_LENGTH,
    MIN_CLASS_LEVEL,
    VALID_FACTOR_TYPES,
    VALID_TERM_TYPE_KEYS,
    VALID_TIER_KEYS,
)
from .persistence import (
    create_db_engine,
    init_db,
    list_default_factors,
    list_grading_systems,
    list_quick_grades,
    list_user_factors,
    load_bonus_factors,
    load_grading_system,
    replace_user_factors,
    save_quick_grade,
    settle_quick_grades,
)

# ---------------------------------------------------------------------------
# Request bodies
# ---------------------------------------------------------------------------


class FactorIn(SQLModel):
    factor_type: str
    factor_key: str = Field(min_length=1, max_length=MAX_FACTOR_KEY_LENGTH)
    factor_value: float


class FactorsUpdate(SQLModel):
    user_id: str = Field(min_length=1)
    child_id: Optional[str] = None
    factors: List[FactorIn]


class QuickGradeIn(SQLModel):
    user_id: str = Field(min_length=1)
    child_id: str = Field(min_length=1)
    subject_id: str = Field(min_length=1)
    grading_system_id: str = Field(min_length=1)
    class_level: int = Field(ge=MIN_CLASS_LEVEL, le=MAX_CLASS_LEVEL)
    grade_value: str = Field(min_length=1)
    is_core_subject: bool = False
    note: Optional[str] = Field(default=None, max_length=200)


class SubjectGradeIn(SQLModel):
    subject_id: str = Field(min_length=1)
    grade_value: str
    is_core_subject: bool = False
    weight: float = Field(default=1.0, ge=0.1, le=10)


class TermGradeIn(SQLModel):
    user_id: str = Field(min_length=1)
    child_id: str = Field(min_length=1)
    grading_system_id: str = Field(min_length=1)
    class_level: int = Field(ge=MIN_CLASS_LEVEL, le=MAX_CLASS_LEVEL)
    term_type: Optional[str] = None
    school_year: str = ""
    subjects: List[SubjectGradeIn]


class SettleIn(SQLModel):
    child_id: str = Field(min_length=1)
    record_ids: Optional[List[str]] = None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def is_valid_factor_key(factor_type: str, factor_key: str) -> bool:
    if factor_type == "tier_multiplier":
        return factor_key in VALID_TIER_KEYS
    if factor_type == "core_subject_bonus":
        return factor_key == "flat"
    if factor_type == "level_scaling":
        return LevelBuckets.recognises(factor_key)
    if factor_type == "term_type":
        return factor_key in VALID_TERM_TYPE_KEYS
    return False


def _error(status_code: int, message: str, **extra: Any) -> JSONResponse:
    return JSONResponse({"success": False, "error": message, **extra}, status_code=status_code)


def _factor_payload(factor: Any) -> Dict[str, Any]:
    payload = {
        "factor_type": factor.factor_type,
        "factor_key": factor.factor_key,
        "factor_value": float(factor.factor_value),
    }
    if hasattr(factor, "child_id"):
        payload["child_id"] = factor.child_id
    return payload


def _table_payload(table: EffectiveFactorTable) -> List[Dict[str, Any]]:
    return [
        {"factor_type": factor_type, "factor_key": factor_key, "factor_value": float(value)}
        for (factor_type, factor_key), value in sorted(table.items())
    ]


def _result_payload(result: NormalizedResult) -> Dict[str, Any]:
    return {
        "subject_id": result.subject_id,
        "normalized": result.normalized,
        "tier": result.tier.value,
        "bonus": str(result.bonus),
        "missing_factors": [list(item) for item in result.missing_factors],
    }


def _skipped_payload(skipped: SkippedEntry) -> Dict[str, Any]:
    return {"index": skipped.index, "subject_id": skipped.subject_id, "value": skipped.value, "reason": skipped.reason}


def _effective_table(session: Session, user_id: str, child_id: Optional[str]) -> EffectiveFactorTable:
    defaults, overrides = load_bonus_factors(session, user_id, child_id)
    return BonusFactorResolver.resolve_scoped(defaults, overrides, user_id=user_id, child_id=child_id)


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------


def create_app(engine: Engine | None = None, *, logger: StructuredLogger | None = None) -> FastAPI:
    """Build the application, creating tables and seeding defaults on ``engine``."""

    engine = engine or create_db_engine()
    init_db(engine)
    app = FastAPI(title="Grade Bonus")
    app.state.engine = engine
    app.state.logger = logger or StructuredLogger(path=LOG_FILE)
    app.state.calculator = BonusCalculator(logger=app.state.logger)

    def get_session(request: Request) -> Iterator[Session]:
        with Session(request.app.state.engine, expire_on_commit=False) as session:
            yield session

    @app.exception_handler(GradeBonusError)
    async def handle_domain_error(_request: Request, exc: GradeBonusError) -> JSONResponse:
        if isinstance(exc, (GradingSystemNotFoundError, QuickGradeNotFoundError)):
            return _error(404, str(exc))
        if isinstance(exc, (AlreadySettledError, NothingToSettleError)):
            return _error(409, str(exc))
        if isinstance(exc, InvalidGradeValueError):
            return _error(422, str(exc), subject_id=exc.subject_id, reason=exc.reason)
        return _error(400, str(exc))

    @app.get("/api/config/calculator")
    def calculator_config(session: Session = Depends(get_session)) -> Dict[str, Any]:
        systems = [
            {
                "id": row.id,
                "code": row.code,
                "name": row.name,
                "scale_type": row.scale_type,
                "min_value": row.min_value,
                "max_value": row.max_value,
                "best_is_highest": row.best_is_highest,
            }
            for row in list_grading_systems(session)
        ]
        defaults = [_factor_payload(row) for row in list_default_factors(session)]
        return {"success": True, "grading_systems": systems, "defaults": defaults}

    @app.get("/api/settings/factors")
    def get_factors(
        user_id: str = Query(..., min_length=1),
        child_id: Optional[str] = Query(None),
        session: Session = Depends(get_session),
    ) -> Dict[str, Any]:
        child = child_id if child_id and child_id != "null" else None
        defaults = [_factor_payload(row) for row in list_default_factors(session)]
        overrides = [_factor_payload(row) for row in list_user_factors(session, user_id, child)]
        effective = _table_payload(_effective_table(session, user_id, child))
        return {"success": True, "defaults": defaults, "overrides": overrides, "effective": effective}

    @app.put("/api/settings/factors")
    def put_factors(payload: FactorsUpdate, session: Session = Depends(get_session)) -> Any:
        if not payload.factors:
            return _error(400, "At least one factor is required.")
        for factor in payload.factors:
            if factor.factor_type not in VALID_FACTOR_TYPES:
                return _error(400, f'Invalid factor type "{factor.factor_type}"')
            if not is_valid_factor_key(factor.factor_type, factor.factor_key):
                return _error(400, f'Invalid factor key "{factor.factor_key}" for type "{factor.factor_type}"')
        child = payload.child_id if payload.child_id and payload.child_id != "null" else None
        rows = replace_user_factors(
            session,
            payload.user_id,
            [(factor.factor_type, factor.factor_key, factor.factor_value) for factor in payload.factors],
            child_id=child,
        )
        app.state.logger.log("overrides_replaced", user=payload.user_id, child=child, count=len(rows))
        return {"success": True, "overrides": [_factor_payload(row) for row in rows]}

    @app.post("/api/grades/quick")
    def post_quick_grade(payload: QuickGradeIn, session: Session = Depends(get_session)) -> Dict[str, Any]:
        system = load_grading_system(session, payload.grading_system_id)
        table = _effective_table(session, payload.user_id, payload.child_id)
        entry = RawGradeEntry(
            subject_id=payload.subject_id,
            value=resolve_grade_value(system, payload.grade_value),
            is_core_subject=payload.is_core_subject,
            note=payload.note,
        )
        result = app.state.calculator.calculate_single_grade_bonus(system, table, payload.class_level, entry)
        row = save_quick_grade(
            session,
            user_id=payload.user_id,
            child_id=payload.child_id,
            grading_system_id=payload.grading_system_id,
            class_level=payload.class_level,
            subject_id=payload.subject_id,
            grade_value=payload.grade_value,
            result=result,
            note=payload.note,
        )
        app.state.logger.log(
            "quick_grade_recorded",
            child=payload.child_id,
            subject=payload.subject_id,
            tier=result.tier.value,
            bonus=float(result.bonus),
        )
        return {"success": True, "quick_grade": {"id": row.id, **_result_payload(result)}}

    @app.get("/api/grades/quick")
    def get_quick_grades(
        child_id: str = Query(..., min_length=1),
        unsettled: bool = Query(False),
        session: Session = Depends(get_session),
    ) -> Dict[str, Any]:
        rows = list_quick_grades(session, child_id, unsettled_only=unsettled)
        grades = [
            {
                "id": row.id,
                "subject_id": row.subject_id,
                "grade_value": row.grade_value,
                "normalized": row.grade_normalized_100,
                "tier": row.grade_quality_tier,
                "bonus": str(row.bonus),
                "settlement_status": row.settlement_status,
                "graded_at": row.graded_at.isoformat(),
            }
            for row in rows
        ]
        return {"success": True, "quick_grades": grades}

    @app.post("/api/grades/quick/settle")
    def post_settle(payload: SettleIn, session: Session = Depends(get_session)) -> Dict[str, Any]:
        settlement_id, amount, rows = settle_quick_grades(session, payload.child_id, payload.record_ids)
        app.state.logger.log("grades_settled", child=payload.child_id, records=len(rows), amount=float(amount))
        return {
            "success": True,
            "settlement": {"id": settlement_id, "amount": str(amount), "record_ids": [row.id for row in rows]},
        }

    @app.post("/api/grades/term")
    def post_term_grades(payload: TermGradeIn, session: Session = Depends(get_session)) -> Any:
        if payload.term_type is not None and payload.term_type not in VALID_TERM_TYPE_KEYS:
            return _error(400, f'Invalid term type "{payload.term_type}"')
        system = load_grading_system(session, payload.grading_system_id)
        table = _effective_table(session, payload.user_id, payload.child_id)
        entries = [
            RawGradeEntry(
                subject_id=subject.subject_id,
                value=resolve_grade_value(system, subject.grade_value),
                is_core_subject=subject.is_core_subject,
                weight=to_factor(subject.weight),
            )
            for subject in payload.subjects
        ]
        result = app.state.calculator.calculate_term_bonus(
            system, table, payload.class_level, entries, term_type=payload.term_type
        )
        return {
            "success": True,
            "total_bonus": str(result.total_bonus),
            "breakdown": [_result_payload(item) for item in result.per_entry],
            "skipped": [_skipped_payload(item) for item in result.skipped],
        }

    return app


__all__ = ["create_app", "is_valid_factor_key"]
