"""Persistence and SQLModel definitions for the gradebonus web service."""
from __future__ import annotations

import json
from datetime import datetime
from decimal import Decimal
from typing import Any, Iterable, List, Optional, Sequence, Tuple
from uuid import uuid4

from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool
from sqlmodel import Field, Session, SQLModel, create_engine, select

from ..exceptions import (
    AlreadySettledError,
    GradingSystemNotFoundError,
    NothingToSettleError,
    QuickGradeNotFoundError,
)
from ..models import BonusFactor, GradingSystem, NormalizedResult, ScaleKind, SettlementStatus
from ..money import ZERO, round2, to_factor
from .config import DEFAULT_BONUS_FACTORS, DEFAULT_GRADING_SYSTEMS, SQLITE_FILE_NAME

# ---------------------------------------------------------------------------
# Database models
# ---------------------------------------------------------------------------


class GradingSystemRow(SQLModel, table=True):
    id: str = Field(primary_key=True)
    code: str = ""
    name: str = ""
    scale_type: str = ScaleKind.NUMERIC.value  # numeric|ordinal|percentage
    best_is_highest: bool = True
    min_value: float = 0.0
    max_value: float = 100.0
    grade_definitions: Optional[str] = None  # JSON object grade -> position
    display_order: int = 0
    is_active: bool = True
    created_at: datetime = Field(default_factory=datetime.utcnow)


class BonusFactorDefault(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    factor_type: str
    factor_key: str
    factor_value: float
    description: Optional[str] = None
    is_active: bool = True
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class UserBonusFactor(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(index=True)
    child_id: Optional[str] = Field(default=None, index=True)
    factor_type: str
    factor_key: str
    factor_value: float
    created_at: datetime = Field(default_factory=datetime.utcnow)


class QuickGradeRow(SQLModel, table=True):
    id: str = Field(default_factory=lambda: str(uuid4()), primary_key=True)
    user_id: str
    child_id: str = Field(index=True)
    subject_id: str
    grading_system_id: str
    class_level: int
    grade_value: str
    grade_normalized_100: float
    grade_quality_tier: str
    bonus_cents: int
    note: Optional[str] = None
    settlement_status: str = SettlementStatus.UNSETTLED.value  # unsettled|settled
    settlement_id: Optional[str] = None
    graded_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def bonus(self) -> Decimal:
        return round2(Decimal(self.bonus_cents) / 100)


# ---------------------------------------------------------------------------
# Engine helpers
# ---------------------------------------------------------------------------


def create_db_engine(url: Optional[str] = None) -> Engine:
    """Create an engine for ``url`` (defaults to the configured SQLite file)."""

    if url is None:
        url = f"sqlite:///{SQLITE_FILE_NAME}"
    kwargs: dict[str, Any] = {"echo": False}
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if url in {"sqlite://", "sqlite:///:memory:"}:
            kwargs["poolclass"] = StaticPool
    return create_engine(url, **kwargs)


def init_db(engine: Engine, *, seed: bool = True) -> None:
    SQLModel.metadata.create_all(engine)
    if seed:
        with Session(engine) as session:
            seed_defaults(session)


def seed_defaults(session: Session) -> None:
    """Insert the configured grading systems and default factors when missing."""

    for system_id, spec in DEFAULT_GRADING_SYSTEMS.items():
        if session.get(GradingSystemRow, system_id) is not None:
            continue
        definitions = spec.get("grade_definitions")
        session.add(
            GradingSystemRow(
                id=system_id,
                code=str(spec.get("code", "")),
                name=str(spec.get("name", "")),
                scale_type=str(spec.get("scale_kind", ScaleKind.NUMERIC.value)),
                best_is_highest=bool(spec.get("best_is_highest", True)),
                min_value=float(spec["min_value"]),  # type: ignore[arg-type]
                max_value=float(spec["max_value"]),  # type: ignore[arg-type]
                grade_definitions=json.dumps(definitions) if definitions else None,
            )
        )
    has_defaults = session.exec(select(BonusFactorDefault)).first() is not None
    if not has_defaults:
        for (factor_type, factor_key), (value, description) in DEFAULT_BONUS_FACTORS.items():
            session.add(
                BonusFactorDefault(
                    factor_type=factor_type,
                    factor_key=factor_key,
                    factor_value=float(value),
                    description=description,
                )
            )
    session.commit()


# ---------------------------------------------------------------------------
# Row -> engine model conversion
# ---------------------------------------------------------------------------


def row_to_grading_system(row: GradingSystemRow) -> GradingSystem:
    definitions = json.loads(row.grade_definitions) if row.grade_definitions else {}
    return GradingSystem(
        system_id=row.id,
        min_value=row.min_value,
        max_value=row.max_value,
        best_is_highest=row.best_is_highest,
        scale_kind=ScaleKind(row.scale_type),
        code=row.code,
        name=row.name,
        grade_definitions=definitions,
    )


def load_grading_system(session: Session, system_id: str) -> GradingSystem:
    row = session.get(GradingSystemRow, system_id)
    if row is None or not row.is_active:
        raise GradingSystemNotFoundError(f"Grading system '{system_id}' does not exist.")
    return row_to_grading_system(row)


def list_grading_systems(session: Session) -> List[GradingSystemRow]:
    statement = (
        select(GradingSystemRow)
        .where(GradingSystemRow.is_active == True)  # noqa: E712
        .order_by(GradingSystemRow.display_order, GradingSystemRow.id)
    )
    return list(session.exec(statement).all())


def list_default_factors(session: Session) -> List[BonusFactorDefault]:
    statement = (
        select(BonusFactorDefault)
        .where(BonusFactorDefault.is_active == True)  # noqa: E712
        .order_by(BonusFactorDefault.factor_type, BonusFactorDefault.factor_key)
    )
    return list(session.exec(statement).all())


def list_user_factors(session: Session, user_id: str, child_id: Optional[str] = None) -> List[UserBonusFactor]:
    statement = select(UserBonusFactor).where(UserBonusFactor.user_id == user_id)
    if child_id is None:
        statement = statement.where(UserBonusFactor.child_id == None)  # noqa: E711
    else:
        statement = statement.where(UserBonusFactor.child_id == child_id)
    return list(session.exec(statement.order_by(UserBonusFactor.factor_type, UserBonusFactor.factor_key)).all())


def load_bonus_factors(
    session: Session, user_id: str, child_id: Optional[str] = None
) -> Tuple[List[BonusFactor], List[BonusFactor]]:
    """Return ``(defaults, overrides)`` for a user, including child overrides."""

    defaults = [
        BonusFactor(row.factor_type, row.factor_key, to_factor(row.factor_value), description=row.description or "")
        for row in list_default_factors(session)
    ]
    rows = list_user_factors(session, user_id)
    if child_id is not None:
        rows.extend(list_user_factors(session, user_id, child_id))
    overrides = [
        BonusFactor(row.factor_type, row.factor_key, to_factor(row.factor_value), user_id=row.user_id, child_id=row.child_id)
        for row in rows
    ]
    return defaults, overrides


def replace_user_factors(
    session: Session,
    user_id: str,
    factors: Iterable[Tuple[str, str, float]],
    *,
    child_id: Optional[str] = None,
) -> List[UserBonusFactor]:
    """Delete the overrides of one ``(user, child)`` scope and insert ``factors``."""

    for row in list_user_factors(session, user_id, child_id):
        session.delete(row)
    created = [
        UserBonusFactor(
            user_id=user_id,
            child_id=child_id,
            factor_type=factor_type,
            factor_key=factor_key,
            factor_value=float(value),
        )
        for factor_type, factor_key, value in factors
    ]
    session.add_all(created)
    session.commit()
    return created


# ---------------------------------------------------------------------------
# Quick grades
# ---------------------------------------------------------------------------


def save_quick_grade(
    session: Session,
    *,
    user_id: str,
    child_id: str,
    grading_system_id: str,
    class_level: int,
    subject_id: str,
    grade_value: str,
    result: NormalizedResult,
    note: Optional[str] = None,
) -> QuickGradeRow:
    row = QuickGradeRow(
        user_id=user_id,
        child_id=child_id,
        subject_id=subject_id,
        grading_system_id=grading_system_id,
        class_level=class_level,
        grade_value=grade_value,
        grade_normalized_100=result.normalized,
        grade_quality_tier=result.tier.value,
        bonus_cents=int(result.bonus * 100),
        note=note,
    )
    session.add(row)
    session.commit()
    session.refresh(row)
    return row


def list_quick_grades(session: Session, child_id: str, *, unsettled_only: bool = False) -> List[QuickGradeRow]:
    statement = select(QuickGradeRow).where(QuickGradeRow.child_id == child_id)
    if unsettled_only:
        statement = statement.where(QuickGradeRow.settlement_status == SettlementStatus.UNSETTLED.value)
    return list(session.exec(statement.order_by(QuickGradeRow.graded_at)).all())


def settle_quick_grades(
    session: Session, child_id: str, record_ids: Optional[Sequence[str]] = None
) -> Tuple[str, Decimal, List[QuickGradeRow]]:
    """Mark quick grades settled; returns ``(settlement_id, amount, rows)``."""

    if record_ids is None:
        rows = list_quick_grades(session, child_id, unsettled_only=True)
    else:
        rows = []
        for record_id in dict.fromkeys(record_ids):
            row = session.get(QuickGradeRow, record_id)
            if row is None or row.child_id != child_id:
                raise QuickGradeNotFoundError(f"Quick grade '{record_id}' does not exist.")
            if row.settlement_status == SettlementStatus.SETTLED.value:
                raise AlreadySettledError(f"Quick grade '{record_id}' is already settled.")
            rows.append(row)
    if not rows:
        raise NothingToSettleError(f"No unsettled quick grades to settle for '{child_id}'.")

    settlement_id = str(uuid4())
    for row in rows:
        row.settlement_status = SettlementStatus.SETTLED.value
        row.settlement_id = settlement_id
        session.add(row)
    session.commit()
    amount = round2(sum((row.bonus for row in rows), ZERO))
    return settlement_id, amount, rows


__all__ = [
    "GradingSystemRow",
    "BonusFactorDefault",
    "UserBonusFactor",
    "QuickGradeRow",
    "create_db_engine",
    "init_db",
    "seed_defaults",
    "row_to_grading_system",
    "load_grading_system",
    "list_grading_systems",
    "list_default_factors",
    "list_user_factors",
    "load_bonus_factors",
    "replace_user_factors",
    "save_quick_grade",
    "list_quick_grades",
    "settle_quick_grades",
]
