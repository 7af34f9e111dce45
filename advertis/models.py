from __future__ import annotations

import json
from datetime import datetime
from enum import StrEnum
from typing import Any

from sqlalchemy import (
    DateTime, ForeignKey, Integer, String, Text, UniqueConstraint, event, func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from advertis.utils import json_parse


class PillarType(StrEnum):
    """The 8 canonical pillars, in generation order."""
    A = "A"  # Authenticite
    D = "D"  # Distinction
    V = "V"  # Valeur
    E = "E"  # Engagement
    R = "R"  # Risk audit
    T = "T"  # Track (market validation) audit
    I = "I"  # Implementation  # noqa: E741
    S = "S"  # Synthese


PILLAR_ORDER: tuple[PillarType, ...] = tuple(PillarType)
FICHE_TYPES: tuple[PillarType, ...] = (PillarType.A, PillarType.D, PillarType.V, PillarType.E)

PILLAR_TITLES: dict[PillarType, str] = {
    PillarType.A: "Authenticite",
    PillarType.D: "Distinction",
    PillarType.V: "Valeur",
    PillarType.E: "Engagement",
    PillarType.R: "Risk",
    PillarType.T: "Track",
    PillarType.I: "Implementation",
    PillarType.S: "Strategie",
}


def assert_exhaustive(table: dict[PillarType, Any], name: str) -> dict[PillarType, Any]:
    """Fail at import time if a per-pillar dispatch table misses a pillar type."""
    missing = set(PillarType) - set(table)
    if missing:
        raise RuntimeError(f"{name} has no entry for pillar(s) {sorted(missing)}")
    return table


class PillarStatus(StrEnum):
    IDLE = "idle"
    GENERATING = "generating"
    COMPLETE = "complete"
    ERROR = "error"


class Base(DeclarativeBase):
    pass


def _dump_content(content: Any) -> str | None:
    return None if content is None else json.dumps(content, ensure_ascii=False)


def _load_content(raw: str | None) -> Any:
    if raw is None:
        return None
    # Legacy rows may hold plain markdown rather than JSON
    return json_parse(raw, raw)


class Strategy(Base):
    __tablename__ = "strategies"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(100), nullable=False)
    brand_name: Mapped[str] = mapped_column(String(300), nullable=False)
    sector: Mapped[str] = mapped_column(String(200), default="")
    tagline: Mapped[str] = mapped_column(String(500), default="")
    phase: Mapped[str] = mapped_column(String(30), default="fiche")  # fiche | audit | implementation | complete
    status: Mapped[str] = mapped_column(String(30), default="draft")
    coherence_score: Mapped[int] = mapped_column(Integer, default=0)
    interview_data_json: Mapped[str] = mapped_column(Text, default="{}")
    parent_id: Mapped[int | None] = mapped_column(Integer, ForeignKey("strategies.id"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    generated_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    pillars: Mapped[list[Pillar]] = relationship(
        "Pillar", back_populates="strategy", cascade="all, delete-orphan", order_by="Pillar.order",
    )
    snapshots: Mapped[list[ScoreSnapshot]] = relationship(
        "ScoreSnapshot", back_populates="strategy", cascade="all, delete-orphan",
        order_by="ScoreSnapshot.id",
    )
    budget_tiers: Mapped[list[BudgetTier]] = relationship(
        "BudgetTier", back_populates="strategy", cascade="all, delete-orphan",
    )
    widgets: Mapped[list[WidgetResult]] = relationship(
        "WidgetResult", back_populates="strategy", cascade="all, delete-orphan",
    )

    @property
    def interview_data(self) -> dict[str, str]:
        data = json_parse(self.interview_data_json, {})
        return data if isinstance(data, dict) else {}

    @interview_data.setter
    def interview_data(self, value: dict[str, str]) -> None:
        self.interview_data_json = json.dumps(value, ensure_ascii=False)

    def pillar(self, pillar_type: PillarType | str) -> Pillar | None:
        return next((p for p in self.pillars if p.type == pillar_type), None)


class Pillar(Base):
    __tablename__ = "pillars"
    __table_args__ = (UniqueConstraint("strategy_id", "type", name="uq_pillar_strategy_type"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    strategy_id: Mapped[int] = mapped_column(Integer, ForeignKey("strategies.id"), nullable=False)
    type: Mapped[str] = mapped_column(String(1), nullable=False)
    title: Mapped[str] = mapped_column(String(100), default="")
    order: Mapped[int] = mapped_column(Integer, default=0)
    status: Mapped[str] = mapped_column(String(20), default=PillarStatus.IDLE.value)
    content_json: Mapped[str | None] = mapped_column(Text, nullable=True)
    summary: Mapped[str] = mapped_column(Text, default="")
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    version: Mapped[int] = mapped_column(Integer, default=1)
    generated_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    strategy: Mapped[Strategy] = relationship("Strategy", back_populates="pillars")
    versions: Mapped[list[PillarVersion]] = relationship(
        "PillarVersion", back_populates="pillar", cascade="all, delete-orphan",
        order_by="PillarVersion.id",
    )

    @property
    def content(self) -> Any:
        return _load_content(self.content_json)

    @content.setter
    def content(self, value: Any) -> None:
        self.content_json = _dump_content(value)


class PillarVersion(Base):
    """Immutable snapshot of a pillar's content taken before an overwrite."""
    __tablename__ = "pillar_versions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    pillar_id: Mapped[int] = mapped_column(Integer, ForeignKey("pillars.id"), nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    content_json: Mapped[str] = mapped_column(Text, nullable=False)
    summary: Mapped[str] = mapped_column(Text, default="")
    source: Mapped[str] = mapped_column(String(30), default="regeneration")  # regeneration | manual_edit
    change_note: Mapped[str] = mapped_column(String(300), default="")
    created_by: Mapped[str] = mapped_column(String(100), default="")
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    pillar: Mapped[Pillar] = relationship("Pillar", back_populates="versions")

    @property
    def content(self) -> Any:
        return _load_content(self.content_json)


@event.listens_for(PillarVersion, "before_update")
def _reject_version_update(mapper, connection, target: PillarVersion) -> None:
    raise ValueError(f"PillarVersion {target.id} is immutable")


class ScoreSnapshot(Base):
    __tablename__ = "score_snapshots"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    strategy_id: Mapped[int] = mapped_column(Integer, ForeignKey("strategies.id"), nullable=False)
    coherence_score: Mapped[int] = mapped_column(Integer, nullable=False)
    risk_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    bmf_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    trigger: Mapped[str] = mapped_column(String(30), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    strategy: Mapped[Strategy] = relationship("Strategy", back_populates="snapshots")


@event.listens_for(ScoreSnapshot, "before_update")
def _reject_snapshot_update(mapper, connection, target: ScoreSnapshot) -> None:
    raise ValueError(f"ScoreSnapshot {target.id} is append-only")


class BudgetTier(Base):
    __tablename__ = "budget_tiers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    strategy_id: Mapped[int] = mapped_column(Integer, ForeignKey("strategies.id"), nullable=False)
    tier: Mapped[str] = mapped_column(String(30), nullable=False)  # MICRO | STARTER | IMPACT | CAMPAIGN | DOMINATION
    min_budget: Mapped[int] = mapped_column(Integer, default=0)
    max_budget: Mapped[int] = mapped_column(Integer, default=0)
    channels_json: Mapped[str] = mapped_column(Text, default="[]")
    kpis_json: Mapped[str] = mapped_column(Text, default="[]")
    description: Mapped[str] = mapped_column(Text, default="")

    strategy: Mapped[Strategy] = relationship("Strategy", back_populates="budget_tiers")


class WidgetResult(Base):
    __tablename__ = "widget_results"
    __table_args__ = (UniqueConstraint("strategy_id", "widget_key", name="uq_widget_strategy_key"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    strategy_id: Mapped[int] = mapped_column(Integer, ForeignKey("strategies.id"), nullable=False)
    widget_key: Mapped[str] = mapped_column(String(50), nullable=False)
    value_json: Mapped[str] = mapped_column(Text, default="{}")
    computed_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    strategy: Mapped[Strategy] = relationship("Strategy", back_populates="widgets")
