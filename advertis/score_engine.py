"""Unified score engine: single entry point for recalculating all strategy scores.

1. Load the strategy and its 8 pillars.
2. Parse every pillar's content into a type -> typed-content map.
3. Coherence always; Risk only if R is complete and parses; BMF only if T is.
4. Persist the coherence score and patch the deterministic Risk/BMF score
   into the R/T content (replacing the generator's own estimate).
5. Append a ScoreSnapshot for the evolution history.

A missing Risk or BMF score is ``None``, never 0.
"""
from __future__ import annotations

import logging
from enum import StrEnum
from typing import Any

from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from advertis.bmf import BmfBreakdown, calculate_brand_market_fit
from advertis.coherence import CoherenceBreakdown, get_coherence_breakdown
from advertis.errors import StrategyNotFoundError
from advertis.interview_schema import SchemaProvider, StaticSchemaProvider
from advertis.models import Pillar, PillarStatus, PillarType, ScoreSnapshot, Strategy
from advertis.parsers import ContentParser, PillarContentParser, parse_pillar_map
from advertis.pillar_schemas import RiskAuditContent, TrackAuditContent
from advertis.risk import RiskBreakdown, calculate_risk_score
from advertis.utils import json_parse

log = logging.getLogger(__name__)


class ScoreTrigger(StrEnum):
    PILLAR_UPDATE = "pillar_update"
    AUDIT_REVIEW = "audit_review"
    FICHE_REVIEW = "fiche_review"
    MANUAL = "manual"
    GENERATION = "generation"


class AllScores(BaseModel):
    coherence_score: int
    coherence_breakdown: CoherenceBreakdown
    risk_score: int | None = None
    risk_breakdown: RiskBreakdown | None = None
    bmf_score: int | None = None
    bmf_breakdown: BmfBreakdown | None = None


def _pillar_contents(pillars: list[Pillar]) -> dict[PillarType, Any]:
    contents: dict[PillarType, Any] = {}
    for p in pillars:
        try:
            contents[PillarType(p.type)] = p.content
        except ValueError:
            log.warning("Ignoring pillar %s with unknown type %r", p.id, p.type)
    return contents


def _completed_typed(pillar: Pillar | None, parser: ContentParser, model: type[BaseModel]) -> Any:
    if pillar is None or pillar.status != PillarStatus.COMPLETE or pillar.content is None:
        return None
    typed = parser.parse(PillarType(pillar.type), pillar.content).typed
    return typed if isinstance(typed, model) else None


def _patch_content(pillar: Pillar, updates: dict[str, Any]) -> None:
    """Overwrite the score keys of a pillar's content, leave every other key untouched."""
    content = pillar.content
    if isinstance(content, str):
        content = json_parse(content, {})
    if not isinstance(content, dict):
        content = {}
    pillar.content = {**content, **updates}


def _parent_map(session: Session, strategy: Strategy, parser: ContentParser) -> dict[PillarType, Any] | None:
    if strategy.parent_id is None:
        return None
    parent = session.get(Strategy, strategy.parent_id)
    if parent is None:
        return None
    return parse_pillar_map(parser, _pillar_contents(parent.pillars))


def recalculate_scores(
    session: Session,
    strategy_id: int,
    trigger: ScoreTrigger | str = ScoreTrigger.PILLAR_UPDATE,
    *,
    parser: ContentParser | None = None,
    schema: SchemaProvider | None = None,
) -> AllScores:
    """Recalculate and persist all scores for a strategy (commits)."""
    parser = parser or PillarContentParser()
    schema = schema or StaticSchemaProvider()
    trigger = ScoreTrigger(trigger)

    strategy = session.execute(select(Strategy).where(Strategy.id == strategy_id)).scalars().first()
    if strategy is None:
        raise StrategyNotFoundError(strategy_id)

    pillars = list(strategy.pillars)
    parsed = parse_pillar_map(parser, _pillar_contents(pillars))

    coherence = get_coherence_breakdown(
        pillars,
        strategy.interview_data,
        schema.current_variable_ids(),
        parsed,
        _parent_map(session, strategy, parser),
    )

    risk: RiskBreakdown | None = None
    r_pillar = strategy.pillar(PillarType.R)
    r_data = _completed_typed(r_pillar, parser, RiskAuditContent)
    if r_data is not None:
        risk = calculate_risk_score(r_data)

    bmf: BmfBreakdown | None = None
    t_pillar = strategy.pillar(PillarType.T)
    t_data = _completed_typed(t_pillar, parser, TrackAuditContent)
    if t_data is not None:
        bmf = calculate_brand_market_fit(t_data)

    strategy.coherence_score = coherence.total
    if risk is not None and r_pillar is not None:
        _patch_content(r_pillar, {"risk_score": risk.total, "risk_score_formula": risk.model_dump()})
    if bmf is not None and t_pillar is not None:
        _patch_content(t_pillar, {"brand_market_fit_score": bmf.total, "bmf_score_formula": bmf.model_dump()})
    session.commit()

    risk_score = risk.total if risk is not None else None
    bmf_score = bmf.total if bmf is not None else None
    try:
        session.add(ScoreSnapshot(
            strategy_id=strategy_id,
            coherence_score=coherence.total,
            risk_score=risk_score,
            bmf_score=bmf_score,
            trigger=trigger.value,
        ))
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        log.warning("Failed to record score snapshot for strategy %s: %s", strategy_id, exc)

    log.info(
        "Scores for strategy %s (%s): coherence=%s risk=%s bmf=%s",
        strategy_id, trigger.value, coherence.total, risk_score, bmf_score,
    )
    return AllScores(
        coherence_score=coherence.total,
        coherence_breakdown=coherence,
        risk_score=risk_score,
        risk_breakdown=risk,
        bmf_score=bmf_score,
        bmf_breakdown=bmf,
    )


def score_history(session: Session, strategy_id: int) -> list[ScoreSnapshot]:
    """Snapshots for a strategy, oldest first."""
    return list(session.execute(
        select(ScoreSnapshot).where(ScoreSnapshot.strategy_id == strategy_id).order_by(ScoreSnapshot.id)
    ).scalars())
