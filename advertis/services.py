"""Shared read-side logic for the Advertis API and MCP server."""
from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from advertis.diff import compute_diff
from advertis.errors import StrategyNotFoundError
from advertis.interview_schema import SchemaProvider, StaticSchemaProvider
from advertis.models import BudgetTier, Pillar, PillarVersion, ScoreSnapshot, Strategy, WidgetResult
from advertis.utils import json_parse

STRATEGY_FIELDS = (
    "id", "user_id", "brand_name", "sector", "tagline", "phase", "status",
    "coherence_score", "parent_id",
)

PILLAR_FIELDS = ("id", "type", "title", "order", "status", "summary", "error_message", "version")


# ---------------------------------------------------------------------------
# Serialization helpers
# ---------------------------------------------------------------------------


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def pillar_summary(pillar: Pillar, *, with_content: bool = True) -> dict:
    out = {f: getattr(pillar, f) for f in PILLAR_FIELDS}
    out["generated_at"] = _iso(pillar.generated_at)
    if with_content:
        out["content"] = pillar.content
    return out


def strategy_detail(strategy: Strategy, *, with_content: bool = True) -> dict:
    base = {f: getattr(strategy, f) for f in STRATEGY_FIELDS}
    base["generated_at"] = _iso(strategy.generated_at)
    base["interview_data"] = strategy.interview_data
    base["pillars"] = [pillar_summary(p, with_content=with_content) for p in strategy.pillars]
    return base


def snapshot_summary(snap: ScoreSnapshot) -> dict:
    return {
        "id": snap.id, "coherence_score": snap.coherence_score,
        "risk_score": snap.risk_score, "bmf_score": snap.bmf_score,
        "trigger": snap.trigger, "created_at": _iso(snap.created_at),
    }


def version_summary(ver: PillarVersion) -> dict:
    return {
        "id": ver.id, "version": ver.version, "summary": ver.summary,
        "source": ver.source, "change_note": ver.change_note,
        "created_by": ver.created_by, "created_at": _iso(ver.created_at),
        "content": ver.content,
    }


def budget_tier_summary(tier: BudgetTier) -> dict:
    return {
        "tier": tier.tier, "min_budget": tier.min_budget, "max_budget": tier.max_budget,
        "channels": json_parse(tier.channels_json, []),
        "kpis": json_parse(tier.kpis_json, []),
        "description": tier.description,
    }


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


def get_strategy(session: Session, strategy_id: int) -> Strategy:
    strategy = session.get(Strategy, strategy_id)
    if strategy is None:
        raise StrategyNotFoundError(strategy_id)
    return strategy


def strategy_diff(session: Session, strategy_id: int, schema: SchemaProvider | None = None) -> dict:
    """Gap report of a strategy's interview dataset against the current catalog."""
    schema = schema or StaticSchemaProvider()
    strategy = get_strategy(session, strategy_id)
    diff = compute_diff(strategy.interview_data, schema.current_variable_ids())
    return {"strategy_id": strategy_id, **diff.model_dump(), "ids_to_fill": diff.ids_to_fill}


def pillar_versions(session: Session, pillar_id: int) -> list[dict]:
    rows = session.execute(
        select(PillarVersion).where(PillarVersion.pillar_id == pillar_id).order_by(PillarVersion.id)
    ).scalars()
    return [version_summary(v) for v in rows]


def cockpit(session: Session, strategy_id: int) -> dict[str, Any]:
    """Latest derived rows: budget tiers and widget values."""
    get_strategy(session, strategy_id)
    tiers = session.execute(
        select(BudgetTier).where(BudgetTier.strategy_id == strategy_id).order_by(BudgetTier.min_budget)
    ).scalars()
    widgets = session.execute(
        select(WidgetResult).where(WidgetResult.strategy_id == strategy_id)
    ).scalars()
    return {
        "strategy_id": strategy_id,
        "budget_tiers": [budget_tier_summary(t) for t in tiers],
        "widgets": {w.widget_key: json_parse(w.value_json, {}) for w in widgets},
    }
