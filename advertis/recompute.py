"""Derived data refreshed after a regeneration: scores, budget tiers, widgets.

Each recomputer exposes ``async recompute(strategy_id)`` and opens its own
session, so it can run as detached background work.
"""
from __future__ import annotations

import logging
from typing import Any, Protocol

from sqlalchemy.orm import Session, sessionmaker

from advertis.db import session_scope
from advertis.diff import compute_diff
from advertis.interview_schema import SchemaProvider, StaticSchemaProvider
from advertis.models import PILLAR_ORDER, PillarStatus, PillarType
from advertis.parsers import ContentParser, PillarContentParser
from advertis.pillar_schemas import ImplementationContent
from advertis.score_engine import ScoreTrigger, recalculate_scores, score_history
from advertis.store import StrategyStore
from advertis.utils import is_blank, round_half_up

log = logging.getLogger(__name__)


class Recomputer(Protocol):
    async def recompute(self, strategy_id: int) -> None: ...


class ScoreRecomputer:
    def __init__(
        self,
        session_factory: sessionmaker[Session],
        trigger: ScoreTrigger = ScoreTrigger.GENERATION,
        schema: SchemaProvider | None = None,
    ):
        self.session_factory = session_factory
        self.trigger = trigger
        self.schema = schema

    async def recompute(self, strategy_id: int) -> None:
        with session_scope(self.session_factory) as session:
            recalculate_scores(session, strategy_id, self.trigger, schema=self.schema)


# ---------------------------------------------------------------------------
# Budget tiers
# ---------------------------------------------------------------------------

# (tier, min_budget, max_budget, description)
BUDGET_TIERS: tuple[tuple[str, int, int, str], ...] = (
    ("MICRO", 0, 1_000, "Organic presence on a single priority channel."),
    ("STARTER", 1_000, 5_000, "First paid tests on the two strongest channels."),
    ("IMPACT", 5_000, 20_000, "Sustained activation across the core channel mix."),
    ("CAMPAIGN", 20_000, 75_000, "Integrated campaigns with measurable reach targets."),
    ("DOMINATION", 75_000, 250_000, "Full-funnel presence on every relevant channel."),
)


def _channel_weights(impl: ImplementationContent) -> list[tuple[str, float]]:
    weights = [(c.channel.strip(), c.share) for c in impl.budget_allocation.channels
               if not is_blank(c.channel) and c.share > 0]
    if weights:
        return sorted(weights, key=lambda cw: cw[1], reverse=True)
    touchpoints = sorted((t for t in impl.touchpoints if not is_blank(t.channel)), key=lambda t: t.priority or 99)
    return [(t.channel.strip(), 1.0) for t in touchpoints]


def _allocate(channels: list[tuple[str, float]]) -> list[dict[str, Any]]:
    """Normalize weights to integer percentages summing to 100."""
    total = sum(w for _, w in channels)
    out: list[dict[str, Any]] = []
    remaining = 100
    for idx, (name, weight) in enumerate(channels):
        share = remaining if idx == len(channels) - 1 else round_half_up(weight / total * 100)
        share = min(share, remaining)
        remaining -= share
        out.append({"channel": name, "allocation": share})
    return out


def build_budget_tiers(impl: ImplementationContent | None) -> list[dict[str, Any]]:
    """Five progressive tiers; each tier opens one more channel than the previous."""
    channels = _channel_weights(impl) if impl is not None else []
    kpis = [{"kpi": k.name, "target": k.target} for k in (impl.kpis if impl else []) if not is_blank(k.name)]
    tiers = []
    for idx, (name, low, high, description) in enumerate(BUDGET_TIERS):
        count = len(channels) if idx == len(BUDGET_TIERS) - 1 else idx + 1
        tiers.append({
            "tier": name,
            "min_budget": low,
            "max_budget": high,
            "channels": _allocate(channels[:count]),
            "kpis": kpis[:idx + 1],
            "description": description,
        })
    return tiers


class BudgetTierRecomputer:
    def __init__(self, store: StrategyStore, parser: ContentParser | None = None):
        self.store = store
        self.parser = parser or PillarContentParser()

    async def recompute(self, strategy_id: int) -> None:
        strategy = self.store.load_strategy(strategy_id)
        pillar = strategy.pillar(PillarType.I)
        impl = None
        if pillar is not None and pillar.status == PillarStatus.COMPLETE:
            typed = self.parser.parse(PillarType.I, pillar.content).typed
            impl = typed if isinstance(typed, ImplementationContent) else None
        if impl is None:
            log.info("No implementation data for strategy %s, using static budget tiers", strategy_id)
        tiers = build_budget_tiers(impl)
        self.store.replace_budget_tiers(strategy_id, tiers)
        log.info("Regenerated %d budget tiers for strategy %s", len(tiers), strategy_id)


# ---------------------------------------------------------------------------
# Widgets
# ---------------------------------------------------------------------------


class WidgetRecomputer:
    """Cockpit metrics derived from pillar state, interview coverage and score history."""

    def __init__(self, store: StrategyStore, schema: SchemaProvider | None = None):
        self.store = store
        self.schema = schema or StaticSchemaProvider()

    def compute(self, strategy_id: int) -> dict[str, Any]:
        strategy = self.store.load_strategy(strategy_id)
        by_status: dict[str, int] = {}
        for p in strategy.pillars:
            by_status[p.status] = by_status.get(p.status, 0) + 1
        diff = compute_diff(strategy.interview_data, self.schema.current_variable_ids())
        with session_scope(self.store.session_factory) as session:
            history = [s.coherence_score for s in score_history(session, strategy_id)]
        return {
            "pillar_progress": {
                "complete": by_status.get(PillarStatus.COMPLETE.value, 0),
                "total": len(PILLAR_ORDER),
                "by_status": by_status,
            },
            "interview_coverage": {
                "filled": len(diff.filled_ids),
                "total": diff.total_schema_vars,
                "missing": diff.ids_to_fill,
            },
            "coherence_trend": {
                "history": history[-10:],
                "delta": history[-1] - history[-2] if len(history) >= 2 else 0,
            },
        }

    async def recompute(self, strategy_id: int) -> None:
        self.store.upsert_widgets(strategy_id, self.compute(strategy_id))
