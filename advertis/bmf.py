"""Deterministic Brand-Market Fit score from the track audit (pillar T)."""
from __future__ import annotations

from pydantic import BaseModel

from advertis.pillar_schemas import TrackAuditContent
from advertis.utils import is_blank, round_half_up

# (field, points): additive presence tests
TRIANGULATION_POINTS = (("internal_data", 8), ("market_data", 8), ("customer_data", 5), ("synthesis", 4))
SIZING_POINTS = (("tam", 6), ("sam", 6), ("som", 4))
METHODOLOGY_POINTS = 4


class BmfBreakdown(BaseModel):
    triangulation_quality: int
    hypothesis_validation: int
    market_sizing: int
    competitive_differentiation: int
    total: int


def _present(value: str) -> bool:
    return not is_blank(value)


def calculate_brand_market_fit(data: TrackAuditContent) -> BmfBreakdown:
    tri = data.triangulation
    triangulation_quality = sum(pts for name, pts in TRIANGULATION_POINTS if _present(getattr(tri, name)))

    hyps = data.hypothesis_validation
    hypothesis_validation = 0
    if hyps:
        validated = sum(1 for h in hyps if h.status == "validated") / len(hyps)
        gap_penalty = sum(1 for h in hyps if h.status == "to_test") / len(hyps)
        hypothesis_validation = round_half_up(validated * 25 + (1 - gap_penalty) * 5)

    sizing = data.tam_sam_som
    market_sizing = sum(pts for name, pts in SIZING_POINTS if _present(getattr(sizing, name).value))
    if _present(sizing.methodology):
        market_sizing += METHODOLOGY_POINTS

    competitive = 0
    benchmarks = len(data.competitive_benchmark)
    if benchmarks >= 2:
        competitive += 10
    elif benchmarks == 1:
        competitive += 5
    recommendations = len(data.strategic_recommendations)
    if recommendations >= 3:
        competitive += 8
    elif recommendations >= 1:
        competitive += 4
    if data.market_reality.macro_trends:
        competitive += 4
    if data.market_reality.weak_signals:
        competitive += 3

    total = triangulation_quality + hypothesis_validation + market_sizing + competitive
    return BmfBreakdown(
        triangulation_quality=triangulation_quality,
        hypothesis_validation=hypothesis_validation,
        market_sizing=market_sizing,
        competitive_differentiation=competitive,
        total=min(100, total),
    )
