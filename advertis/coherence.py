"""Coherence score: how complete and internally consistent a strategy is.

Five weighted components, each rounded half-up and bounded by its maximum:

============================  ===  ==========================================
pillar_completion              25  completed pillars out of 8
variable_coverage              20  filled schema variables out of the schema
content_quality                15  completed pillars with non-trivial content
cross_pillar_alignment         25  7 fixed checks across the A/D/V/E pillars
audit_integration              15  up to 3 checks per present audit (R, T)
============================  ===  ==========================================

A check that cannot be evaluated because a sub-field is missing on either
side counts as failed. Audits that do not exist yet score 0 without a
penalty elsewhere.
"""
from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Protocol

from pydantic import BaseModel

from advertis.diff import compute_diff
from advertis.models import PILLAR_ORDER, PillarStatus, PillarType
from advertis.pillar_schemas import (
    AuthenticityContent, DistinctionContent, EngagementContent, RiskAuditContent,
    TrackAuditContent, ValueContent,
)
from advertis.utils import compact_json, is_blank, round_half_up

TOTAL_PILLARS = len(PILLAR_ORDER)
MIN_TEXT_LENGTH = 100
MIN_STRUCTURED_LENGTH = 20


class PillarLike(Protocol):
    type: str
    status: str
    content: Any


@dataclass
class PillarInput:
    type: str
    status: str
    content: Any = None


class CoherenceBreakdown(BaseModel):
    pillar_completion: int
    variable_coverage: int
    content_quality: int
    cross_pillar_alignment: int
    audit_integration: int
    total: int


ParsedMap = Mapping[PillarType, BaseModel]


# ---------------------------------------------------------------------------
# Cross-pillar alignment checks
# ---------------------------------------------------------------------------


def _set(text: str) -> bool:
    return not is_blank(text)


def _values_inform_voice(a: AuthenticityContent | None, d: DistinctionContent | None,
                         v: ValueContent | None, e: EngagementContent | None) -> bool:
    return a is not None and d is not None and bool(a.values) and _set(d.tone_of_voice.personality)


def _archetype_informs_positioning(a, d, v, e) -> bool:
    return a is not None and d is not None and _set(a.identity.archetype) and _set(d.positioning)


def _personas_inform_touchpoints(a, d, v, e) -> bool:
    return d is not None and e is not None and bool(d.personas) and bool(e.touchpoints)


def _promise_informs_customer_value(a, d, v, e) -> bool:
    if d is None or v is None or not _set(d.brand_promises.master_promise):
        return False
    cv = v.customer_value
    return bool(cv.functional or cv.emotional or cv.social)


def _personas_inform_product_ladder(a, d, v, e) -> bool:
    if d is None or v is None or not d.personas:
        return False
    return any(_set(tier.target) for tier in v.product_ladder)


def _unit_economics_inform_kpis(a, d, v, e) -> bool:
    if v is None or e is None:
        return False
    ue = v.unit_economics
    return (_set(ue.cac) or _set(ue.ltv)) and bool(e.kpis)


def _community_informs_gamification(a, d, v, e) -> bool:
    return a is not None and e is not None and bool(a.community_hierarchy) and bool(e.gamification)


ALIGNMENT_CHECKS: tuple[tuple[str, Callable[..., bool]], ...] = (
    ("values_inform_voice", _values_inform_voice),
    ("archetype_informs_positioning", _archetype_informs_positioning),
    ("personas_inform_touchpoints", _personas_inform_touchpoints),
    ("promise_informs_customer_value", _promise_informs_customer_value),
    ("personas_inform_product_ladder", _personas_inform_product_ladder),
    ("unit_economics_inform_kpis", _unit_economics_inform_kpis),
    ("community_informs_gamification", _community_informs_gamification),
)


def _fiche(ptype: PillarType, model: type[BaseModel], parsed: ParsedMap,
           parent: ParsedMap | None) -> Any:
    """Own pillar first, else the parent strategy's (sub-brands inherit)."""
    for source in (parsed, parent or {}):
        value = source.get(ptype)
        if isinstance(value, model):
            return value
    return None


def alignment_checks(parsed: ParsedMap, parent: ParsedMap | None = None) -> dict[str, bool]:
    a = _fiche(PillarType.A, AuthenticityContent, parsed, parent)
    d = _fiche(PillarType.D, DistinctionContent, parsed, parent)
    v = _fiche(PillarType.V, ValueContent, parsed, parent)
    e = _fiche(PillarType.E, EngagementContent, parsed, parent)
    return {name: bool(check(a, d, v, e)) for name, check in ALIGNMENT_CHECKS}


# ---------------------------------------------------------------------------
# Audit integration checks
# ---------------------------------------------------------------------------


def _risk_checks(r: RiskAuditContent) -> list[bool]:
    return [bool(r.micro_swots), bool(r.probability_impact_matrix), bool(r.mitigation_priorities)]


def _track_checks(t: TrackAuditContent) -> list[bool]:
    return [bool(t.hypothesis_validation), _set(t.tam_sam_som.tam.value), bool(t.competitive_benchmark)]


def audit_checks(parsed: ParsedMap) -> list[bool]:
    checks: list[bool] = []
    r = parsed.get(PillarType.R)
    if isinstance(r, RiskAuditContent):
        checks.extend(_risk_checks(r))
    t = parsed.get(PillarType.T)
    if isinstance(t, TrackAuditContent):
        checks.extend(_track_checks(t))
    return checks


# ---------------------------------------------------------------------------
# Component scores
# ---------------------------------------------------------------------------


def is_non_trivial(content: Any) -> bool:
    if content is None:
        return False
    if isinstance(content, str):
        return len(content) >= MIN_TEXT_LENGTH
    return len(compact_json(content)) >= MIN_STRUCTURED_LENGTH


def _completed(pillars: Sequence[PillarLike]) -> list[PillarLike]:
    return [p for p in pillars if p.status == PillarStatus.COMPLETE]


def get_coherence_breakdown(
    pillars: Sequence[PillarLike],
    interview_data: Mapping[str, str | None] | None,
    schema_ids: Sequence[str],
    parsed: ParsedMap,
    parent_parsed: ParsedMap | None = None,
) -> CoherenceBreakdown:
    """Compute the 5-component coherence breakdown. Never raises on missing data."""
    completed = _completed(pillars)

    completed_count = min(len(completed), TOTAL_PILLARS)
    pillar_completion = round_half_up(completed_count / TOTAL_PILLARS * 25)

    diff = compute_diff(interview_data, schema_ids)
    variable_coverage = 0
    if diff.total_schema_vars > 0:
        variable_coverage = round_half_up(len(diff.filled_ids) / diff.total_schema_vars * 20)

    non_trivial = min(sum(1 for p in completed if is_non_trivial(p.content)), TOTAL_PILLARS)
    content_quality = round_half_up(non_trivial / TOTAL_PILLARS * 15)

    checks = alignment_checks(parsed, parent_parsed)
    cross_pillar_alignment = round_half_up(sum(checks.values()) / len(checks) * 25)

    audits = audit_checks(parsed)
    audit_integration = round_half_up(sum(audits) / len(audits) * 15) if audits else 0

    total = pillar_completion + variable_coverage + content_quality + cross_pillar_alignment + audit_integration
    return CoherenceBreakdown(
        pillar_completion=pillar_completion,
        variable_coverage=variable_coverage,
        content_quality=content_quality,
        cross_pillar_alignment=cross_pillar_alignment,
        audit_integration=audit_integration,
        total=min(total, 100),
    )
