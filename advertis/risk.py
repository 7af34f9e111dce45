"""Deterministic risk score from the structured risk audit (pillar R).

Replaces the generator's own ``risk_score`` estimate. Higher is riskier.

- micro_swot_risk (0-40): mean risk level of the micro-SWOTs
  (low=0, medium=0.5, high=1); 0.5 when there are none.
- probability_impact_risk (0-30): probability x impact per matrix item
  (levels 1-3, so 1-9 per item) against the 9-per-item maximum; 15 when empty.
- global_swot_balance (0-20): share of weaknesses+threats in the global SWOT;
  10 when the SWOT is empty.
- mitigation_coverage (0-10): penalty for high-risk micro-SWOTs not covered
  by a mitigation priority.
"""
from __future__ import annotations

from pydantic import BaseModel

from advertis.pillar_schemas import RiskAuditContent
from advertis.utils import round_half_up

RISK_LEVEL_VALUES = {"low": 0.0, "medium": 0.5, "high": 1.0}
PI_VALUES = {"low": 1, "medium": 2, "high": 3}
NEUTRAL_MICRO_RISK = 0.5
NEUTRAL_PI_SCORE = 15
NEUTRAL_BALANCE = 10


class RiskBreakdown(BaseModel):
    micro_swot_risk: int
    probability_impact_risk: int
    global_swot_balance: int
    mitigation_coverage: int
    total: int


def calculate_risk_score(data: RiskAuditContent) -> RiskBreakdown:
    micro = data.micro_swots
    if micro:
        avg = sum(RISK_LEVEL_VALUES.get(s.risk_level, NEUTRAL_MICRO_RISK) for s in micro) / len(micro)
    else:
        avg = NEUTRAL_MICRO_RISK
    micro_swot_risk = round_half_up(avg * 40)

    matrix = data.probability_impact_matrix
    if matrix:
        total_pi = sum(PI_VALUES.get(i.probability, 2) * PI_VALUES.get(i.impact, 2) for i in matrix)
        probability_impact_risk = round_half_up(total_pi / (len(matrix) * 9) * 30)
    else:
        probability_impact_risk = NEUTRAL_PI_SCORE

    gs = data.global_swot
    positives = len(gs.strengths) + len(gs.opportunities)
    negatives = len(gs.weaknesses) + len(gs.threats)
    swot_total = positives + negatives
    global_swot_balance = round_half_up(negatives / swot_total * 20) if swot_total else NEUTRAL_BALANCE

    high_risk = sum(1 for s in micro if s.risk_level == "high")
    mitigation_coverage = 0
    if high_risk:
        coverage = min(1.0, len(data.mitigation_priorities) / high_risk)
        mitigation_coverage = round_half_up((1 - coverage) * 10)

    total = micro_swot_risk + probability_impact_risk + global_swot_balance + mitigation_coverage
    return RiskBreakdown(
        micro_swot_risk=micro_swot_risk,
        probability_impact_risk=probability_impact_risk,
        global_swot_balance=global_swot_balance,
        mitigation_coverage=mitigation_coverage,
        total=min(100, total),
    )
