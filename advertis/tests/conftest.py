from __future__ import annotations

import copy

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from advertis.models import Base, PillarType

# Content for every pillar that passes all 7 alignment checks and all 6 audit checks
FULL_CONTENT: dict[PillarType, dict] = {
    PillarType.A: {
        "identity": {"archetype": "Sage", "founding_quote": "Know your bread.",
                     "core_identity": "Artisan bakery for curious eaters"},
        "values": [{"value": "Craft", "rank": 1, "justification": "Everything by hand"}],
        "community_hierarchy": [{"level": 1, "name": "Regular", "description": "Comes weekly"}],
    },
    PillarType.D: {
        "personas": [{"name": "Ana", "demographics": "30, urban", "priority": 1}],
        "brand_promises": {"master_promise": "Bread worth waiting for"},
        "positioning": "The slow bakery in a fast city",
        "tone_of_voice": {"personality": "Warm and precise", "we_say": ["crumb"]},
    },
    PillarType.V: {
        "product_ladder": [{"tier": "Entry", "price": "4 EUR", "target": "Ana"}],
        "customer_value": {"functional": ["Fresh every morning"], "emotional": ["Ritual"]},
        "unit_economics": {"cac": "12 EUR", "ltv": "240 EUR", "ratio": "20"},
    },
    PillarType.E: {
        "touchpoints": [{"channel": "Instagram", "role": "Inspire", "priority": 1},
                        {"channel": "Newsletter", "role": "Retain", "priority": 2}],
        "gamification": [{"level": 1, "name": "Crumb", "condition": "5 visits", "reward": "Free bun"}],
        "aarrr": {"acquisition": "Neighbourhood tastings"},
        "kpis": [{"name": "Weekly regulars", "target": "300"}, {"name": "NPS", "target": "60"}],
    },
    PillarType.R: {
        "micro_swots": [{"variable_id": "A1", "risk_level": "low", "strengths": ["Known founder"]}],
        "global_swot": {"strengths": ["Quality"], "weaknesses": ["Capacity"]},
        "risk_score": 70,
        "probability_impact_matrix": [{"risk": "Flour price", "probability": "medium", "impact": "low"}],
        "mitigation_priorities": [{"risk": "Flour price", "action": "Forward contracts"}],
        "summary": "Manageable",
    },
    PillarType.T: {
        "triangulation": {"internal_data": "Sales log", "market_data": "Bakery census",
                          "customer_data": "Survey", "synthesis": "Demand exceeds supply"},
        "hypothesis_validation": [{"hypothesis": "People pay for slow bread", "status": "validated"}],
        "market_reality": {"macro_trends": ["Artisan food"], "weak_signals": ["Sourdough clubs"]},
        "tam_sam_som": {"tam": {"value": "2B EUR"}, "sam": {"value": "80M EUR"},
                        "som": {"value": "1M EUR"}, "methodology": "Top-down"},
        "competitive_benchmark": [{"competitor": "ChainBake"}, {"competitor": "Corner Shop"}],
        "brand_market_fit_score": 10,
        "strategic_recommendations": ["Open a second oven", "Subscriptions", "Workshops"],
        "summary": "Strong fit",
    },
    PillarType.I: {
        "executive_summary": "Grow regulars before opening a second site.",
        "touchpoints": [{"channel": "Instagram", "priority": 1}, {"channel": "Newsletter", "priority": 2}],
        "kpis": [{"name": "Weekly regulars", "target": "300"}],
        "budget_allocation": {"global_envelope": "20k EUR",
                              "channels": [{"channel": "Instagram", "share": 60},
                                           {"channel": "Newsletter", "share": 40}]},
    },
    PillarType.S: {
        "executive_synthesis": "A coherent, defensible artisan brand.",
        "key_strengths": ["Craft"],
        "next_steps": ["Hire a second baker"],
    },
}


@pytest.fixture()
def full_contents() -> dict[PillarType, dict]:
    return copy.deepcopy(FULL_CONTENT)


@pytest.fixture()
def engine():
    eng = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(eng)
    return eng


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture()
def session(session_factory):
    sess = session_factory()
    try:
        yield sess
    finally:
        sess.close()
