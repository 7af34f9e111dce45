"""Typed content models for the 8 pillars.

Generated content is schema-less JSON; these models describe the shape the
generator is asked for. Every field has a default so a partial document still
validates, ``None`` falls back to the default and extra keys are ignored.
"""
from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

from advertis.models import PillarType, assert_exhaustive

Level = Literal["low", "medium", "high"]
HypothesisStatus = Literal["validated", "invalidated", "to_test"]


class Lenient(BaseModel):
    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    @field_validator("*", mode="before")
    @classmethod
    def _none_to_default(cls, value: Any, info: ValidationInfo) -> Any:
        if value is None and info.field_name:
            return cls.model_fields[info.field_name].get_default(call_default_factory=True)
        return value


def _level(value: Any) -> str:
    v = str(value or "").strip().lower()
    return v if v in ("low", "medium", "high") else "medium"


# ---------------------------------------------------------------------------
# A - Authenticite
# ---------------------------------------------------------------------------


class Identity(Lenient):
    archetype: str = ""
    founding_quote: str = ""
    core_identity: str = ""


class Ikigai(Lenient):
    love: str = ""
    competence: str = ""
    world_need: str = ""
    remuneration: str = ""


class BrandValue(Lenient):
    value: str = ""
    rank: int = 0
    justification: str = ""


class CommunityLevel(Lenient):
    level: int = 0
    name: str = ""
    description: str = ""
    privileges: str = ""


class NarrativeTimeline(Lenient):
    origins: str = ""
    growth: str = ""
    pivot: str = ""
    future: str = ""


class AuthenticityContent(Lenient):
    identity: Identity = Field(default_factory=Identity)
    heros_journey: list[str] = []
    ikigai: Ikigai = Field(default_factory=Ikigai)
    values: list[BrandValue] = []
    community_hierarchy: list[CommunityLevel] = []
    narrative_timeline: NarrativeTimeline = Field(default_factory=NarrativeTimeline)


# ---------------------------------------------------------------------------
# D - Distinction
# ---------------------------------------------------------------------------


class Persona(Lenient):
    name: str = ""
    demographics: str = ""
    psychographics: str = ""
    motivations: str = ""
    brakes: str = ""
    priority: int = 0


class Competitor(Lenient):
    name: str = ""
    strengths: str = ""
    weaknesses: str = ""
    market_share: str = ""


class CompetitiveLandscape(Lenient):
    competitors: list[Competitor] = []
    competitive_advantages: list[str] = []


class BrandPromises(Lenient):
    master_promise: str = ""
    sub_promises: list[str] = []


class ToneOfVoice(Lenient):
    personality: str = ""
    we_say: list[str] = []
    we_never_say: list[str] = []


class VisualIdentity(Lenient):
    art_direction: str = ""
    palette: list[str] = []
    mood: str = ""


class LinguisticAssets(Lenient):
    mantras: list[str] = []
    proprietary_vocabulary: list[str] = []


class DistinctionContent(Lenient):
    personas: list[Persona] = []
    competitive_landscape: CompetitiveLandscape = Field(default_factory=CompetitiveLandscape)
    brand_promises: BrandPromises = Field(default_factory=BrandPromises)
    positioning: str = ""
    tone_of_voice: ToneOfVoice = Field(default_factory=ToneOfVoice)
    visual_identity: VisualIdentity = Field(default_factory=VisualIdentity)
    linguistic_assets: LinguisticAssets = Field(default_factory=LinguisticAssets)


# ---------------------------------------------------------------------------
# V - Valeur
# ---------------------------------------------------------------------------


class ProductTier(Lenient):
    tier: str = ""
    price: str = ""
    description: str = ""
    target: str = ""


class BrandSideValue(Lenient):
    tangible: list[str] = []
    intangible: list[str] = []


class CustomerValue(Lenient):
    functional: list[str] = []
    emotional: list[str] = []
    social: list[str] = []


class BrandCost(Lenient):
    capex: str = ""
    opex: str = ""
    hidden_costs: list[str] = []


class Friction(Lenient):
    friction: str = ""
    solution: str = ""


class CustomerCost(Lenient):
    frictions: list[Friction] = []


class UnitEconomics(Lenient):
    cac: str = ""
    ltv: str = ""
    ratio: str = ""
    break_even: str = ""
    margins: str = ""
    notes: str = ""


class ValueContent(Lenient):
    product_ladder: list[ProductTier] = []
    brand_value: BrandSideValue = Field(default_factory=BrandSideValue)
    customer_value: CustomerValue = Field(default_factory=CustomerValue)
    brand_cost: BrandCost = Field(default_factory=BrandCost)
    customer_cost: CustomerCost = Field(default_factory=CustomerCost)
    unit_economics: UnitEconomics = Field(default_factory=UnitEconomics)


# ---------------------------------------------------------------------------
# E - Engagement
# ---------------------------------------------------------------------------


class Touchpoint(Lenient):
    channel: str = ""
    type: str = ""
    role: str = ""
    priority: int = 0


class Ritual(Lenient):
    name: str = ""
    type: str = ""
    frequency: str = ""
    description: str = ""


class CommunityPrinciples(Lenient):
    principles: list[str] = []
    taboos: list[str] = []


class GamificationLevel(Lenient):
    level: int = 0
    name: str = ""
    condition: str = ""
    reward: str = ""


class Aarrr(Lenient):
    acquisition: str = ""
    activation: str = ""
    retention: str = ""
    revenue: str = ""
    referral: str = ""


class Kpi(Lenient):
    variable: str = ""
    name: str = ""
    target: str = ""
    frequency: str = ""


class EngagementContent(Lenient):
    touchpoints: list[Touchpoint] = []
    rituals: list[Ritual] = []
    community_principles: CommunityPrinciples = Field(default_factory=CommunityPrinciples)
    gamification: list[GamificationLevel] = []
    aarrr: Aarrr = Field(default_factory=Aarrr)
    kpis: list[Kpi] = []


# ---------------------------------------------------------------------------
# R - Risk audit
# ---------------------------------------------------------------------------


class Swot(Lenient):
    strengths: list[str] = []
    weaknesses: list[str] = []
    opportunities: list[str] = []
    threats: list[str] = []


class MicroSwot(Swot):
    variable_id: str = ""
    variable_label: str = ""
    risk_level: Level = "medium"
    commentary: str = ""

    @field_validator("risk_level", mode="before")
    @classmethod
    def _normalize_level(cls, value: Any) -> str:
        return _level(value)


class MatrixItem(Lenient):
    risk: str = ""
    probability: Level = "medium"
    impact: Level = "medium"
    priority: int = 3

    @field_validator("probability", "impact", mode="before")
    @classmethod
    def _normalize_level(cls, value: Any) -> str:
        return _level(value)


class Mitigation(Lenient):
    risk: str = ""
    action: str = ""
    urgency: str = ""
    effort: Level = "medium"

    @field_validator("effort", mode="before")
    @classmethod
    def _normalize_level(cls, value: Any) -> str:
        return _level(value)


class RiskAuditContent(Lenient):
    micro_swots: list[MicroSwot] = []
    global_swot: Swot = Field(default_factory=Swot)
    risk_score: int | None = None
    risk_score_justification: str = ""
    probability_impact_matrix: list[MatrixItem] = []
    mitigation_priorities: list[Mitigation] = []
    summary: str = ""


# ---------------------------------------------------------------------------
# T - Track (market validation) audit
# ---------------------------------------------------------------------------


class Triangulation(Lenient):
    internal_data: str = ""
    market_data: str = ""
    customer_data: str = ""
    synthesis: str = ""


class Hypothesis(Lenient):
    variable_id: str = ""
    hypothesis: str = ""
    status: HypothesisStatus = "to_test"
    evidence: str = ""

    @field_validator("status", mode="before")
    @classmethod
    def _normalize_status(cls, value: Any) -> str:
        v = str(value or "").strip().lower()
        return v if v in ("validated", "invalidated", "to_test") else "to_test"


class MarketReality(Lenient):
    macro_trends: list[str] = []
    weak_signals: list[str] = []
    emerging_patterns: list[str] = []


class SizedMarket(Lenient):
    value: str = ""
    description: str = ""


class MarketSizing(Lenient):
    tam: SizedMarket = Field(default_factory=SizedMarket)
    sam: SizedMarket = Field(default_factory=SizedMarket)
    som: SizedMarket = Field(default_factory=SizedMarket)
    methodology: str = ""


class Benchmark(Lenient):
    competitor: str = ""
    strengths: list[str] = []
    weaknesses: list[str] = []
    market_share: str = ""


class TrackAuditContent(Lenient):
    triangulation: Triangulation = Field(default_factory=Triangulation)
    hypothesis_validation: list[Hypothesis] = []
    market_reality: MarketReality = Field(default_factory=MarketReality)
    tam_sam_som: MarketSizing = Field(default_factory=MarketSizing)
    competitive_benchmark: list[Benchmark] = []
    brand_market_fit_score: int | None = None
    brand_market_fit_justification: str = ""
    strategic_recommendations: list[str] = []
    summary: str = ""


# ---------------------------------------------------------------------------
# I - Implementation
# ---------------------------------------------------------------------------


class ChannelShare(Lenient):
    channel: str = ""
    share: float = 0.0


class BudgetAllocation(Lenient):
    global_envelope: str = ""
    channels: list[ChannelShare] = []


class RoadmapAction(Lenient):
    action: str = ""
    owner: str = ""
    kpi: str = ""


class StrategicRoadmap(Lenient):
    sprint_90_days: list[RoadmapAction] = []
    year1_priorities: list[str] = []
    year3_vision: str = ""


class ImplementationContent(Lenient):
    executive_summary: str = ""
    coherence_score: int | None = None
    positioning_statement: str = ""
    touchpoints: list[Touchpoint] = []
    kpis: list[Kpi] = []
    budget_allocation: BudgetAllocation = Field(default_factory=BudgetAllocation)
    strategic_roadmap: StrategicRoadmap = Field(default_factory=StrategicRoadmap)


# ---------------------------------------------------------------------------
# S - Synthese
# ---------------------------------------------------------------------------


class SynthesisContent(Lenient):
    executive_synthesis: str = ""
    score_coherence: int | None = None
    key_strengths: list[str] = []
    key_risks: list[str] = []
    next_steps: list[str] = []


PILLAR_MODELS: dict[PillarType, type[Lenient]] = assert_exhaustive({
    PillarType.A: AuthenticityContent,
    PillarType.D: DistinctionContent,
    PillarType.V: ValueContent,
    PillarType.E: EngagementContent,
    PillarType.R: RiskAuditContent,
    PillarType.T: TrackAuditContent,
    PillarType.I: ImplementationContent,
    PillarType.S: SynthesisContent,
}, "PILLAR_MODELS")
