"""Canonical interview variable catalog (the "fiche de marque").

26 variables spread across the four input pillars A, D, V, E. Pillars R, T,
I and S are generated and accept no direct input. The catalog is owned
outside the scoring core and drifts over time; everything downstream reads it
through a :class:`SchemaProvider` and never hardcodes variable ids.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from advertis.models import PillarType


@dataclass(frozen=True)
class SchemaVariable:
    id: str
    label: str
    description: str
    pillar_type: PillarType
    priority: bool = False


class SchemaProvider(Protocol):
    def current_variable_ids(self) -> list[str]: ...

    def current_schema(self) -> list[SchemaVariable]: ...


def _v(pillar: PillarType, vid: str, label: str, description: str, priority: bool = False) -> SchemaVariable:
    return SchemaVariable(id=vid, label=label, description=description, pillar_type=pillar, priority=priority)


_A, _D, _V, _E = PillarType.A, PillarType.D, PillarType.V, PillarType.E

DEFAULT_SCHEMA: tuple[SchemaVariable, ...] = (
    _v(_A, "A0", "Brand & tagline", "Brand name, tagline and one-sentence positioning.", True),
    _v(_A, "A1", "Brand identity", "Archetype, founding quote and identity core.", True),
    _v(_A, "A2", "Hero's journey", "The brand story in five acts."),
    _v(_A, "A3", "Ikigai", "What the brand loves, is good at, the world needs, and is paid for.", True),
    _v(_A, "A4", "Values", "Ranked brand values with justification.", True),
    _v(_A, "A5", "Community hierarchy", "Levels of the brand community and their privileges."),
    _v(_A, "A6", "Narrative timeline", "Origins, growth, pivot and future."),
    _v(_D, "D1", "Personas", "Priority customer personas: demographics, motivations, brakes.", True),
    _v(_D, "D2", "Competitive landscape", "Main competitors, their strengths and weaknesses."),
    _v(_D, "D3", "Brand promises", "Master promise and supporting promises.", True),
    _v(_D, "D4", "Positioning", "Positioning statement.", True),
    _v(_D, "D5", "Tone of voice", "Personality, what we say and never say."),
    _v(_D, "D6", "Visual identity", "Art direction, palette, mood."),
    _v(_D, "D7", "Linguistic assets", "Mantras and proprietary vocabulary."),
    _v(_V, "V1", "Product ladder", "Offer tiers with price and target.", True),
    _v(_V, "V2", "Value for the brand", "Tangible and intangible value created for the brand."),
    _v(_V, "V3", "Value for the customer", "Functional, emotional and social benefits.", True),
    _v(_V, "V4", "Cost for the brand", "Capex, opex and hidden costs."),
    _v(_V, "V5", "Cost for the customer", "Frictions and how they are removed."),
    _v(_V, "V6", "Unit economics", "CAC, LTV, ratio, break-even, margins.", True),
    _v(_E, "E1", "Touchpoints", "Channels, their role and priority.", True),
    _v(_E, "E2", "Rituals", "Recurring brand rituals."),
    _v(_E, "E3", "Community principles", "Principles and taboos."),
    _v(_E, "E4", "Gamification", "Progression levels, conditions and rewards."),
    _v(_E, "E5", "AARRR", "Acquisition, activation, retention, revenue, referral.", True),
    _v(_E, "E6", "KPI dashboard", "KPIs with target and frequency."),
)


class StaticSchemaProvider:
    """Serves a fixed catalog, the default one unless another is given."""

    def __init__(self, variables: tuple[SchemaVariable, ...] | list[SchemaVariable] | None = None):
        self._variables = list(DEFAULT_SCHEMA if variables is None else variables)

    def current_variable_ids(self) -> list[str]:
        return [v.id for v in self._variables]

    def current_schema(self) -> list[SchemaVariable]:
        return list(self._variables)


def variables_by_pillar(variables: list[SchemaVariable]) -> dict[PillarType, list[SchemaVariable]]:
    grouped: dict[PillarType, list[SchemaVariable]] = {}
    for var in variables:
        grouped.setdefault(var.pillar_type, []).append(var)
    return grouped
