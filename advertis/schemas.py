"""Pydantic request/response schemas for the Advertis API."""
from __future__ import annotations

from typing import Any

from pydantic import BaseModel, field_validator

from advertis.utils import is_blank


class StrategyCreate(BaseModel):
    user_id: str
    brand_name: str
    sector: str = ""
    tagline: str = ""
    interview_data: dict[str, str] = {}
    parent_id: int | None = None

    @field_validator("brand_name", "user_id")
    @classmethod
    def not_blank(cls, v: str) -> str:
        if is_blank(v):
            raise ValueError("must not be blank")
        return v.strip()


class InterviewUpdate(BaseModel):
    interview_data: dict[str, str]


class PillarOut(BaseModel):
    id: int
    type: str
    title: str
    order: int
    status: str
    summary: str
    error_message: str | None = None
    version: int
    generated_at: str | None = None
    content: Any = None


class StrategyOut(BaseModel):
    id: int
    user_id: str
    brand_name: str
    sector: str
    tagline: str
    phase: str
    status: str
    coherence_score: int
    parent_id: int | None = None
    generated_at: str | None = None
    interview_data: dict[str, str] = {}
    pillars: list[PillarOut] = []


class SnapshotOut(BaseModel):
    id: int
    coherence_score: int
    risk_score: int | None = None
    bmf_score: int | None = None
    trigger: str
    created_at: str | None = None


class PillarVersionOut(BaseModel):
    id: int
    version: int
    summary: str
    source: str
    change_note: str
    created_by: str
    created_at: str | None = None
    content: Any = None


class DiffOut(BaseModel):
    strategy_id: int
    missing_ids: list[str]
    empty_ids: list[str]
    obsolete_ids: list[str]
    filled_ids: list[str]
    total_schema_vars: int
    ids_to_fill: list[str]


class SchemaVariableOut(BaseModel):
    id: str
    label: str
    description: str
    pillar_type: str
    priority: bool


class BudgetTierOut(BaseModel):
    tier: str
    min_budget: int
    max_budget: int
    channels: list[dict[str, Any]] = []
    kpis: list[dict[str, Any]] = []
    description: str = ""


class CockpitOut(BaseModel):
    strategy_id: int
    budget_tiers: list[BudgetTierOut]
    widgets: dict[str, Any]
