"""Content generation collaborator: one LLM call per pillar stage.

The pipeline only depends on the :class:`ContentGenerator` protocol. The
LLM-backed implementation keeps its prompts deliberately short: the pillar
models in ``pillar_schemas`` describe the expected JSON shape and the context
bundle carries everything produced earlier in the run.
"""
from __future__ import annotations

import json
import logging
import os
import re
from dataclasses import dataclass, field
from typing import Any, Protocol

from advertis.errors import GenerationError
from advertis.interview_schema import SchemaVariable, variables_by_pillar
from advertis.models import PILLAR_TITLES, PillarType, assert_exhaustive
from advertis.pillar_schemas import PILLAR_MODELS

log = logging.getLogger(__name__)

PROMPT_CONTENT_LIMIT = 3000


@dataclass
class GenerationContext:
    """Everything a stage may read: interview data, this run's upstream outputs, metadata."""
    brand_name: str
    sector: str
    tagline: str
    interview_data: dict[str, str]
    prior_outputs: dict[PillarType, Any] = field(default_factory=dict)
    failed_stages: list[PillarType] = field(default_factory=list)


@dataclass
class FillRequest:
    brand_name: str
    sector: str
    filled: dict[str, str]
    variables: list[SchemaVariable]
    pillar_context: dict[PillarType, Any] = field(default_factory=dict)


class ContentGenerator(Protocol):
    async def generate(self, stage: PillarType, context: GenerationContext) -> Any: ...

    async def fill_variables(self, request: FillRequest) -> dict[str, str]: ...


# ---------------------------------------------------------------------------
# LLM Client
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CallBudget:
    max_tokens: int
    temperature: float


# Audits and the implementation plan produce the longest documents
STAGE_BUDGETS: dict[PillarType, CallBudget] = assert_exhaustive({
    PillarType.A: CallBudget(4000, 0.4),
    PillarType.D: CallBudget(4000, 0.4),
    PillarType.V: CallBudget(4000, 0.4),
    PillarType.E: CallBudget(4000, 0.4),
    PillarType.R: CallBudget(4000, 0.3),
    PillarType.T: CallBudget(6000, 0.3),
    PillarType.I: CallBudget(6000, 0.3),
    PillarType.S: CallBudget(3000, 0.3),
}, "STAGE_BUDGETS")

FILL_BUDGET = CallBudget(6000, 0.3)

_FENCED_JSON = re.compile(r"```(?:json)?\s*(\{.*\})\s*```", re.DOTALL)


def extract_json_object(text: str) -> dict[str, Any]:
    """Parse a JSON object from a model reply, unwrapping a fenced block if present."""
    text = text.strip()
    m = _FENCED_JSON.search(text)
    if m:
        text = m.group(1)
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError as exc:
        raise GenerationError(f"LLM returned invalid JSON: {text[:200]}", retryable=False) from exc
    if not isinstance(parsed, dict):
        raise GenerationError(f"LLM returned a {type(parsed).__name__}, expected an object")
    return parsed


class LLMClient:
    """Async JSON-object client over Anthropic or any OpenAI-compatible API.

    Every call carries a :class:`CallBudget`. A reply cut off by the token
    limit is reported as a retryable :class:`GenerationError` instead of being
    parsed, since a truncated pillar would otherwise fail as invalid JSON.
    """

    def __init__(
        self,
        provider: str | None = None,
        model: str | None = None,
        api_key: str | None = None,
        base_url: str | None = None,
    ):
        self.provider = provider or os.environ.get("LLM_PROVIDER", "anthropic")
        self.model = model or os.environ.get("LLM_MODEL", "")
        self._client: Any = None
        if self.provider == "anthropic":
            import anthropic
            self.model = self.model or "claude-haiku-4-5-20251001"
            self._client = anthropic.AsyncAnthropic(api_key=api_key or os.environ.get("ANTHROPIC_API_KEY"))
        elif self.provider in ("openai", "openai_compatible"):
            import openai
            self.model = self.model or "gpt-4o-mini"
            kwargs: dict[str, Any] = {}
            if key := api_key or os.environ.get("OPENAI_API_KEY"):
                kwargs["api_key"] = key
            if url := base_url or os.environ.get("OPENAI_BASE_URL"):
                kwargs["base_url"] = url
            self._client = openai.AsyncOpenAI(**kwargs)
        else:
            raise ValueError(f"Unknown LLM provider: {self.provider!r}")

    async def _anthropic(self, system: str, user: str, budget: CallBudget) -> tuple[str, bool]:
        response = await self._client.messages.create(
            model=self.model,
            max_tokens=budget.max_tokens,
            temperature=budget.temperature,
            system=system,
            messages=[{"role": "user", "content": user}],
        )
        return response.content[0].text, response.stop_reason == "max_tokens"

    async def _openai(self, system: str, user: str, budget: CallBudget) -> tuple[str, bool]:
        response = await self._client.chat.completions.create(
            model=self.model,
            max_tokens=budget.max_tokens,
            temperature=budget.temperature,
            response_format={"type": "json_object"},
            messages=[
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
        )
        choice = response.choices[0]
        return choice.message.content or "{}", choice.finish_reason == "length"

    async def call(self, system: str, user: str, budget: CallBudget = FILL_BUDGET) -> dict[str, Any]:
        """Send system+user message to the LLM, return the parsed JSON object."""
        send = self._anthropic if self.provider == "anthropic" else self._openai
        try:
            text, truncated = await send(system, user, budget)
        except Exception as exc:
            raise GenerationError(f"LLM API call failed: {exc}", retryable=True) from exc
        if truncated:
            raise GenerationError(f"LLM reply truncated at {budget.max_tokens} tokens", retryable=True)
        return extract_json_object(text)


# ---------------------------------------------------------------------------
# Prompts
# ---------------------------------------------------------------------------

_BASE_PROMPT = """\
You are a brand strategist applying the ADVERTIS method (Authenticity, \
Distinction, Value, Engagement, Risk, Track, Implementation, Synthesis).
Write the {title} pillar ({stage}) for the brand described below. {focus}
Be specific to this brand; never invent facts that contradict the interview.

Respond with ONLY valid JSON matching this JSON schema:
{schema}
"""

STAGE_FOCUS: dict[PillarType, str] = assert_exhaustive({
    PillarType.A: "Cover identity and archetype, ikigai, ranked values, community hierarchy and narrative.",
    PillarType.D: "Cover personas, competitors, promises, positioning, tone of voice and visual identity.",
    PillarType.V: "Cover the product ladder with targets, value and cost on both sides, and unit economics.",
    PillarType.E: "Cover touchpoints, rituals, community principles, gamification, AARRR and KPIs.",
    PillarType.R: "Audit risk: one micro-SWOT per key variable with a risk level, a global SWOT, "
                  "a probability x impact matrix and mitigation priorities.",
    PillarType.T: "Validate the market: triangulate sources, test hypotheses, size TAM/SAM/SOM, "
                  "benchmark competitors and give strategic recommendations.",
    PillarType.I: "Turn the strategy into an implementation plan: touchpoints, KPIs, budget allocation "
                  "per channel and a 90-day / 1-year / 3-year roadmap.",
    PillarType.S: "Synthesize every previous pillar into an executive synthesis, strengths, risks and next steps.",
}, "STAGE_FOCUS")

FILL_SYSTEM_PROMPT = """\
You are a brand strategist applying the ADVERTIS method.
You receive the interview variables already filled in by the user (reliable \
context), the pillars generated so far, and a list of EMPTY variables.
Write rich, brand-specific content (2-5 paragraphs) for each empty variable only.
Never modify variables that are already filled.

Respond with ONLY valid JSON: an object {"<ID>": "<content>", ...}
"""


def _as_text(content: Any) -> str:
    text = content if isinstance(content, str) else json.dumps(content, ensure_ascii=False, indent=2)
    if len(text) > PROMPT_CONTENT_LIMIT:
        text = text[:PROMPT_CONTENT_LIMIT] + "\n[... truncated ...]"
    return text


def build_stage_system_prompt(stage: PillarType) -> str:
    schema = json.dumps(PILLAR_MODELS[stage].model_json_schema())
    return _BASE_PROMPT.format(title=PILLAR_TITLES[stage], stage=stage.value, focus=STAGE_FOCUS[stage], schema=schema)


def build_stage_prompt(stage: PillarType, context: GenerationContext) -> str:
    lines = [f"# Brand: {context.brand_name}", f"# Sector: {context.sector or 'Not specified'}"]
    if context.tagline:
        lines.append(f"# Tagline: {context.tagline}")
    lines += ["", "## Interview"]
    for key, value in context.interview_data.items():
        if value and value.strip():
            lines.append(f"**{key}**: {value.strip()}")
    for ptype, content in context.prior_outputs.items():
        lines += ["", f"## Pillar {ptype.value} - {PILLAR_TITLES[ptype]}", _as_text(content)]
    if context.failed_stages:
        failed = ", ".join(p.value for p in context.failed_stages)
        lines += ["", f"NOTE: pillar(s) {failed} failed to generate in this run; do not assume their content."]
    lines += ["", f"Generate pillar {stage.value} now."]
    return "\n".join(lines)


def build_fill_prompt(request: FillRequest) -> str:
    lines = [f"# Brand: {request.brand_name}", f"# Sector: {request.sector or 'Not specified'}", ""]
    if request.filled:
        lines.append("## Variables already filled")
        lines += [f"**{vid}**: {value.strip()}" for vid, value in request.filled.items()]
        lines.append("")
    for ptype, content in request.pillar_context.items():
        lines += [f"## Pillar {ptype.value} - {PILLAR_TITLES[ptype]}", _as_text(content), ""]
    lines.append("## Variables to complete")
    for ptype, variables in variables_by_pillar(request.variables).items():
        lines.append(f"### Pillar {ptype.value} - {PILLAR_TITLES[ptype]}")
        for var in variables:
            lines.append(f"- {var.id} ({var.label}): {var.description}")
    lines += ["", f"Return one JSON object with the {len(request.variables)} missing variables."]
    return "\n".join(lines)


class LLMContentGenerator:
    """ContentGenerator backed by :class:`LLMClient`."""

    def __init__(self, client: LLMClient | None = None):
        self.client = client or LLMClient()

    async def generate(self, stage: PillarType, context: GenerationContext) -> Any:
        log.info("Generating pillar %s for %s", stage.value, context.brand_name)
        return await self.client.call(
            build_stage_system_prompt(stage), build_stage_prompt(stage, context), STAGE_BUDGETS[stage],
        )

    async def fill_variables(self, request: FillRequest) -> dict[str, str]:
        raw = await self.client.call(FILL_SYSTEM_PROMPT, build_fill_prompt(request), FILL_BUDGET)
        return {str(k): v for k, v in raw.items() if isinstance(v, str)}
