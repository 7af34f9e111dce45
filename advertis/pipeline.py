"""Fiche upgrade: bring a strategy in line with the current interview schema.

PIPELINE
--------
1. ``compute_diff``                 detect missing / empty / obsolete variables
2. ``fill_missing_interview_data``  one generator call to backfill the gaps,
                                    never overwriting a non-blank value
3. persist the merged interview dataset
4. ``regenerate_all_pillars``       8 stages, strictly in order A D V E R T I S
5. mark the strategy complete iff all 8 stages succeeded

Each stage reads this run's fresh outputs from the :class:`RunContext`, never
the durable content of earlier runs. A stage that fails is recorded, its
pillar is marked ``error`` and the run moves on; downstream stages see no
content for it and get it listed in ``failed_stages`` instead.

Per pillar the writes happen in this order: ``generating`` is committed, then
the previous content is snapshotted and the new content committed in one
transaction, then the fresh-output cache is updated.

Re-running on an up-to-date dataset skips the backfill call but still
regenerates all 8 pillars, producing new versions each time.
"""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel

from advertis.background import BackgroundDispatcher
from advertis.diff import SchemaDiff, compute_diff
from advertis.errors import GenerationError, PersistenceError
from advertis.generator import ContentGenerator, FillRequest, GenerationContext
from advertis.interview_schema import SchemaProvider, StaticSchemaProvider
from advertis.models import FICHE_TYPES, PILLAR_ORDER, PillarStatus, PillarType, Strategy, assert_exhaustive
from advertis.recompute import BudgetTierRecomputer, Recomputer, ScoreRecomputer, WidgetRecomputer
from advertis.store import StrategyStore
from advertis.utils import compact_json, is_blank

log = logging.getLogger(__name__)

_F = FICHE_TYPES
_R, _T, _I = PillarType.R, PillarType.T, PillarType.I

# Upstream stages whose fresh output each stage receives
STAGE_DEPENDENCIES: dict[PillarType, tuple[PillarType, ...]] = assert_exhaustive({
    PillarType.A: (),
    PillarType.D: (PillarType.A,),
    PillarType.V: (PillarType.A, PillarType.D),
    PillarType.E: (PillarType.A, PillarType.D, PillarType.V),
    PillarType.R: _F,
    PillarType.T: (*_F, _R),
    PillarType.I: (*_F, _R, _T),
    PillarType.S: (*_F, _R, _T, _I),
}, "STAGE_DEPENDENCIES")


class InterviewCount(BaseModel):
    filled: int
    total: int


class UpgradeReport(BaseModel):
    strategy_id: int
    variables_added: list[str]
    variables_updated: list[str]
    variables_obsolete: list[str]
    interview_before: InterviewCount
    interview_after: InterviewCount
    pillars_regenerated: list[str]
    errors: list[str]
    warnings: list[str] = []
    duration_ms: int


@dataclass
class FillResult:
    merged: dict[str, str]
    filled_ids: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


@dataclass
class RunContext:
    """State scoped to one regeneration run; passed explicitly to every stage."""
    strategy_id: int
    actor_id: str
    brand_name: str
    sector: str
    tagline: str
    interview_data: dict[str, str]
    fresh: dict[PillarType, Any] = field(default_factory=dict)
    failed: list[PillarType] = field(default_factory=list)
    regenerated: list[PillarType] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    budget_task: asyncio.Task | None = None

    @classmethod
    def for_strategy(cls, strategy: Strategy, actor_id: str, interview_data: dict[str, str]) -> RunContext:
        return cls(
            strategy_id=strategy.id,
            actor_id=actor_id,
            brand_name=strategy.brand_name,
            sector=strategy.sector or "",
            tagline=strategy.tagline or "",
            interview_data=dict(interview_data),
        )

    def context_for(self, stage: PillarType) -> GenerationContext:
        deps = STAGE_DEPENDENCIES[stage]
        return GenerationContext(
            brand_name=self.brand_name,
            sector=self.sector,
            tagline=self.tagline,
            interview_data=dict(self.interview_data),
            prior_outputs={p: self.fresh[p] for p in deps if p in self.fresh},
            failed_stages=[p for p in deps if p in self.failed],
        )


# ---------------------------------------------------------------------------
# Summaries stored next to the content
# ---------------------------------------------------------------------------


def _get(content: Any, *path: str) -> Any:
    for key in path:
        if not isinstance(content, dict):
            return None
        content = content.get(key)
    return content


def _fallback_summary(content: Any) -> str:
    return content if isinstance(content, str) else compact_json(content)[:300]


def _summary_a(c: Any) -> str:
    archetype = _get(c, "identity", "archetype")
    if archetype is None:
        return _fallback_summary(c)
    return f"Archetype: {archetype or '-'}. {_get(c, 'identity', 'core_identity') or ''}".strip()


def _summary_d(c: Any) -> str:
    positioning = _get(c, "positioning")
    return positioning if isinstance(positioning, str) and positioning else _fallback_summary(c)


def _summary_v(c: Any) -> str:
    ue = _get(c, "unit_economics")
    if not isinstance(ue, dict):
        return _fallback_summary(c)
    return f"CAC: {ue.get('cac') or '-'}, LTV: {ue.get('ltv') or '-'}, Ratio: {ue.get('ratio') or '-'}"


def _summary_e(c: Any) -> str:
    acquisition = _get(c, "aarrr", "acquisition")
    return f"Acquisition: {str(acquisition)[:100]}" if acquisition else _fallback_summary(c)


def _summary_r(c: Any) -> str:
    swots = _get(c, "micro_swots")
    return (f"Risk score: {_get(c, 'risk_score') or '?'}/100, "
            f"{len(swots) if isinstance(swots, list) else 0} micro-SWOTs. {_get(c, 'summary') or ''}").strip()


def _summary_t(c: Any) -> str:
    return (f"Brand-Market Fit: {_get(c, 'brand_market_fit_score') or '?'}/100, "
            f"TAM: {_get(c, 'tam_sam_som', 'tam', 'value') or '?'}. {_get(c, 'summary') or ''}").strip()


def _summary_i(c: Any) -> str:
    return str(_get(c, "executive_summary") or "")[:200] or _fallback_summary(c)


def _summary_s(c: Any) -> str:
    return str(_get(c, "executive_synthesis") or "")[:200] or _fallback_summary(c)


SUMMARIZERS = assert_exhaustive({
    PillarType.A: _summary_a,
    PillarType.D: _summary_d,
    PillarType.V: _summary_v,
    PillarType.E: _summary_e,
    PillarType.R: _summary_r,
    PillarType.T: _summary_t,
    PillarType.I: _summary_i,
    PillarType.S: _summary_s,
}, "SUMMARIZERS")


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------


class RegenerationPipeline:
    def __init__(
        self,
        store: StrategyStore,
        generator: ContentGenerator,
        *,
        schema: SchemaProvider | None = None,
        dispatcher: BackgroundDispatcher | None = None,
        score_recomputer: Recomputer | None = None,
        widget_recomputer: Recomputer | None = None,
        budget_recomputer: Recomputer | None = None,
        budget_grace: float = 5.0,
    ):
        self.store = store
        self.generator = generator
        self.schema = schema or StaticSchemaProvider()
        self.dispatcher = dispatcher or BackgroundDispatcher()
        self.score_recomputer = score_recomputer or ScoreRecomputer(store.session_factory, schema=self.schema)
        self.widget_recomputer = widget_recomputer or WidgetRecomputer(store, self.schema)
        self.budget_recomputer = budget_recomputer or BudgetTierRecomputer(store)
        self.budget_grace = budget_grace

    async def run_upgrade(self, strategy_id: int, actor_id: str) -> UpgradeReport:
        """Diff, backfill, persist, regenerate. Only not-found / not-owner abort the run."""
        start = time.monotonic()
        strategy = self.store.authorize(strategy_id, actor_id)
        existing = strategy.interview_data

        diff = compute_diff(existing, self.schema.current_variable_ids())
        log.info(
            "[upgrade %s] diff: %d missing, %d empty, %d obsolete, %d/%d filled",
            strategy_id, len(diff.missing_ids), len(diff.empty_ids), len(diff.obsolete_ids),
            len(diff.filled_ids), diff.total_schema_vars,
        )

        fill = await self.fill_missing_interview_data(strategy, existing, diff)
        self.store.save_interview_data(strategy_id, fill.merged)
        after = compute_diff(fill.merged, self.schema.current_variable_ids())
        log.info("[upgrade %s] backfill: %d variable(s) filled", strategy_id, len(fill.filled_ids))

        run = RunContext.for_strategy(strategy, actor_id, fill.merged)
        await self.regenerate_all_pillars(run, strategy)
        await self._collect_budget_warning(run)

        if len(run.regenerated) == len(PILLAR_ORDER):
            self.store.mark_strategy_complete(strategy_id)
            log.info("[upgrade %s] all pillars complete, strategy marked complete", strategy_id)

        missing, empty = set(diff.missing_ids), set(diff.empty_ids)
        report = UpgradeReport(
            strategy_id=strategy_id,
            variables_added=[v for v in fill.filled_ids if v in missing],
            variables_updated=[v for v in fill.filled_ids if v in empty],
            variables_obsolete=diff.obsolete_ids,
            interview_before=InterviewCount(filled=len(diff.filled_ids), total=diff.total_schema_vars),
            interview_after=InterviewCount(filled=len(after.filled_ids), total=after.total_schema_vars),
            pillars_regenerated=[p.value for p in run.regenerated],
            errors=[*fill.errors, *run.errors],
            warnings=list(run.warnings),
            duration_ms=int((time.monotonic() - start) * 1000),
        )
        log.info(
            "[upgrade %s] done in %dms: %d/8 pillars, %d added, %d updated, %d error(s)",
            strategy_id, report.duration_ms, len(report.pillars_regenerated),
            len(report.variables_added), len(report.variables_updated), len(report.errors),
        )
        return report

    async def fill_missing_interview_data(
        self, strategy: Strategy, existing: dict[str, str], diff: SchemaDiff,
    ) -> FillResult:
        """Backfill missing/empty variables in one generator call. Non-destructive."""
        merged = dict(existing)
        if not diff.has_gaps:
            return FillResult(merged)

        to_fill = set(diff.ids_to_fill)
        request = FillRequest(
            brand_name=strategy.brand_name,
            sector=strategy.sector or "",
            filled={vid: existing[vid] for vid in diff.filled_ids},
            variables=[v for v in self.schema.current_schema() if v.id in to_fill],
            pillar_context={
                PillarType(p.type): p.content for p in strategy.pillars
                if p.type in FICHE_TYPES and p.status == PillarStatus.COMPLETE and p.content is not None
            },
        )
        try:
            generated = await self.generator.fill_variables(request)
        except GenerationError as exc:
            log.warning("Backfill failed for strategy %s: %s", strategy.id, exc)
            return FillResult(merged, errors=[f"AI fill failed: {exc}"])

        result = FillResult(merged)
        for vid in diff.ids_to_fill:
            value = generated.get(vid)
            if not isinstance(value, str) or is_blank(value) or not is_blank(merged.get(vid)):
                continue
            merged[vid] = value.strip()
            result.filled_ids.append(vid)
        return result

    async def regenerate_all_pillars(self, run: RunContext, strategy: Strategy) -> None:
        """Run the 8 stages in order.

        A generation failure never stops the run. A failed content write marks
        the pillar ``error`` and propagates as :class:`PersistenceError`.
        """
        pillar_ids = {p.type: p.id for p in strategy.pillars}
        try:
            for stage in PILLAR_ORDER:
                pillar_id = pillar_ids.get(stage.value)
                if pillar_id is None:
                    run.failed.append(stage)
                    run.errors.append(f"Pillar {stage.value} not found in strategy, skipped")
                    continue
                await self._run_stage(run, stage, pillar_id)
        finally:
            # Stages committed before a failed content write still get scored
            self.dispatcher.submit(
                f"scores:{run.strategy_id}", self.score_recomputer.recompute(run.strategy_id),
            )
            self.dispatcher.submit(
                f"widgets:{run.strategy_id}", self.widget_recomputer.recompute(run.strategy_id),
            )

    async def _run_stage(self, run: RunContext, stage: PillarType, pillar_id: int) -> None:
        self.store.mark_generating(pillar_id)
        try:
            content = await self.generator.generate(stage, run.context_for(stage))
        except Exception as exc:
            self._fail_stage(run, stage, pillar_id, str(exc) or type(exc).__name__)
            return

        try:
            self.store.commit_content(
                pillar_id, content, SUMMARIZERS[stage](content),
                created_by=run.actor_id, change_note="Fiche upgrade",
            )
        except PersistenceError as exc:
            self._fail_stage(run, stage, pillar_id, str(exc))
            raise
        run.fresh[stage] = content
        run.regenerated.append(stage)
        log.info("[upgrade %s] pillar %s regenerated", run.strategy_id, stage.value)

        if stage is PillarType.I:
            run.budget_task = self.dispatcher.submit(
                f"budget-tiers:{run.strategy_id}", self.budget_recomputer.recompute(run.strategy_id),
            )

    def _fail_stage(self, run: RunContext, stage: PillarType, pillar_id: int, message: str) -> None:
        log.warning("[upgrade %s] pillar %s failed: %s", run.strategy_id, stage.value, message)
        run.failed.append(stage)
        run.errors.append(f"Pillar {stage.value} failed: {message}")
        self.store.mark_error(pillar_id, message)

    async def _collect_budget_warning(self, run: RunContext) -> None:
        """Give the budget tier task a short window so its failure reaches the report.

        The task is not cancelled when the window runs out; it keeps running detached.
        """
        task = run.budget_task
        if task is None:
            return
        if not task.done():
            await asyncio.wait({task}, timeout=self.budget_grace)
        if task.done() and not task.cancelled() and task.exception() is not None:
            run.warnings.append(f"Budget tier regeneration failed: {task.exception()}")
