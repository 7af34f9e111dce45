from __future__ import annotations

import asyncio
import json

import pytest
from sqlalchemy import select

from advertis.background import BackgroundDispatcher
from advertis.interview_schema import DEFAULT_SCHEMA, StaticSchemaProvider
from advertis.models import BudgetTier, PillarType, Strategy
from advertis.pillar_schemas import ImplementationContent
from advertis.recompute import BUDGET_TIERS, BudgetTierRecomputer, ScoreRecomputer, WidgetRecomputer, build_budget_tiers
from advertis.score_engine import score_history
from advertis.store import StrategyStore


@pytest.fixture()
def store(session_factory):
    return StrategyStore(session_factory)


def _complete(session_factory, strategy_id, ptype, content):
    with session_factory() as s:
        pillar = s.get(Strategy, strategy_id).pillar(ptype)
        pillar.content = content
        pillar.status = "complete"
        s.commit()


class TestBuildBudgetTiers:
    def test_static_tiers_without_implementation(self):
        tiers = build_budget_tiers(None)
        assert [t["tier"] for t in tiers] == ["MICRO", "STARTER", "IMPACT", "CAMPAIGN", "DOMINATION"]
        assert all(t["channels"] == [] and t["kpis"] == [] for t in tiers)
        assert [(t["min_budget"], t["max_budget"]) for t in tiers] == [(b[1], b[2]) for b in BUDGET_TIERS]

    def test_channels_open_progressively(self):
        impl = ImplementationContent.model_validate({
            "budget_allocation": {"channels": [
                {"channel": "Newsletter", "share": 20},
                {"channel": "Instagram", "share": 50},
                {"channel": "Events", "share": 30},
            ]},
            "kpis": [{"name": "Regulars", "target": "300"}, {"name": "NPS", "target": "60"}],
        })
        tiers = build_budget_tiers(impl)
        assert tiers[0]["channels"] == [{"channel": "Instagram", "allocation": 100}]
        assert tiers[1]["channels"] == [{"channel": "Instagram", "allocation": 63},
                                        {"channel": "Events", "allocation": 37}]
        assert [c["channel"] for c in tiers[4]["channels"]] == ["Instagram", "Events", "Newsletter"]
        assert tiers[0]["kpis"] == [{"kpi": "Regulars", "target": "300"}]
        assert len(tiers[4]["kpis"]) == 2

    def test_allocations_sum_to_100(self):
        impl = ImplementationContent.model_validate({
            "budget_allocation": {"channels": [{"channel": c, "share": 1} for c in "ABC"]},
        })
        for tier in build_budget_tiers(impl):
            assert sum(c["allocation"] for c in tier["channels"]) == 100

    def test_touchpoints_when_no_allocation(self):
        impl = ImplementationContent.model_validate({
            "touchpoints": [{"channel": "Radio", "priority": 2}, {"channel": "Instagram", "priority": 1}],
        })
        tiers = build_budget_tiers(impl)
        assert tiers[0]["channels"] == [{"channel": "Instagram", "allocation": 100}]
        assert tiers[1]["channels"] == [{"channel": "Instagram", "allocation": 50},
                                        {"channel": "Radio", "allocation": 50}]


class TestRecomputers:
    @pytest.mark.asyncio
    async def test_budget_tiers_replace_previous_rows(self, store, session_factory, full_contents):
        sid = store.create_strategy("user-1", "Slow Bakery")
        _complete(session_factory, sid, PillarType.I, full_contents[PillarType.I])
        recomputer = BudgetTierRecomputer(store)
        await recomputer.recompute(sid)
        await recomputer.recompute(sid)
        with session_factory() as s:
            rows = s.execute(select(BudgetTier).where(BudgetTier.strategy_id == sid)).scalars().all()
        assert len(rows) == 5
        micro = next(r for r in rows if r.tier == "MICRO")
        assert json.loads(micro.channels_json) == [{"channel": "Instagram", "allocation": 100}]

    @pytest.mark.asyncio
    async def test_budget_tiers_fall_back_when_implementation_missing(self, store, session_factory):
        sid = store.create_strategy("user-1", "Slow Bakery")
        await BudgetTierRecomputer(store).recompute(sid)
        with session_factory() as s:
            rows = s.execute(select(BudgetTier).where(BudgetTier.strategy_id == sid)).scalars().all()
        assert len(rows) == 5
        assert all(json.loads(r.channels_json) == [] for r in rows)

    @pytest.mark.asyncio
    async def test_widgets(self, store, session_factory, session, full_contents):
        data = {"A0": "Slow Bakery", "A1": "Sage", "Z9": "old"}
        sid = store.create_strategy("user-1", "Slow Bakery", interview_data=data)
        _complete(session_factory, sid, PillarType.A, full_contents[PillarType.A])
        scores = ScoreRecomputer(session_factory)
        await scores.recompute(sid)
        _complete(session_factory, sid, PillarType.D, full_contents[PillarType.D])
        await scores.recompute(sid)

        widgets = WidgetRecomputer(store, StaticSchemaProvider(DEFAULT_SCHEMA[:4]))
        values = widgets.compute(sid)
        assert values["pillar_progress"] == {"complete": 2, "total": 8, "by_status": {"complete": 2, "idle": 6}}
        assert values["interview_coverage"] == {"filled": 2, "total": 4, "missing": ["A2", "A3"]}
        history = [s.coherence_score for s in score_history(session, sid)]
        assert values["coherence_trend"] == {"history": history, "delta": history[1] - history[0]}
        assert values["coherence_trend"]["delta"] > 0

        await widgets.recompute(sid)
        await widgets.recompute(sid)
        with session_factory() as s:
            assert len(s.get(Strategy, sid).widgets) == 3


class TestBackgroundDispatcher:
    @pytest.mark.asyncio
    async def test_failures_go_to_the_error_channel(self, caplog):
        dispatcher = BackgroundDispatcher()

        async def boom():
            raise RuntimeError("boom")

        async def ok():
            await asyncio.sleep(0)

        dispatcher.submit("boom", boom())
        dispatcher.submit("ok", ok())
        assert dispatcher.pending == 2
        await dispatcher.drain()

        assert dispatcher.pending == 0
        assert dispatcher.failures == [("boom", "boom")]
        assert "Background task boom failed" in caplog.text

    @pytest.mark.asyncio
    async def test_drain_waits_for_tasks_submitted_meanwhile(self):
        dispatcher = BackgroundDispatcher()
        done: list[str] = []

        async def child():
            done.append("child")

        async def parent():
            dispatcher.submit("child", child())
            done.append("parent")

        dispatcher.submit("parent", parent())
        await dispatcher.drain()
        assert done == ["parent", "child"]
