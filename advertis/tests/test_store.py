from __future__ import annotations

import pytest

from advertis.errors import PersistenceError, StrategyNotFoundError, UnauthorizedError
from advertis.models import PILLAR_ORDER, PillarType, PillarVersion, Strategy
from advertis.store import StrategyStore


@pytest.fixture()
def store(session_factory):
    return StrategyStore(session_factory)


class TestStrategyStore:
    def test_create_strategy_with_8_idle_pillars(self, store):
        sid = store.create_strategy("user-1", "Slow Bakery", sector="Food", interview_data={"A0": "x"})
        strategy = store.load_strategy(sid)
        assert [p.type for p in strategy.pillars] == [p.value for p in PILLAR_ORDER]
        assert {p.status for p in strategy.pillars} == {"idle"}
        assert {p.version for p in strategy.pillars} == {1}
        assert strategy.phase == "fiche"
        assert strategy.interview_data == {"A0": "x"}
        assert strategy.pillar(PillarType.R).title == "Risk"

    def test_load_unknown(self, store):
        with pytest.raises(StrategyNotFoundError):
            store.load_strategy(1)

    def test_authorize(self, store):
        sid = store.create_strategy("user-1", "Slow Bakery")
        assert store.authorize(sid, "user-1").id == sid
        with pytest.raises(UnauthorizedError):
            store.authorize(sid, "user-2")

    def test_first_commit_has_nothing_to_snapshot(self, store):
        sid = store.create_strategy("user-1", "Slow Bakery")
        pillar_id = store.load_strategy(sid).pillar(PillarType.A).id
        assert store.commit_content(pillar_id, {"positioning": "x"}, "x", created_by="user-1") == 2
        assert store.commit_content(pillar_id, {"positioning": "y"}, "y", created_by="user-1") == 3
        pillar = store.load_strategy(sid).pillar(PillarType.A)
        assert pillar.content == {"positioning": "y"}
        assert pillar.status == "complete"

    def test_summary_is_truncated(self, store):
        sid = store.create_strategy("user-1", "Slow Bakery")
        pillar_id = store.load_strategy(sid).pillar(PillarType.S).id
        store.commit_content(pillar_id, "text", "s" * 2000, created_by="user-1")
        assert len(store.load_strategy(sid).pillar(PillarType.S).summary) == 500

    def test_mark_error_then_generating_clears_message(self, store):
        sid = store.create_strategy("user-1", "Slow Bakery")
        pillar_id = store.load_strategy(sid).pillar(PillarType.T).id
        store.mark_error(pillar_id, "timeout")
        pillar = store.load_strategy(sid).pillar(PillarType.T)
        assert (pillar.status, pillar.error_message) == ("error", "timeout")
        store.mark_generating(pillar_id)
        pillar = store.load_strategy(sid).pillar(PillarType.T)
        assert (pillar.status, pillar.error_message) == ("generating", None)

    def test_mark_strategy_complete(self, store):
        sid = store.create_strategy("user-1", "Slow Bakery")
        store.mark_strategy_complete(sid)
        strategy = store.load_strategy(sid)
        assert (strategy.phase, strategy.status) == ("complete", "complete")
        assert strategy.generated_at is not None

    def test_commit_failure_raises_persistence_error(self, engine, store):
        sid = store.create_strategy("user-1", "Slow Bakery")
        pillar_id = store.load_strategy(sid).pillar(PillarType.A).id
        store.commit_content(pillar_id, {"v": 1}, "", created_by="user-1")
        PillarVersion.__table__.drop(engine)
        with pytest.raises(PersistenceError):
            store.commit_content(pillar_id, {"v": 2}, "", created_by="user-1")
        assert store.load_strategy(sid).pillar(PillarType.A).content == {"v": 1}


class TestImmutableVersions:
    def test_versions_cannot_be_updated(self, store, session_factory):
        sid = store.create_strategy("user-1", "Slow Bakery")
        pillar_id = store.load_strategy(sid).pillar(PillarType.A).id
        store.commit_content(pillar_id, {"v": 1}, "", created_by="user-1")
        store.commit_content(pillar_id, {"v": 2}, "", created_by="user-1")
        with session_factory() as s:
            version = s.get(Strategy, sid).pillar(PillarType.A).versions[0]
            assert version.content == {"v": 1}
            version.change_note = "rewritten history"
            with pytest.raises(ValueError, match="immutable"):
                s.commit()

    def test_legacy_text_content_round_trips(self, store, session_factory):
        sid = store.create_strategy("user-1", "Slow Bakery")
        with session_factory() as s:
            pillar = s.get(Strategy, sid).pillar(PillarType.A)
            pillar.content_json = "# Legacy markdown, not JSON"
            s.commit()
        assert store.load_strategy(sid).pillar(PillarType.A).content == "# Legacy markdown, not JSON"
