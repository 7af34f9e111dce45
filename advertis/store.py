"""Persistence contract for strategies, pillars, versions and derived rows.

Each method is one short transaction on its own session, so the regeneration
pipeline can commit pillar by pillar and background recomputations never share
a session with it. Writes on the critical path propagate SQLAlchemy errors;
already committed pillars stay committed.
"""
from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload, sessionmaker

from advertis.db import session_scope
from advertis.errors import PersistenceError, StrategyNotFoundError, UnauthorizedError
from advertis.models import (
    PILLAR_ORDER, PILLAR_TITLES, BudgetTier, Pillar, PillarStatus, PillarVersion, Strategy, WidgetResult,
)

log = logging.getLogger(__name__)

SUMMARY_MAX = 500


class StrategyStore:
    def __init__(self, session_factory: sessionmaker[Session]):
        self.session_factory = session_factory

    # -- strategies ---------------------------------------------------------

    def create_strategy(
        self,
        user_id: str,
        brand_name: str,
        *,
        sector: str = "",
        tagline: str = "",
        interview_data: dict[str, str] | None = None,
        parent_id: int | None = None,
    ) -> int:
        """Create a strategy together with its 8 idle pillars."""
        with session_scope(self.session_factory) as session:
            strategy = Strategy(
                user_id=user_id, brand_name=brand_name, sector=sector, tagline=tagline,
                parent_id=parent_id,
            )
            strategy.interview_data = interview_data or {}
            strategy.pillars = [
                Pillar(type=ptype.value, title=PILLAR_TITLES[ptype], order=idx,
                       status=PillarStatus.IDLE.value, version=1)
                for idx, ptype in enumerate(PILLAR_ORDER)
            ]
            session.add(strategy)
            session.commit()
            return strategy.id

    def load_strategy(self, strategy_id: int) -> Strategy:
        """Return a detached strategy with its pillars loaded."""
        with session_scope(self.session_factory) as session:
            strategy = session.execute(
                select(Strategy).options(selectinload(Strategy.pillars)).where(Strategy.id == strategy_id)
            ).scalars().first()
            if strategy is None:
                raise StrategyNotFoundError(strategy_id)
            return strategy

    def authorize(self, strategy_id: int, actor_id: str) -> Strategy:
        strategy = self.load_strategy(strategy_id)
        if strategy.user_id != actor_id:
            raise UnauthorizedError(strategy_id, actor_id)
        return strategy

    def save_interview_data(self, strategy_id: int, data: dict[str, str]) -> None:
        with session_scope(self.session_factory) as session:
            strategy = self._get(session, strategy_id)
            strategy.interview_data = data
            session.commit()

    def mark_strategy_complete(self, strategy_id: int) -> None:
        with session_scope(self.session_factory) as session:
            strategy = self._get(session, strategy_id)
            strategy.phase = "complete"
            strategy.status = "complete"
            strategy.generated_at = datetime.now(UTC)
            session.commit()

    # -- pillars ------------------------------------------------------------

    def mark_generating(self, pillar_id: int) -> None:
        with session_scope(self.session_factory) as session:
            pillar = self._get_pillar(session, pillar_id)
            pillar.status = PillarStatus.GENERATING.value
            pillar.error_message = None
            session.commit()

    def commit_content(
        self,
        pillar_id: int,
        content: Any,
        summary: str,
        *,
        created_by: str,
        source: str = "regeneration",
        change_note: str = "",
    ) -> int:
        """Snapshot the current content (if any), then overwrite it, in one transaction.

        Returns the new version number.
        """
        try:
            with session_scope(self.session_factory) as session:
                pillar = self._get_pillar(session, pillar_id)
                if pillar.content_json is not None:
                    session.add(PillarVersion(
                        pillar_id=pillar.id,
                        version=pillar.version,
                        content_json=pillar.content_json,
                        summary=pillar.summary,
                        source=source,
                        change_note=change_note,
                        created_by=created_by,
                    ))
                    session.flush()
                pillar.content = content
                pillar.summary = summary[:SUMMARY_MAX]
                pillar.status = PillarStatus.COMPLETE.value
                pillar.error_message = None
                pillar.generated_at = datetime.now(UTC)
                pillar.version = pillar.version + 1
                session.commit()
                return pillar.version
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Could not commit pillar {pillar_id}: {exc}") from exc

    def mark_error(self, pillar_id: int, message: str) -> None:
        """Best effort: a failure here must not mask the generation error."""
        try:
            with session_scope(self.session_factory) as session:
                pillar = self._get_pillar(session, pillar_id)
                pillar.status = PillarStatus.ERROR.value
                pillar.error_message = message
                session.commit()
        except SQLAlchemyError as exc:
            log.warning("Could not mark pillar %s as error: %s", pillar_id, exc)

    # -- derived rows -------------------------------------------------------

    def replace_budget_tiers(self, strategy_id: int, tiers: list[dict[str, Any]]) -> None:
        with session_scope(self.session_factory) as session:
            self._get(session, strategy_id)
            session.execute(delete(BudgetTier).where(BudgetTier.strategy_id == strategy_id))
            for t in tiers:
                session.add(BudgetTier(
                    strategy_id=strategy_id,
                    tier=t["tier"],
                    min_budget=t["min_budget"],
                    max_budget=t["max_budget"],
                    channels_json=json.dumps(t.get("channels", [])),
                    kpis_json=json.dumps(t.get("kpis", [])),
                    description=t.get("description", ""),
                ))
            session.commit()

    def upsert_widgets(self, strategy_id: int, values: dict[str, Any]) -> None:
        with session_scope(self.session_factory) as session:
            existing = {
                w.widget_key: w for w in session.execute(
                    select(WidgetResult).where(WidgetResult.strategy_id == strategy_id)
                ).scalars()
            }
            now = datetime.now(UTC)
            for key, value in values.items():
                row = existing.get(key)
                if row is None:
                    row = WidgetResult(strategy_id=strategy_id, widget_key=key)
                    session.add(row)
                row.value_json = json.dumps(value)
                row.computed_at = now
            session.commit()

    # -- helpers ------------------------------------------------------------

    @staticmethod
    def _get(session: Session, strategy_id: int) -> Strategy:
        strategy = session.get(Strategy, strategy_id)
        if strategy is None:
            raise StrategyNotFoundError(strategy_id)
        return strategy

    @staticmethod
    def _get_pillar(session: Session, pillar_id: int) -> Pillar:
        pillar = session.get(Pillar, pillar_id)
        if pillar is None:
            raise LookupError(f"Pillar not found: {pillar_id}")
        return pillar
