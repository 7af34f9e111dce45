from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager, contextmanager

from mcp.server.fastmcp import FastMCP

from advertis import score_engine, services
from advertis.background import BackgroundDispatcher
from advertis.db import get_session, get_session_factory, init_db
from advertis.errors import AdvertisError, StrategyNotFoundError
from advertis.generator import LLMContentGenerator
from advertis.models import PILLAR_ORDER, PILLAR_TITLES
from advertis.pipeline import RegenerationPipeline
from advertis.store import StrategyStore

log = logging.getLogger(__name__)

_dispatcher = BackgroundDispatcher()


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def advertis_lifespan(server: FastMCP) -> AsyncIterator[None]:
    init_db()
    yield
    await _dispatcher.drain()


mcp = FastMCP(
    "Advertis",
    instructions=(
        "Advertis scores brand strategies built on the 8 ADVERTIS pillars. "
        "Use get_strategy(id) for an overview, get_schema_diff(id) to see which "
        "interview variables are missing, recalculate_scores(id) to refresh the "
        "coherence, risk and brand-market-fit scores and score_history(id) to see "
        "how they evolved."
    ),
    lifespan=advertis_lifespan,
    json_response=True,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


@contextmanager
def _session():
    session = get_session()
    try:
        yield session
    finally:
        session.close()


def _not_found(strategy_id: int) -> dict:
    return {"error": f"Strategy {strategy_id} not found"}


# ---------------------------------------------------------------------------
# Resource
# ---------------------------------------------------------------------------


@mcp.resource("advertis://overview")
def advertis_overview() -> str:
    """Overview of Advertis: pillars, scores and workflow."""
    return json.dumps({
        "system": "Advertis - brand strategy scoring and regeneration",
        "pillars": {p.value: PILLAR_TITLES[p] for p in PILLAR_ORDER},
        "scores": {
            "coherence": "0-100. Pillar completion, interview coverage, content quality, "
                         "cross-pillar alignment and audit integration.",
            "risk": "0-100, lower is safer. Only when the R pillar is complete.",
            "bmf": "0-100 Brand-Market Fit. Only when the T pillar is complete.",
        },
        "workflow": [
            "1. get_strategy(id) - pillars, statuses and current coherence score.",
            "2. get_schema_diff(id) - interview variables missing or empty.",
            "3. upgrade_strategy(id, actor_id) - backfill the gaps and regenerate all 8 pillars.",
            "4. recalculate_scores(id) - refresh every score and record a snapshot.",
            "5. score_history(id) - score evolution, oldest first.",
        ],
    }, indent=2)


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------


@mcp.tool()
def get_strategy(strategy_id: int, include_content: bool = False) -> dict:
    """Get a strategy with its pillars. Pillar content is omitted unless include_content is true."""
    with _session() as session:
        try:
            strategy = services.get_strategy(session, strategy_id)
        except StrategyNotFoundError:
            return _not_found(strategy_id)
        return services.strategy_detail(strategy, with_content=include_content)


@mcp.tool()
def get_schema_diff(strategy_id: int) -> dict:
    """Compare a strategy's interview data with the current variable catalog.

    Returns missing, empty, obsolete and filled variable ids, in catalog order.
    """
    with _session() as session:
        try:
            return services.strategy_diff(session, strategy_id)
        except StrategyNotFoundError:
            return _not_found(strategy_id)


@mcp.tool()
def recalculate_scores(strategy_id: int, trigger: str = "manual") -> dict:
    """Recalculate coherence, risk and brand-market-fit scores and record a snapshot.

    Args:
        strategy_id: Strategy to score.
        trigger: One of pillar_update, audit_review, fiche_review, manual, generation.
    """
    try:
        trigger = score_engine.ScoreTrigger(trigger)
    except ValueError:
        return {"error": f"Unknown trigger {trigger!r}"}
    with _session() as session:
        try:
            return score_engine.recalculate_scores(session, strategy_id, trigger).model_dump()
        except StrategyNotFoundError:
            return _not_found(strategy_id)


@mcp.tool()
def score_history(strategy_id: int) -> list[dict] | dict:
    """Score snapshots for a strategy, oldest first."""
    with _session() as session:
        try:
            services.get_strategy(session, strategy_id)
        except StrategyNotFoundError:
            return _not_found(strategy_id)
        return [services.snapshot_summary(s) for s in score_engine.score_history(session, strategy_id)]


@mcp.tool()
async def upgrade_strategy(strategy_id: int, actor_id: str) -> dict:
    """Backfill missing interview variables and regenerate all 8 pillars. Requires an LLM API key."""
    pipeline = RegenerationPipeline(
        StrategyStore(get_session_factory()), LLMContentGenerator(), dispatcher=_dispatcher,
    )
    try:
        report = await pipeline.run_upgrade(strategy_id, actor_id)
    except AdvertisError as exc:
        return {"error": str(exc)}
    return report.model_dump()


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main():
    """Run the Advertis MCP server over stdio."""
    mcp.run()


if __name__ == "__main__":
    main()
