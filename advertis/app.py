from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Generator

from fastapi import Depends, FastAPI, Header, HTTPException, Query
from sqlalchemy.orm import Session

from advertis import services
from advertis.background import BackgroundDispatcher
from advertis.db import get_session, get_session_factory, init_db
from advertis.errors import StrategyNotFoundError, UnauthorizedError
from advertis.generator import ContentGenerator, LLMContentGenerator
from advertis.interview_schema import SchemaProvider, StaticSchemaProvider
from advertis.models import Pillar
from advertis.pipeline import RegenerationPipeline, UpgradeReport
from advertis.schemas import (
    CockpitOut,
    DiffOut,
    InterviewUpdate,
    PillarVersionOut,
    SchemaVariableOut,
    SnapshotOut,
    StrategyCreate,
    StrategyOut,
)
from advertis.score_engine import AllScores, ScoreTrigger, recalculate_scores, score_history
from advertis.store import StrategyStore

log = logging.getLogger(__name__)

# Recomputations dispatched by upgrade runs outlive the request
dispatcher = BackgroundDispatcher()


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    yield
    if dispatcher.pending:
        log.info("Waiting for %d background task(s)", dispatcher.pending)
    await dispatcher.drain()


app = FastAPI(
    title="Advertis",
    version="0.1.0",
    description=(
        "Brand strategy scoring and regeneration API. "
        "Score strategies built on the ADVERTIS pillars, diff their interview data "
        "against the current catalog and upgrade them with AI-generated content."
    ),
    lifespan=lifespan,
    openapi_tags=[
        {"name": "Strategies", "description": "Create and inspect brand strategies."},
        {"name": "Scoring", "description": "Coherence, Risk and Brand-Market Fit scores."},
        {"name": "Upgrade", "description": "Interview backfill and pillar regeneration. Requires an LLM API key."},
        {"name": "Schema", "description": "The interview variable catalog."},
    ],
)


# ---------------------------------------------------------------------------
# Dependencies & Helpers
# ---------------------------------------------------------------------------


def db_session() -> Generator[Session, None, None]:
    session = get_session()
    try:
        yield session
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def get_store() -> StrategyStore:
    return StrategyStore(get_session_factory())


def get_schema_provider() -> SchemaProvider:
    return StaticSchemaProvider()


def get_generator() -> ContentGenerator:
    return LLMContentGenerator()


def get_pipeline(
    store: StrategyStore = Depends(get_store),
    generator: ContentGenerator = Depends(get_generator),
    schema: SchemaProvider = Depends(get_schema_provider),
) -> RegenerationPipeline:
    return RegenerationPipeline(store, generator, schema=schema, dispatcher=dispatcher)


def _get_or_404(session: Session, strategy_id: int):
    try:
        return services.get_strategy(session, strategy_id)
    except StrategyNotFoundError as exc:
        raise HTTPException(404, "Strategy not found") from exc


# ---------------------------------------------------------------------------
# Routes: Strategies
# ---------------------------------------------------------------------------


@app.post("/api/strategies", response_model=StrategyOut, status_code=201,
          tags=["Strategies"], summary="Create a strategy with its 8 empty pillars")
async def create_strategy(body: StrategyCreate, store: StrategyStore = Depends(get_store),
                          session: Session = Depends(db_session)):
    if body.parent_id is not None:
        _get_or_404(session, body.parent_id)
    strategy_id = store.create_strategy(
        body.user_id, body.brand_name, sector=body.sector, tagline=body.tagline,
        interview_data=body.interview_data, parent_id=body.parent_id,
    )
    return services.strategy_detail(_get_or_404(session, strategy_id))


@app.get("/api/strategies/{strategy_id}", response_model=StrategyOut,
         tags=["Strategies"], summary="Get a strategy with its pillars")
async def get_strategy(strategy_id: int, session: Session = Depends(db_session)):
    return services.strategy_detail(_get_or_404(session, strategy_id))


@app.put("/api/strategies/{strategy_id}/interview", response_model=StrategyOut,
         tags=["Strategies"], summary="Merge interview answers and rescore")
async def update_interview(strategy_id: int, body: InterviewUpdate, session: Session = Depends(db_session),
                           schema: SchemaProvider = Depends(get_schema_provider)):
    strategy = _get_or_404(session, strategy_id)
    strategy.interview_data = {**strategy.interview_data, **body.interview_data}
    session.commit()
    recalculate_scores(session, strategy_id, ScoreTrigger.FICHE_REVIEW, schema=schema)
    return services.strategy_detail(strategy)


@app.get("/api/strategies/{strategy_id}/diff", response_model=DiffOut,
         tags=["Strategies"], summary="Interview gaps against the current variable catalog")
async def get_diff(strategy_id: int, session: Session = Depends(db_session),
                   schema: SchemaProvider = Depends(get_schema_provider)):
    _get_or_404(session, strategy_id)
    return services.strategy_diff(session, strategy_id, schema)


@app.get("/api/strategies/{strategy_id}/cockpit", response_model=CockpitOut,
         tags=["Strategies"], summary="Budget tiers and widget values")
async def get_cockpit(strategy_id: int, session: Session = Depends(db_session)):
    _get_or_404(session, strategy_id)
    return services.cockpit(session, strategy_id)


@app.get("/api/pillars/{pillar_id}/versions", response_model=list[PillarVersionOut],
         tags=["Strategies"], summary="Content history of a pillar, oldest first")
async def list_pillar_versions(pillar_id: int, session: Session = Depends(db_session)):
    if session.get(Pillar, pillar_id) is None:
        raise HTTPException(404, "Pillar not found")
    return services.pillar_versions(session, pillar_id)


# ---------------------------------------------------------------------------
# Routes: Scoring
# ---------------------------------------------------------------------------


@app.post("/api/strategies/{strategy_id}/scores", response_model=AllScores,
          tags=["Scoring"], summary="Recalculate coherence, risk and BMF scores")
async def recalculate(
    strategy_id: int,
    trigger: ScoreTrigger = Query(ScoreTrigger.MANUAL, description="What caused this recalculation"),
    session: Session = Depends(db_session),
    schema: SchemaProvider = Depends(get_schema_provider),
):
    try:
        return recalculate_scores(session, strategy_id, trigger, schema=schema)
    except StrategyNotFoundError as exc:
        raise HTTPException(404, "Strategy not found") from exc


@app.get("/api/strategies/{strategy_id}/scores/history", response_model=list[SnapshotOut],
         tags=["Scoring"], summary="Score snapshots, oldest first")
async def get_score_history(strategy_id: int, session: Session = Depends(db_session)):
    _get_or_404(session, strategy_id)
    return [services.snapshot_summary(s) for s in score_history(session, strategy_id)]


# ---------------------------------------------------------------------------
# Routes: Upgrade
# ---------------------------------------------------------------------------


@app.post("/api/strategies/{strategy_id}/upgrade", response_model=UpgradeReport,
          tags=["Upgrade"], summary="Backfill missing interview data and regenerate all 8 pillars")
async def upgrade_strategy(
    strategy_id: int,
    x_actor_id: str = Header(..., description="Id of the user requesting the upgrade"),
    pipeline: RegenerationPipeline = Depends(get_pipeline),
):
    try:
        return await pipeline.run_upgrade(strategy_id, x_actor_id)
    except StrategyNotFoundError as exc:
        raise HTTPException(404, "Strategy not found") from exc
    except UnauthorizedError as exc:
        raise HTTPException(403, "Strategy belongs to another user") from exc


# ---------------------------------------------------------------------------
# Routes: Schema
# ---------------------------------------------------------------------------


@app.get("/api/schema", response_model=list[SchemaVariableOut],
         tags=["Schema"], summary="Current interview variable catalog")
async def get_schema(schema: SchemaProvider = Depends(get_schema_provider)):
    return [
        {"id": v.id, "label": v.label, "description": v.description,
         "pillar_type": v.pillar_type.value, "priority": v.priority}
        for v in schema.current_schema()
    ]
