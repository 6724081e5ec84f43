from __future__ import annotations

import asyncio
import logging

from fastapi import Depends, FastAPI, HTTPException

from homecourt.db import Base, SessionLocal, engine
from homecourt.errors import GameNotFound, StoreUnavailable, TeamResolutionError
from homecourt.games.identity import GameKey
from homecourt.games.queries import GameQueries
from homecourt.ingestion.pipeline import IngestionPipeline, build_game_services, build_pipeline
from homecourt.ingestion.transport import SqlQueueTransport
from homecourt.log_buffer import get_buffer_handler, install_buffer_handler
from homecourt.schemas import (
    ConsumerStatusOut,
    GameExistsResponse,
    GameOut,
    IngestionStatusResponse,
    TeamOut,
    UpcomingGamesRequest,
    UpcomingGamesResponse,
)
from homecourt.settings import get_settings
from homecourt.teams.vocabulary import TeamVocabulary, load_vocabulary

app = FastAPI(title="Homecourt")
logger = logging.getLogger(__name__)
_vocabulary: TeamVocabulary | None = None
_queries: GameQueries | None = None
_pipeline: IngestionPipeline | None = None
_pipeline_task: asyncio.Task | None = None
_pipeline_stop: asyncio.Event | None = None
_transport: SqlQueueTransport | None = None


def get_vocabulary() -> TeamVocabulary:
    global _vocabulary
    if _vocabulary is None:
        _vocabulary = load_vocabulary(get_settings().teams_file)
    return _vocabulary


def get_queries() -> GameQueries:
    global _queries
    if _queries is None:
        services = build_game_services(SessionLocal, get_vocabulary())
        _queries = GameQueries(services.resolver, services.store, services.index)
    return _queries


@app.on_event("startup")
async def start_pipeline() -> None:
    global _pipeline, _pipeline_task, _pipeline_stop, _transport
    install_buffer_handler()
    settings = get_settings()
    Base.metadata.create_all(bind=engine)
    if not settings.ingest_enabled:
        logger.warning("Ingestion disabled (HOMECOURT_INGEST_ENABLED=false); serving queries only")
        return

    logger.info("App starting up, launching ingestion for topics=%s", ",".join(settings.topics))
    _transport = SqlQueueTransport(
        SessionLocal,
        poll_seconds=settings.poll_seconds,
        max_redeliveries=settings.max_redeliveries,
        stale_claim_seconds=settings.stale_claim_seconds,
    )
    _pipeline = build_pipeline(_transport, SessionLocal, settings, vocabulary=get_vocabulary())
    _pipeline_stop = asyncio.Event()
    _pipeline_task = asyncio.create_task(_pipeline.run(_pipeline_stop))


@app.on_event("shutdown")
async def stop_pipeline() -> None:
    global _pipeline, _pipeline_task, _pipeline_stop, _transport
    if _pipeline_stop:
        _pipeline_stop.set()
    if _pipeline_task:
        await _pipeline_task
    _pipeline = None
    _pipeline_task = None
    _pipeline_stop = None
    _transport = None


@app.get("/api/teams", response_model=list[TeamOut])
def list_teams(vocabulary: TeamVocabulary = Depends(get_vocabulary)):
    return [
        TeamOut(code=code, name=team.name, nickname=team.nickname, aliases=list(team.aliases))
        for code, team in sorted(vocabulary.teams.items())
    ]


def _upcoming_response(queries: GameQueries, team: str, limit: int | None) -> UpcomingGamesResponse:
    effective_limit = limit or get_settings().upcoming_limit
    try:
        code, games = queries.upcoming_games(team, effective_limit)
    except TeamResolutionError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except StoreUnavailable as exc:
        logger.error("Upcoming games query failed for team=%s: %s", team, exc)
        raise HTTPException(status_code=503, detail="Game store unavailable") from exc
    return UpcomingGamesResponse(team=code, count=len(games), games=games)


@app.get("/api/teams/{team}/upcoming-games", response_model=UpcomingGamesResponse)
def api_upcoming_games(
    team: str,
    limit: int | None = None,
    queries: GameQueries = Depends(get_queries),
):
    if limit is not None and not 1 <= limit <= 50:
        raise HTTPException(status_code=400, detail="limit must be between 1 and 50")
    return _upcoming_response(queries, team, limit)


@app.post("/get", response_model=UpcomingGamesResponse)
def legacy_upcoming_games(
    payload: UpcomingGamesRequest,
    queries: GameQueries = Depends(get_queries),
):
    return _upcoming_response(queries, payload.team, payload.limit)


def _parse_game_key(raw: str) -> str:
    try:
        return str(GameKey.parse(raw))
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@app.get("/api/games/{game_key}", response_model=GameOut)
def api_game(game_key: str, queries: GameQueries = Depends(get_queries)):
    key = _parse_game_key(game_key)
    try:
        game = queries.game(key)
    except GameNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except StoreUnavailable as exc:
        raise HTTPException(status_code=503, detail="Game store unavailable") from exc
    game.pop("game_key", None)
    return GameOut(game_key=key, fields=game)


@app.get("/api/games/{game_key}/exists", response_model=GameExistsResponse)
def api_game_exists(game_key: str, queries: GameQueries = Depends(get_queries)):
    key = _parse_game_key(game_key)
    try:
        exists = queries.game_exists(key)
    except StoreUnavailable as exc:
        raise HTTPException(status_code=503, detail="Game store unavailable") from exc
    return GameExistsResponse(game_key=key, exists=exists)


@app.get("/api/ingestion/status", response_model=IngestionStatusResponse)
def api_ingestion_status():
    settings = get_settings()
    if _pipeline is None:
        return IngestionStatusResponse(enabled=settings.ingest_enabled, running=False, consumers=[])
    status = _pipeline.status()
    queues: dict[str, dict[str, int]] = {}
    if _transport is not None:
        for consumer in _pipeline.consumers:
            queues[consumer.topic] = _transport.snapshot(consumer.topic).counts
    return IngestionStatusResponse(
        enabled=settings.ingest_enabled,
        running=status["running"],
        consumers=[ConsumerStatusOut(**consumer) for consumer in status["consumers"]],
        queues=queues,
    )


@app.get("/api/logs")
def api_logs(limit: int = 100, level: str | None = None, logger_name: str | None = None):
    handler = get_buffer_handler()
    return {"entries": handler.entries(limit=limit, min_level=level, logger_prefix=logger_name)}
