"""REST API exposing the pipeline callables and read-only views."""

from __future__ import annotations

from typing import Any, Callable

from fastapi import FastAPI, HTTPException, Query, Request
from starlette.concurrency import run_in_threadpool

from gridfantasy.api.schemas import (
    AutoLockResponse,
    CallableResponse,
    LeagueStandingsResponse,
    LockRequest,
    PipelineRunResponse,
    PriceHistoryResponse,
    SeasonLockRequest,
    StandingResponse,
)
from gridfantasy.config import Settings
from gridfantasy.errors import CallableError, require_caller
from gridfantasy.models import EntityType, PriceHistoryRecord
from gridfantasy.persistence import DocumentStore
from gridfantasy.pipeline import RaceCompletionPipeline, calculate_points_manually


_ERROR_STATUS = {
    "unauthenticated": 401,
    "invalid-argument": 400,
    "not-found": 404,
    "permission-denied": 403,
    "failed-precondition": 412,
}


def _caller_from_request(request: Request, tokens: dict[str, str]) -> str | None:
    header = request.headers.get("authorization") or ""
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return tokens.get(token.strip())


async def _invoke(fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
    try:
        return await run_in_threadpool(fn, *args, **kwargs)
    except CallableError as exc:
        raise HTTPException(status_code=_ERROR_STATUS.get(exc.code, 400), detail=exc.message) from exc


def create_app(settings: Settings | None = None, store: DocumentStore | None = None) -> FastAPI:
    settings = settings or Settings.from_env()
    store = store or DocumentStore(settings.db_path)
    pipeline = RaceCompletionPipeline(store, settings).attach()

    app = FastAPI(title="gridfantasy race pipeline")
    app.state.store = store
    app.state.pipeline = pipeline
    app.state.settings = settings

    def caller_of(request: Request) -> str | None:
        return _caller_from_request(request, settings.api_tokens)

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.post("/races/{race_id}/calculate-points", response_model=CallableResponse)
    async def calculate_points(race_id: str, request: Request):
        result = await _invoke(calculate_points_manually, store, race_id, caller=caller_of(request))
        return CallableResponse.model_validate(result)

    @app.get("/races/{race_id}/lock-status")
    async def lock_status(race_id: str, team_id: str | None = None):
        return await _invoke(pipeline.locks.check_lock_status, race_id, team_id=team_id)

    @app.post("/locks/auto", response_model=AutoLockResponse)
    async def auto_lock(request: Request):
        await _invoke(require_caller, caller_of(request))
        locked = await _invoke(pipeline.locks.auto_lock_teams)
        return AutoLockResponse(locked_teams=locked)

    @app.post("/teams/{team_id}/lock", response_model=CallableResponse)
    async def lock_team(team_id: str, request: Request, payload: LockRequest | None = None):
        reason = payload.reason if payload else None
        result = await _invoke(pipeline.locks.lock_team, team_id, caller=caller_of(request), reason=reason)
        return CallableResponse.model_validate(result)

    @app.post("/teams/{team_id}/season-lock", response_model=CallableResponse)
    async def season_lock(team_id: str, payload: SeasonLockRequest, request: Request):
        result = await _invoke(
            pipeline.locks.season_lock_team,
            team_id,
            caller=caller_of(request),
            races_remaining=payload.races_remaining,
        )
        return CallableResponse.model_validate(result)

    @app.post("/teams/{team_id}/early-unlock", response_model=CallableResponse)
    async def early_unlock(team_id: str, request: Request):
        result = await _invoke(pipeline.locks.early_unlock_team, team_id, caller=caller_of(request))
        return CallableResponse.model_validate(result)

    @app.get("/runs", response_model=list[PipelineRunResponse])
    async def list_runs(race_id: str | None = None, limit: int = Query(default=50, ge=1, le=500)):
        runs = await run_in_threadpool(pipeline.list_runs, race_id=race_id, limit=limit)
        return [
            PipelineRunResponse(
                run_id=run.run_id,
                race_id=run.race_id,
                state=run.state,
                phase=run.phase,
                message=run.message,
                counts=run.counts,
                started_at=run.started_at,
                updated_at=run.updated_at,
                completed_at=run.completed_at,
            )
            for run in runs
        ]

    @app.get("/leagues/{league_id}/standings", response_model=LeagueStandingsResponse)
    async def standings(league_id: str):
        members = await run_in_threadpool(pipeline.rankings.standings, league_id)
        if not members:
            raise HTTPException(status_code=404, detail="League not found")
        return LeagueStandingsResponse(
            league_id=league_id,
            members=[
                StandingResponse(
                    user_id=user_id,
                    display_name=member.display_name,
                    total_points=member.total_points,
                    rank=member.rank,
                )
                for user_id, member in members
            ],
        )

    @app.get("/price-history/{entity_id}", response_model=list[PriceHistoryResponse])
    async def price_history(
        entity_id: str,
        request: Request,
        entity_type: EntityType = Query(...),
        limit: int = Query(default=10, ge=1, le=100),
    ):
        await _invoke(require_caller, caller_of(request))
        snaps = await run_in_threadpool(
            store.query,
            "priceHistory",
            where=[("entityId", entity_id), ("entityType", entity_type)],
            order_by="timestamp",
            descending=True,
        )
        records = [PriceHistoryRecord.model_validate(snap.data()) for snap in snaps[:limit]]
        return [
            PriceHistoryResponse(
                entity_id=record.entity_id,
                entity_type=record.entity_type,
                race_id=record.race_id,
                price=record.price,
                previous_price=record.previous_price,
                change=record.change,
                performance_change=record.performance_change,
                dnf_penalty=record.dnf_penalty,
                points=record.points,
                timestamp=record.timestamp,
            )
            for record in records
        ]

    return app
