from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List

from pydantic import BaseModel, Field


class PipelineRunResponse(BaseModel):
    run_id: str
    race_id: str
    state: str
    phase: str | None
    message: str | None
    counts: Dict[str, Any] = Field(default_factory=dict)
    started_at: datetime | None
    updated_at: datetime | None
    completed_at: datetime | None


class StandingResponse(BaseModel):
    user_id: str
    display_name: str
    total_points: int
    rank: int | None


class LeagueStandingsResponse(BaseModel):
    league_id: str
    members: List[StandingResponse]


class PriceHistoryResponse(BaseModel):
    entity_id: str
    entity_type: str
    race_id: str
    price: int
    previous_price: int
    change: int
    performance_change: int
    dnf_penalty: int
    points: int
    timestamp: str | None
