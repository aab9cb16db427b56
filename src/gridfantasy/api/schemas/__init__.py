"""Pydantic models for API I/O."""

from .callables import AutoLockResponse, CallableResponse, LockRequest, SeasonLockRequest
from .views import LeagueStandingsResponse, PipelineRunResponse, PriceHistoryResponse, StandingResponse

__all__ = [
    "AutoLockResponse",
    "CallableResponse",
    "LeagueStandingsResponse",
    "LockRequest",
    "PipelineRunResponse",
    "PriceHistoryResponse",
    "SeasonLockRequest",
    "StandingResponse",
]
