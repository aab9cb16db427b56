from __future__ import annotations

from pydantic import BaseModel, Field


class CallableResponse(BaseModel):
    success: bool
    message: str | None = None


class LockRequest(BaseModel):
    reason: str | None = None


class SeasonLockRequest(BaseModel):
    races_remaining: int = Field(..., ge=0)


class AutoLockResponse(BaseModel):
    locked_teams: int
