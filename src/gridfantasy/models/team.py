"""Fantasy team documents and their embedded roster entries."""

from __future__ import annotations

from typing import List, Optional

from pydantic import Field

from .base import Document


class FantasyDriver(Document):
    driver_id: str = Field(..., min_length=1)
    constructor_id: Optional[str] = None
    purchase_price: int = 0
    current_price: int = 0
    points_scored: int = 0
    races_held: int = Field(default=0, ge=0)
    contract_length: Optional[int] = None
    is_reserve_pick: bool = False


class FantasyConstructor(Document):
    constructor_id: str = Field(..., min_length=1)
    purchase_price: int = 0
    current_price: int = 0
    points_scored: int = 0
    races_held: int = Field(default=0, ge=0)
    contract_length: Optional[int] = None


class LockStatus(Document):
    is_season_locked: bool = False
    can_modify: bool = True
    lock_reason: Optional[str] = None
    next_unlock_time: Optional[str] = None
    season_lock_races_remaining: Optional[int] = None


class FantasyTeam(Document):
    user_id: Optional[str] = None
    league_id: Optional[str] = None
    drivers: List[FantasyDriver] = Field(default_factory=list)
    constructor: Optional[FantasyConstructor] = None
    total_points: int = 0
    total_spent: float = 0
    budget: float = 1000
    ace_driver_id: Optional[str] = None
    ace_constructor_id: Optional[str] = None
    races_since_transfer: int = 0
    is_locked: bool = False
    lock_status: LockStatus = Field(default_factory=LockStatus)
