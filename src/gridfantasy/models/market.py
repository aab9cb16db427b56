"""Canonical market entities and their price history."""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import Field

from .base import Document


EntityType = Literal["driver", "constructor"]


class MarketDriver(Document):
    name: str = ""
    constructor_id: Optional[str] = None
    price: int = Field(default=0, ge=0)
    previous_price: Optional[int] = None
    fantasy_points: int = 0
    is_active: bool = True
    tier: Literal["A", "B"] = "B"


class MarketConstructor(Document):
    name: str = ""
    price: int = Field(default=0, ge=0)
    previous_price: Optional[int] = None
    fantasy_points: int = 0
    is_active: bool = True


class PriceHistoryRecord(Document):
    entity_id: str
    entity_type: EntityType
    price: int
    previous_price: int
    change: int
    performance_change: int
    dnf_penalty: int
    points: int
    race_id: str
    timestamp: Optional[str] = None
