"""Canonical document models shared by the pipeline and the API."""

from .base import Document
from .league import League, LeagueMember
from .market import EntityType, MarketConstructor, MarketDriver, PriceHistoryRecord
from .race import Race, RaceResult, RaceResults, RaceSchedule, RaceStatus, ResultStatus, SprintResult
from .team import FantasyConstructor, FantasyDriver, FantasyTeam, LockStatus

__all__ = [
    "Document",
    "EntityType",
    "FantasyConstructor",
    "FantasyDriver",
    "FantasyTeam",
    "League",
    "LeagueMember",
    "LockStatus",
    "MarketConstructor",
    "MarketDriver",
    "PriceHistoryRecord",
    "Race",
    "RaceResult",
    "RaceResults",
    "RaceSchedule",
    "RaceStatus",
    "ResultStatus",
    "SprintResult",
]
