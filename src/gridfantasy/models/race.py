"""Race documents and the official result rows they carry."""

from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import Field

from .base import Document


RaceStatus = Literal["upcoming", "in_progress", "completed"]
ResultStatus = Literal["finished", "dnf", "dsq"]


class RaceResult(Document):
    position: int = Field(..., ge=0)
    driver_id: str = Field(..., min_length=1)
    constructor_id: str = ""
    grid_position: Optional[int] = None
    status: ResultStatus = "finished"
    fastest_lap: bool = False
    laps: Optional[int] = Field(default=None, ge=0)

    @property
    def positions_gained(self) -> int:
        """Signed grid-to-finish gain; negative when places were lost."""
        if self.grid_position is None:
            return 0
        return self.grid_position - self.position


class SprintResult(Document):
    position: int = Field(..., ge=0)
    driver_id: str = Field(..., min_length=1)
    status: ResultStatus = "finished"


class RaceResults(Document):
    race_results: List[RaceResult] = Field(default_factory=list)
    sprint_results: Optional[List[SprintResult]] = None


class RaceSchedule(Document):
    qualifying: Optional[datetime] = None
    race: Optional[datetime] = None


class Race(Document):
    name: str = ""
    status: RaceStatus = "upcoming"
    results: Optional[RaceResults] = None
    total_laps: Optional[int] = Field(default=None, ge=0)
    schedule: Optional[RaceSchedule] = None
