"""Detect race completion and extract the result sets the pipeline scores."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import cached_property
from typing import Any, Dict, List, Mapping, Optional, Tuple

from pydantic import ValidationError

from gridfantasy.models import Race, RaceResult, SprintResult
from gridfantasy.persistence import DocumentStore


logger = logging.getLogger(__name__)

COMPLETED = "completed"


def is_completion_transition(before: Optional[Mapping[str, Any]], after: Optional[Mapping[str, Any]]) -> bool:
    """True only when ``status`` moves into ``completed`` from anything else."""

    before_status = (before or {}).get("status")
    after_status = (after or {}).get("status")
    return before_status != COMPLETED and after_status == COMPLETED


@dataclass(frozen=True)
class RaceOutcome:
    race_id: str
    race_results: Tuple[RaceResult, ...]
    sprint_results: Tuple[SprintResult, ...] = ()
    total_laps: int = 0

    @property
    def has_sprint(self) -> bool:
        return bool(self.sprint_results)

    @cached_property
    def _race_by_driver(self) -> Dict[str, RaceResult]:
        return {result.driver_id: result for result in self.race_results}

    @cached_property
    def _sprint_by_driver(self) -> Dict[str, SprintResult]:
        return {result.driver_id: result for result in self.sprint_results}

    def race_result_for(self, driver_id: str) -> Optional[RaceResult]:
        return self._race_by_driver.get(driver_id)

    def sprint_result_for(self, driver_id: str) -> Optional[SprintResult]:
        return self._sprint_by_driver.get(driver_id)

    def results_for_constructor(self, constructor_id: str) -> List[RaceResult]:
        return [result for result in self.race_results if result.constructor_id == constructor_id]


def resolve_total_laps(race: Race) -> int:
    """Race lap count, falling back to the longest finisher distance."""

    if race.total_laps:
        return race.total_laps
    laps = [
        result.laps or 0
        for result in (race.results.race_results if race.results else [])
        if result.status == "finished"
    ]
    return max(laps, default=0)


class ResultIngester:
    def __init__(self, store: DocumentStore):
        self.store = store

    def detect(
        self,
        race_id: str,
        before: Optional[Mapping[str, Any]],
        after: Optional[Mapping[str, Any]],
    ) -> Optional[RaceOutcome]:
        """Return the race outcome if this change completes the race."""

        if not is_completion_transition(before, after):
            return None
        return self.extract(race_id, after or {})

    def extract(self, race_id: str, race_data: Mapping[str, Any]) -> Optional[RaceOutcome]:
        try:
            race = Race.model_validate(race_data)
        except ValidationError as exc:
            logger.warning("Race %s has malformed results: %s", race_id, exc)
            raise
        if race.results is None or not race.results.race_results:
            logger.info("No race results found for race %s", race_id)
            return None
        return RaceOutcome(
            race_id=race_id,
            race_results=tuple(race.results.race_results),
            sprint_results=tuple(race.results.sprint_results or ()),
            total_laps=resolve_total_laps(race),
        )

    def load(self, race_id: str) -> Optional[RaceOutcome]:
        snapshot = self.store.get(self.store.doc("races", race_id))
        if not snapshot.exists:
            logger.info("Race %s not found", race_id)
            return None
        return self.extract(race_id, snapshot.data())
