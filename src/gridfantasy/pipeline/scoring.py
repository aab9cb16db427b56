"""Fantasy points for every roster: race/sprint legs, lock bonus, ace and stale penalty."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence

from gridfantasy.config import SCORING_RULES, LockBonusRules, ScoringRules
from gridfantasy.models import FantasyConstructor, FantasyDriver, FantasyTeam, RaceResult, SprintResult
from gridfantasy.persistence import DocumentSnapshot, DocumentStore, Increment
from gridfantasy.persistence.batching import BatchWriteCoordinator, WriteOp

from .ingest import RaceOutcome


logger = logging.getLogger(__name__)


def calculate_lock_bonus(races_held: int, rules: LockBonusRules = SCORING_RULES.lock_bonus) -> int:
    """Loyalty bonus for an entity held ``races_held`` races before this one."""

    if races_held >= rules.full_season_races:
        return rules.full_season_bonus

    bonus = 0
    remaining = max(0, races_held)

    tier_1 = min(remaining, rules.tier_1_max_races)
    bonus += tier_1 * rules.tier_1_bonus
    remaining -= tier_1

    if remaining > 0:
        tier_2 = min(remaining, rules.tier_2_max_races - rules.tier_1_max_races)
        bonus += tier_2 * rules.tier_2_bonus
        remaining -= tier_2

    if remaining > 0:
        bonus += remaining * rules.tier_3_bonus

    return bonus


def race_leg_points(result: RaceResult, rules: ScoringRules = SCORING_RULES) -> int:
    if result.status != "finished":
        return rules.non_finish_penalty
    points = 0
    if 0 < result.position <= len(rules.race_points):
        points += rules.race_points[result.position - 1]
    gained = result.positions_gained
    if gained > 0:
        points += gained * rules.position_gained_bonus
    elif gained < 0:
        points += gained
    if result.fastest_lap and result.position <= rules.fastest_lap_max_position:
        points += rules.fastest_lap_bonus
    return points


def sprint_leg_points(result: Optional[SprintResult], rules: ScoringRules = SCORING_RULES) -> int:
    if result is None:
        return 0
    if result.status != "finished":
        return rules.non_finish_penalty
    if 0 < result.position <= len(rules.sprint_points):
        return rules.sprint_points[result.position - 1]
    return 0


def calculate_driver_points(
    result: RaceResult,
    sprint_result: Optional[SprintResult],
    races_held: int,
    is_ace: bool,
    rules: ScoringRules = SCORING_RULES,
) -> int:
    points = race_leg_points(result, rules) + sprint_leg_points(sprint_result, rules)
    points += calculate_lock_bonus(races_held, rules.lock_bonus)
    if is_ace:
        points *= rules.ace_multiplier
    return points


def calculate_constructor_points(
    results: Iterable[RaceResult],
    races_held: int,
    is_ace: bool,
    rules: ScoringRules = SCORING_RULES,
) -> int:
    """Race-leg finishing points of both drivers plus the constructor's lock bonus."""

    points = 0
    for result in results:
        if result.status == "finished" and 0 < result.position <= len(rules.race_points):
            points += rules.race_points[result.position - 1]
    points += calculate_lock_bonus(races_held, rules.lock_bonus)
    if is_ace:
        points *= rules.ace_multiplier
    return points


def stale_roster_penalty(races_since_transfer: int, rules: ScoringRules = SCORING_RULES) -> int:
    overdue = races_since_transfer - rules.stale_roster_threshold
    if overdue <= 0:
        return 0
    return overdue * rules.stale_roster_penalty


@dataclass(frozen=True)
class PointsUpdate:
    team_id: str
    league_id: Optional[str]
    user_id: Optional[str]
    points: int


@dataclass(frozen=True)
class TeamScore:
    team_id: str
    team: FantasyTeam
    points: int

    def to_update(self) -> PointsUpdate:
        return PointsUpdate(self.team_id, self.team.league_id, self.team.user_id, self.points)


class ScoringEngine:
    """Phase 1: score every fantasy team against the race outcome."""

    def __init__(
        self,
        store: DocumentStore,
        coordinator: BatchWriteCoordinator,
        *,
        rules: ScoringRules = SCORING_RULES,
        workers: int = 1,
    ):
        self.store = store
        self.coordinator = coordinator
        self.rules = rules
        self.workers = max(1, workers)

    def _live_price(self, collection: str, entity_id: str) -> int:
        snapshot = self.store.get(self.store.doc(collection, entity_id))
        if not snapshot.exists:
            return 0
        return int(snapshot.get("price") or 0)

    def _ace_allowed(self, team_id: str, collection: str, entity_id: str) -> bool:
        price = self._live_price(collection, entity_id)
        if price > self.rules.ace_max_price:
            logger.warning(
                "Invalid ace on team %s: %s %s price $%s > $%s; multiplier dropped",
                team_id,
                collection,
                entity_id,
                price,
                self.rules.ace_max_price,
            )
            return False
        return True

    def score_team(self, team_id: str, team: FantasyTeam, outcome: RaceOutcome) -> TeamScore:
        ace_driver_id = team.ace_driver_id
        ace_constructor_id = team.ace_constructor_id
        rostered_ace = any(driver.driver_id == ace_driver_id for driver in team.drivers)
        if rostered_ace and ace_constructor_id:
            logger.warning(
                "Team %s has both ace driver %s and ace constructor %s; keeping the driver",
                team_id,
                ace_driver_id,
                ace_constructor_id,
            )
            ace_constructor_id = None

        team_points = 0
        updated_drivers: List[FantasyDriver] = []
        for driver in team.drivers:
            is_ace = driver.driver_id == ace_driver_id
            if is_ace:
                is_ace = self._ace_allowed(team_id, "drivers", driver.driver_id)
            result = outcome.race_result_for(driver.driver_id)
            driver_points = 0
            if result is not None:
                driver_points = calculate_driver_points(
                    result,
                    outcome.sprint_result_for(driver.driver_id),
                    driver.races_held,
                    is_ace,
                    self.rules,
                )
            team_points += driver_points
            updated_drivers.append(
                driver.model_copy(
                    update={
                        "points_scored": driver.points_scored + driver_points,
                        "races_held": driver.races_held + 1,
                    }
                )
            )

        updated_constructor: Optional[FantasyConstructor] = None
        if team.constructor is not None:
            ctor = team.constructor
            is_ace = ctor.constructor_id == ace_constructor_id
            if is_ace:
                is_ace = self._ace_allowed(team_id, "constructors", ctor.constructor_id)
            ctor_points = calculate_constructor_points(
                outcome.results_for_constructor(ctor.constructor_id),
                ctor.races_held,
                is_ace,
                self.rules,
            )
            team_points += ctor_points
            updated_constructor = ctor.model_copy(
                update={
                    "points_scored": ctor.points_scored + ctor_points,
                    "races_held": ctor.races_held + 1,
                }
            )

        team_points -= stale_roster_penalty(team.races_since_transfer, self.rules)

        scored = team.model_copy(update={"drivers": updated_drivers, "constructor": updated_constructor})
        return TeamScore(team_id=team_id, team=scored, points=team_points)

    def _score_snapshot(self, snapshot: DocumentSnapshot, outcome: RaceOutcome) -> TeamScore:
        team = FantasyTeam.model_validate(snapshot.data())
        return self.score_team(snapshot.id, team, outcome)

    def score_all(self, snapshots: Sequence[DocumentSnapshot], outcome: RaceOutcome) -> List[TeamScore]:
        if self.workers == 1 or len(snapshots) <= 1:
            return [self._score_snapshot(snapshot, outcome) for snapshot in snapshots]
        with ThreadPoolExecutor(max_workers=self.workers) as pool:
            return list(pool.map(lambda snap: self._score_snapshot(snap, outcome), snapshots))

    def run(self, outcome: RaceOutcome) -> List[PointsUpdate]:
        logger.info("[Phase 1] Scoring teams for race %s", outcome.race_id)
        snapshots = self.store.query("fantasyTeams")
        scores = self.score_all(snapshots, outcome)

        ops: List[WriteOp] = []
        for score in scores:
            ops.append(
                WriteOp(
                    ref=self.store.doc("fantasyTeams", score.team_id),
                    data={
                        "drivers": [driver.to_document() for driver in score.team.drivers],
                        "constructor": score.team.constructor.to_document() if score.team.constructor else None,
                        "totalPoints": Increment(score.points),
                        "racesSinceTransfer": Increment(1),
                    },
                )
            )
        self.coordinator.commit(ops, label="team scores")
        logger.info("[Phase 1] Scored %s teams", len(scores))
        return [score.to_update() for score in scores]
