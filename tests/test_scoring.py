import logging

import pytest

from gridfantasy.models import FantasyTeam, RaceResult, SprintResult
from gridfantasy.pipeline.ingest import RaceOutcome
from gridfantasy.pipeline.scoring import (
    ScoringEngine,
    calculate_constructor_points,
    calculate_driver_points,
    calculate_lock_bonus,
    race_leg_points,
    sprint_leg_points,
    stale_roster_penalty,
)

from tests.factories import roster_constructor, roster_driver, seed, team_doc


def _race(position, driver_id="d1", constructor_id="c1", **kwargs):
    return RaceResult(position=position, driver_id=driver_id, constructor_id=constructor_id, **kwargs)


@pytest.mark.parametrize(
    ("races_held", "bonus"),
    [(0, 0), (1, 1), (3, 3), (4, 5), (6, 9), (7, 12), (23, 60), (24, 100), (30, 100)],
)
def test_lock_bonus_tiers(races_held, bonus):
    assert calculate_lock_bonus(races_held) == bonus


def test_race_leg_points():
    assert race_leg_points(_race(1, grid_position=5, fastest_lap=True)) == 45 + 4 + 1
    assert race_leg_points(_race(3, grid_position=1)) == 33 - 2
    assert race_leg_points(_race(12, fastest_lap=True)) == 9
    assert race_leg_points(_race(21)) == 0
    assert race_leg_points(_race(15, status="dnf")) == -5
    assert race_leg_points(_race(15, status="dsq")) == -5


def test_sprint_leg_points():
    assert sprint_leg_points(None) == 0
    assert sprint_leg_points(SprintResult(position=1, driver_id="d1")) == 8
    assert sprint_leg_points(SprintResult(position=9, driver_id="d1")) == 0
    assert sprint_leg_points(SprintResult(position=3, driver_id="d1", status="dnf")) == -5


def test_driver_points_with_ace_and_lock_bonus():
    points = calculate_driver_points(
        _race(1, grid_position=5, fastest_lap=True),
        None,
        races_held=2,
        is_ace=True,
    )
    assert points == 104


def test_driver_points_include_sprint():
    points = calculate_driver_points(
        _race(2),
        SprintResult(position=2, driver_id="d1"),
        races_held=0,
        is_ace=False,
    )
    assert points == 37 + 7


def test_constructor_points_use_race_leg_only():
    results = [_race(1, fastest_lap=True, grid_position=9), _race(4, driver_id="d2"), _race(6, driver_id="d3", status="dnf")]
    assert calculate_constructor_points(results, races_held=0, is_ace=False) == 45 + 29
    assert calculate_constructor_points(results, races_held=3, is_ace=True) == (45 + 29 + 3) * 2


def test_stale_roster_penalty():
    assert stale_roster_penalty(5) == 0
    assert stale_roster_penalty(6) == 5
    assert stale_roster_penalty(7) == 10


def _outcome():
    return RaceOutcome(
        race_id="r1",
        race_results=(
            _race(1, "d1", "c1", grid_position=5, fastest_lap=True),
            _race(2, "d2", "c1", grid_position=2),
        ),
    )


def test_score_team_updates_roster_entries(store, coordinator):
    seed(store, {"drivers/d1": {"price": 200}})
    team = FantasyTeam.model_validate(
        team_doc(
            "u1",
            "L1",
            drivers=[roster_driver("d1", "c1", 200, races_held=2), roster_driver("d9", "c9", 50)],
            constructor=roster_constructor("c1", 250, races_held=1),
            aceDriverId="d1",
            racesSinceTransfer=7,
        )
    )
    score = ScoringEngine(store, coordinator).score_team("t1", team, _outcome())

    d1, d9 = score.team.drivers
    assert (d1.points_scored, d1.races_held) == (104, 3)
    assert (d9.points_scored, d9.races_held) == (0, 1)
    assert score.team.constructor.points_scored == 45 + 37 + 1
    assert score.team.constructor.races_held == 2
    assert score.points == 104 + 83 - 10


def test_expensive_ace_loses_multiplier(store, coordinator, caplog):
    seed(store, {"drivers/d1": {"price": 300}})
    team = FantasyTeam.model_validate(
        team_doc("u1", "L1", drivers=[roster_driver("d1", "c1", 200, races_held=2)], aceDriverId="d1")
    )
    with caplog.at_level(logging.WARNING, logger="gridfantasy.pipeline.scoring"):
        score = ScoringEngine(store, coordinator).score_team("t1", team, _outcome())

    assert score.points == 52
    assert "Invalid ace on team t1" in caplog.text


def test_driver_ace_wins_over_constructor_ace(store, coordinator, caplog):
    seed(store, {"drivers/d1": {"price": 100}, "constructors/c1": {"price": 100}})
    team = FantasyTeam.model_validate(
        team_doc(
            "u1",
            "L1",
            drivers=[roster_driver("d1", "c1", 100)],
            constructor=roster_constructor("c1", 100),
            aceDriverId="d1",
            aceConstructorId="c1",
        )
    )
    with caplog.at_level(logging.WARNING, logger="gridfantasy.pipeline.scoring"):
        score = ScoringEngine(store, coordinator).score_team("t1", team, _outcome())

    assert score.team.drivers[0].points_scored == 50 * 2
    assert score.team.constructor.points_scored == 45 + 37
    assert "keeping the driver" in caplog.text


def test_run_persists_scores_with_increments(store, coordinator):
    seed(
        store,
        {
            "drivers/d1": {"price": 200},
            "fantasyTeams/t1": team_doc(
                "u1",
                "L1",
                drivers=[roster_driver("d1", "c1", 200)],
                totalPoints=40,
                racesSinceTransfer=2,
            ),
            "fantasyTeams/t2": team_doc(None, None, drivers=[roster_driver("d2", "c1", 150)]),
        },
    )
    updates = ScoringEngine(store, coordinator, workers=4).run(_outcome())

    assert {(u.team_id, u.league_id, u.user_id, u.points) for u in updates} == {
        ("t1", "L1", "u1", 50),
        ("t2", None, None, 37),
    }
    t1 = store.get(store.doc("fantasyTeams", "t1"))
    assert t1.get("totalPoints") == 90
    assert t1.get("racesSinceTransfer") == 3
    assert t1.get("drivers")[0]["pointsScored"] == 50
    assert t1.get("drivers")[0]["racesHeld"] == 1


def test_constructor_ace_stands_when_driver_ace_is_not_rostered(store, coordinator):
    seed(store, {"constructors/c1": {"price": 100}})
    team = FantasyTeam.model_validate(
        team_doc(
            "u1",
            "L1",
            drivers=[roster_driver("d9", "c9", 50)],
            constructor=roster_constructor("c1", 100),
            aceDriverId="dX",
            aceConstructorId="c1",
        )
    )
    score = ScoringEngine(store, coordinator).score_team("t1", team, _outcome())

    assert score.team.constructor.points_scored == (45 + 37) * 2
    assert score.points == (45 + 37) * 2
