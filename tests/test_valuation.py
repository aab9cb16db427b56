from gridfantasy.models import FantasyTeam
from gridfantasy.pipeline.valuation import TeamValuationSync, recalculate_budget, revalue_team

from tests.factories import roster_constructor, roster_driver, seed, team_doc


def _team(**fields):
    return FantasyTeam.model_validate(
        team_doc(
            "u1",
            "L1",
            drivers=[roster_driver("d1", "c1", 200), roster_driver("d2", "c1", 150)],
            constructor=roster_constructor("c1", 250),
            totalSpent=600,
            **fields,
        )
    )


def test_budget_reflects_roster_value_change():
    team = revalue_team(_team(), {"d1": 236, "d2": 143}, {"c1": 262})
    assert [d.current_price for d in team.drivers] == [236, 143]
    assert team.constructor.current_price == 262
    assert recalculate_budget(team) == 1000 - 600 + (36 - 7 + 12)


def test_revalue_keeps_price_for_unknown_entities():
    team = revalue_team(_team(), {}, {})
    assert [d.current_price for d in team.drivers] == [200, 150]
    assert recalculate_budget(team) == 400


def test_budget_is_recomputed_not_accumulated(store, coordinator):
    seed(
        store,
        {
            "drivers/d1": {"price": 210},
            "drivers/d2": {"price": 150},
            "constructors/c1": {"price": 250},
            "fantasyTeams/t1": _team(budget=12345).to_document(),
        },
    )
    sync = TeamValuationSync(store, coordinator)
    assert sync.run() == 1
    assert sync.run() == 1

    team = store.get(store.doc("fantasyTeams", "t1"))
    assert team.get("budget") == 410
    assert [d["currentPrice"] for d in team.get("drivers")] == [210, 150]
    assert [d["purchasePrice"] for d in team.get("drivers")] == [200, 150]
