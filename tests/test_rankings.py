from gridfantasy.pipeline.rankings import LeagueRankingService
from gridfantasy.pipeline.scoring import PointsUpdate

from tests.factories import seed


def _seed_league(store):
    seed(
        store,
        {
            "leagues/L1/members/u1": {"displayName": "One", "totalPoints": 100},
            "leagues/L1/members/u2": {"displayName": "Two", "totalPoints": 150},
            "leagues/L1/members/u3": {"displayName": "Three", "totalPoints": 90},
            "leagues/L2/members/u4": {"displayName": "Four", "totalPoints": 0},
        },
    )


def test_run_applies_points_and_reranks(store, coordinator):
    _seed_league(store)
    service = LeagueRankingService(store, coordinator)
    leagues = service.run(
        [
            PointsUpdate("t1", "L1", "u1", 60),
            PointsUpdate("t3", "L1", "u3", 10),
            PointsUpdate("t4", "L2", "u4", 5),
            PointsUpdate("t9", None, "u9", 500),
        ]
    )

    assert leagues == ["L1", "L2"]
    standings = service.standings("L1")
    assert [(uid, m.total_points, m.rank) for uid, m in standings] == [
        ("u1", 160, 1),
        ("u2", 150, 2),
        ("u3", 100, 3),
    ]
    assert service.standings("L2")[0][1].rank == 1


def test_ties_break_by_member_id(store, coordinator):
    seed(
        store,
        {
            "leagues/L1/members/zed": {"totalPoints": 50},
            "leagues/L1/members/amy": {"totalPoints": 50},
            "leagues/L1/members/bob": {"totalPoints": 70},
            "leagues/L1/members/new": {},
        },
    )
    service = LeagueRankingService(store, coordinator)
    assert service.rerank("L1") == 4

    ranks = {uid: member.rank for uid, member in service.standings("L1")}
    assert ranks == {"bob": 1, "amy": 2, "zed": 3, "new": 4}
    assert sorted(ranks.values()) == [1, 2, 3, 4]


def test_unknown_league_has_no_standings(store, coordinator):
    assert LeagueRankingService(store, coordinator).standings("nope") == []
