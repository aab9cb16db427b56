"""Phase 4: apply point deltas to league members and re-rank each league."""

from __future__ import annotations

import logging
from typing import List, Sequence, Tuple

from gridfantasy.models import LeagueMember
from gridfantasy.persistence import DocumentSnapshot, DocumentStore, Increment
from gridfantasy.persistence.batching import BatchWriteCoordinator, WriteOp

from .scoring import PointsUpdate


logger = logging.getLogger(__name__)


def members_collection(league_id: str) -> str:
    return f"leagues/{league_id}/members"


def _standing_key(snapshot: DocumentSnapshot) -> Tuple[float, str]:
    return (-float(snapshot.get("totalPoints") or 0), snapshot.id)


class LeagueRankingService:
    def __init__(self, store: DocumentStore, coordinator: BatchWriteCoordinator):
        self.store = store
        self.coordinator = coordinator

    def apply_points(self, updates: Sequence[PointsUpdate]) -> List[str]:
        """Increment member totals; return affected league ids in first-seen order."""

        ops: List[WriteOp] = []
        leagues: List[str] = []
        for update in updates:
            if not update.league_id or not update.user_id:
                logger.debug("Team %s has no league membership; skipping", update.team_id)
                continue
            ops.append(
                WriteOp(
                    self.store.doc("leagues", update.league_id, "members", update.user_id),
                    {"totalPoints": Increment(update.points)},
                )
            )
            if update.league_id not in leagues:
                leagues.append(update.league_id)
        self.coordinator.commit(ops, label="member points")
        return leagues

    def rerank(self, league_id: str) -> int:
        """Rewrite dense ranks 1..N by total points; ties go to the lower member id."""

        ordered = sorted(self.store.query(members_collection(league_id)), key=_standing_key)
        ops = [WriteOp(snap.ref, {"rank": index + 1}) for index, snap in enumerate(ordered)]
        self.coordinator.commit(ops, label=f"ranks for league {league_id}")
        return len(ordered)

    def run(self, updates: Sequence[PointsUpdate]) -> List[str]:
        logger.info("[Phase 4] Updating league rankings")
        leagues = self.apply_points(updates)
        for league_id in leagues:
            self.rerank(league_id)
        logger.info("[Phase 4] Updated rankings for %s leagues", len(leagues))
        return leagues

    def standings(self, league_id: str) -> List[Tuple[str, LeagueMember]]:
        members = sorted(self.store.query(members_collection(league_id)), key=_standing_key)
        return [(snap.id, LeagueMember.model_validate(snap.data())) for snap in members]
