"""Team edit locks: post-race release plus the lock callables."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from gridfantasy.config import BUDGET_RULES, BudgetRules
from gridfantasy.errors import CallableError, require_caller
from gridfantasy.models import FantasyTeam, League, Race
from gridfantasy.persistence import DocumentSnapshot, DocumentStore, Increment
from gridfantasy.persistence.batching import BatchWriteCoordinator, WriteOp


logger = logging.getLogger(__name__)

LOCK_WINDOW = timedelta(hours=1)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class TeamLockManager:
    def __init__(self, store: DocumentStore, coordinator: BatchWriteCoordinator, *, rules: BudgetRules = BUDGET_RULES):
        self.store = store
        self.coordinator = coordinator
        self.rules = rules

    # Phase 5 --------------------------------------------------------------

    def release_race_locks(self) -> int:
        """Unlock every locked team that is not season locked."""

        logger.info("[Phase 5] Unlocking teams")
        ops: List[WriteOp] = []
        for snap in self.store.query("fantasyTeams", where=[("isLocked", True)]):
            if snap.get("lockStatus.isSeasonLocked"):
                continue
            ops.append(
                WriteOp(
                    snap.ref,
                    {
                        "isLocked": False,
                        "lockStatus.canModify": True,
                        "lockStatus.lockReason": None,
                        "lockStatus.nextUnlockTime": None,
                    },
                )
            )
        self.coordinator.commit(ops, label="team unlocks")
        logger.info("[Phase 5] Unlocked %s teams", len(ops))
        return len(ops)

    # Scheduled pre-qualifying lock ----------------------------------------

    def auto_lock_teams(self, now: Optional[datetime] = None) -> int:
        """Lock unlocked teams for races whose qualifying starts within the hour."""

        now = _as_utc(now or datetime.now(timezone.utc))
        horizon = now + LOCK_WINDOW
        locked_total = 0

        for race_snap in self.store.query("races", where=[("status", "upcoming")]):
            race = Race.model_validate(race_snap.data())
            qualifying = race.schedule.qualifying if race.schedule else None
            if qualifying is None or not (now < _as_utc(qualifying) <= horizon):
                continue

            team_snaps = self.store.query("fantasyTeams", where=[("isLocked", False)])
            league_ids = sorted({snap.get("leagueId") for snap in team_snaps if snap.get("leagueId")})
            league_docs = self.store.get_all([self.store.doc("leagues", league_id) for league_id in league_ids])
            deadlines = {
                doc.id: League.model_validate(doc.data()).lock_deadline
                for doc in league_docs
                if doc.exists
            }

            next_unlock = race.schedule.race.isoformat() if race.schedule and race.schedule.race else None
            ops: List[WriteOp] = []
            for snap in team_snaps:
                if deadlines.get(snap.get("leagueId"), "qualifying") != "qualifying":
                    continue
                ops.append(
                    WriteOp(
                        snap.ref,
                        {
                            "isLocked": True,
                            "lockStatus.canModify": False,
                            "lockStatus.lockReason": f"Locked for {race.name or race_snap.id} qualifying",
                            "lockStatus.nextUnlockTime": next_unlock,
                        },
                    )
                )
            self.coordinator.commit(ops, label="team locks")
            if ops:
                logger.info("Locked %s teams for race %s", len(ops), race.name or race_snap.id)
            locked_total += len(ops)
            self.store.update(race_snap.ref, {"status": "in_progress"})

        return locked_total

    # Callables ------------------------------------------------------------

    def _owned_team(self, team_id: Optional[str], caller: str) -> DocumentSnapshot:
        if not team_id:
            raise CallableError("invalid-argument", "teamId is required")
        snap = self.store.get(self.store.doc("fantasyTeams", team_id))
        if not snap.exists:
            raise CallableError("not-found", "Team not found")
        if snap.get("userId") != caller:
            raise CallableError("permission-denied", "Not your team")
        return snap

    def lock_team(self, team_id: Optional[str], *, caller: Optional[str], reason: Optional[str] = None) -> Dict[str, Any]:
        uid = require_caller(caller)
        snap = self._owned_team(team_id, uid)
        self.store.update(
            snap.ref,
            {
                "isLocked": True,
                "lockStatus.canModify": False,
                "lockStatus.lockReason": reason or "Manually locked",
            },
        )
        return {"success": True}

    def season_lock_team(
        self,
        team_id: Optional[str],
        *,
        caller: Optional[str],
        races_remaining: Optional[int],
    ) -> Dict[str, Any]:
        uid = require_caller(caller)
        if not team_id or not isinstance(races_remaining, int) or isinstance(races_remaining, bool):
            raise CallableError("invalid-argument", "teamId and racesRemaining are required")
        snap = self._owned_team(team_id, uid)
        team = FantasyTeam.model_validate(snap.data())
        if len(team.drivers) < self.rules.team_size or team.constructor is None:
            raise CallableError(
                "failed-precondition",
                f"Team must be complete ({self.rules.team_size} drivers + 1 constructor) before season lock",
            )
        self.store.update(
            snap.ref,
            {
                "isLocked": True,
                "lockStatus.isSeasonLocked": True,
                "lockStatus.seasonLockRacesRemaining": races_remaining,
                "lockStatus.canModify": False,
                "lockStatus.lockReason": "Season locked",
            },
        )
        return {"success": True, "message": f"Team locked for {races_remaining} remaining races"}

    def early_unlock_team(self, team_id: Optional[str], *, caller: Optional[str]) -> Dict[str, Any]:
        uid = require_caller(caller)
        snap = self._owned_team(team_id, uid)
        team = FantasyTeam.model_validate(snap.data())
        if not team.lock_status.is_season_locked:
            raise CallableError("failed-precondition", "Team is not season locked")
        fee = self.rules.early_unlock_fee
        if team.budget < fee:
            raise CallableError(
                "failed-precondition",
                f"Not enough budget. Early unlock requires {fee} points",
            )
        self.store.update(
            snap.ref,
            {
                "isLocked": False,
                "lockStatus.isSeasonLocked": False,
                "lockStatus.seasonLockRacesRemaining": 0,
                "lockStatus.canModify": True,
                "lockStatus.lockReason": None,
                "budget": Increment(-fee),
            },
        )
        return {"success": True, "message": f"Team unlocked. {fee} points deducted from budget"}

    def check_lock_status(
        self,
        race_id: Optional[str],
        *,
        team_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        if not race_id:
            raise CallableError("invalid-argument", "raceId is required")
        race_snap = self.store.get(self.store.doc("races", race_id))
        if not race_snap.exists:
            raise CallableError("not-found", "Race not found")
        race = Race.model_validate(race_snap.data())
        if race.schedule is None or race.schedule.qualifying is None:
            raise CallableError("failed-precondition", "Race has no qualifying time")

        now = _as_utc(now or datetime.now(timezone.utc))
        qualifying = _as_utc(race.schedule.qualifying)
        is_lock_time = now >= qualifying
        time_until_lock = 0 if is_lock_time else int((qualifying - now).total_seconds() * 1000)

        team_lock_status = None
        if team_id:
            team_snap = self.store.get(self.store.doc("fantasyTeams", team_id))
            if team_snap.exists:
                team = FantasyTeam.model_validate(team_snap.data())
                team_lock_status = {
                    "isLocked": team.is_locked,
                    "isSeasonLocked": team.lock_status.is_season_locked,
                    "canModify": team.lock_status.can_modify,
                    "lockReason": team.lock_status.lock_reason,
                }

        return {
            "race": {
                "id": race_id,
                "name": race.name,
                "qualifyingTime": qualifying.isoformat(),
                "status": race.status,
            },
            "isLockTime": is_lock_time,
            "timeUntilLock": time_until_lock,
            "teamLockStatus": team_lock_status,
        }
