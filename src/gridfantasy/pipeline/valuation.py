"""Phase 3: copy canonical market prices into rosters and recompute budgets."""

from __future__ import annotations

import logging
from typing import Dict, List

from gridfantasy.config import BUDGET_RULES, BudgetRules
from gridfantasy.models import FantasyTeam
from gridfantasy.persistence import DocumentStore
from gridfantasy.persistence.batching import BatchWriteCoordinator, WriteOp

from .pricing import round_half_up


logger = logging.getLogger(__name__)


def recalculate_budget(team: FantasyTeam, rules: BudgetRules = BUDGET_RULES) -> int:
    """Budget from spend and net roster value change; never accumulated."""

    current_value = sum(driver.current_price for driver in team.drivers)
    purchase_value = sum(driver.purchase_price for driver in team.drivers)
    if team.constructor is not None:
        current_value += team.constructor.current_price
        purchase_value += team.constructor.purchase_price
    return round_half_up(rules.starting_budget - team.total_spent + (current_value - purchase_value))


def revalue_team(team: FantasyTeam, driver_prices: Dict[str, int], constructor_prices: Dict[str, int]) -> FantasyTeam:
    drivers = [
        driver.model_copy(update={"current_price": driver_prices.get(driver.driver_id, driver.current_price)})
        for driver in team.drivers
    ]
    constructor = team.constructor
    if constructor is not None:
        constructor = constructor.model_copy(
            update={"current_price": constructor_prices.get(constructor.constructor_id, constructor.current_price)}
        )
    return team.model_copy(update={"drivers": drivers, "constructor": constructor})


class TeamValuationSync:
    def __init__(self, store: DocumentStore, coordinator: BatchWriteCoordinator, *, rules: BudgetRules = BUDGET_RULES):
        self.store = store
        self.coordinator = coordinator
        self.rules = rules

    def _price_map(self, collection: str) -> Dict[str, int]:
        prices: Dict[str, int] = {}
        for snap in self.store.query(collection):
            price = snap.get("price")
            if price is not None:
                prices[snap.id] = int(price)
        return prices

    def run(self) -> int:
        logger.info("[Phase 3] Refreshing team currentPrices")
        driver_prices = self._price_map("drivers")
        constructor_prices = self._price_map("constructors")

        ops: List[WriteOp] = []
        snapshots = self.store.query("fantasyTeams")
        for snap in snapshots:
            team = revalue_team(FantasyTeam.model_validate(snap.data()), driver_prices, constructor_prices)
            ops.append(
                WriteOp(
                    snap.ref,
                    {
                        "drivers": [driver.to_document() for driver in team.drivers],
                        "constructor": team.constructor.to_document() if team.constructor else None,
                        "budget": recalculate_budget(team, self.rules),
                    },
                )
            )
        self.coordinator.commit(ops, label="team valuations")
        logger.info("[Phase 3] Updated prices for %s teams", len(snapshots))
        return len(snapshots)
