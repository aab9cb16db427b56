"""Market repricing from race performance.

Pricing uses its own point table, independent of the fantasy scoring table.
An entity's points-per-price ratio selects a performance tier; the current
price selects a band of deltas. Positive deltas shrink as the price nears the
ceiling, and a driver who retired early loses more value the earlier the DNF
happened.
"""

from __future__ import annotations

import logging
import math
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, List, Literal, Optional

from gridfantasy.config import PRICING_RULES, PriceBand, PricingRules
from gridfantasy.models import EntityType, MarketConstructor, MarketDriver, RaceResult, SprintResult
from gridfantasy.persistence import SERVER_TIMESTAMP, DocumentStore, Increment
from gridfantasy.persistence.batching import BatchWriteCoordinator, WriteOp

from .ingest import RaceOutcome


logger = logging.getLogger(__name__)

PerformanceTier = Literal["great", "good", "poor", "terrible"]


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def pricing_race_points(result: RaceResult, rules: PricingRules = PRICING_RULES) -> int:
    if result.status != "finished" or not 0 < result.position <= len(rules.race_points):
        return 0
    points = rules.race_points[result.position - 1]
    if result.positions_gained > 0:
        points += result.positions_gained
    if result.fastest_lap and result.position <= 10:
        points += 1
    return points


def pricing_sprint_points(result: SprintResult, rules: PricingRules = PRICING_RULES) -> int:
    if result.status == "finished" and 0 < result.position <= len(rules.sprint_points):
        return rules.sprint_points[result.position - 1]
    return 0


def performance_tier(ppm: float, rules: PricingRules = PRICING_RULES) -> PerformanceTier:
    if ppm >= rules.ppm_great:
        return "great"
    if ppm >= rules.ppm_good:
        return "good"
    if ppm >= rules.ppm_poor:
        return "poor"
    return "terrible"


def price_band(price: float, rules: PricingRules = PRICING_RULES) -> PriceBand:
    if price > rules.tier_a_threshold:
        return rules.bands["A"]
    if price > rules.tier_b_threshold:
        return rules.bands["B"]
    return rules.bands["C"]


def apply_diminishing_returns(change: int, price: float, rules: PricingRules = PRICING_RULES) -> int:
    if change <= 0 or price <= rules.diminish_floor:
        return change
    progress = min(1.0, (price - rules.diminish_floor) / (rules.max_price - rules.diminish_floor))
    factor = 1.0 - progress * (1.0 - rules.diminish_min_factor)
    return round_half_up(change * factor)


def calculate_price_change(points: int, price: float, rules: PricingRules = PRICING_RULES) -> int:
    """Performance delta before any DNF penalty."""

    ppm = 0.0 if price == 0 else points / price
    raw_change = price_band(price, rules).delta_for(performance_tier(ppm, rules))
    return apply_diminishing_returns(raw_change, price, rules)


def calculate_dnf_price_penalty(dnf_lap: int, total_laps: int, rules: PricingRules = PRICING_RULES) -> int:
    """Penalty scaled from the maximum at lap 0 down to the minimum at the flag."""

    if total_laps <= 1:
        return rules.dnf_penalty_min
    if dnf_lap <= 0:
        return rules.dnf_penalty_max
    if dnf_lap >= total_laps:
        return rules.dnf_penalty_min
    progress = (dnf_lap - 1) / (total_laps - 1)
    penalty = rules.dnf_penalty_min + (rules.dnf_penalty_max - rules.dnf_penalty_min) * (1 - progress)
    return math.ceil(penalty)


def clamp_price(price: float, rules: PricingRules = PRICING_RULES) -> int:
    return int(max(rules.min_price, min(rules.max_price, price)))


@dataclass
class PricingTally:
    driver_points: Dict[str, int] = field(default_factory=lambda: defaultdict(int))
    constructor_points: Dict[str, int] = field(default_factory=lambda: defaultdict(int))
    driver_dnf_penalties: Dict[str, int] = field(default_factory=dict)
    constructor_dnf_penalties: Dict[str, int] = field(default_factory=lambda: defaultdict(int))


def tally_pricing_points(outcome: RaceOutcome, rules: PricingRules = PRICING_RULES) -> PricingTally:
    tally = PricingTally()
    for result in outcome.race_results:
        points = pricing_race_points(result, rules)
        if result.status == "dnf" and outcome.total_laps > 0:
            penalty = calculate_dnf_price_penalty(result.laps or 1, outcome.total_laps, rules)
            tally.driver_dnf_penalties[result.driver_id] = penalty
            tally.constructor_dnf_penalties[result.constructor_id] += penalty
        tally.driver_points[result.driver_id] += points
        tally.constructor_points[result.constructor_id] += points
    for result in outcome.sprint_results:
        tally.driver_points[result.driver_id] += pricing_sprint_points(result, rules)
    return tally


@dataclass(frozen=True)
class PriceUpdate:
    entity_id: str
    entity_type: EntityType
    previous_price: int
    price: int
    performance_change: int
    dnf_penalty: int
    points: int
    tier: Optional[str] = None

    @property
    def change(self) -> int:
        """Performance delta less the DNF penalty, before clamping."""
        return self.performance_change - self.dnf_penalty

    def market_update(self) -> dict:
        data = {
            "previousPrice": self.previous_price,
            "price": self.price,
            "fantasyPoints": Increment(self.points),
        }
        if self.tier is not None:
            data["tier"] = self.tier
        return data

    def history_document(self, race_id: str) -> dict:
        return {
            "entityId": self.entity_id,
            "entityType": self.entity_type,
            "price": self.price,
            "previousPrice": self.previous_price,
            "change": self.change,
            "performanceChange": self.performance_change,
            "dnfPenalty": self.dnf_penalty,
            "points": self.points,
            "raceId": race_id,
            "timestamp": SERVER_TIMESTAMP,
        }


def reprice(
    entity_id: str,
    entity_type: EntityType,
    current_price: int,
    points: int,
    dnf_penalty: int,
    rules: PricingRules = PRICING_RULES,
) -> PriceUpdate:
    performance_change = calculate_price_change(points, current_price, rules)
    new_price = clamp_price(current_price + performance_change - dnf_penalty, rules)
    tier = None
    if entity_type == "driver":
        tier = "A" if new_price >= rules.tier_a_threshold else "B"
    return PriceUpdate(
        entity_id=entity_id,
        entity_type=entity_type,
        previous_price=current_price,
        price=new_price,
        performance_change=performance_change,
        dnf_penalty=dnf_penalty,
        points=points,
        tier=tier,
    )


@dataclass(frozen=True)
class PricingSummary:
    drivers: int
    constructors: int


class PricingEngine:
    """Phase 2: reprice every active market driver and constructor."""

    def __init__(self, store: DocumentStore, coordinator: BatchWriteCoordinator, *, rules: PricingRules = PRICING_RULES):
        self.store = store
        self.coordinator = coordinator
        self.rules = rules

    def _ops_for(self, update: PriceUpdate, collection: str, race_id: str) -> List[WriteOp]:
        return [
            WriteOp(self.store.doc(collection, update.entity_id), update.market_update()),
            WriteOp(self.store.new_doc("priceHistory"), update.history_document(race_id), kind="create"),
        ]

    def run(self, outcome: RaceOutcome) -> PricingSummary:
        logger.info("[Phase 2] Updating market prices for race %s", outcome.race_id)
        tally = tally_pricing_points(outcome, self.rules)

        driver_ops: List[WriteOp] = []
        driver_snaps = self.store.query("drivers", where=[("isActive", True)])
        for snap in driver_snaps:
            driver = MarketDriver.model_validate(snap.data())
            update = reprice(
                snap.id,
                "driver",
                driver.price,
                tally.driver_points.get(snap.id, 0),
                tally.driver_dnf_penalties.get(snap.id, 0),
                self.rules,
            )
            driver_ops.extend(self._ops_for(update, "drivers", outcome.race_id))
        self.coordinator.commit(driver_ops, label="driver prices")

        ctor_ops: List[WriteOp] = []
        ctor_snaps = self.store.query("constructors", where=[("isActive", True)])
        for snap in ctor_snaps:
            ctor = MarketConstructor.model_validate(snap.data())
            update = reprice(
                snap.id,
                "constructor",
                ctor.price,
                tally.constructor_points.get(snap.id, 0),
                tally.constructor_dnf_penalties.get(snap.id, 0),
                self.rules,
            )
            ctor_ops.extend(self._ops_for(update, "constructors", outcome.race_id))
        self.coordinator.commit(ctor_ops, label="constructor prices")

        logger.info(
            "[Phase 2] Updated %s driver + %s constructor prices",
            len(driver_snaps),
            len(ctor_snaps),
        )
        return PricingSummary(drivers=len(driver_snaps), constructors=len(ctor_snaps))
