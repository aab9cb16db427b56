"""Point tables, thresholds and price bands for scoring and pricing."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping, Tuple


@dataclass(frozen=True)
class LockBonusRules:
    tier_1_max_races: int = 3
    tier_1_bonus: int = 1
    tier_2_max_races: int = 6
    tier_2_bonus: int = 2
    tier_3_bonus: int = 3
    full_season_races: int = 24
    full_season_bonus: int = 100


@dataclass(frozen=True)
class ScoringRules:
    race_points: Tuple[int, ...] = (
        45, 37, 33, 29, 26, 23, 20, 17, 14, 12, 10, 9, 8, 7, 6, 5, 4, 3, 2, 1,
    )
    sprint_points: Tuple[int, ...] = (8, 7, 6, 5, 4, 3, 2, 1)
    fastest_lap_bonus: int = 1
    fastest_lap_max_position: int = 10
    position_gained_bonus: int = 1
    non_finish_penalty: int = -5
    ace_multiplier: int = 2
    ace_max_price: int = 240
    stale_roster_threshold: int = 5
    stale_roster_penalty: int = 5
    lock_bonus: LockBonusRules = field(default_factory=LockBonusRules)


@dataclass(frozen=True)
class PriceBand:
    great: int
    good: int
    poor: int
    terrible: int

    def delta_for(self, tier: str) -> int:
        return getattr(self, tier)


@dataclass(frozen=True)
class PricingRules:
    # Independent of ScoringRules.race_points.
    race_points: Tuple[int, ...] = (25, 18, 15, 12, 10, 8, 6, 4, 2, 1)
    sprint_points: Tuple[int, ...] = (8, 7, 6, 5, 4, 3, 2, 1)
    ppm_great: float = 0.06
    ppm_good: float = 0.04
    ppm_poor: float = 0.02
    tier_a_threshold: int = 240
    tier_b_threshold: int = 120
    bands: Mapping[str, PriceBand] = field(
        default_factory=lambda: {
            "A": PriceBand(great=36, good=12, poor=-12, terrible=-36),
            "B": PriceBand(great=24, good=7, poor=-7, terrible=-24),
            "C": PriceBand(great=12, good=5, poor=-5, terrible=-12),
        }
    )
    min_price: int = 5
    max_price: int = 700
    diminish_floor: int = 400
    diminish_min_factor: float = 0.25
    dnf_penalty_max: int = 24
    dnf_penalty_min: int = 2


@dataclass(frozen=True)
class BudgetRules:
    starting_budget: int = 1000
    team_size: int = 5
    early_unlock_fee: int = 50


SCORING_RULES = ScoringRules()
PRICING_RULES = PricingRules()
BUDGET_RULES = BudgetRules()
