"""Game rules and runtime settings."""

from .rules import (
    BUDGET_RULES,
    PRICING_RULES,
    SCORING_RULES,
    BudgetRules,
    LockBonusRules,
    PriceBand,
    PricingRules,
    ScoringRules,
)
from .settings import BATCH_OP_LIMIT_DEFAULT, Settings, parse_api_tokens

__all__ = [
    "BATCH_OP_LIMIT_DEFAULT",
    "BUDGET_RULES",
    "PRICING_RULES",
    "SCORING_RULES",
    "BudgetRules",
    "LockBonusRules",
    "PriceBand",
    "PricingRules",
    "ScoringRules",
    "Settings",
    "parse_api_tokens",
]
