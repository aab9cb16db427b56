"""Race-completion pipeline phases and their orchestration."""

from .ingest import RaceOutcome, ResultIngester, is_completion_transition
from .locks import TeamLockManager
from .pricing import PriceUpdate, PricingEngine
from .rankings import LeagueRankingService
from .scoring import PointsUpdate, ScoringEngine
from .service import PipelineResult, PipelineRun, RaceCompletionPipeline, calculate_points_manually
from .valuation import TeamValuationSync

__all__ = [
    "LeagueRankingService",
    "PipelineResult",
    "PipelineRun",
    "PointsUpdate",
    "PriceUpdate",
    "PricingEngine",
    "RaceCompletionPipeline",
    "RaceOutcome",
    "ResultIngester",
    "ScoringEngine",
    "TeamLockManager",
    "TeamValuationSync",
    "calculate_points_manually",
    "is_completion_transition",
]
