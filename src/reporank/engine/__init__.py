"""Aggregation, scoring, filtering and ranking engine."""

from .aggregator import Aggregator
from .context import PopulationStats, RunContext, build_run_context
from .diversity import DiversityBalancer
from .filter import classify
from .normalizer import Normalizer, normalize
from .pipeline import RankingPipeline
from .ranker import Candidate, Ranker
from .resolver import resolve
from .scorer import Scorer

__all__ = [
    "Aggregator",
    "Candidate",
    "DiversityBalancer",
    "Normalizer",
    "PopulationStats",
    "RankingPipeline",
    "Ranker",
    "RunContext",
    "Scorer",
    "build_run_context",
    "classify",
    "normalize",
    "resolve",
]
