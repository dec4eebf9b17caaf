"""
Narrative systems.

Each system operates on a NarrativeState handed in by the engine and
raises on failure; the engine decides whether to commit.
"""

from .conditions import ConditionEvaluator, EvaluationContext, register_metric, register_predicate
from .drama import DramaDayResult, DramaResolution, DramaScheduler
from .effects import AppliedEffects, EffectApplier
from .interviews import InterviewSelector

__all__ = [
    "ConditionEvaluator",
    "EvaluationContext",
    "register_predicate",
    "register_metric",
    "DramaScheduler",
    "DramaDayResult",
    "DramaResolution",
    "EffectApplier",
    "AppliedEffects",
    "InterviewSelector",
]
