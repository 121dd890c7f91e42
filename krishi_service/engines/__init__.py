# Diagnostic Engines Package
"""
Core engines for crop symptom triage.
"""

from .advisory_composer import AdvisoryComposer
from .belief_aggregator import BeliefAggregator
from .diagnostic_engine import DiagnosticEngine
from .question_selector import QuestionSelector
from .symptom_extractor import SymptomExtractor

__all__ = [
    "AdvisoryComposer",
    "BeliefAggregator",
    "DiagnosticEngine",
    "QuestionSelector",
    "SymptomExtractor",
]
