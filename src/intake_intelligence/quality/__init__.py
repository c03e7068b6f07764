"""
Quality assessment modules for the Intake Intelligence System.

This package contains the run confidence scorer.
"""

from .confidence_scorer import ConfidenceScorer, ScoringConfig

__all__ = [
    "ConfidenceScorer",
    "ScoringConfig",
]
