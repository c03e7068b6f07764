"""
Confidence scoring module for the Intake Intelligence System.

This module scores how far a run can be trusted, from how many stages
completed, which structured fields were filled, and how well the photos and
the notes agree.

Classes:
    ScoringConfig: Weights of the confidence score.
    ConfidenceScorer: Run confidence calculator.

Typical usage example:
    scorer = ConfidenceScorer()
    score = scorer.score(
        completed_stages=len(ledger.completed_stages()),
        total_stages=len(STAGE_SEQUENCE),
        structured=structured_spec,
        coherence=aggregated.coherence_score,
    )
"""

import logging
from dataclasses import dataclass
from typing import Final, Optional

from ..models.data_structures import StructuredSpec

logger = logging.getLogger(__name__)

UNKNOWN_TYPE: Final[str] = "unknown"

# Weight validation tolerance
WEIGHT_SUM_TOLERANCE: Final[float] = 0.01


@dataclass
class ScoringConfig:
    """Weights of the run confidence score.

    Attributes:
        stage_weight: Share earned by completing every stage. Default: 0.5.
        field_cap: Upper bound of the field-completeness share. Default: 0.3.
        known_type_weight: Earned when the project type is known. Default: 0.2.
        dimensions_weight: Earned when any dimension is present. Default: 0.15.
        materials_weight: Earned when any material is present. Default: 0.15.
        coherence_weight: Multiplier of the photo/notes coherence. Default: 0.2.

    Raises:
        ValueError: If a weight is negative, or the maximum attainable score
            (stage_weight + field_cap + coherence_weight) is not 1.0.
    """

    stage_weight: float = 0.5
    field_cap: float = 0.3
    known_type_weight: float = 0.2
    dimensions_weight: float = 0.15
    materials_weight: float = 0.15
    coherence_weight: float = 0.2

    def __post_init__(self) -> None:
        for name in (
            "stage_weight",
            "field_cap",
            "known_type_weight",
            "dimensions_weight",
            "materials_weight",
            "coherence_weight",
        ):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be >= 0, got {getattr(self, name)}")

        total = self.stage_weight + self.field_cap + self.coherence_weight
        if abs(total - 1.0) > WEIGHT_SUM_TOLERANCE:
            raise ValueError(
                f"stage_weight + field_cap + coherence_weight must sum to 1.0, got {total:.3f}"
            )


class ConfidenceScorer:
    """Calculates the confidence score of a run."""

    def __init__(self, config: Optional[ScoringConfig] = None) -> None:
        self.config = config or ScoringConfig()

    def score(
        self,
        completed_stages: int,
        total_stages: int,
        structured: Optional[StructuredSpec],
        coherence: float,
    ) -> float:
        """
        Score a run.

        ``stages/total * 0.5 + min(0.3, field completeness) + coherence * 0.2``
        with the default weights, clamped to [0, 1].

        Args:
            completed_stages: Number of stages with status completed.
            total_stages: Number of stages in the pipeline.
            structured: Structured output, if structuring produced one.
            coherence: Photo/notes coherence in [0, 1].

        Returns:
            Confidence score in [0, 1], rounded to three decimals.
        """
        cfg = self.config
        stage_share = (completed_stages / total_stages) if total_stages > 0 else 0.0

        score = stage_share * cfg.stage_weight
        score += self.field_completeness(structured)
        score += max(0.0, min(coherence, 1.0)) * cfg.coherence_weight

        clamped = round(max(0.0, min(score, 1.0)), 3)
        logger.debug(
            f"Confidence {clamped}: stages={completed_stages}/{total_stages}, "
            f"coherence={coherence}"
        )
        return clamped

    def field_completeness(self, structured: Optional[StructuredSpec]) -> float:
        """Capped share earned by filled structured fields."""
        if structured is None:
            return 0.0
        cfg = self.config
        earned = 0.0
        if structured.project_type and structured.project_type != UNKNOWN_TYPE:
            earned += cfg.known_type_weight
        if structured.dimensions:
            earned += cfg.dimensions_weight
        if structured.options.get("materials") or structured.detected_elements.get("materials"):
            earned += cfg.materials_weight
        return min(cfg.field_cap, earned)
