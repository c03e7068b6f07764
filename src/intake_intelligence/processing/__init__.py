"""
Processing modules for the Intake Intelligence System.

This package contains image preprocessing, the analysis stages, keyword
extraction, the combiner and the structuring stage.
"""

from .combiner import coherence_score, combine
from .image_analysis import ImageAnalysisStage
from .image_preprocessor import ImagePreprocessor, PreprocessConfig
from .keyword_extractor import KeywordExtractor
from .notes_analysis import NotesAnalysisStage
from .project_types import SUPPORTED_PROJECT_TYPES, find_project_type, normalize_project_type
from .specialized_analysis import (
    SpecializedAnalysisStage,
    build_purchase_order_draft,
    group_similar_windows,
)
from .structuring import StructuringStage, apply_default_dimensions

__all__ = [
    "coherence_score",
    "combine",
    "ImageAnalysisStage",
    "ImagePreprocessor",
    "PreprocessConfig",
    "KeywordExtractor",
    "NotesAnalysisStage",
    "SUPPORTED_PROJECT_TYPES",
    "find_project_type",
    "normalize_project_type",
    "SpecializedAnalysisStage",
    "build_purchase_order_draft",
    "group_similar_windows",
    "StructuringStage",
    "apply_default_dimensions",
]
