"""
Intake Intelligence System

Turns contractor photos and free-text notes into structured project
specifications for pricing.
"""

__version__ = "1.0.0"
__author__ = "Intake Intelligence Team"

# Core exports
from .models import AnalysisRequest, Location, ProjectImage, RequestOptions, StructuredResult
from .orchestration import PipelineOrchestrator
from .utils import Config

__all__ = [
    "AnalysisRequest",
    "Location",
    "ProjectImage",
    "RequestOptions",
    "StructuredResult",
    "PipelineOrchestrator",
    "Config",
    "__version__",
]
