"""Data models for the Intake Intelligence System."""

from .data_structures import (
    STAGE_SEQUENCE,
    AggregatedFindings,
    AnalysisRequest,
    CacheEntry,
    ErrorCategory,
    FindingsSummary,
    ImageType,
    Location,
    NotesFinding,
    NotesSource,
    PerImageFinding,
    PreparedImage,
    ProcessingMeta,
    ProjectImage,
    RequestOptions,
    RetryEvent,
    SpecializedFindings,
    StageName,
    StageStatus,
    StructuredResult,
    StructuredSpec,
)

__all__ = [
    "STAGE_SEQUENCE",
    "AggregatedFindings",
    "AnalysisRequest",
    "CacheEntry",
    "ErrorCategory",
    "FindingsSummary",
    "ImageType",
    "Location",
    "NotesFinding",
    "NotesSource",
    "PerImageFinding",
    "PreparedImage",
    "ProcessingMeta",
    "ProjectImage",
    "RequestOptions",
    "RetryEvent",
    "SpecializedFindings",
    "StageName",
    "StageStatus",
    "StructuredResult",
    "StructuredSpec",
]
