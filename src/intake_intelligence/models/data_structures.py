"""
Core data structures for the Intake Intelligence System.

This module defines the request, finding and result types that flow through
the contractor intake pipeline. Request-side types are frozen so a run can
never mutate what the caller handed in; stage outputs are plain dataclasses
whose ``to_dict`` methods emit the camelCase JSON contract consumed by the
downstream pricing engine.

Typical usage example:
    request = AnalysisRequest(
        images=(ProjectImage(image_id="img-1", path="backyard_fence.jpg"),),
        notes="70 linear feet wood privacy fence, 6 feet tall",
        location=Location(zip_code="94509"),
    )
    result = await orchestrator.analyze(request)
    payload = result.to_dict()
"""

import hashlib
import os
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urlparse


class StageName(Enum):
    """Pipeline stages in execution order."""

    VALIDATION = "validation"
    IMAGE_ANALYSIS = "imageAnalysis"
    NOTES_ANALYSIS = "notesAnalysis"
    COMBINATION = "combination"
    STRUCTURING = "structuring"
    SPECIALIZED_ANALYSIS = "specializedAnalysis"


STAGE_SEQUENCE: Tuple[StageName, ...] = (
    StageName.VALIDATION,
    StageName.IMAGE_ANALYSIS,
    StageName.NOTES_ANALYSIS,
    StageName.COMBINATION,
    StageName.STRUCTURING,
    StageName.SPECIALIZED_ANALYSIS,
)


class ImageType(Enum):
    """Declared purpose of a contractor photo."""

    SITE = "site"
    REFERENCE = "reference"
    SKETCH = "sketch"


class ErrorCategory(Enum):
    """Failure classes reported for analyzer and provider errors."""

    RATE_LIMIT = "rateLimit"
    TIMEOUT = "timeout"
    AUTHENTICATION = "authentication"
    SERVER_ERROR = "serverError"
    CONNECTION = "connection"
    UNKNOWN = "unknown"


class StageStatus(Enum):
    """Lifecycle status of a single stage within a run.

    Attributes:
        PENDING: Stage has not started.
        RUNNING: Stage is executing.
        COMPLETED: Stage produced its regular output.
        DEGRADED: Stage produced a substitute output after an internal
            failure. Degraded stages do not count as completed.
        FAILED: Stage raised and produced no output.
    """

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    DEGRADED = "degraded"
    FAILED = "failed"


class NotesSource(Enum):
    """Which extractor produced a NotesFinding."""

    PRIMARY = "primary"
    SECONDARY = "secondary"
    KEYWORD = "keyword"
    EMPTY = "empty"


# ============================================================================
# Request types
# ============================================================================


@dataclass(frozen=True)
class Location:
    """Job site location. Only ``zip_code`` takes part in cache keys."""

    zip_code: str = ""
    state: Optional[str] = None
    city: Optional[str] = None

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {"zip": self.zip_code, "state": self.state, "city": self.city}


@dataclass(frozen=True)
class ProjectImage:
    """
    A caller-owned contractor photo.

    Exactly one of ``path``, ``url`` or ``inline_bytes`` must be given.

    Attributes:
        image_id: Caller supplied identifier.
        path: Local filesystem path.
        url: Remote http(s) location.
        inline_bytes: Raw encoded image data.
        declared_type: What the photo is meant to show.
        mime_type: Declared MIME type of the encoded data.
    """

    image_id: str
    path: Optional[str] = None
    url: Optional[str] = None
    inline_bytes: Optional[bytes] = field(default=None, repr=False)
    declared_type: ImageType = ImageType.SITE
    mime_type: str = "image/jpeg"

    def __post_init__(self) -> None:
        sources = [s for s in (self.path, self.url, self.inline_bytes) if s]
        if len(sources) != 1:
            raise ValueError(
                f"Image {self.image_id!r} needs exactly one of path, url or "
                f"inline_bytes (got {len(sources)})"
            )

    @property
    def identity(self) -> str:
        """Stable content identity used for cache keys."""
        if self.path:
            return f"path:{self.path}"
        if self.url:
            return f"url:{self.url}"
        return "sha256:" + hashlib.sha256(self.inline_bytes).hexdigest()

    @property
    def filename(self) -> str:
        """Basename used by filename heuristics."""
        if self.path:
            return os.path.basename(self.path)
        if self.url:
            return os.path.basename(urlparse(self.url).path) or self.image_id
        return self.image_id


@dataclass(frozen=True)
class RequestOptions:
    """
    Per-call options.

    Attributes:
        processing_id: Run identifier; generated when absent.
        resume_from_stage: Stage to re-enter at. Earlier stage outputs are
            taken from the run ledger.
        force_reprocess: Skip the cache lookup.
        fallback_mode: Degraded second pass. Disables heuristic substitution
            and further fallback passes.
    """

    processing_id: Optional[str] = None
    resume_from_stage: Optional[StageName] = None
    force_reprocess: bool = False
    fallback_mode: bool = False


@dataclass(frozen=True)
class AnalysisRequest:
    """Immutable input of one pipeline run."""

    images: Tuple[ProjectImage, ...]
    notes: str = ""
    location: Location = field(default_factory=Location)
    options: RequestOptions = field(default_factory=RequestOptions)

    def __post_init__(self) -> None:
        if not isinstance(self.images, tuple):
            object.__setattr__(self, "images", tuple(self.images or ()))
        if self.notes is None:
            object.__setattr__(self, "notes", "")

    def with_options(self, **changes: Any) -> "AnalysisRequest":
        """Return a copy of the request with some options replaced."""
        return replace(self, options=replace(self.options, **changes))


@dataclass(frozen=True)
class PreparedImage:
    """Enhanced copy of a ProjectImage ready to send to a vision analyzer."""

    source: ProjectImage
    data: bytes = field(repr=False)
    mime_type: str
    enhanced: bool = False
    width: Optional[int] = None
    height: Optional[int] = None


# ============================================================================
# Stage outputs
# ============================================================================


@dataclass
class PerImageFinding:
    """
    Findings extracted from one image.

    Attributes:
        image_id: Identifier of the analysed image.
        filename: Basename of the image source.
        declared_type: Declared image type.
        project_type: Detected project type, raw as reported.
        dimensions: Visible or estimated measurements.
        materials: Detected materials keyed by element.
        conditions: Observed site conditions.
        special_considerations: Free-form notes for the estimator.
        contains_window: Whether the analyzer reported windows in view.
        confidence: Field-completeness confidence in [0, 1].
        inferred_from_filename: True when the finding is a filename guess.
        partial_parse: True when fields were recovered from free text.
        error: Description of the failure, if the analysis failed.
        error_category: Category of that failure.
    """

    image_id: str
    filename: str
    declared_type: ImageType = ImageType.SITE
    project_type: Optional[str] = None
    dimensions: Dict[str, Any] = field(default_factory=dict)
    materials: Dict[str, Any] = field(default_factory=dict)
    conditions: Dict[str, Any] = field(default_factory=dict)
    special_considerations: List[str] = field(default_factory=list)
    contains_window: bool = False
    confidence: float = 0.0
    inferred_from_filename: bool = False
    partial_parse: bool = False
    error: Optional[str] = None
    error_category: Optional[ErrorCategory] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "imageId": self.image_id,
            "filename": self.filename,
            "declaredType": self.declared_type.value,
            "projectType": self.project_type,
            "dimensions": dict(self.dimensions),
            "materials": dict(self.materials),
            "conditions": dict(self.conditions),
            "specialConsiderations": list(self.special_considerations),
            "containsWindow": self.contains_window,
            "confidence": self.confidence,
            "inferredFromFilename": self.inferred_from_filename,
            "partialParse": self.partial_parse,
            "error": self.error,
            "errorCategory": self.error_category.value if self.error_category else None,
        }


@dataclass
class NotesFinding:
    """Findings extracted from the contractor's free-text notes."""

    is_empty: bool = False
    project_type: Optional[str] = None
    project_subtype: Optional[str] = None
    dimensions: Dict[str, Any] = field(default_factory=dict)
    material_requirements: Dict[str, Any] = field(default_factory=dict)
    special_considerations: List[str] = field(default_factory=list)
    demolition_needed: bool = False
    client_preferences: Dict[str, Any] = field(default_factory=dict)
    source: NotesSource = NotesSource.PRIMARY

    @classmethod
    def empty(cls) -> "NotesFinding":
        return cls(is_empty=True, source=NotesSource.EMPTY)

    def to_dict(self) -> Dict[str, Any]:
        if self.is_empty:
            return {"isEmpty": True}
        return {
            "isEmpty": False,
            "projectType": self.project_type,
            "projectSubtype": self.project_subtype,
            "dimensions": dict(self.dimensions),
            "materialRequirements": dict(self.material_requirements),
            "specialConsiderations": list(self.special_considerations),
            "demolitionNeeded": self.demolition_needed,
            "clientPreferences": dict(self.client_preferences),
            "source": self.source.value,
        }


@dataclass
class FindingsSummary:
    """Merged view over all sources."""

    project_type: Optional[str] = None
    dimensions: Dict[str, Any] = field(default_factory=dict)
    materials: Dict[str, Any] = field(default_factory=dict)
    conditions: Dict[str, Any] = field(default_factory=dict)
    special_considerations: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "projectType": self.project_type,
            "dimensions": dict(self.dimensions),
            "materials": dict(self.materials),
            "conditions": dict(self.conditions),
            "specialConsiderations": list(self.special_considerations),
        }


@dataclass
class AggregatedFindings:
    """Output of the combination stage."""

    from_images: List[PerImageFinding]
    from_notes: NotesFinding
    aggregated: FindingsSummary
    coherence_score: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "fromImages": [f.to_dict() for f in self.from_images],
            "fromNotes": self.from_notes.to_dict(),
            "aggregatedFindings": self.aggregated.to_dict(),
            "coherenceScore": self.coherence_score,
        }


@dataclass
class StructuredSpec:
    """Canonical project fields produced by the structuring stage."""

    project_type: str
    project_subtype: str = "standard"
    dimensions: Dict[str, float] = field(default_factory=dict)
    options: Dict[str, Any] = field(default_factory=dict)
    detected_elements: Dict[str, Any] = field(default_factory=dict)
    generated_with_fallback: bool = False

    @classmethod
    def minimal(cls) -> "StructuredSpec":
        """Substitute used when structuring fails outside fallback mode."""
        return cls(project_type="unknown", generated_with_fallback=True)


@dataclass
class SpecializedFindings:
    """Output of the optional specialized analysis stage."""

    triggered: bool = False
    detected_windows: List[Dict[str, Any]] = field(default_factory=list)
    material_availability: Optional[Dict[str, Any]] = None
    recommended_products: Optional[List[Dict[str, Any]]] = None
    purchase_order_draft: Optional[Dict[str, Any]] = None


@dataclass
class RetryEvent:
    """One entry of the retry log kept in the run ledger."""

    stage: StageName
    label: str
    attempt: int
    outcome: str  # attempt | retry | success | failure
    delay: float = 0.0
    error: Optional[str] = None
    category: Optional[ErrorCategory] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stage": self.stage.value,
            "label": self.label,
            "attempt": self.attempt,
            "outcome": self.outcome,
            "delay": round(self.delay, 3),
            "error": self.error,
            "category": self.category.value if self.category else None,
            "timestamp": self.timestamp.isoformat(),
        }


# ============================================================================
# Result types
# ============================================================================


@dataclass
class ProcessingMeta:
    """Run metadata attached to every StructuredResult."""

    processing_id: str
    completed_stages: List[str] = field(default_factory=list)
    processing_time: float = 0.0
    confidence_score: float = 0.0
    cache_hit: bool = False
    warnings: List[str] = field(default_factory=list)
    fallback_mode: bool = False
    retry_count: int = 0
    stage_timings: Dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "processingId": self.processing_id,
            "completedStages": list(self.completed_stages),
            "processingTime": round(self.processing_time, 3),
            "confidenceScore": self.confidence_score,
            "cacheHit": self.cache_hit,
            "warnings": list(self.warnings),
            "fallbackMode": self.fallback_mode,
            "retryCount": self.retry_count,
            "stageTimings": dict(self.stage_timings),
        }


@dataclass
class StructuredResult:
    """
    Structured project specification handed to the pricing engine.

    Attributes:
        project_type: Normalised project type or ``unknown``.
        project_subtype: Subtype or dominant material, ``standard`` by default.
        dimensions: Numeric dimensions keyed by name (feet / square feet).
        options: Estimator options (demolition, materials, preferences).
        detected_elements: Materials, conditions and considerations seen.
        material_availability: Supplier availability, specialized runs only.
        recommended_products: Supplier products, specialized runs only.
        purchase_order_draft: Draft order, specialized runs only.
        generated_with_fallback: True when any substitute output was used.
        processing_meta: Run metadata.
    """

    project_type: str
    project_subtype: str
    dimensions: Dict[str, float]
    options: Dict[str, Any]
    detected_elements: Dict[str, Any]
    processing_meta: ProcessingMeta
    material_availability: Optional[Dict[str, Any]] = None
    recommended_products: Optional[List[Dict[str, Any]]] = None
    purchase_order_draft: Optional[Dict[str, Any]] = None
    generated_with_fallback: bool = False

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the camelCase JSON contract."""
        result: Dict[str, Any] = {
            "projectType": self.project_type,
            "projectSubtype": self.project_subtype,
            "dimensions": dict(self.dimensions),
            "options": dict(self.options),
            "detectedElements": dict(self.detected_elements),
            "generatedWithFallback": self.generated_with_fallback,
            "processingMeta": self.processing_meta.to_dict(),
        }
        if self.material_availability is not None:
            result["materialAvailability"] = self.material_availability
        if self.recommended_products is not None:
            result["recommendedProducts"] = self.recommended_products
        if self.purchase_order_draft is not None:
            result["purchaseOrderDraft"] = self.purchase_order_draft
        return result


@dataclass
class CacheEntry:
    """A cached value with its absolute monotonic expiry time."""

    key: str
    value: Any
    expires_at: float
