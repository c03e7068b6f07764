"""
Structuring stage for the Intake Intelligence System.

Converts AggregatedFindings into the canonical StructuredSpec the pricing
engine consumes: a supported project type, numeric dimensions, a subtype,
and estimator options. When fewer than two dimensions are known, per-type
defaults fill the gaps so an estimate can still be produced.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

from ..models.data_structures import AggregatedFindings, StructuredSpec
from ..utils.error_handlers import StructuringError
from ..utils.text_utils import leading_number, to_snake_case
from .project_types import UNKNOWN_TYPE, find_project_type, normalize_project_type

logger = logging.getLogger(__name__)

DEFAULT_SUBTYPE = "standard"


def apply_default_dimensions(project_type: str, dimensions: Dict[str, float]) -> List[str]:
    """
    Fill typical dimensions for a project type in place.

    Args:
        project_type: Normalised project type.
        dimensions: Numeric dimensions, modified in place.

    Returns:
        Names of the dimensions that were filled.
    """
    filled: Dict[str, float] = {}

    if project_type == "fencing":
        if "length" not in dimensions:
            filled["length"] = 100.0
        if "height" not in dimensions:
            filled["height"] = 6.0
    elif project_type == "decking":
        if "length" not in dimensions and "width" not in dimensions:
            filled["length"] = 16.0
            filled["width"] = 12.0
    elif project_type == "roofing":
        if "area" not in dimensions:
            filled["area"] = 2000.0
    elif project_type == "bathroom_remodel":
        if "area" not in dimensions:
            filled["area"] = 50.0
    elif project_type == "kitchen_remodel":
        if "area" not in dimensions:
            filled["area"] = 200.0
    elif project_type == "property_renovation":
        if "area" not in dimensions:
            filled["area"] = 1500.0

    dimensions.update(filled)
    return list(filled)


def _dominant_material(materials: Dict[str, Any]) -> Optional[str]:
    primary = materials.get("primary")
    candidates: Iterable[Any] = [primary] if primary else materials.values()
    for value in candidates:
        if isinstance(value, str) and value.strip():
            return to_snake_case(value)
    return None


def _flatten_text(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, dict):
        parts: List[str] = []
        for key, item in value.items():
            parts.append(str(key))
            parts.extend(_flatten_text(item))
        return parts
    if isinstance(value, (list, tuple)):
        parts = []
        for item in value:
            parts.extend(_flatten_text(item))
        return parts
    return []


class StructuringStage:
    """Builds a StructuredSpec from aggregated findings."""

    def structure(self, aggregated: AggregatedFindings) -> StructuredSpec:
        """
        Normalise aggregated findings.

        Args:
            aggregated: Output of the combination stage.

        Returns:
            StructuredSpec with a supported or ``unknown`` project type.

        Raises:
            StructuringError: If the aggregate is malformed.
        """
        self._check_shape(aggregated)
        summary = aggregated.aggregated
        notes = aggregated.from_notes

        project_type = normalize_project_type(summary.project_type)
        if project_type == UNKNOWN_TYPE:
            project_type = self._infer_type(aggregated)

        dimensions = self.coerce_dimensions(summary.dimensions)
        estimated: List[str] = []
        if len(dimensions) < 2 and project_type != UNKNOWN_TYPE:
            estimated = apply_default_dimensions(project_type, dimensions)
            if estimated:
                logger.info(f"Estimated default dimensions for {project_type}: {estimated}")

        subtype = (
            (to_snake_case(notes.project_subtype) if notes.project_subtype else None)
            or _dominant_material(summary.materials)
            or DEFAULT_SUBTYPE
        )

        options: Dict[str, Any] = {"demolitionNeeded": bool(notes.demolition_needed)}
        if summary.materials:
            options["materials"] = dict(summary.materials)
        if notes.client_preferences:
            options["clientPreferences"] = dict(notes.client_preferences)

        detected_elements: Dict[str, Any] = {
            "materials": dict(summary.materials),
            "conditions": dict(summary.conditions),
            "specialConsiderations": list(summary.special_considerations),
        }
        if estimated:
            detected_elements["estimatedDimensions"] = estimated

        return StructuredSpec(
            project_type=project_type,
            project_subtype=subtype,
            dimensions=dimensions,
            options=options,
            detected_elements=detected_elements,
        )

    @staticmethod
    def coerce_dimensions(raw: Dict[str, Any]) -> Dict[str, float]:
        """Keep dimensions with a leading numeric token, as floats."""
        dimensions: Dict[str, float] = {}
        for key, value in raw.items():
            number = leading_number(value)
            if number is None:
                logger.debug(f"Dropping non-numeric dimension {key}={value!r}")
                continue
            dimensions[to_snake_case(str(key)) or str(key)] = number
        return dimensions

    @staticmethod
    def _infer_type(aggregated: AggregatedFindings) -> str:
        summary = aggregated.aggregated
        notes = aggregated.from_notes
        evidence: List[str] = [summary.project_type or ""]
        evidence.extend(f.project_type or "" for f in aggregated.from_images)
        if not notes.is_empty:
            evidence.append(notes.project_type or "")
            evidence.append(notes.project_subtype or "")
        evidence.extend(_flatten_text(summary.materials))
        evidence.extend(_flatten_text(summary.conditions))
        evidence.extend(summary.special_considerations)

        inferred = find_project_type(" . ".join(e for e in evidence if e))
        if inferred:
            logger.info(f"Re-inferred project type from findings: {inferred}")
        return inferred or UNKNOWN_TYPE

    @staticmethod
    def _check_shape(aggregated: Any) -> None:
        if not isinstance(aggregated, AggregatedFindings):
            raise StructuringError(
                f"Expected AggregatedFindings, got {type(aggregated).__name__}"
            )
        summary = aggregated.aggregated
        checks = [
            ("dimensions", summary.dimensions, dict),
            ("materials", summary.materials, dict),
            ("conditions", summary.conditions, dict),
            ("specialConsiderations", summary.special_considerations, list),
        ]
        for name, value, expected in checks:
            if not isinstance(value, expected):
                raise StructuringError(
                    f"Aggregated {name} must be a {expected.__name__}, "
                    f"got {type(value).__name__}"
                )
        if summary.project_type is not None and not isinstance(summary.project_type, str):
            raise StructuringError("Aggregated projectType must be a string")
