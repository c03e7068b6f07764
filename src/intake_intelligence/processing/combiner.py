"""
Combination of per-image and notes findings.

``combine`` is a pure function: it never calls analyzers and never mutates
its inputs. The contractor's notes are treated as the more authoritative
source: the notes project type outvotes a single photo and notes values win
on conflicting keys.
"""

import copy
import logging
from typing import Any, Dict, List, Optional, Sequence

from ..models.data_structures import (
    AggregatedFindings,
    FindingsSummary,
    NotesFinding,
    PerImageFinding,
)
from ..utils.text_utils import leading_number
from .project_types import UNKNOWN_TYPE, normalize_project_type

logger = logging.getLogger(__name__)

IMAGE_VOTE_WEIGHT = 2
NOTES_VOTE_WEIGHT = 3

# Relative difference under which two measurements agree.
DIMENSION_AGREEMENT_TOLERANCE = 0.2


def _vote_project_type(
    from_images: Sequence[PerImageFinding], from_notes: NotesFinding
) -> Optional[str]:
    votes: Dict[str, int] = {}
    for finding in from_images:
        project_type = normalize_project_type(finding.project_type)
        if project_type != UNKNOWN_TYPE:
            votes[project_type] = votes.get(project_type, 0) + IMAGE_VOTE_WEIGHT

    if not from_notes.is_empty:
        project_type = normalize_project_type(from_notes.project_type)
        if project_type != UNKNOWN_TYPE:
            votes[project_type] = votes.get(project_type, 0) + NOTES_VOTE_WEIGHT

    winner: Optional[str] = None
    best = 0
    # dicts keep insertion order, so ties go to the first type seen
    for project_type, weight in votes.items():
        if weight > best:
            winner, best = project_type, weight

    if winner is None:
        # Nothing recognisable: keep the raw label for later re-inference
        raw_types = [from_notes.project_type] + [f.project_type for f in from_images]
        winner = next((t for t in raw_types if t), None)
    return winner


def _merge_image_values(
    from_images: Sequence[PerImageFinding], attribute: str
) -> Dict[str, Any]:
    merged: Dict[str, Any] = {}
    for finding in from_images:
        for key, value in getattr(finding, attribute).items():
            merged.setdefault(key, copy.deepcopy(value))
    return merged


def _unique(items: List[str]) -> List[str]:
    seen = set()
    result = []
    for item in items:
        marker = item.strip().lower()
        if marker and marker not in seen:
            seen.add(marker)
            result.append(item)
    return result


def coherence_score(
    from_images: Sequence[PerImageFinding], from_notes: NotesFinding
) -> float:
    """
    Agreement between the notes and the photos, in [0, 1].

    Half the score is earned when the notes project type is among the image
    project types. The other half is the share of numeric dimensions, present
    in both sources, whose values differ by less than 20% of the larger one.
    """
    if from_notes.is_empty:
        return 0.0

    score = 0.0
    image_types = {normalize_project_type(f.project_type) for f in from_images}
    image_types.discard(UNKNOWN_TYPE)
    notes_type = normalize_project_type(from_notes.project_type)
    if notes_type != UNKNOWN_TYPE and notes_type in image_types:
        score += 0.5

    image_dimensions = _merge_image_values(from_images, "dimensions")
    overlapping = 0
    agreeing = 0
    for key, notes_value in from_notes.dimensions.items():
        if key not in image_dimensions:
            continue
        notes_number = leading_number(notes_value)
        image_number = leading_number(image_dimensions[key])
        if notes_number is None or image_number is None:
            continue
        overlapping += 1
        larger = max(abs(notes_number), abs(image_number))
        if larger == 0 or abs(notes_number - image_number) < DIMENSION_AGREEMENT_TOLERANCE * larger:
            agreeing += 1

    if overlapping:
        score += 0.5 * agreeing / overlapping
    return round(score, 3)


def combine(
    from_images: Sequence[PerImageFinding], from_notes: NotesFinding
) -> AggregatedFindings:
    """
    Merge image and notes findings into one AggregatedFindings.

    Args:
        from_images: Per-image findings, in request order.
        from_notes: Notes finding (may be empty).

    Returns:
        AggregatedFindings holding copies of the inputs and the merged view.
    """
    images = [copy.deepcopy(f) for f in from_images]
    notes = copy.deepcopy(from_notes)

    dimensions = _merge_image_values(images, "dimensions")
    materials = _merge_image_values(images, "materials")
    conditions = _merge_image_values(images, "conditions")
    considerations: List[str] = []

    if not notes.is_empty:
        dimensions.update(copy.deepcopy(notes.dimensions))
        materials.update(copy.deepcopy(notes.material_requirements))
        considerations.extend(notes.special_considerations)

    for finding in images:
        considerations.extend(finding.special_considerations)

    summary = FindingsSummary(
        project_type=_vote_project_type(images, notes),
        dimensions=dimensions,
        materials=materials,
        conditions=conditions,
        special_considerations=_unique(considerations),
    )
    aggregated = AggregatedFindings(
        from_images=images,
        from_notes=notes,
        aggregated=summary,
        coherence_score=coherence_score(images, notes),
    )
    logger.debug(
        f"Combined {len(images)} image finding(s): type={summary.project_type}, "
        f"coherence={aggregated.coherence_score}"
    )
    return aggregated
