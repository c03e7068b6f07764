"""
Unit tests for combiner module.

Tests project type voting, merge precedence and the coherence score.
"""

import copy

import pytest

from intake_intelligence.models.data_structures import NotesFinding, PerImageFinding
from intake_intelligence.processing.combiner import coherence_score, combine

pytestmark = pytest.mark.unit


def image_finding(image_id="img-1", **fields):
    return PerImageFinding(image_id=image_id, filename=f"{image_id}.jpg", **fields)


@pytest.fixture
def fence_notes():
    return NotesFinding(
        project_type="fencing",
        dimensions={"length": 70, "height": 6},
        material_requirements={"primary": "cedar"},
        special_considerations=["gate requested"],
    )


class TestCombine:
    """Tests for combine."""

    def test_notes_override_conflicting_keys(self, fence_notes):
        images = [
            image_finding(
                project_type="fence",
                dimensions={"length": "68 ft", "width": 1},
                materials={"primary": "wood", "posts": "metal"},
            )
        ]

        aggregated = combine(images, fence_notes)
        summary = aggregated.aggregated

        assert summary.project_type == "fencing"
        assert summary.dimensions == {"length": 70, "width": 1, "height": 6}
        assert summary.materials == {"primary": "cedar", "posts": "metal"}

    def test_first_image_wins_among_images(self):
        images = [
            image_finding("a", conditions={"ground": "flat"}),
            image_finding("b", conditions={"ground": "sloped", "access": "narrow"}),
        ]

        summary = combine(images, NotesFinding.empty()).aggregated

        assert summary.conditions == {"ground": "flat", "access": "narrow"}

    def test_notes_vote_outweighs_single_image(self, fence_notes):
        images = [image_finding(project_type="deck")]

        assert combine(images, fence_notes).aggregated.project_type == "fencing"

    def test_two_images_outweigh_notes(self, fence_notes):
        images = [image_finding("a", project_type="deck"), image_finding("b", project_type="decking")]

        assert combine(images, fence_notes).aggregated.project_type == "decking"

    def test_unrecognised_types_keep_raw_label(self):
        images = [image_finding(project_type="hot tub install")]

        assert combine(images, NotesFinding.empty()).aggregated.project_type == "hot tub install"

    def test_considerations_deduplicated_notes_first(self, fence_notes):
        images = [image_finding(special_considerations=["Gate Requested", "utility lines"])]

        summary = combine(images, fence_notes).aggregated

        assert summary.special_considerations == ["gate requested", "utility lines"]

    def test_inputs_not_mutated(self, fence_notes):
        images = [image_finding(dimensions={"length": 10})]
        images_before = copy.deepcopy(images)
        notes_before = copy.deepcopy(fence_notes)

        aggregated = combine(images, fence_notes)
        aggregated.aggregated.dimensions["length"] = 999
        aggregated.from_images[0].dimensions["length"] = 999

        assert images == images_before
        assert fence_notes == notes_before

    def test_empty_notes_use_images_only(self):
        images = [image_finding(project_type="patio", dimensions={"area": 300})]

        aggregated = combine(images, NotesFinding.empty())

        assert aggregated.aggregated.dimensions == {"area": 300}
        assert aggregated.coherence_score == 0.0


class TestCoherenceScore:
    """Tests for coherence_score."""

    def test_full_agreement(self, fence_notes):
        images = [image_finding(project_type="fence", dimensions={"length": "68 ft", "height": 6})]

        assert coherence_score(images, fence_notes) == 1.0

    def test_type_match_only(self, fence_notes):
        images = [image_finding(project_type="fencing", dimensions={"area": 100})]

        assert coherence_score(images, fence_notes) == 0.5

    def test_partial_dimension_agreement(self, fence_notes):
        images = [image_finding(project_type="deck", dimensions={"length": 69, "height": 12})]

        assert coherence_score(images, fence_notes) == 0.25

    def test_score_in_range(self, fence_notes):
        images = [image_finding(project_type="roof", dimensions={"length": 1})]

        assert 0.0 <= coherence_score(images, fence_notes) <= 1.0
