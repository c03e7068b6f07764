"""
Unit tests for keyword_extractor module.

Tests English and Spanish extraction of project type, dimensions, materials
and the demolition flag.
"""

import pytest

from intake_intelligence.models.data_structures import NotesSource
from intake_intelligence.processing.keyword_extractor import KeywordExtractor

pytestmark = pytest.mark.unit


@pytest.fixture
def extractor():
    return KeywordExtractor()


class TestEnglishNotes:
    """Tests for English notes."""

    def test_fence_notes(self, extractor):
        """Test the reference fence description."""
        finding = extractor.extract("70 linear feet wood privacy fence, 6 feet tall")

        assert finding.project_type == "fencing"
        assert finding.dimensions == {"length": 70.0, "height": 6.0}
        assert finding.material_requirements == {"primary": "wood"}
        assert finding.demolition_needed is False
        assert finding.source == NotesSource.KEYWORD

    def test_roof_area_with_thousands_separator(self, extractor):
        finding = extractor.extract("Replace roof, about 1,800 sq ft of asphalt shingles")

        assert finding.project_type == "roofing"
        assert finding.dimensions["area"] == 1800.0
        assert finding.material_requirements["primary"] == "asphalt_shingle"

    def test_pair_dimensions(self, extractor):
        finding = extractor.extract("New deck 16x12 in composite, tear out the old one")

        assert finding.project_type == "decking"
        assert finding.dimensions == {"length": 16.0, "width": 12.0}
        assert finding.material_requirements["primary"] == "composite"
        assert finding.demolition_needed is True

    def test_specific_wood_replaces_generic(self, extractor):
        materials = extractor.extract_materials("pressure treated wood posts with concrete footings")

        assert materials == {"primary": "pressure_treated", "additional": ["concrete"]}

    def test_considerations(self, extractor):
        finding = extractor.extract("Fence on a sloped yard, needs a gate and HOA approval")

        assert "sloped terrain" in finding.special_considerations
        assert "gate requested" in finding.special_considerations
        assert "HOA approval" in finding.special_considerations


class TestSpanishNotes:
    """Tests for Spanish notes."""

    def test_spanish_fence(self, extractor):
        finding = extractor.extract(
            "Cerca de madera de 50 pies lineales, 6 pies de alto. Demoler la cerca vieja."
        )

        assert finding.project_type == "fencing"
        assert finding.dimensions["length"] == 50.0
        assert finding.dimensions["height"] == 6.0
        assert finding.material_requirements["primary"] == "wood"
        assert finding.demolition_needed is True

    def test_accents_ignored(self, extractor):
        finding = extractor.extract("Remodelación de baño, azulejo nuevo")

        assert finding.project_type == "bathroom_remodel"
        assert finding.material_requirements["primary"] == "tile"


class TestEdgeCases:
    """Tests for empty and unrecognised notes."""

    @pytest.mark.parametrize("notes", ["", "   \n"])
    def test_blank_notes(self, extractor, notes):
        finding = extractor.extract(notes)

        assert finding.is_empty
        assert finding.to_dict() == {"isEmpty": True}

    def test_nothing_recognised(self, extractor):
        finding = extractor.extract("Call the client after lunch")

        assert finding.project_type is None
        assert finding.dimensions == {}
        assert finding.material_requirements == {}
        assert not finding.is_empty
