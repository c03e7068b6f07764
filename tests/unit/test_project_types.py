"""
Unit tests for project_types module.
"""

import pytest

from intake_intelligence.processing.project_types import (
    SUPPORTED_PROJECT_TYPES,
    find_project_type,
    normalize_project_type,
)

pytestmark = pytest.mark.unit


class TestNormalizeProjectType:
    """Tests for normalize_project_type."""

    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("fence", "fencing"),
            ("Fencing Project", "fencing"),
            ("Cerca de madera", "fencing"),
            ("Kitchen Remodel", "kitchen_remodel"),
            ("remodelación de baño", "bathroom_remodel"),
            ("WINDOW_REPLACEMENT", "window_replacement"),
            ("retaining-wall", "retaining_wall"),
            ("home renovation", "property_renovation"),
        ],
    )
    def test_aliases(self, raw, expected):
        assert normalize_project_type(raw) == expected

    @pytest.mark.parametrize("raw", [None, "", "hot tub", 42])
    def test_unknown(self, raw):
        assert normalize_project_type(raw) == "unknown"

    @pytest.mark.parametrize(
        "raw", ["basement waterproofing", "outdoor lighting", "deckhand", "floorplan review"]
    )
    def test_alias_inside_longer_word_ignored(self, raw):
        assert normalize_project_type(raw) == "unknown"

    def test_alias_as_whole_word_in_phrase(self):
        assert normalize_project_type("new cedar deck out back") == "decking"
        assert normalize_project_type("front door swap") == "door_installation"

    def test_supported_types_are_fixed_points(self):
        for project_type in SUPPORTED_PROJECT_TYPES:
            assert normalize_project_type(project_type) == project_type


class TestFindProjectType:
    """Tests for find_project_type."""

    def test_filename(self):
        assert find_project_type("IMG_2041_deck_photo.jpg") == "decking"

    def test_specific_beats_generic(self):
        assert find_project_type("full home renovation with a new kitchen") == "kitchen_remodel"

    def test_earliest_mention_wins(self):
        assert find_project_type("patio next to the fence") == "patio"

    def test_whole_words_only(self):
        assert find_project_type("defenseless") is None

    def test_no_match(self):
        assert find_project_type("random.jpg") is None
        assert find_project_type(None) is None
