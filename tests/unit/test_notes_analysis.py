"""
Unit tests for notes_analysis module.

Tests the primary, secondary and keyword extraction paths and fallback mode.
"""

import pytest

from intake_intelligence.models.data_structures import NotesSource
from intake_intelligence.processing.notes_analysis import NotesAnalysisStage

pytestmark = pytest.mark.unit

FENCE_NOTES = "70 linear feet wood privacy fence, 6 feet tall"


@pytest.fixture
def stage(primary_text, secondary_text, retry_executor):
    return NotesAnalysisStage(primary_text, retry_executor, secondary=secondary_text)


class TestNotesAnalysisStage:
    """Tests for NotesAnalysisStage.run."""

    @pytest.mark.parametrize("notes", ["", "  \n\t"])
    async def test_empty_notes(self, stage, ledger, primary_text, notes):
        finding = await stage.run(notes, ledger)

        assert finding.is_empty
        assert finding.source == NotesSource.EMPTY
        primary_text.complete.assert_not_called()

    async def test_primary_analyzer(self, stage, ledger, primary_text):
        finding = await stage.run(FENCE_NOTES, ledger)

        assert finding.source == NotesSource.PRIMARY
        assert finding.project_type == "fencing"
        assert finding.dimensions == {"length": 70, "height": 6}
        assert finding.material_requirements == {"primary": "wood"}
        prompt = primary_text.complete.call_args.args[0]
        assert FENCE_NOTES in prompt
        assert ledger.warnings == []

    async def test_secondary_after_primary_exhausted(
        self, stage, ledger, primary_text, secondary_text, as_response
    ):
        primary_text.complete.side_effect = TimeoutError("primary timed out")
        secondary_text.complete.side_effect = None
        secondary_text.complete.return_value = as_response(
            {"projectType": "decking", "dimensions": {"length": 16, "width": 12}}
        )

        finding = await stage.run("new deck 16x12", ledger)

        assert finding.source == NotesSource.SECONDARY
        assert finding.project_type == "decking"
        assert primary_text.complete.call_count == 3
        assert secondary_text.complete.call_count == 1
        assert any("Primary notes analysis failed" in w for w in ledger.warnings)

    async def test_unparseable_primary_counts_as_failure(
        self, stage, ledger, primary_text
    ):
        primary_text.complete.return_value = "Sorry, I cannot help with that."

        finding = await stage.run(FENCE_NOTES, ledger)

        assert finding.source == NotesSource.KEYWORD
        assert finding.project_type == "fencing"

    async def test_unparseable_primary_not_requested_again(
        self, stage, ledger, primary_text, secondary_text
    ):
        primary_text.complete.return_value = "Sure! Here is what I found about the fence."

        await stage.run(FENCE_NOTES, ledger)

        assert primary_text.complete.call_count == 1
        assert secondary_text.complete.call_count == 1
        assert ledger.retry_count() == 0

    async def test_keyword_fallback(self, stage, ledger, primary_text):
        primary_text.complete.side_effect = ConnectionError("connection reset")

        finding = await stage.run(FENCE_NOTES, ledger)

        assert finding.source == NotesSource.KEYWORD
        assert finding.project_type == "fencing"
        assert finding.dimensions == {"length": 70.0, "height": 6.0}
        assert "Notes analyzed with keyword extraction" in ledger.warnings

    async def test_without_secondary(self, primary_text, retry_executor, ledger):
        primary_text.complete.side_effect = ConnectionError("connection reset")
        stage = NotesAnalysisStage(primary_text, retry_executor)

        finding = await stage.run(FENCE_NOTES, ledger)

        assert finding.source == NotesSource.KEYWORD

    async def test_fallback_mode_raises_last_error(self, stage, ledger, primary_text):
        primary_text.complete.side_effect = ConnectionError("connection reset")

        with pytest.raises(ConnectionError, match="secondary provider unreachable"):
            await stage.run(FENCE_NOTES, ledger, fallback_mode=True)

    async def test_retries_recorded_in_ledger(self, stage, ledger, primary_text):
        primary_text.complete.side_effect = [
            ConnectionError("connection reset"),
            primary_text.complete.return_value,
        ]

        finding = await stage.run(FENCE_NOTES, ledger)

        assert finding.source == NotesSource.PRIMARY
        assert ledger.retry_count() == 1
