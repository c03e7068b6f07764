"""
Notes analysis stage.

Turns the contractor's free-text notes into a NotesFinding. Extraction
degrades in three steps: the primary text analyzer (with retries), one
attempt on the secondary analyzer, then the deterministic keyword extractor.
"""

import logging
from typing import TYPE_CHECKING, Optional

from ..llm.prompt_library import PromptLibrary
from ..llm.providers.base_provider import TextAnalyzer
from ..llm.response_parser import parse_response
from ..llm.response_schemas import NotesAnalysisPayload
from ..models.data_structures import NotesFinding, NotesSource, StageName
from ..utils.error_handlers import describe_error
from .keyword_extractor import KeywordExtractor

if TYPE_CHECKING:
    from ..orchestration.retry_executor import RetryExecutor
    from ..orchestration.run_ledger import RunLedger

logger = logging.getLogger(__name__)


class NotesAnalysisStage:
    """
    Extracts project findings from contractor notes.

    Attributes:
        primary: Text analyzer tried first, with retries.
        secondary: Optional analyzer on a different provider, tried once.
    """

    def __init__(
        self,
        primary: TextAnalyzer,
        retry_executor: "RetryExecutor",
        secondary: Optional[TextAnalyzer] = None,
        prompts: Optional[PromptLibrary] = None,
        keyword_extractor: Optional[KeywordExtractor] = None,
    ) -> None:
        self.primary = primary
        self.secondary = secondary
        self.retry_executor = retry_executor
        self.prompts = prompts or PromptLibrary()
        self.keyword_extractor = keyword_extractor or KeywordExtractor()

    async def run(
        self, notes: str, ledger: "RunLedger", fallback_mode: bool = False
    ) -> NotesFinding:
        """
        Analyze notes.

        Args:
            notes: Contractor notes, possibly empty.
            ledger: Ledger of the current run.
            fallback_mode: When True, a failure of both analyzers is raised
                instead of falling back to keyword extraction.

        Returns:
            NotesFinding. ``is_empty`` is set for blank notes.

        Raises:
            Exception: Only in fallback mode, the last analyzer error.
        """
        if not notes or not notes.strip():
            logger.info(
                "No contractor notes provided",
                extra={"processing_id": ledger.processing_id},
            )
            return NotesFinding.empty()

        prompt = self.prompts.notes_prompt(notes.strip())

        async def call_primary() -> str:
            return await self.primary.complete(prompt)

        try:
            text = await self.retry_executor.run(
                call_primary,
                StageName.NOTES_ANALYSIS,
                ledger,
                label="notes:primary",
            )
            return self._to_finding(parse_response(text, NotesAnalysisPayload), NotesSource.PRIMARY)
        except Exception as primary_error:
            last_error: Exception = primary_error
            ledger.add_warning(f"Primary notes analysis failed: {describe_error(primary_error)}")

        if self.secondary is not None:
            try:
                text = await self.secondary.complete(prompt)
                finding = self._to_finding(
                    parse_response(text, NotesAnalysisPayload), NotesSource.SECONDARY
                )
                logger.info(
                    "Notes analyzed by secondary analyzer",
                    extra={"processing_id": ledger.processing_id},
                )
                return finding
            except Exception as secondary_error:
                last_error = secondary_error
                ledger.add_warning(
                    f"Secondary notes analysis failed: {describe_error(secondary_error)}"
                )

        if fallback_mode:
            raise last_error

        logger.warning(
            "Falling back to keyword extraction for notes",
            extra={"processing_id": ledger.processing_id},
        )
        ledger.add_warning("Notes analyzed with keyword extraction")
        return self.keyword_extractor.extract(notes)

    @staticmethod
    def _to_finding(payload: NotesAnalysisPayload, source: NotesSource) -> NotesFinding:
        return NotesFinding(
            project_type=payload.project_type,
            project_subtype=payload.project_subtype,
            dimensions=dict(payload.dimensions),
            material_requirements=dict(payload.material_requirements),
            special_considerations=list(payload.special_considerations),
            demolition_needed=payload.demolition_needed,
            client_preferences=dict(payload.client_preferences),
            source=source,
        )
