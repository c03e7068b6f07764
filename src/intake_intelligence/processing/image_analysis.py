"""
Image analysis stage for the Intake Intelligence System.

Each contractor photo is preprocessed, sent to the vision analyzer with a
prompt matching its declared type, and the response is parsed into a
PerImageFinding. Images are analysed in small concurrent batches with a
pause between batches to stay under provider rate limits.

A failing image never fails the stage. Outside fallback mode its finding is
replaced by a guess from the filename; in fallback mode the error finding is
kept as is.

Typical usage example:
    stage = ImageAnalysisStage(vision, RetryExecutor(), ImagePreprocessor())
    findings = await stage.run(request.images, ledger)
"""

import asyncio
import logging
from typing import TYPE_CHECKING, Awaitable, Callable, List, Optional, Sequence

from ..llm.prompt_library import PromptLibrary
from ..llm.providers.base_provider import VisionAnalyzer
from ..llm.response_parser import extract_partial_findings, parse_response
from ..llm.response_schemas import ImageAnalysisPayload
from ..models.data_structures import PerImageFinding, ProjectImage, StageName
from ..utils.error_handlers import (
    ImageAnalysisError,
    ParseError,
    classify_error,
    describe_error,
)
from .image_preprocessor import ImagePreprocessor
from .project_types import find_project_type

if TYPE_CHECKING:
    from ..orchestration.retry_executor import RetryExecutor
    from ..orchestration.run_ledger import RunLedger

logger = logging.getLogger(__name__)

# Field weights of the per-image confidence score.
CONFIDENCE_WEIGHTS = {
    "project_type": 0.3,
    "materials": 0.2,
    "dimensions": 0.3,
    "conditions": 0.1,
    "special_considerations": 0.1,
}
FILENAME_HEURISTIC_CONFIDENCE = 0.1


def score_finding(finding: PerImageFinding) -> float:
    """Confidence from which fields a finding managed to fill."""
    score = 0.0
    for field_name, weight in CONFIDENCE_WEIGHTS.items():
        if getattr(finding, field_name):
            score += weight
    return round(min(score, 1.0), 2)


class ImageAnalysisStage:
    """
    Runs the vision analyzer over all request images.

    Attributes:
        vision: Vision analyzer.
        batch_size: Images analysed concurrently.
        inter_batch_delay: Seconds to wait between batches.
    """

    def __init__(
        self,
        vision: VisionAnalyzer,
        retry_executor: "RetryExecutor",
        preprocessor: Optional[ImagePreprocessor] = None,
        prompts: Optional[PromptLibrary] = None,
        batch_size: int = 3,
        inter_batch_delay: float = 1.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {batch_size}")
        self.vision = vision
        self.retry_executor = retry_executor
        self.preprocessor = preprocessor or ImagePreprocessor()
        self.prompts = prompts or PromptLibrary()
        self.batch_size = batch_size
        self.inter_batch_delay = inter_batch_delay
        self._sleep = sleep

    async def run(
        self,
        images: Sequence[ProjectImage],
        ledger: "RunLedger",
        fallback_mode: bool = False,
    ) -> List[PerImageFinding]:
        """
        Analyze every image.

        Args:
            images: Validated request images.
            ledger: Ledger of the current run.
            fallback_mode: Keep error findings instead of filename guesses.

        Returns:
            One PerImageFinding per image, in input order.

        Raises:
            ImageAnalysisError: If there are no images to analyze.
        """
        if not images:
            raise ImageAnalysisError("No images to analyze", ledger.processing_id)

        findings: List[PerImageFinding] = []
        for start in range(0, len(images), self.batch_size):
            if start > 0 and self.inter_batch_delay > 0:
                await self._sleep(self.inter_batch_delay)

            batch = images[start : start + self.batch_size]
            logger.debug(
                f"Analyzing images {start + 1}-{start + len(batch)} of {len(images)}",
                extra={"processing_id": ledger.processing_id},
            )
            results = await asyncio.gather(
                *(self._analyze_one(image, ledger, fallback_mode) for image in batch)
            )
            findings.extend(results)

        failed = sum(1 for f in findings if f.error)
        logger.info(
            f"Image analysis finished: {len(findings) - failed} analysed, {failed} failed",
            extra={"processing_id": ledger.processing_id},
        )
        return findings

    async def _analyze_one(
        self, image: ProjectImage, ledger: "RunLedger", fallback_mode: bool
    ) -> PerImageFinding:
        try:
            prepared = await self.preprocessor.prepare(image)
        except Exception as e:
            return self._failed_finding(image, e, ledger, fallback_mode)

        prompt = self.prompts.image_prompt(image.declared_type, image.filename)

        async def call_vision() -> str:
            return await self.vision.analyze(prompt, prepared.data, prepared.mime_type)

        try:
            text = await self.retry_executor.run(
                call_vision,
                StageName.IMAGE_ANALYSIS,
                ledger,
                label=f"image:{image.image_id}",
            )
            return self._parse_finding(image, text)
        except Exception as e:
            return self._failed_finding(image, e, ledger, fallback_mode)

    def _parse_finding(self, image: ProjectImage, text: str) -> PerImageFinding:
        partial = False
        try:
            payload = parse_response(text, ImageAnalysisPayload)
        except ParseError:
            recovered = extract_partial_findings(text)
            if recovered is None:
                raise
            payload = ImageAnalysisPayload.model_validate(recovered)
            partial = True
            logger.info(f"Recovered partial findings for {image.filename}")

        finding = PerImageFinding(
            image_id=image.image_id,
            filename=image.filename,
            declared_type=image.declared_type,
            project_type=payload.project_type,
            dimensions=dict(payload.dimensions),
            materials=dict(payload.materials),
            conditions=dict(payload.conditions),
            special_considerations=list(payload.special_considerations),
            contains_window=payload.contains_window,
            partial_parse=partial,
        )
        finding.confidence = score_finding(finding)
        return finding

    def _failed_finding(
        self,
        image: ProjectImage,
        error: Exception,
        ledger: "RunLedger",
        fallback_mode: bool,
    ) -> PerImageFinding:
        category = classify_error(error)
        finding = PerImageFinding(
            image_id=image.image_id,
            filename=image.filename,
            declared_type=image.declared_type,
            error=describe_error(error),
            error_category=category,
        )

        if fallback_mode:
            ledger.add_warning(f"Image {image.filename} could not be analyzed")
            return finding

        guessed_type = find_project_type(image.filename)
        finding.project_type = guessed_type
        finding.contains_window = guessed_type == "window_replacement"
        finding.inferred_from_filename = True
        finding.confidence = FILENAME_HEURISTIC_CONFIDENCE
        ledger.add_warning(
            f"Image {image.filename} analyzed by filename heuristic "
            f"({category.value} error)"
        )
        logger.warning(
            f"Using filename heuristic for {image.filename}: {guessed_type or 'no type found'}",
            extra={"processing_id": ledger.processing_id},
        )
        return finding
