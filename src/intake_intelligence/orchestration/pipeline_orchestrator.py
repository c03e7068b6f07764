"""
Pipeline orchestrator for the Intake Intelligence System.

Coordinates one intake run end to end: request pre-check, cache lookup, the
six stages in STAGE_SEQUENCE, confidence scoring and the cache write. A pass
that fails is followed by exactly one fallback pass that resumes from the
last completed stage of the same run ledger.

Typical usage example:
    orchestrator = PipelineOrchestrator.from_config(Config.load())
    result = await orchestrator.analyze(
        AnalysisRequest(
            images=(ProjectImage(image_id="img-1", path="fence.jpg"),),
            notes="70 linear feet of wood privacy fence, 6 feet tall",
            location=Location(zip_code="94509"),
        )
    )
"""

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

from ..cache.cache_layer import CacheLayer, CacheStore, InMemoryCacheStore
from ..integrations.materials_lookup import CatalogMaterialsLookup, MaterialsLookup
from ..llm.analyzer_gateway import AnalyzerSet, build_analyzers
from ..llm.prompt_library import PromptLibrary
from ..llm.usage_tracker import UsageTracker
from ..models.data_structures import (
    STAGE_SEQUENCE,
    AggregatedFindings,
    AnalysisRequest,
    NotesFinding,
    PerImageFinding,
    ProcessingMeta,
    StageName,
    StructuredResult,
    StructuredSpec,
)
from ..processing.combiner import combine
from ..processing.image_analysis import ImageAnalysisStage
from ..processing.image_preprocessor import ImagePreprocessor, PreprocessConfig
from ..processing.notes_analysis import NotesAnalysisStage
from ..processing.specialized_analysis import SpecializedAnalysisStage
from ..processing.structuring import StructuringStage
from ..quality.confidence_scorer import ConfidenceScorer
from ..utils.config_loader import Config, SystemConfig
from ..utils.error_handlers import (
    PipelineError,
    ValidationError,
    describe_error,
    log_error_with_context,
)
from ..utils.file_utils import generate_unique_id
from ..utils.logging_utils import setup_logging_from_config
from .retry_executor import RetryExecutor
from .run_ledger import RunLedger, RunLedgerStore

logger = logging.getLogger(__name__)

StageHandler = Callable[[AnalysisRequest, RunLedger], Awaitable[Tuple[Any, bool]]]
Combiner = Callable[[Sequence[PerImageFinding], NotesFinding], AggregatedFindings]


class PipelineOrchestrator:
    """Runs the intake analysis pipeline.

    Attributes:
        config: System configuration.
        cache: Request-keyed result cache.
        ledger_store: Owner of the ledgers of in-flight runs.
        run_timeout: Seconds one pass may take.
    """

    def __init__(
        self,
        config: SystemConfig,
        analyzers: AnalyzerSet,
        materials_lookup: Optional[MaterialsLookup] = None,
        cache_store: Optional[CacheStore] = None,
        ledger_store: Optional[RunLedgerStore] = None,
        retry_executor: Optional[RetryExecutor] = None,
        preprocessor: Optional[ImagePreprocessor] = None,
        prompts: Optional[PromptLibrary] = None,
        combiner: Combiner = combine,
        structuring_stage: Optional[StructuringStage] = None,
        confidence_scorer: Optional[ConfidenceScorer] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Initialize the orchestrator with dependency injection.

        Args:
            config: System configuration.
            analyzers: Vision, primary text and optional secondary text analyzers.
            materials_lookup: Supplier lookup (CatalogMaterialsLookup if None).
            cache_store: Result store (InMemoryCacheStore if None).
            ledger_store: Ledger store (a fresh RunLedgerStore if None).
            retry_executor: Retry policy (built from ``config.pipeline`` if None).
            preprocessor: Image preprocessor (built from config if None).
            prompts: Prompt library.
            combiner: Combination function.
            structuring_stage: Structuring stage.
            confidence_scorer: Run confidence scorer.
            sleep: Awaitable used for every pause.
        """
        self.config = config
        pipeline = config.pipeline

        self.retry_executor = retry_executor or RetryExecutor(
            max_retries=int(pipeline["max_retries"]),
            base_delay=float(pipeline["base_delay_seconds"]),
            max_jitter=float(pipeline["max_jitter_seconds"]),
            sleep=sleep,
        )
        self.preprocessor = preprocessor or ImagePreprocessor(
            PreprocessConfig.from_dict(config.image_preprocessing)
        )
        prompts = prompts or PromptLibrary()

        self.image_stage = ImageAnalysisStage(
            analyzers.vision,
            self.retry_executor,
            preprocessor=self.preprocessor,
            prompts=prompts,
            batch_size=int(pipeline["image_batch_size"]),
            inter_batch_delay=float(pipeline["inter_batch_delay_seconds"]),
            sleep=sleep,
        )
        self.notes_stage = NotesAnalysisStage(
            analyzers.primary_text,
            self.retry_executor,
            secondary=analyzers.secondary_text,
            prompts=prompts,
        )
        self.combiner = combiner
        self.structuring_stage = structuring_stage or StructuringStage()
        self.specialized_stage = SpecializedAnalysisStage(
            analyzers.vision,
            self.retry_executor,
            materials_lookup or CatalogMaterialsLookup(),
            preprocessor=self.preprocessor,
            prompts=prompts,
            trigger_types=pipeline["specialized_project_types"],
        )
        self.confidence_scorer = confidence_scorer or ConfidenceScorer()

        self.cache = CacheLayer(
            cache_store or InMemoryCacheStore(),
            ttl_seconds=float(config.cache["ttl_seconds"]),
            notes_prefix_length=int(config.cache["notes_prefix_length"]),
        )
        self.ledger_store = ledger_store or RunLedgerStore()
        self.run_timeout = float(pipeline["run_timeout_seconds"])

        self._stage_handlers: Dict[StageName, StageHandler] = self._build_stage_handler_map()

        logger.info("PipelineOrchestrator initialized")

    @classmethod
    def from_config(
        cls,
        config: Optional[SystemConfig] = None,
        usage_tracker: Optional[UsageTracker] = None,
        configure_logging: bool = True,
        **overrides: Any,
    ) -> "PipelineOrchestrator":
        """Build an orchestrator with providers created from configuration.

        Args:
            config: System configuration; loaded from the default file if None.
            usage_tracker: Shared provider usage counters.
            configure_logging: Apply the ``logging`` config section to the
                root logger.
            **overrides: Keyword arguments passed through to ``__init__``.

        Raises:
            ConfigurationError: If a required provider cannot be built.
        """
        config = config or Config.load()
        if configure_logging:
            setup_logging_from_config(config.logging)
        analyzers = build_analyzers(config.llm, usage_tracker=usage_tracker)
        return cls(config, analyzers, **overrides)

    def _build_stage_handler_map(self) -> Dict[StageName, StageHandler]:
        return {
            StageName.VALIDATION: self._validate,
            StageName.IMAGE_ANALYSIS: self._analyze_images,
            StageName.NOTES_ANALYSIS: self._analyze_notes,
            StageName.COMBINATION: self._combine,
            StageName.STRUCTURING: self._structure,
            StageName.SPECIALIZED_ANALYSIS: self._specialize,
        }

    # ------------------------------------------------------------------
    # Public entry point
    # ------------------------------------------------------------------

    async def analyze(self, request: AnalysisRequest) -> StructuredResult:
        """Convert contractor photos and notes into a StructuredResult.

        Args:
            request: Images, notes, location and options of the run.

        Returns:
            StructuredResult. ``processing_meta.cache_hit`` is True when the
            result came from the cache.

        Raises:
            ValidationError: If the request has no usable images.
            PipelineError: If the run failed and its fallback pass failed too,
                or if a request already in fallback mode failed.
        """
        if not request.images:
            raise ValidationError(
                "At least one image is required",
                processing_id=request.options.processing_id,
                field_name="images",
            )

        processing_id = request.options.processing_id or generate_unique_id("RUN")
        request = request.with_options(processing_id=processing_id)
        started = time.perf_counter()

        if not request.options.force_reprocess:
            cached = self.cache.get(request)
            if cached is not None:
                cached.processing_meta.cache_hit = True
                logger.info(
                    "Returning cached result",
                    extra={"processing_id": processing_id},
                )
                return cached

        ledger = self.ledger_store.open(processing_id)
        logger.info(
            f"Starting intake run with {len(request.images)} image(s)",
            extra={"processing_id": processing_id},
        )
        try:
            result = await self._run_with_fallback(request, ledger, started)
        finally:
            self.ledger_store.discard(processing_id)

        if ledger.is_complete():
            self.cache.put(request, result)
        else:
            logger.info(
                "Run incomplete, result not cached",
                extra={"processing_id": processing_id},
            )

        logger.info(
            f"Run finished: {result.project_type} "
            f"(confidence {result.processing_meta.confidence_score}, "
            f"{result.processing_meta.processing_time:.2f}s)",
            extra={"processing_id": processing_id},
        )
        return result

    # ------------------------------------------------------------------
    # Passes
    # ------------------------------------------------------------------

    async def _run_with_fallback(
        self, request: AnalysisRequest, ledger: RunLedger, started: float
    ) -> StructuredResult:
        pass_request = request
        primary_error: Optional[Exception] = None

        while True:
            try:
                return await self._run_pass(
                    pass_request, ledger, started, fallback_ran=primary_error is not None
                )
            except ValidationError:
                raise
            except Exception as e:
                if primary_error is not None:
                    raise PipelineError(
                        f"Run failed in primary and fallback passes: {describe_error(e)}",
                        processing_id=ledger.processing_id,
                        primary_error=primary_error,
                        fallback_error=e,
                    ) from e
                if pass_request.options.fallback_mode:
                    raise PipelineError(
                        f"Run failed in fallback mode: {describe_error(e)}",
                        processing_id=ledger.processing_id,
                        primary_error=e,
                    ) from e

                primary_error = e
                resume = ledger.last_completed_stage()
                log_error_with_context(
                    e,
                    logger,
                    {
                        "processing_id": ledger.processing_id,
                        "stage": "primary pass",
                        "resume_from": resume.value if resume else "start",
                    },
                )
                ledger.add_warning(
                    f"Primary pass failed ({describe_error(e)}); ran fallback pass"
                )
                pass_request = request.with_options(
                    fallback_mode=True, resume_from_stage=resume
                )

    async def _run_pass(
        self,
        request: AnalysisRequest,
        ledger: RunLedger,
        started: float,
        fallback_ran: bool,
    ) -> StructuredResult:
        loop = asyncio.get_running_loop()
        ledger.deadline = loop.time() + self.run_timeout
        try:
            return await asyncio.wait_for(
                self._execute_stages(request, ledger, started, fallback_ran),
                timeout=self.run_timeout,
            )
        except asyncio.TimeoutError as e:
            if loop.time() < ledger.deadline:
                raise
            timeout_error = TimeoutError(f"Pass exceeded run timeout of {self.run_timeout}s")
            ledger.fail_running_stages(timeout_error)
            raise timeout_error from e

    async def _execute_stages(
        self,
        request: AnalysisRequest,
        ledger: RunLedger,
        started: float,
        fallback_ran: bool,
    ) -> StructuredResult:
        for stage in self._stages_to_run(request, ledger):
            ledger.start_stage(stage)
            logger.info(
                f"Processing stage: {stage.value}",
                extra={"processing_id": ledger.processing_id},
            )
            try:
                output, degraded = await self._stage_handlers[stage](request, ledger)
            except Exception as e:
                ledger.fail_stage(stage, e)
                logger.error(
                    f"Stage {stage.value} failed: {describe_error(e)}",
                    extra={"processing_id": ledger.processing_id},
                )
                raise
            ledger.complete_stage(stage, output, degraded=degraded)
            logger.info(
                f"Stage {stage.value} {'degraded' if degraded else 'completed'} "
                f"in {ledger.stages[stage].duration:.2f}s",
                extra={"processing_id": ledger.processing_id},
            )

        return self._build_result(request, ledger, started, fallback_ran)

    @staticmethod
    def _stages_to_run(request: AnalysisRequest, ledger: RunLedger) -> List[StageName]:
        resume = request.options.resume_from_stage
        if resume is None:
            return list(STAGE_SEQUENCE)

        start = STAGE_SEQUENCE.index(resume)
        for index, stage in enumerate(STAGE_SEQUENCE[:start]):
            if not ledger.has_output(stage):
                logger.warning(
                    f"No recorded output for {stage.value}, resuming there instead "
                    f"of {resume.value}",
                    extra={"processing_id": ledger.processing_id},
                )
                start = index
                break
        logger.info(
            f"Resuming at stage {STAGE_SEQUENCE[start].value}",
            extra={"processing_id": ledger.processing_id},
        )
        return list(STAGE_SEQUENCE[start:])

    # ------------------------------------------------------------------
    # Stage handlers
    # ------------------------------------------------------------------

    async def _validate(self, request: AnalysisRequest, ledger: RunLedger) -> Tuple[Any, bool]:
        supported = []
        for image in request.images:
            if self.preprocessor.is_supported(image):
                supported.append(image)
            else:
                ledger.add_warning(
                    f"Skipped {image.filename}: unsupported type {image.mime_type}"
                )
        if not supported:
            raise ValidationError(
                "None of the images has a supported type",
                processing_id=ledger.processing_id,
                field_name="images",
            )
        return supported, False

    async def _analyze_images(
        self, request: AnalysisRequest, ledger: RunLedger
    ) -> Tuple[Any, bool]:
        images = ledger.output(StageName.VALIDATION)
        findings = await self.image_stage.run(
            images, ledger, fallback_mode=request.options.fallback_mode
        )
        return findings, False

    async def _analyze_notes(
        self, request: AnalysisRequest, ledger: RunLedger
    ) -> Tuple[Any, bool]:
        finding = await self.notes_stage.run(
            request.notes, ledger, fallback_mode=request.options.fallback_mode
        )
        return finding, False

    async def _combine(self, request: AnalysisRequest, ledger: RunLedger) -> Tuple[Any, bool]:
        aggregated = self.combiner(
            ledger.output(StageName.IMAGE_ANALYSIS),
            ledger.output(StageName.NOTES_ANALYSIS),
        )
        return aggregated, False

    async def _structure(self, request: AnalysisRequest, ledger: RunLedger) -> Tuple[Any, bool]:
        aggregated = ledger.output(StageName.COMBINATION)
        try:
            return self.structuring_stage.structure(aggregated), False
        except Exception as e:
            if request.options.fallback_mode:
                raise
            ledger.add_warning(f"Structuring failed, using minimal result: {describe_error(e)}")
            logger.warning(
                f"Structuring failed: {describe_error(e)}",
                extra={"processing_id": ledger.processing_id},
            )
            return StructuredSpec.minimal(), True

    async def _specialize(self, request: AnalysisRequest, ledger: RunLedger) -> Tuple[Any, bool]:
        findings = await self.specialized_stage.run(
            ledger.output(StageName.VALIDATION),
            ledger.output(StageName.STRUCTURING),
            ledger.output(StageName.COMBINATION),
            request.location,
            ledger,
        )
        return findings, False

    # ------------------------------------------------------------------
    # Result assembly
    # ------------------------------------------------------------------

    def _build_result(
        self,
        request: AnalysisRequest,
        ledger: RunLedger,
        started: float,
        fallback_ran: bool,
    ) -> StructuredResult:
        aggregated: AggregatedFindings = ledger.output(StageName.COMBINATION)
        structured: StructuredSpec = ledger.output(StageName.STRUCTURING)
        specialized = ledger.output(StageName.SPECIALIZED_ANALYSIS)
        completed = ledger.completed_stages()

        confidence = self.confidence_scorer.score(
            completed_stages=len(completed),
            total_stages=len(STAGE_SEQUENCE),
            structured=structured,
            coherence=aggregated.coherence_score,
        )

        detected_elements = dict(structured.detected_elements)
        detected_elements["fromImages"] = [f.to_dict() for f in aggregated.from_images]
        detected_elements["fromNotes"] = aggregated.from_notes.to_dict()
        detected_elements["coherenceScore"] = aggregated.coherence_score
        if specialized.triggered:
            detected_elements["windows"] = specialized.detected_windows

        meta = ProcessingMeta(
            processing_id=ledger.processing_id,
            completed_stages=[stage.value for stage in completed],
            processing_time=time.perf_counter() - started,
            confidence_score=confidence,
            warnings=list(ledger.warnings),
            fallback_mode=request.options.fallback_mode,
            retry_count=ledger.retry_count(),
            stage_timings=ledger.stage_timings(),
        )
        return StructuredResult(
            project_type=structured.project_type,
            project_subtype=structured.project_subtype,
            dimensions=dict(structured.dimensions),
            options=dict(structured.options),
            detected_elements=detected_elements,
            processing_meta=meta,
            material_availability=specialized.material_availability,
            recommended_products=specialized.recommended_products,
            purchase_order_draft=specialized.purchase_order_draft,
            generated_with_fallback=structured.generated_with_fallback or fallback_ran,
        )
