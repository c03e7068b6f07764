"""
Pytest configuration and fixtures.
"""

import json
from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock

import cv2
import numpy as np
import pytest

from intake_intelligence.llm.analyzer_gateway import AnalyzerSet
from intake_intelligence.llm.providers.base_provider import TextAnalyzer, VisionAnalyzer
from intake_intelligence.models.data_structures import (
    AnalysisRequest,
    ImageType,
    Location,
    ProjectImage,
)
from intake_intelligence.orchestration.pipeline_orchestrator import PipelineOrchestrator
from intake_intelligence.orchestration.retry_executor import RetryExecutor
from intake_intelligence.orchestration.run_ledger import RunLedger
from intake_intelligence.utils.config_loader import SystemConfig

FENCE_NOTES = "70 linear feet wood privacy fence, 6 feet tall"


async def no_sleep(delay: float) -> None:
    """Stand-in for asyncio.sleep that returns immediately."""
    return None


def make_jpeg(width: int = 64, height: int = 48) -> bytes:
    """Encode a small synthetic photo: gradient background and a dark post."""
    gradient = np.tile(np.linspace(40, 220, width, dtype=np.uint8), (height, 1))
    image = cv2.merge([gradient, gradient, gradient])
    cv2.rectangle(image, (width // 3, 4), (width // 3 + 6, height - 4), (30, 60, 90), -1)
    ok, encoded = cv2.imencode(".jpg", image)
    assert ok
    return encoded.tobytes()


def analyzer_json(payload: Dict[str, Any]) -> str:
    """Analyzer-style response: JSON wrapped in a markdown fence."""
    return f"```json\n{json.dumps(payload)}\n```"


@pytest.fixture(scope="session")
def jpeg_bytes() -> bytes:
    return make_jpeg()


@pytest.fixture
def fence_notes_text() -> str:
    return FENCE_NOTES


@pytest.fixture
def as_response():
    """Helper turning a payload dict into an analyzer response string."""
    return analyzer_json


@pytest.fixture
def fake_sleep():
    """Async sleep stand-in that records requested delays."""

    class RecordingSleep:
        def __init__(self):
            self.delays: List[float] = []

        async def __call__(self, delay: float) -> None:
            self.delays.append(delay)

    return RecordingSleep()


@pytest.fixture
def fence_image(jpeg_bytes) -> ProjectImage:
    return ProjectImage(image_id="backyard_fence.jpg", inline_bytes=jpeg_bytes)


@pytest.fixture
def fast_config() -> SystemConfig:
    """Configuration with every pause set to zero."""
    return SystemConfig(
        pipeline={
            "base_delay_seconds": 0.0,
            "max_jitter_seconds": 0.0,
            "inter_batch_delay_seconds": 0.0,
            "run_timeout_seconds": 30.0,
        }
    )


@pytest.fixture
def ledger() -> RunLedger:
    return RunLedger(processing_id="RUN-TEST")


@pytest.fixture
def retry_executor() -> RetryExecutor:
    return RetryExecutor(max_retries=3, base_delay=0.0, max_jitter=0.0, sleep=no_sleep)


@pytest.fixture
def vision() -> AsyncMock:
    analyzer = AsyncMock(spec=VisionAnalyzer)
    analyzer.analyze.return_value = analyzer_json(
        {
            "projectType": "fence",
            "dimensions": {"length": "68 ft"},
            "materials": {"primary": "wood"},
            "conditions": {"ground": "flat"},
        }
    )
    return analyzer


@pytest.fixture
def primary_text() -> AsyncMock:
    analyzer = AsyncMock(spec=TextAnalyzer)
    analyzer.complete.return_value = analyzer_json(
        {
            "projectType": "fencing",
            "projectSubtype": "privacy",
            "dimensions": {"length": 70, "height": 6},
            "materialRequirements": {"primary": "wood"},
            "demolitionNeeded": False,
        }
    )
    return analyzer


@pytest.fixture
def secondary_text() -> AsyncMock:
    analyzer = AsyncMock(spec=TextAnalyzer)
    analyzer.complete.side_effect = ConnectionError("secondary provider unreachable")
    return analyzer


@pytest.fixture
def analyzers(vision, primary_text, secondary_text) -> AnalyzerSet:
    return AnalyzerSet(vision=vision, primary_text=primary_text, secondary_text=secondary_text)


@pytest.fixture
def orchestrator(fast_config, analyzers) -> PipelineOrchestrator:
    return PipelineOrchestrator(fast_config, analyzers, sleep=no_sleep)


@pytest.fixture
def make_request(fence_image):
    """Factory for requests around the fence photo."""

    def _make(
        notes: str = FENCE_NOTES,
        images: Optional[List[ProjectImage]] = None,
        zip_code: str = "94509",
        **options: Any,
    ) -> AnalysisRequest:
        request = AnalysisRequest(
            images=tuple(images if images is not None else [fence_image]),
            notes=notes,
            location=Location(zip_code=zip_code),
        )
        return request.with_options(**options) if options else request

    return _make


@pytest.fixture
def window_image(jpeg_bytes) -> ProjectImage:
    return ProjectImage(
        image_id="living_room_windows.jpg",
        inline_bytes=jpeg_bytes,
        declared_type=ImageType.SITE,
    )
