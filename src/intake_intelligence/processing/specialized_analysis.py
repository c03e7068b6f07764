"""
Specialized analysis stage.

Runs only for project types that need product-level detail. For window
replacement it re-reads the photos showing windows with a window-detail
prompt, groups similar windows, asks the materials lookup for availability
and products, and drafts a purchase order.

Nothing in this stage can fail a run: every error becomes a warning and the
stage still completes.
"""

import asyncio
import logging
import math
from datetime import date, datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterable, List, Optional, Sequence

from ..integrations.materials_lookup import MaterialsLookup
from ..llm.prompt_library import PromptLibrary
from ..llm.providers.base_provider import VisionAnalyzer
from ..llm.response_parser import parse_response
from ..llm.response_schemas import WindowAnalysisPayload
from ..models.data_structures import (
    AggregatedFindings,
    Location,
    PerImageFinding,
    ProjectImage,
    SpecializedFindings,
    StageName,
    StructuredSpec,
)
from ..utils.error_handlers import describe_error
from .image_preprocessor import ImagePreprocessor

if TYPE_CHECKING:
    from ..orchestration.retry_executor import RetryExecutor
    from ..orchestration.run_ledger import RunLedger

logger = logging.getLogger(__name__)

WINDOW_KEYWORDS = ("window", "ventana")
GROUPING_STEP_INCHES = 12
ESTIMATED_TAX_RATE = 0.08
DEFAULT_READY_DAYS = 3


def _mentions_window(text: Optional[str]) -> bool:
    return bool(text) and any(k in text.lower() for k in WINDOW_KEYWORDS)


def _round_to_step(value: float, step: int = GROUPING_STEP_INCHES) -> int:
    # half-up, so 18 inches groups with 24
    return int(math.floor(value / step + 0.5)) * step


def select_window_images(
    images: Sequence[ProjectImage], findings: Iterable[PerImageFinding]
) -> List[ProjectImage]:
    """
    Pick the images likely to show windows.

    An image qualifies when its finding reports windows, lists a window
    material, or names a window project type. Falls back to the first image.
    """
    by_id = {f.image_id: f for f in findings}
    selected = []
    for image in images:
        finding = by_id.get(image.image_id)
        if finding is None:
            continue
        if (
            finding.contains_window
            or any(_mentions_window(str(k)) for k in finding.materials)
            or _mentions_window(finding.project_type)
        ):
            selected.append(image)
    if not selected and images:
        selected.append(images[0])
    return selected


def group_similar_windows(windows: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Group windows of the same type and material with similar sizes.

    Width and height are rounded to the nearest foot (12 inches), so a
    35x47 and a 36x49 window land in the same group.

    Returns:
        Groups with ``type``, ``material``, rounded ``dimensions``,
        ``count`` and ``originalItems``, in order of first appearance.
    """
    groups: Dict[str, Dict[str, Any]] = {}
    for window in windows:
        window_type = window.get("type") or "unknown"
        material = window.get("material") or "unknown"
        width = _round_to_step(window.get("width") or 0)
        height = _round_to_step(window.get("height") or 0)
        key = f"{window_type}-{material}-{width}x{height}"

        group = groups.get(key)
        if group is None:
            groups[key] = {
                "key": key,
                "type": window_type,
                "material": material,
                "dimensions": {"width": width, "height": height},
                "count": 1,
                "originalItems": [window],
            }
        else:
            group["count"] += 1
            group["originalItems"].append(window)
    return list(groups.values())


def build_purchase_order_draft(
    products: Optional[List[Dict[str, Any]]],
    today: Optional[date] = None,
    tax_rate: float = ESTIMATED_TAX_RATE,
) -> Optional[Dict[str, Any]]:
    """
    Draft a purchase order from recommended products.

    Args:
        products: Recommended products with ``price`` and optional
            ``recommendedQuantity`` and ``estimatedDelivery`` (ISO date).
        today: Reference date for the ready-date fallback.
        tax_rate: Estimated sales tax rate.

    Returns:
        Draft order, or None when there are no products.
    """
    if not products:
        return None

    today = today or date.today()
    order_lines = []
    for product in products:
        quantity = int(product.get("recommendedQuantity") or 1)
        unit_price = float(product.get("price") or 0.0)
        order_lines.append(
            {
                "productId": product.get("id"),
                "sku": product.get("sku"),
                "description": product.get("name"),
                "quantity": quantity,
                "unitPrice": unit_price,
                "totalPrice": round(quantity * unit_price, 2),
                "supplier": product.get("supplier"),
                "estimatedDelivery": product.get("estimatedDelivery"),
            }
        )

    subtotal = round(sum(line["totalPrice"] for line in order_lines), 2)
    estimated_tax = round(subtotal * tax_rate, 2)

    suppliers: List[str] = []
    for line in order_lines:
        if line["supplier"] and line["supplier"] not in suppliers:
            suppliers.append(line["supplier"])

    ready_date = today
    for line in order_lines:
        if not line["estimatedDelivery"]:
            continue
        delivery = date.fromisoformat(str(line["estimatedDelivery"])[:10])
        if delivery > ready_date:
            ready_date = delivery
    if ready_date == today:
        ready_date = today + timedelta(days=DEFAULT_READY_DAYS)

    return {
        "orderType": "draft",
        "createdAt": datetime.now(timezone.utc).isoformat(),
        "orderLines": order_lines,
        "summary": {
            "totalItems": len(order_lines),
            "subtotal": subtotal,
            "estimatedTax": estimated_tax,
            "total": round(subtotal + estimated_tax, 2),
        },
        "suppliers": suppliers,
        "estimatedReadyDate": ready_date.isoformat(),
        "notes": "Draft generated automatically from project photos and notes.",
    }


class SpecializedAnalysisStage:
    """
    Window-replacement product analysis.

    Attributes:
        trigger_types: Structured project types that trigger the stage.
    """

    def __init__(
        self,
        vision: VisionAnalyzer,
        retry_executor: "RetryExecutor",
        materials_lookup: MaterialsLookup,
        preprocessor: Optional[ImagePreprocessor] = None,
        prompts: Optional[PromptLibrary] = None,
        trigger_types: Sequence[str] = ("window_replacement",),
        today: Callable[[], date] = date.today,
    ) -> None:
        self.vision = vision
        self.retry_executor = retry_executor
        self.materials_lookup = materials_lookup
        self.preprocessor = preprocessor or ImagePreprocessor()
        self.prompts = prompts or PromptLibrary()
        self.trigger_types = tuple(trigger_types)
        self._today = today

    def should_run(self, structured: StructuredSpec, aggregated: AggregatedFindings) -> bool:
        return structured.project_type in self.trigger_types or _mentions_window(
            aggregated.aggregated.project_type
        )

    async def run(
        self,
        images: Sequence[ProjectImage],
        structured: StructuredSpec,
        aggregated: AggregatedFindings,
        location: Location,
        ledger: "RunLedger",
    ) -> SpecializedFindings:
        """
        Run the window analysis if the project calls for it.

        Returns:
            SpecializedFindings; ``triggered`` is False when skipped.
        """
        if not self.should_run(structured, aggregated):
            return SpecializedFindings(triggered=False)

        try:
            return await self._analyze_windows(images, aggregated, location, ledger)
        except Exception as e:
            ledger.add_warning(f"Specialized window analysis failed: {describe_error(e)}")
            logger.warning(
                f"Specialized analysis failed: {describe_error(e)}",
                extra={"processing_id": ledger.processing_id},
            )
            return SpecializedFindings(triggered=True)

    async def _analyze_windows(
        self,
        images: Sequence[ProjectImage],
        aggregated: AggregatedFindings,
        location: Location,
        ledger: "RunLedger",
    ) -> SpecializedFindings:
        selected = select_window_images(images, aggregated.from_images)
        per_image = await asyncio.gather(
            *(self._windows_in_image(image, ledger) for image in selected)
        )
        windows = [window for found in per_image for window in found]
        if not windows:
            ledger.add_warning("No windows detected for window replacement")
            return SpecializedFindings(triggered=True)

        groups = group_similar_windows(windows)
        lookup = await self.materials_lookup.find("window", groups, location)
        products = lookup.get("recommendedProducts") or []

        logger.info(
            f"Detected {len(windows)} window(s) in {len(groups)} group(s), "
            f"{len(products)} product recommendation(s)",
            extra={"processing_id": ledger.processing_id},
        )
        return SpecializedFindings(
            triggered=True,
            detected_windows=windows,
            material_availability=lookup.get("availability"),
            recommended_products=products,
            purchase_order_draft=build_purchase_order_draft(products, today=self._today()),
        )

    async def _windows_in_image(
        self, image: ProjectImage, ledger: "RunLedger"
    ) -> List[Dict[str, Any]]:
        try:
            prepared = await self.preprocessor.prepare(image)
            prompt = self.prompts.window_prompt()

            async def call_vision() -> str:
                return await self.vision.analyze(prompt, prepared.data, prepared.mime_type)

            text = await self.retry_executor.run(
                call_vision,
                StageName.SPECIALIZED_ANALYSIS,
                ledger,
                label=f"windows:{image.image_id}",
            )
            payload = parse_response(text, WindowAnalysisPayload)
        except Exception as e:
            ledger.add_warning(
                f"Window analysis of {image.filename} failed: {describe_error(e)}"
            )
            return []

        return [
            {**window.model_dump(), "imageId": image.image_id}
            for window in payload.windows
        ]
