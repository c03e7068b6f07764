"""
Unit tests for specialized_analysis and materials_lookup modules.

Tests window grouping, purchase order drafting, catalog lookups and the
window-replacement stage.
"""

from datetime import date
from unittest.mock import AsyncMock

import pytest

from intake_intelligence.integrations.materials_lookup import (
    CatalogMaterialsLookup,
    MaterialsLookup,
    estimate_window_price,
    is_standard_window_size,
)
from intake_intelligence.models.data_structures import (
    AggregatedFindings,
    FindingsSummary,
    Location,
    NotesFinding,
    PerImageFinding,
    ProjectImage,
    StructuredSpec,
)
from intake_intelligence.processing.specialized_analysis import (
    SpecializedAnalysisStage,
    build_purchase_order_draft,
    group_similar_windows,
    select_window_images,
)

pytestmark = pytest.mark.unit

TODAY = date(2026, 10, 18)


def window(window_type="double_hung", material="vinyl", width=36, height=48):
    return {"type": window_type, "material": material, "width": width, "height": height}


def group(window_type="double_hung", material="vinyl", width=36, height=48, count=1):
    return {
        "type": window_type,
        "material": material,
        "dimensions": {"width": width, "height": height},
        "count": count,
    }


@pytest.fixture
def lookup():
    return CatalogMaterialsLookup(today=lambda: TODAY)


class TestGroupSimilarWindows:
    """Tests for group_similar_windows."""

    def test_similar_sizes_grouped(self):
        groups = group_similar_windows([window(width=35, height=47), window(width=36, height=49)])

        assert len(groups) == 1
        assert groups[0]["key"] == "double_hung-vinyl-36x48"
        assert groups[0]["count"] == 2
        assert len(groups[0]["originalItems"]) == 2

    def test_half_foot_rounds_up(self):
        groups = group_similar_windows([window("casement", "wood", width=18, height=30)])
        assert groups[0]["dimensions"] == {"width": 24, "height": 36}

    def test_different_material_not_grouped(self):
        groups = group_similar_windows([window(material="vinyl"), window(material="wood")])
        assert [g["material"] for g in groups] == ["vinyl", "wood"]

    def test_missing_fields(self):
        groups = group_similar_windows([{"width": None}])
        assert groups[0]["key"] == "unknown-unknown-0x0"


class TestBuildPurchaseOrderDraft:
    """Tests for build_purchase_order_draft."""

    def test_totals_and_suppliers(self):
        products = [
            {"id": "a", "sku": "A", "name": "Window A", "supplier": "Andersen Windows",
             "price": 100.0, "recommendedQuantity": 2, "estimatedDelivery": "2026-10-21"},
            {"id": "b", "sku": "B", "name": "Window B", "supplier": "Pella Windows",
             "price": 50.5, "recommendedQuantity": 1, "estimatedDelivery": "2026-10-25"},
            {"id": "c", "sku": "C", "name": "Window C", "supplier": "Andersen Windows",
             "price": 10.0},
        ]

        draft = build_purchase_order_draft(products, today=TODAY)

        assert draft["orderType"] == "draft"
        assert [line["totalPrice"] for line in draft["orderLines"]] == [200.0, 50.5, 10.0]
        assert draft["summary"] == {
            "totalItems": 3,
            "subtotal": 260.5,
            "estimatedTax": 20.84,
            "total": 281.34,
        }
        assert draft["suppliers"] == ["Andersen Windows", "Pella Windows"]
        assert draft["estimatedReadyDate"] == "2026-10-25"

    def test_ready_date_defaults_to_three_days(self):
        draft = build_purchase_order_draft([{"id": "a", "price": 20.0}], today=TODAY)
        assert draft["estimatedReadyDate"] == "2026-10-21"

    def test_custom_tax_rate(self):
        draft = build_purchase_order_draft([{"id": "a", "price": 100.0}], today=TODAY, tax_rate=0.1)
        assert draft["summary"]["total"] == 110.0

    @pytest.mark.parametrize("products", [None, []])
    def test_no_products(self, products):
        assert build_purchase_order_draft(products) is None


class TestCatalogMaterialsLookup:
    """Tests for CatalogMaterialsLookup."""

    async def test_standard_size(self, lookup):
        result = await lookup.find("window", [group(count=2)], Location(zip_code="94509"))

        product = result["recommendedProducts"][0]
        assert product["sku"] == "AW-3040-DH-VINYL"
        assert product["price"] == 259.99
        assert product["recommendedQuantity"] == 2
        assert product["estimatedDelivery"] == "2026-10-21"
        assert "isCustom" not in product
        assert result["availability"]["status"] == "complete"
        assert result["availability"]["zip"] == "94509"

    async def test_custom_size_priced_by_area(self, lookup):
        result = await lookup.find(
            "window", [group("casement", "wood", width=40, height=50)], Location(zip_code="94509")
        )

        product = result["recommendedProducts"][0]
        assert product["sku"] == "PW-CUSTOM-CSMT-WD"
        assert product["isCustom"] is True
        assert product["price"] == pytest.approx(499.86)
        assert product["dimensions"] == {"width": 40, "height": 50}
        assert product["estimatedDelivery"] == "2026-11-01"
        assert "base_price_per_sqft" not in product

    async def test_catalog_not_modified(self, lookup):
        before = lookup.catalog["window"]["custom"][0].copy()

        await lookup.find("window", [group(width=40, height=50)], Location())

        assert lookup.catalog["window"]["custom"][0] == before

    async def test_unknown_category(self, lookup):
        result = await lookup.find("door", [group()], Location(zip_code="94509"))

        assert result == {
            "availability": {"status": "unavailable", "items": []},
            "recommendedProducts": [],
        }

    async def test_supplier_delivery_area(self):
        lookup = CatalogMaterialsLookup(
            served_zip_prefixes={"Andersen Windows": ("94",)}, today=lambda: TODAY
        )

        result = await lookup.find("window", [group()], Location(zip_code="10001"))

        assert result["recommendedProducts"][0]["supplier"] == "Pella Windows"

    async def test_nothing_deliverable(self):
        lookup = CatalogMaterialsLookup(
            served_zip_prefixes={
                "Andersen Windows": ("94",),
                "Pella Windows": ("94",),
                "Marvin Windows": ("94",),
            },
            today=lambda: TODAY,
        )

        result = await lookup.find("window", [group(), group(width=40, height=50)], Location(zip_code="10001"))

        assert result["recommendedProducts"] == []
        assert result["availability"]["status"] == "none"
        assert result["availability"]["unavailableCount"] == 2

    def test_standard_size_tolerance(self):
        assert is_standard_window_size(35, 49)
        assert not is_standard_window_size(38, 48)
        assert not is_standard_window_size(0, 48)

    def test_estimate_window_price(self):
        # 30 $/sqft default, 30x48 in, casement factor 1.2
        assert estimate_window_price({"type": "casement"}) == pytest.approx(360.0)


@pytest.fixture
def windows_response(as_response):
    return as_response(
        {
            "windows": [
                {"type": "Double-Hung", "material": "vinyl", "dimensions": {"width": 36, "height": 48}},
                {"type": "double hung", "material": "Vinyl", "width": "35 in", "height": "47 in"},
            ]
        }
    )


@pytest.fixture
def window_aggregate(window_image):
    finding = PerImageFinding(
        image_id=window_image.image_id,
        filename=window_image.filename,
        project_type="window replacement",
        contains_window=True,
    )
    return AggregatedFindings(
        from_images=[finding],
        from_notes=NotesFinding.empty(),
        aggregated=FindingsSummary(project_type="window_replacement"),
    )


@pytest.fixture
def window_stage(vision, retry_executor, lookup):
    return SpecializedAnalysisStage(vision, retry_executor, lookup, today=lambda: TODAY)


class TestSelectWindowImages:
    """Tests for select_window_images."""

    def test_selects_window_images(self, jpeg_bytes):
        images = [
            ProjectImage(image_id="yard", inline_bytes=jpeg_bytes),
            ProjectImage(image_id="front", inline_bytes=jpeg_bytes),
        ]
        findings = [
            PerImageFinding(image_id="yard", filename="yard"),
            PerImageFinding(image_id="front", filename="front", materials={"window_frame": "vinyl"}),
        ]

        assert [i.image_id for i in select_window_images(images, findings)] == ["front"]

    def test_falls_back_to_first_image(self, jpeg_bytes):
        images = [ProjectImage(image_id="yard", inline_bytes=jpeg_bytes)]
        assert select_window_images(images, []) == images


class TestSpecializedAnalysisStage:
    """Tests for SpecializedAnalysisStage.run."""

    async def test_not_triggered(self, window_stage, ledger, fence_image, vision):
        structured = StructuredSpec(project_type="fencing")
        aggregated = AggregatedFindings(
            from_images=[], from_notes=NotesFinding.empty(), aggregated=FindingsSummary("fencing")
        )

        findings = await window_stage.run([fence_image], structured, aggregated, Location(), ledger)

        assert findings.triggered is False
        vision.analyze.assert_not_called()

    async def test_window_replacement(
        self, window_stage, ledger, window_image, window_aggregate, vision, windows_response
    ):
        vision.analyze.return_value = windows_response
        structured = StructuredSpec(project_type="window_replacement")

        findings = await window_stage.run(
            [window_image], structured, window_aggregate, Location(zip_code="94509"), ledger
        )

        assert findings.triggered is True
        assert len(findings.detected_windows) == 2
        assert findings.detected_windows[0]["imageId"] == "living_room_windows.jpg"
        assert findings.detected_windows[0]["type"] == "double_hung"

        assert len(findings.recommended_products) == 1
        assert findings.recommended_products[0]["recommendedQuantity"] == 2
        assert findings.material_availability["status"] == "complete"

        summary = findings.purchase_order_draft["summary"]
        assert summary["subtotal"] == 519.98
        assert summary["estimatedTax"] == 41.6
        assert summary["total"] == 561.58
        assert findings.purchase_order_draft["estimatedReadyDate"] == "2026-10-21"

    async def test_no_windows_found(
        self, window_stage, ledger, window_image, window_aggregate, vision, as_response
    ):
        vision.analyze.return_value = as_response({"windows": []})

        findings = await window_stage.run(
            [window_image], StructuredSpec("window_replacement"), window_aggregate, Location(), ledger
        )

        assert findings.triggered is True
        assert findings.detected_windows == []
        assert findings.purchase_order_draft is None
        assert "No windows detected for window replacement" in ledger.warnings

    async def test_vision_failure_becomes_warning(
        self, window_stage, ledger, window_image, window_aggregate, vision
    ):
        vision.analyze.side_effect = ConnectionError("connection reset")

        findings = await window_stage.run(
            [window_image], StructuredSpec("window_replacement"), window_aggregate, Location(), ledger
        )

        assert findings.triggered is True
        assert any("Window analysis of living_room_windows.jpg failed" in w for w in ledger.warnings)

    async def test_lookup_failure_becomes_warning(
        self, vision, retry_executor, ledger, window_image, window_aggregate, windows_response
    ):
        vision.analyze.return_value = windows_response
        failing_lookup = AsyncMock(spec=MaterialsLookup)
        failing_lookup.find.side_effect = RuntimeError("supplier API down")
        stage = SpecializedAnalysisStage(vision, retry_executor, failing_lookup)

        findings = await stage.run(
            [window_image], StructuredSpec("window_replacement"), window_aggregate, Location(), ledger
        )

        assert findings.triggered is True
        assert findings.recommended_products is None
        assert any("supplier API down" in w for w in ledger.warnings)

    def test_triggered_by_raw_window_label(self, window_stage, window_aggregate):
        window_aggregate.aggregated.project_type = "Ventanas nuevas"
        assert window_stage.should_run(StructuredSpec("unknown"), window_aggregate)
