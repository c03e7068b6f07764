"""
Supplier materials lookup.

``MaterialsLookup`` is the collaborator the specialized analysis stage asks
for product availability and recommendations. ``CatalogMaterialsLookup``
answers from a static per-category catalog and is used when no live supplier
integration is configured.

Typical usage example:
    lookup = CatalogMaterialsLookup()
    result = await lookup.find("window", grouped_windows, Location(zip_code="94509"))
    result["recommendedProducts"][0]["sku"]   # 'AW-3040-DH-VINYL'
"""

import copy
import logging
from abc import ABC, abstractmethod
from datetime import date, timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..models.data_structures import Location

logger = logging.getLogger(__name__)


class MaterialsLookup(ABC):
    """Interface to supplier inventory."""

    @abstractmethod
    async def find(
        self, category: str, details: List[Dict[str, Any]], location: Location
    ) -> Dict[str, Any]:
        """
        Look up availability and recommended products.

        Args:
            category: Product category, e.g. ``window``.
            details: Grouped items, each with ``type``, ``material``,
                ``dimensions`` (inches) and ``count``.
            location: Job site location.

        Returns:
            ``{"availability": {...}, "recommendedProducts": [...]}``
        """


# Standard window sizes in inches (width, height).
STANDARD_WINDOW_SIZES: Tuple[Tuple[int, int], ...] = (
    (24, 36), (24, 48), (28, 54), (30, 36), (30, 48), (30, 60),
    (36, 36), (36, 48), (36, 60), (36, 72), (40, 48), (40, 60),
    (48, 48), (48, 60), (72, 48), (72, 60),
)
STANDARD_SIZE_TOLERANCE = 1

FALLBACK_PRICE_PER_SQFT = {
    "vinyl": 20.0,
    "wood": 35.0,
    "fiberglass": 40.0,
    "aluminum": 25.0,
    "default": 30.0,
}
FALLBACK_WINDOW_SIZE = (30, 48)
TYPE_PRICE_FACTORS = {"casement": 1.2, "bay": 1.8, "bow": 1.8}

DEFAULT_CATALOG: Dict[str, Dict[str, List[Dict[str, Any]]]] = {
    "window": {
        "standard": [
            {
                "id": "aw-2030-dh-vinyl",
                "sku": "AW-2030-DH-VINYL",
                "name": "Double-Hung Vinyl Window 2'x3'",
                "supplier": "Andersen Windows",
                "type": "double_hung",
                "material": "vinyl",
                "dimensions": {"width": 24, "height": 36},
                "price": 189.99,
                "delivery_days": 3,
            },
            {
                "id": "aw-3040-dh-vinyl",
                "sku": "AW-3040-DH-VINYL",
                "name": "Double-Hung Vinyl Window 3'x4'",
                "supplier": "Andersen Windows",
                "type": "double_hung",
                "material": "vinyl",
                "dimensions": {"width": 36, "height": 48},
                "price": 259.99,
                "delivery_days": 3,
            },
            {
                "id": "pw-3050-csmt-wd",
                "sku": "PW-3050-CSMT-WD",
                "name": "Casement Wood Window 3'x5'",
                "supplier": "Pella Windows",
                "type": "casement",
                "material": "wood",
                "dimensions": {"width": 36, "height": 60},
                "price": 399.99,
                "delivery_days": 5,
            },
            {
                "id": "mw-6040-sld-fbr",
                "sku": "MW-6040-SLD-FBR",
                "name": "Sliding Fiberglass Window 6'x4'",
                "supplier": "Marvin Windows",
                "type": "sliding",
                "material": "fiberglass",
                "dimensions": {"width": 72, "height": 48},
                "price": 489.99,
                "delivery_days": 7,
            },
        ],
        "custom": [
            {
                "id": "aw-custom-dh-vinyl",
                "sku": "AW-CUSTOM-DH-VINYL",
                "name": "Double-Hung Vinyl Window - Custom Size",
                "supplier": "Andersen Windows",
                "type": "double_hung",
                "material": "vinyl",
                "base_price_per_sqft": 21.99,
                "delivery_days": 10,
            },
            {
                "id": "pw-custom-csmt-wd",
                "sku": "PW-CUSTOM-CSMT-WD",
                "name": "Casement Wood Window - Custom Size",
                "supplier": "Pella Windows",
                "type": "casement",
                "material": "wood",
                "base_price_per_sqft": 35.99,
                "delivery_days": 14,
            },
            {
                "id": "mw-custom-sld-fbr",
                "sku": "MW-CUSTOM-SLD-FBR",
                "name": "Sliding Fiberglass Window - Custom Size",
                "supplier": "Marvin Windows",
                "type": "sliding",
                "material": "fiberglass",
                "base_price_per_sqft": 42.99,
                "delivery_days": 14,
            },
        ],
    },
}


def is_standard_window_size(width: float, height: float) -> bool:
    """True if ``width`` x ``height`` inches is a stock size (±1 inch)."""
    if not width or not height:
        return False
    return any(
        abs(w - width) <= STANDARD_SIZE_TOLERANCE and abs(h - height) <= STANDARD_SIZE_TOLERANCE
        for w, h in STANDARD_WINDOW_SIZES
    )


def estimate_window_price(item: Dict[str, Any]) -> float:
    """Rough unit price from material, size and window type."""
    dims = item.get("dimensions") or {}
    width = dims.get("width") or FALLBACK_WINDOW_SIZE[0]
    height = dims.get("height") or FALLBACK_WINDOW_SIZE[1]
    per_sqft = FALLBACK_PRICE_PER_SQFT.get(
        item.get("material") or "default", FALLBACK_PRICE_PER_SQFT["default"]
    )
    price = per_sqft * (width / 12) * (height / 12)
    price *= TYPE_PRICE_FACTORS.get(item.get("type") or "double_hung", 1.0)
    return round(price, 2)


class CatalogMaterialsLookup(MaterialsLookup):
    """
    Static catalog lookup.

    Attributes:
        catalog: Products per category, split into ``standard`` and
            ``custom`` lists.
        served_zip_prefixes: Optional map of supplier name to the zip code
            prefixes it delivers to. Suppliers not listed deliver everywhere.
    """

    def __init__(
        self,
        catalog: Optional[Dict[str, Dict[str, List[Dict[str, Any]]]]] = None,
        served_zip_prefixes: Optional[Dict[str, Tuple[str, ...]]] = None,
        today: Callable[[], date] = date.today,
    ) -> None:
        self.catalog = catalog if catalog is not None else DEFAULT_CATALOG
        self.served_zip_prefixes = served_zip_prefixes or {}
        self._today = today

    async def find(
        self, category: str, details: List[Dict[str, Any]], location: Location
    ) -> Dict[str, Any]:
        products = self.catalog.get(category)
        if not products:
            logger.info(f"No catalog for category {category}")
            return {
                "availability": {"status": "unavailable", "items": []},
                "recommendedProducts": [],
            }

        recommendations: List[Dict[str, Any]] = []
        items: List[Dict[str, Any]] = []
        for item in details:
            product = self._recommend(products, item, location)
            if product is None:
                items.append({"item": self._describe(item), "available": False})
                continue
            recommendations.append(product)
            items.append(
                {
                    "item": self._describe(item),
                    "available": True,
                    "supplier": product["supplier"],
                    "price": product["price"],
                    "estimatedDelivery": product["estimatedDelivery"],
                }
            )

        unavailable = sum(1 for entry in items if not entry["available"])
        if not items or unavailable == len(items):
            status = "none"
        elif unavailable:
            status = "partial"
        else:
            status = "complete"

        return {
            "availability": {
                "status": status,
                "zip": location.zip_code,
                "unavailableCount": unavailable,
                "items": items,
            },
            "recommendedProducts": recommendations,
        }

    def _recommend(
        self,
        products: Dict[str, List[Dict[str, Any]]],
        item: Dict[str, Any],
        location: Location,
    ) -> Optional[Dict[str, Any]]:
        dims = item.get("dimensions") or {}
        width, height = dims.get("width") or 0, dims.get("height") or 0

        if is_standard_window_size(width, height):
            candidates = self._deliverable(products.get("standard", []), location)
            match = self._closest_size(candidates, width, height)
            if match is None:
                return None
            product = copy.deepcopy(match)
        else:
            candidates = self._deliverable(products.get("custom", []), location)
            match = self._same_kind(candidates, item)
            if match is None:
                return None
            product = copy.deepcopy(match)
            if width and height:
                price = product.pop("base_price_per_sqft") * (width / 12) * (height / 12)
                product["price"] = round(price, 2)
                product["dimensions"] = {"width": width, "height": height}
            else:
                product.pop("base_price_per_sqft", None)
                product["price"] = estimate_window_price(
                    {"material": product["material"], "type": product["type"]}
                )
            product["isCustom"] = True

        delivery_days = product.pop("delivery_days", 3)
        product["estimatedDelivery"] = (self._today() + timedelta(days=delivery_days)).isoformat()
        product["recommendedQuantity"] = int(item.get("count") or 1)
        product["recommendation"] = "best_match"
        return product

    def _deliverable(
        self, products: List[Dict[str, Any]], location: Location
    ) -> List[Dict[str, Any]]:
        result = []
        for product in products:
            prefixes = self.served_zip_prefixes.get(product["supplier"])
            if prefixes is None or (location.zip_code or "").startswith(tuple(prefixes)):
                result.append(product)
        return result

    @staticmethod
    def _closest_size(
        products: List[Dict[str, Any]], width: float, height: float
    ) -> Optional[Dict[str, Any]]:
        if not products:
            return None
        return min(
            products,
            key=lambda p: abs(p["dimensions"]["width"] - width)
            + abs(p["dimensions"]["height"] - height),
        )

    @staticmethod
    def _same_kind(
        products: List[Dict[str, Any]], item: Dict[str, Any]
    ) -> Optional[Dict[str, Any]]:
        if not products:
            return None
        for product in products:
            if product["type"] == item.get("type") and product["material"] == item.get("material"):
                return product
        for product in products:
            if product["material"] == item.get("material") or product["type"] == item.get("type"):
                return product
        return products[0]

    @staticmethod
    def _describe(item: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "type": item.get("type"),
            "material": item.get("material"),
            "dimensions": dict(item.get("dimensions") or {}),
            "count": item.get("count", 1),
        }
