"""
External collaborators of the Intake Intelligence System.

This package contains the supplier materials lookup used by the specialized
analysis stage.
"""

from .materials_lookup import CatalogMaterialsLookup, MaterialsLookup

__all__ = [
    "CatalogMaterialsLookup",
    "MaterialsLookup",
]
