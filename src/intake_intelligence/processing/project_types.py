"""
Project type vocabulary shared by the analysis stages.

Analyzers and contractors name the same project many ways ("fence",
"cerca", "Fencing Project"). ``normalize_project_type`` maps any of them to
one of SUPPORTED_PROJECT_TYPES or ``unknown``; ``find_project_type`` looks
for type keywords inside longer free text such as notes or filenames.
"""

import re
from typing import Dict, List, Optional, Tuple

from ..utils.text_utils import normalize_for_matching

UNKNOWN_TYPE = "unknown"

SUPPORTED_PROJECT_TYPES: Tuple[str, ...] = (
    "fencing",
    "decking",
    "roofing",
    "concrete",
    "patio",
    "pergola",
    "gazebo",
    "retaining_wall",
    "bathroom_remodel",
    "kitchen_remodel",
    "complete_remodel",
    "property_renovation",
    "window_replacement",
    "door_installation",
    "siding_installation",
    "flooring_installation",
)

# Keys are accent-free lowercase. Spanish terms included.
TYPE_ALIASES: Dict[str, str] = {
    "fence": "fencing",
    "fences": "fencing",
    "fencing": "fencing",
    "cerca": "fencing",
    "cercas": "fencing",
    "deck": "decking",
    "decking": "decking",
    "terraza": "decking",
    "roof": "roofing",
    "roofing": "roofing",
    "techo": "roofing",
    "patio": "patio",
    "concrete": "concrete",
    "concreto": "concrete",
    "pergola": "pergola",
    "gazebo": "gazebo",
    "retaining wall": "retaining_wall",
    "muro de contencion": "retaining_wall",
    "bathroom": "bathroom_remodel",
    "bathroom remodel": "bathroom_remodel",
    "bathroom renovation": "bathroom_remodel",
    "remodelacion de bano": "bathroom_remodel",
    "kitchen": "kitchen_remodel",
    "kitchen remodel": "kitchen_remodel",
    "kitchen renovation": "kitchen_remodel",
    "remodelacion de cocina": "kitchen_remodel",
    "complete remodel": "complete_remodel",
    "whole house remodel": "complete_remodel",
    "renovation": "property_renovation",
    "remodel": "property_renovation",
    "fix and flip": "property_renovation",
    "home renovation": "property_renovation",
    "remodelacion": "property_renovation",
    "window": "window_replacement",
    "windows": "window_replacement",
    "window replacement": "window_replacement",
    "replacement windows": "window_replacement",
    "ventana": "window_replacement",
    "ventanas": "window_replacement",
    "cambio de ventanas": "window_replacement",
    "reemplazo de ventanas": "window_replacement",
    "door": "door_installation",
    "doors": "door_installation",
    "door replacement": "door_installation",
    "puertas": "door_installation",
    "siding": "siding_installation",
    "house siding": "siding_installation",
    "vinyl siding": "siding_installation",
    "flooring": "flooring_installation",
    "floor": "flooring_installation",
    "pisos": "flooring_installation",
}

# Catch-all types that lose to any specific type found in the same text.
GENERIC_TYPES = frozenset({"property_renovation"})

# Longest alias first so "bathroom remodel" wins over "remodel".
_ALIASES_BY_LENGTH: List[Tuple[str, str]] = sorted(
    TYPE_ALIASES.items(), key=lambda item: len(item[0]), reverse=True
)

_ALIAS_PATTERNS: List[Tuple[re.Pattern, str]] = [
    (re.compile(rf"\b{re.escape(alias)}\b"), canonical)
    for alias, canonical in _ALIASES_BY_LENGTH
]

_SUPPORTED_PATTERNS: List[Tuple[re.Pattern, str]] = [
    (re.compile(rf"\b{re.escape(supported.replace('_', ' '))}\b"), supported)
    for supported in SUPPORTED_PROJECT_TYPES
]


def _matching_key(raw: str) -> str:
    return normalize_for_matching(re.sub(r"[_\-./]+", " ", raw))


def normalize_project_type(raw: Optional[str]) -> str:
    """
    Map a raw project type to a supported type.

    Matching order: exact alias, alias found as whole words in the text,
    supported type name found as whole words in the text.

    Args:
        raw: Type as reported by an analyzer or the contractor.

    Returns:
        One of SUPPORTED_PROJECT_TYPES, or ``unknown``.

    Example:
        >>> normalize_project_type("Cerca de madera")
        'fencing'
        >>> normalize_project_type("hot tub")
        'unknown'
    """
    if not raw or not isinstance(raw, str):
        return UNKNOWN_TYPE

    key = _matching_key(raw)
    if not key:
        return UNKNOWN_TYPE

    if key in TYPE_ALIASES:
        return TYPE_ALIASES[key]

    for pattern, canonical in _ALIAS_PATTERNS:
        if pattern.search(key):
            return canonical

    for pattern, supported in _SUPPORTED_PATTERNS:
        if pattern.search(key):
            return supported

    return UNKNOWN_TYPE


def find_project_type(text: Optional[str]) -> Optional[str]:
    """
    Find the project type mentioned in free text.

    Whole-word matches only. Specific types beat generic ones; otherwise the
    earliest mention wins.

    Args:
        text: Notes, a filename, or any other free text.

    Returns:
        Supported type, or None if no type keyword occurs.
    """
    if not text:
        return None

    key = _matching_key(text)
    best: Optional[Tuple[bool, int, str]] = None
    for pattern, canonical in _ALIAS_PATTERNS:
        match = pattern.search(key)
        if not match:
            continue
        rank = (canonical in GENERIC_TYPES, match.start(), canonical)
        if best is None or rank[:2] < best[:2]:
            best = rank

    return best[2] if best else None
