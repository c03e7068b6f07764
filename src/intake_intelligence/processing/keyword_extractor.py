"""
Deterministic keyword and regex extraction from contractor notes.

Last-resort extractor used when no text analyzer can read the notes. It
understands English and Spanish phrasing for the common cases: project type
keywords, measurements with units, material names and demolition requests.

Typical usage example:
    extractor = KeywordExtractor()
    finding = extractor.extract("70 linear feet wood privacy fence, 6 feet tall")
    finding.project_type   # 'fencing'
    finding.dimensions     # {'length': 70.0, 'height': 6.0}
"""

import logging
import re
from typing import Dict, List, Optional, Pattern, Tuple

from ..models.data_structures import NotesFinding, NotesSource
from ..utils.text_utils import leading_number, normalize_for_matching
from .project_types import find_project_type

logger = logging.getLogger(__name__)

_NUM = r"(\d[\d,]*(?:\.\d+)?)"
_FEET = r"(?:feet|foot|ft\.?|pies|pie|')"

# (dimension, pattern) pairs, first match per dimension wins.
DIMENSION_PATTERNS: List[Tuple[str, Pattern]] = [
    (
        "area",
        re.compile(
            rf"{_NUM}\s*(?:sq\.?\s*ft\.?|sqft|square\s+f(?:ee|oo)t|ft2|pies\s+cuadrados|p2|m2)"
        ),
    ),
    ("area", re.compile(rf"\b(?:area|superficie)\s*(?:of|de)?\s*[:=]?\s*{_NUM}")),
    (
        "length",
        re.compile(rf"{_NUM}\s*(?:linear|lineal|lin\.?)\s*{_FEET}|{_NUM}\s*pies\s+lineales"),
    ),
    ("length", re.compile(rf"\b(?:length|longitud|largo)\s*(?:of|de)?\s*[:=]?\s*{_NUM}")),
    ("length", re.compile(rf"{_NUM}\s*{_FEET}?\s*(?:long|de\s+largo)\b")),
    ("height", re.compile(rf"{_NUM}\s*{_FEET}?\s*(?:tall|high|de\s+alto|de\s+altura)\b")),
    ("height", re.compile(rf"\b(?:height|altura|alto)\s*(?:of|de)?\s*[:=]?\s*{_NUM}")),
    ("width", re.compile(rf"{_NUM}\s*{_FEET}?\s*(?:wide|de\s+ancho)\b")),
    ("width", re.compile(rf"\b(?:width|ancho)\s*(?:of|de)?\s*[:=]?\s*{_NUM}")),
]

# "16x12", "16 x 12 ft", "16 by 12", "16 por 12"
_PAIR_PATTERN = re.compile(rf"{_NUM}\s*{_FEET}?\s*(?:x|by|por)\s*{_NUM}")

# Canonical material -> accent-free keywords.
MATERIAL_KEYWORDS: Dict[str, Tuple[str, ...]] = {
    "chain_link": ("chain link", "chain-link", "malla ciclonica", "ciclonica"),
    "wrought_iron": ("wrought iron", "hierro forjado", "forja"),
    "composite": ("composite", "trex", "compuesto"),
    "cedar": ("cedar", "cedro"),
    "redwood": ("redwood", "secuoya"),
    "pressure_treated": ("pressure treated", "pressure-treated", "tratada"),
    "wood": ("wood", "wooden", "lumber", "madera"),
    "vinyl": ("vinyl", "vinilo", "pvc"),
    "aluminum": ("aluminum", "aluminium", "aluminio"),
    "fiberglass": ("fiberglass", "fibra de vidrio"),
    "concrete": ("concrete", "concreto", "cemento"),
    "brick": ("brick", "ladrillo"),
    "stone": ("stone", "piedra"),
    "pavers": ("pavers", "adoquin", "adoquines"),
    "asphalt_shingle": ("shingle", "shingles", "tejas asfalticas"),
    "metal": ("metal", "steel", "acero", "lamina"),
    "tile": ("tile", "tiles", "azulejo", "ceramica", "loseta"),
    "hardwood": ("hardwood", "madera dura"),
    "laminate": ("laminate", "laminado"),
}

DEMOLITION_KEYWORDS: Tuple[str, ...] = (
    "demolish",
    "demolition",
    "demo existing",
    "tear down",
    "tear out",
    "teardown",
    "remove existing",
    "removal of existing",
    "haul away",
    "demoler",
    "demolicion",
    "derribar",
    "quitar",
    "retirar",
)

CONSIDERATION_KEYWORDS: Dict[str, Tuple[str, ...]] = {
    "sloped terrain": ("slope", "sloped", "hill", "pendiente", "inclinado"),
    "permit required": ("permit", "permiso"),
    "HOA approval": ("hoa", "homeowners association"),
    "gate requested": ("gate", "porton"),
    "difficult access": ("narrow access", "no access", "dificil acceso"),
}


def _keyword_pattern(keywords: Tuple[str, ...]) -> Pattern:
    alternatives = "|".join(re.escape(k) for k in sorted(keywords, key=len, reverse=True))
    return re.compile(rf"\b(?:{alternatives})\b")


_MATERIAL_PATTERNS: List[Tuple[str, Pattern]] = [
    (material, _keyword_pattern(keywords)) for material, keywords in MATERIAL_KEYWORDS.items()
]
_DEMOLITION_PATTERN = _keyword_pattern(DEMOLITION_KEYWORDS)
_CONSIDERATION_PATTERNS: List[Tuple[str, Pattern]] = [
    (label, _keyword_pattern(keywords)) for label, keywords in CONSIDERATION_KEYWORDS.items()
]


class KeywordExtractor:
    """Bilingual keyword and regex extractor for contractor notes."""

    def extract(self, notes: str) -> NotesFinding:
        """
        Extract a NotesFinding without any analyzer.

        Args:
            notes: Contractor notes in English or Spanish.

        Returns:
            NotesFinding with ``source=keyword`` (``empty`` for blank notes).
        """
        if not notes or not notes.strip():
            return NotesFinding.empty()

        text = normalize_for_matching(notes)
        finding = NotesFinding(
            project_type=find_project_type(text),
            dimensions=self.extract_dimensions(text),
            material_requirements=self.extract_materials(text),
            special_considerations=self.extract_considerations(text),
            demolition_needed=bool(_DEMOLITION_PATTERN.search(text)),
            source=NotesSource.KEYWORD,
        )
        logger.debug(
            f"Keyword extraction: type={finding.project_type}, "
            f"dimensions={finding.dimensions}"
        )
        return finding

    def extract_dimensions(self, text: str) -> Dict[str, float]:
        """Find length, width, height and area measurements in normalised text."""
        dimensions: Dict[str, float] = {}
        for name, pattern in DIMENSION_PATTERNS:
            if name in dimensions:
                continue
            match = pattern.search(text)
            if not match:
                continue
            value = self._first_group_number(match)
            if value is not None and value > 0:
                dimensions[name] = value

        if "length" not in dimensions and "width" not in dimensions:
            pair = _PAIR_PATTERN.search(text)
            if pair:
                first = leading_number(pair.group(1))
                second = leading_number(pair.group(2))
                if first and second:
                    dimensions["length"] = first
                    dimensions["width"] = second

        return dimensions

    def extract_materials(self, text: str) -> Dict[str, object]:
        """Materials in order of first mention; the first one is ``primary``."""
        found: List[Tuple[int, str]] = []
        for material, pattern in _MATERIAL_PATTERNS:
            match = pattern.search(text)
            if match:
                found.append((match.start(), material))
        if not found:
            return {}

        ordered = [material for _, material in sorted(found)]
        # "pressure treated wood" reports the specific kind only
        if "wood" in ordered and any(m in ordered for m in ("cedar", "redwood", "pressure_treated")):
            ordered.remove("wood")

        materials: Dict[str, object] = {"primary": ordered[0]}
        if len(ordered) > 1:
            materials["additional"] = ordered[1:]
        return materials

    def extract_considerations(self, text: str) -> List[str]:
        return [label for label, pattern in _CONSIDERATION_PATTERNS if pattern.search(text)]

    @staticmethod
    def _first_group_number(match: re.Match) -> Optional[float]:
        for group in match.groups():
            if group:
                return leading_number(group)
        return None
