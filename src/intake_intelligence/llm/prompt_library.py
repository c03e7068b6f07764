"""Prompt library for analyzer use cases.

This module keeps the versioned prompt templates sent to the vision and text
analyzers. Every prompt asks for a single JSON object so the response parser
can recover structured findings.

The library loads built-in prompts and, optionally, custom prompts from a
directory of ``.yaml`` files that override built-ins of the same name.

Example:
    >>> library = PromptLibrary()
    >>> prompt = library.image_prompt(ImageType.SKETCH, filename="deck.jpg")
    >>> prompt = library.render("notes_analysis", {"notes": "16x12 deck"})
"""

import logging
import string
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from ..models.data_structures import ImageType

logger = logging.getLogger(__name__)


class PromptLibraryError(Exception):
    """Base exception for prompt library errors."""

    pass


class PromptNotFoundError(PromptLibraryError):
    """Raised when a requested prompt is not found."""

    def __init__(self, use_case: str):
        self.use_case = use_case
        super().__init__(f"Prompt not found: {use_case}")


class PromptRenderError(PromptLibraryError):
    """Raised when prompt rendering fails."""

    def __init__(self, template_name: str, missing_vars: List[str]):
        self.template_name = template_name
        self.missing_vars = missing_vars
        super().__init__(
            f"Failed to render prompt '{template_name}' "
            f"(missing variables: {missing_vars})"
        )


@dataclass(frozen=True)
class PromptTemplate:
    """Prompt template definition.

    Attributes:
        name: Unique identifier for the prompt use case (e.g., 'image_site').
        version: Version string (e.g., 'v1.0').
        template: Prompt text with {variable} placeholders.
        metadata: Additional context (e.g., expected response keys).
    """

    name: str
    version: str
    template: str
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not self.name or not self.name.strip():
            raise PromptLibraryError("Prompt name cannot be empty")
        if not self.template or not self.template.strip():
            raise PromptLibraryError("Prompt template cannot be empty")

    @property
    def variables(self) -> List[str]:
        """Placeholder names used by the template, in order of appearance."""
        names: List[str] = []
        for _, field_name, _, _ in string.Formatter().parse(self.template):
            if field_name and field_name not in names:
                names.append(field_name)
        return names

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


_JSON_RULES = """
Respond with ONE JSON object and nothing else. Do not wrap it in markdown.
Use numbers (not strings) for measurements, in feet or square feet.
If something cannot be determined, omit the key instead of guessing."""

_IMAGE_SCHEMA = """
JSON keys:
- "projectType": short project type, e.g. "fencing", "decking", "roofing",
  "bathroom_remodel", "kitchen_remodel", "window_replacement"
- "dimensions": object such as {{"length": 70, "height": 6}} or {{"area": 1200}}
- "materials": object mapping element to material, e.g. {{"fence": "wood"}}
- "conditions": object describing terrain, current state, access, demolition
- "specialConsiderations": list of short strings (obstacles, slopes, permits)
- "containsWindow": true if windows are clearly visible"""

_BUILTIN_PROMPTS: List[PromptTemplate] = [
    PromptTemplate(
        name="image_site",
        version="v1.1",
        template="""You are an experienced construction estimator reviewing a job site photo.

Photo file: {filename}

Identify the construction or renovation project shown, the materials present
or required, visible or estimated dimensions, the current condition of the
area (terrain, existing structures, demolition needed), and any obstacles.
""" + _IMAGE_SCHEMA + _JSON_RULES,
        metadata={"image_type": "site"},
    ),
    PromptTemplate(
        name="image_reference",
        version="v1.1",
        template="""You are an experienced construction estimator. The client sent this
photo as a REFERENCE for the finished result they want, not of their site.

Photo file: {filename}

Describe the project type, style, finishes and materials shown so they can be
matched. Only report dimensions if they are written on the image.
""" + _IMAGE_SCHEMA + _JSON_RULES,
        metadata={"image_type": "reference"},
    ),
    PromptTemplate(
        name="image_sketch",
        version="v1.1",
        template="""You are an experienced construction estimator reading a hand-drawn
sketch or plan of a project.

Sketch file: {filename}

Read every written measurement and label. Report the project type, the
dimensions exactly as annotated (converted to feet), and any materials noted.
""" + _IMAGE_SCHEMA + _JSON_RULES,
        metadata={"image_type": "sketch"},
    ),
    PromptTemplate(
        name="notes_analysis",
        version="v1.2",
        template="""Analyze the following contractor notes about a project and extract all
relevant information. Notes may be in English or Spanish.

CONTRACTOR NOTES:
{notes}

JSON keys:
- "projectType": short project type, e.g. "fencing", "decking", "roofing"
- "projectSubtype": style or variant, e.g. "privacy", "chain_link", "composite"
- "dimensions": object such as {{"length": 70, "height": 6}} or {{"area": 1200}}
- "materialRequirements": object mapping element to material
- "specialConsiderations": list of short strings
- "demolitionNeeded": true or false
- "clientPreferences": object of stated preferences (color, style, budget)
""" + _JSON_RULES,
    ),
    PromptTemplate(
        name="window_details",
        version="v1.0",
        template="""This photo shows windows in a building or house. Extract every technical
detail you can for each visible window.

For each window report:
- "type": sliding, casement, double_hung, single_hung, fixed, bay, bow, awning
- "material": frame material (vinyl, aluminum, wood, fiberglass)
- "glass": single, double, triple pane, low-E
- "dimensions": {{"width": inches, "height": inches}}
- "condition": new, worn, damaged
- "location": where on the house (front, side, rear, room)

Return {{"windows": [ ... one object per window ... ]}}.
""" + _JSON_RULES,
        metadata={"response_key": "windows"},
    ),
]


class PromptLibrary:
    """Registry of prompt templates with variable rendering.

    Attributes:
        prompts_dir: Optional directory with custom ``*.yaml`` prompts.
    """

    def __init__(self, prompts_dir: Optional[str] = None) -> None:
        self.prompts_dir = Path(prompts_dir) if prompts_dir else None
        self._prompts: Dict[str, PromptTemplate] = {p.name: p for p in _BUILTIN_PROMPTS}

        if self.prompts_dir is not None:
            self._load_custom_prompts()

        logger.debug(f"PromptLibrary initialized with {len(self._prompts)} prompts")

    def get_prompt(self, use_case: str) -> PromptTemplate:
        """Retrieve the template for a use case.

        Raises:
            PromptNotFoundError: If the use case is not registered.
        """
        try:
            return self._prompts[use_case]
        except KeyError:
            raise PromptNotFoundError(use_case) from None

    def render(self, use_case: str, context: Dict[str, Any]) -> str:
        """Render a prompt by substituting ``{variable}`` placeholders.

        Args:
            use_case: Prompt name.
            context: Values for the template variables.

        Returns:
            Rendered prompt text.

        Raises:
            PromptNotFoundError: If the use case is not registered.
            PromptRenderError: If a template variable is missing from context.
        """
        template = self.get_prompt(use_case)
        missing = [v for v in template.variables if v not in context]
        if missing:
            raise PromptRenderError(template.name, missing)
        return template.template.format(**context)

    def image_prompt(self, image_type: ImageType, filename: str = "") -> str:
        """Render the type-aware image analysis prompt."""
        return self.render(f"image_{image_type.value}", {"filename": filename or "unnamed"})

    def notes_prompt(self, notes: str) -> str:
        return self.render("notes_analysis", {"notes": notes})

    def window_prompt(self) -> str:
        return self.render("window_details", {})

    def list_prompts(self) -> Dict[str, str]:
        """Map of prompt name to version."""
        return {name: p.version for name, p in sorted(self._prompts.items())}

    def add_prompt(self, prompt: PromptTemplate, overwrite: bool = False) -> None:
        """Register a prompt.

        Raises:
            PromptLibraryError: If the name exists and ``overwrite`` is False.
        """
        if prompt.name in self._prompts and not overwrite:
            raise PromptLibraryError(f"Prompt already exists: {prompt.name}")
        self._prompts[prompt.name] = prompt

    def _load_custom_prompts(self) -> None:
        if not self.prompts_dir.is_dir():
            logger.warning(f"Custom prompts directory not found: {self.prompts_dir}")
            return

        for prompt_file in sorted(self.prompts_dir.glob("*.yaml")):
            with open(prompt_file, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
            if not isinstance(data, dict) or "template" not in data:
                logger.warning(f"Skipping prompt file without a template: {prompt_file.name}")
                continue
            prompt = PromptTemplate(
                name=data.get("name", prompt_file.stem),
                version=str(data.get("version", "custom")),
                template=data["template"],
                metadata=data.get("metadata") or {},
            )
            self.add_prompt(prompt, overwrite=True)
            logger.info(f"Loaded custom prompt {prompt.name} ({prompt.version})")
