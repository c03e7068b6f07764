"""Pydantic schemas for analyzer responses.

Analyzer output is loosely structured: keys arrive in camelCase or
snake_case, lists appear where objects were asked for, numbers come back as
strings. These models validate a decoded JSON payload and coerce it into the
shapes the pipeline stages consume. Unknown keys are kept.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..utils.text_utils import leading_number, to_snake_case

_TRUE_STRINGS = {"true", "yes", "y", "si", "sí", "1"}


def _as_mapping(value: Any, list_prefix: str = "item") -> Dict[str, Any]:
    """Coerce a loosely typed value into a dictionary."""
    if value is None or value == "":
        return {}
    if isinstance(value, dict):
        return {to_snake_case(str(k)) or str(k): v for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return {f"{list_prefix}_{i + 1}": v for i, v in enumerate(value) if v not in (None, "")}
    return {"description": value}


def _as_string_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value.strip()] if value.strip() else []
    if isinstance(value, dict):
        return [f"{k}: {v}" for k, v in value.items()]
    if isinstance(value, (list, tuple)):
        return [str(v).strip() for v in value if v is not None and str(v).strip()]
    return [str(value)]


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in _TRUE_STRINGS
    return bool(value)


def _as_optional_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


class _AnalyzerPayload(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)


class ImageAnalysisPayload(_AnalyzerPayload):
    """Findings reported by the vision analyzer for one photo."""

    project_type: Optional[str] = Field(default=None, alias="projectType")
    dimensions: Dict[str, Any] = Field(default_factory=dict)
    materials: Dict[str, Any] = Field(default_factory=dict)
    conditions: Dict[str, Any] = Field(default_factory=dict)
    special_considerations: List[str] = Field(
        default_factory=list, alias="specialConsiderations"
    )
    contains_window: bool = Field(default=False, alias="containsWindow")

    @field_validator("project_type", mode="before")
    @classmethod
    def _coerce_type(cls, v: Any) -> Optional[str]:
        return _as_optional_text(v)

    @field_validator("dimensions", "conditions", mode="before")
    @classmethod
    def _coerce_mapping(cls, v: Any) -> Dict[str, Any]:
        return _as_mapping(v)

    @field_validator("materials", mode="before")
    @classmethod
    def _coerce_materials(cls, v: Any) -> Dict[str, Any]:
        return _as_mapping(v, list_prefix="material")

    @field_validator("special_considerations", mode="before")
    @classmethod
    def _coerce_list(cls, v: Any) -> List[str]:
        return _as_string_list(v)

    @field_validator("contains_window", mode="before")
    @classmethod
    def _coerce_bool(cls, v: Any) -> bool:
        return _as_bool(v)


class NotesAnalysisPayload(_AnalyzerPayload):
    """Findings reported by a text analyzer for the contractor notes."""

    project_type: Optional[str] = Field(default=None, alias="projectType")
    project_subtype: Optional[str] = Field(default=None, alias="projectSubtype")
    dimensions: Dict[str, Any] = Field(default_factory=dict)
    material_requirements: Dict[str, Any] = Field(
        default_factory=dict, alias="materialRequirements"
    )
    special_considerations: List[str] = Field(
        default_factory=list, alias="specialConsiderations"
    )
    demolition_needed: bool = Field(default=False, alias="demolitionNeeded")
    client_preferences: Dict[str, Any] = Field(
        default_factory=dict, alias="clientPreferences"
    )

    @model_validator(mode="before")
    @classmethod
    def _accept_materials_key(cls, data: Any) -> Any:
        if isinstance(data, dict) and "materialRequirements" not in data:
            for key in ("material_requirements", "materials"):
                if key in data:
                    data = dict(data)
                    data["materialRequirements"] = data.pop(key)
                    break
        return data

    @field_validator("project_type", "project_subtype", mode="before")
    @classmethod
    def _coerce_text(cls, v: Any) -> Optional[str]:
        return _as_optional_text(v)

    @field_validator("dimensions", "client_preferences", mode="before")
    @classmethod
    def _coerce_mapping(cls, v: Any) -> Dict[str, Any]:
        return _as_mapping(v)

    @field_validator("material_requirements", mode="before")
    @classmethod
    def _coerce_materials(cls, v: Any) -> Dict[str, Any]:
        return _as_mapping(v, list_prefix="material")

    @field_validator("special_considerations", mode="before")
    @classmethod
    def _coerce_list(cls, v: Any) -> List[str]:
        return _as_string_list(v)

    @field_validator("demolition_needed", mode="before")
    @classmethod
    def _coerce_bool(cls, v: Any) -> bool:
        return _as_bool(v)


class WindowDetail(_AnalyzerPayload):
    """One window seen in a window-detail pass. Dimensions are inches."""

    type: str = "unknown"
    material: str = "unknown"
    glass: Optional[str] = None
    width: float = 0.0
    height: float = 0.0
    condition: Optional[str] = None
    location: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _flatten_dimensions(cls, data: Any) -> Any:
        if isinstance(data, dict) and isinstance(data.get("dimensions"), dict):
            data = dict(data)
            dims = data.pop("dimensions")
            data.setdefault("width", dims.get("width"))
            data.setdefault("height", dims.get("height"))
        return data

    @field_validator("type", "material", mode="before")
    @classmethod
    def _coerce_label(cls, v: Any) -> str:
        text = _as_optional_text(v)
        return (to_snake_case(text) if text else "") or "unknown"

    @field_validator("width", "height", mode="before")
    @classmethod
    def _coerce_inches(cls, v: Any) -> float:
        number = leading_number(v)
        return number if number is not None and number > 0 else 0.0


class WindowAnalysisPayload(_AnalyzerPayload):
    """Response of the window-detail vision pass.

    A payload without a ``windows`` list is treated as a single window.
    """

    windows: List[WindowDetail] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _wrap_single_window(cls, data: Any) -> Any:
        if isinstance(data, dict) and "windows" not in data:
            return {"windows": [data]}
        if isinstance(data, list):
            return {"windows": data}
        return data

    @field_validator("windows", mode="before")
    @classmethod
    def _drop_non_objects(cls, v: Any) -> Any:
        if isinstance(v, list):
            return [w for w in v if isinstance(w, dict)]
        return v
