"""
Recovery of structured data from analyzer responses.

Analyzers are asked for a bare JSON object but often wrap it in markdown
fences or prose. ``parse_json_payload`` strips fences, tries a direct decode
and then scans for the first decodable JSON object. When no object can be
recovered, ``extract_partial_findings`` pulls the few fields that can be read
from free text.
"""

import json
import logging
import re
from typing import Any, Dict, Optional, Type, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as SchemaValidationError

from ..utils.error_handlers import ParseError
from ..utils.text_utils import leading_number, truncate_text

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

_FENCE = re.compile(r"```(?:json|JSON)?\s*(.*?)```", re.DOTALL)

_PROJECT_TYPE_TEXT = re.compile(
    r"""["']?project[\s_-]?type["']?\s*[:=]\s*["']?([A-Za-z_][\w \-]*?)["']?\s*(?:[,}\n]|$)""",
    re.IGNORECASE,
)
_DIMENSION_TEXT = re.compile(
    r"""["']?(length|width|height|area|depth|perimeter)["']?\s*[:=]\s*["']?(-?\d[\d,]*(?:\.\d+)?)""",
    re.IGNORECASE,
)
_MATERIALS_TEXT = re.compile(
    r"""["']?materials?["']?\s*[:=]\s*(\[[^\]]*\]|\{[^}]*\}|["'][^"'\n]+["'])""",
    re.IGNORECASE,
)


def _strip_fences(text: str) -> str:
    match = _FENCE.search(text)
    return match.group(1).strip() if match else text.strip()


def parse_json_payload(text: str) -> Dict[str, Any]:
    """
    Recover the first JSON object from analyzer output.

    Args:
        text: Raw analyzer response

    Returns:
        Decoded JSON object

    Raises:
        ParseError: If no JSON object can be decoded

    Example:
        >>> parse_json_payload('Sure! {"projectType": "roofing"} Hope that helps!')
        {'projectType': 'roofing'}
    """
    if not text or not text.strip():
        raise ParseError("Analyzer returned an empty response", raw_text=text or "")

    candidate = _strip_fences(text)
    try:
        decoded = json.loads(candidate)
    except json.JSONDecodeError:
        decoded = None
    if isinstance(decoded, dict):
        return decoded

    decoder = json.JSONDecoder()
    for source in (candidate, text):
        index = source.find("{")
        while index != -1:
            try:
                obj, _ = decoder.raw_decode(source, index)
            except json.JSONDecodeError:
                index = source.find("{", index + 1)
                continue
            if isinstance(obj, dict):
                return obj
            index = source.find("{", index + 1)

    raise ParseError(
        f"No JSON object found in response: {truncate_text(text.strip(), 120)}",
        raw_text=text,
    )


def validate_payload(data: Dict[str, Any], schema: Type[ModelT]) -> ModelT:
    """
    Validate a decoded payload against a response schema.

    Raises:
        ParseError: If the payload does not fit the schema
    """
    try:
        return schema.model_validate(data)
    except SchemaValidationError as e:
        raise ParseError(
            f"Response does not match {schema.__name__}: {e.error_count()} error(s)",
            raw_text=json.dumps(data, default=str)[:500],
        ) from e


def parse_response(text: str, schema: Type[ModelT]) -> ModelT:
    """Decode and validate analyzer output in one step."""
    return validate_payload(parse_json_payload(text), schema)


def extract_partial_findings(text: str) -> Optional[Dict[str, Any]]:
    """
    Pull projectType, dimensions and materials out of unstructured text.

    Args:
        text: Raw analyzer response that could not be decoded

    Returns:
        Partial payload with the keys that were found, or None if nothing
        was recognised
    """
    if not text:
        return None

    findings: Dict[str, Any] = {}

    type_match = _PROJECT_TYPE_TEXT.search(text)
    if type_match:
        findings["projectType"] = type_match.group(1).strip()

    dimensions: Dict[str, float] = {}
    for name, raw_value in _DIMENSION_TEXT.findall(text):
        value = leading_number(raw_value)
        if value is not None:
            dimensions.setdefault(name.lower(), value)
    if dimensions:
        findings["dimensions"] = dimensions

    materials_match = _MATERIALS_TEXT.search(text)
    if materials_match:
        raw = materials_match.group(1)
        try:
            findings["materials"] = json.loads(raw.replace("'", '"'))
        except json.JSONDecodeError:
            findings["materials"] = {"description": raw.strip("\"'[]{} ")}

    if not findings:
        return None

    logger.debug(f"Recovered partial findings: {sorted(findings)}")
    return findings
