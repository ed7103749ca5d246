"""
Turn free-form model replies into sections and summaries.

The model is asked for pure JSON but frequently wraps it in prose, markdown fences or
a ``<think>`` block. The helpers here locate the JSON, parse it and check its shape;
every failure is an ``AIResponseFormatError`` carrying an excerpt of the reply.
"""
import json
import re
from dataclasses import dataclass
from typing import Any, List, Optional

from lifeplanner_api.errors import AIResponseFormatError

EXCERPT_LENGTH = 200

NO_JSON_ARRAY = "Respuesta IA no contiene JSON"
INVALID_JSON = "Respuesta IA con JSON inválido"
UNEXPECTED_SHAPE = "Respuesta IA con formato inesperado"
NO_JSON_OBJECT = "IA no devolvió JSON válido"
EMPTY_REPLY = "Respuesta IA vacía"

_THINK_BLOCK = re.compile(r"<think>.*?</think>", re.DOTALL | re.IGNORECASE)
_JSON_ARRAY = re.compile(r"\[.*\]", re.DOTALL)
_JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)


@dataclass(frozen=True)
class SectionDraft:
    section_type: str
    content: str


@dataclass(frozen=True)
class SummaryDraft:
    title: str
    executive_summary: str


def excerpt(raw: str) -> str:
    return raw[:EXCERPT_LENGTH]


def strip_reasoning(raw: str) -> str:
    """Drop ``<think>...</think>`` blocks emitted by reasoning models."""
    return _THINK_BLOCK.sub("", raw).strip()


def _load(candidate: str, raw: str, error: str) -> Any:
    try:
        return json.loads(candidate)
    except json.JSONDecodeError as exc:
        raise AIResponseFormatError(error, details=excerpt(raw)) from exc


def extract_json_array(raw: str) -> Any:
    """Parse the outermost ``[...]`` span of the reply."""
    match = _JSON_ARRAY.search(strip_reasoning(raw))
    if not match:
        raise AIResponseFormatError(NO_JSON_ARRAY, details=excerpt(raw))
    return _load(match.group(0), raw, INVALID_JSON)


def extract_json_object(raw: str, missing_error: str = NO_JSON_OBJECT) -> Any:
    """Parse the outermost ``{...}`` span of the reply."""
    match = _JSON_OBJECT.search(strip_reasoning(raw))
    if not match:
        raise AIResponseFormatError(missing_error, details=excerpt(raw))
    return _load(match.group(0), raw, missing_error)


def _sections_from_object(cleaned: str) -> Optional[Any]:
    """The ``sections`` value of a ``{"sections": [...]}`` reply, or None for any other reply."""
    if not cleaned.startswith("{"):
        return None
    match = _JSON_OBJECT.search(cleaned)
    if not match:
        return None
    try:
        payload = json.loads(match.group(0))
    except json.JSONDecodeError:
        return None
    if isinstance(payload, dict) and "sections" in payload:
        return payload["sections"]
    return None


def parse_sections(raw: str) -> List[SectionDraft]:
    """Sections from a ``{"sections": [...]}`` object or else the first ``[...]`` span.

    The object form is what the model returns when structured output is requested.
    Any other reply, including an object wrapping the array under another key, goes
    through the bracketed-array extraction.
    """
    cleaned = strip_reasoning(raw)
    items = _sections_from_object(cleaned)
    if items is None:
        items = extract_json_array(cleaned)

    if not isinstance(items, list):
        raise AIResponseFormatError(UNEXPECTED_SHAPE, details=excerpt(raw))

    drafts = []
    for item in items:
        if not isinstance(item, dict):
            raise AIResponseFormatError(UNEXPECTED_SHAPE, details=excerpt(raw))
        section_type = item.get("section_type")
        content = item.get("content")
        if not isinstance(section_type, str) or not section_type.strip() or not isinstance(content, str):
            raise AIResponseFormatError(UNEXPECTED_SHAPE, details=excerpt(raw))
        drafts.append(SectionDraft(section_type=section_type.strip(), content=content))
    return drafts


def parse_summary(raw: str) -> SummaryDraft:
    payload = extract_json_object(raw)
    if not isinstance(payload, dict):
        raise AIResponseFormatError(UNEXPECTED_SHAPE, details=excerpt(raw))
    title = payload.get("title")
    executive_summary = payload.get("executive_summary")
    if not isinstance(title, str) or not isinstance(executive_summary, str):
        raise AIResponseFormatError(UNEXPECTED_SHAPE, details=excerpt(raw))
    return SummaryDraft(title=title, executive_summary=executive_summary)


def parse_adjusted_text(raw: str) -> str:
    """The revised section text: the whole reply, trimmed."""
    text = strip_reasoning(raw)
    if not text:
        raise AIResponseFormatError(EMPTY_REPLY, details=excerpt(raw))
    return text
