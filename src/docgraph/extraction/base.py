from __future__ import annotations

import json
import logging
import re
from typing import Any, Mapping, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..errors import ExtractionFormatError

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"^\s*```(?:json|JSON)?\s*(.*?)\s*```\s*$", re.DOTALL)


def _clean_str(v: Any) -> str | None:
    if v is None:
        return None
    if isinstance(v, (dict, list)):
        raise ValueError("expected a scalar")
    s = str(v).strip()
    return s or None


class ExtractedEntity(BaseModel):
    """One entity as returned by an extraction service.

    `label` may be missing here; the merge step drops label-less entities.
    """

    model_config = ConfigDict(extra="ignore")

    id: str | None = None
    label: str | None = None
    type: str = "Concept"
    properties: dict[str, Any] = Field(default_factory=dict)
    confidence: float | None = None

    @field_validator("id", "label", mode="before")
    @classmethod
    def _strip(cls, v: Any) -> str | None:
        return _clean_str(v)

    @field_validator("type", mode="before")
    @classmethod
    def _default_type(cls, v: Any) -> str:
        return _clean_str(v) or "Concept"

    @field_validator("properties", mode="before")
    @classmethod
    def _props(cls, v: Any) -> dict[str, Any]:
        return v if isinstance(v, dict) else {}


class ExtractedRelationship(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    from_: str | None = Field(default=None, alias="from")
    to: str | None = None
    type: str | None = None
    properties: dict[str, Any] = Field(default_factory=dict)
    confidence: float | None = None

    @field_validator("from_", "to", "type", mode="before")
    @classmethod
    def _strip(cls, v: Any) -> str | None:
        return _clean_str(v)

    @field_validator("properties", mode="before")
    @classmethod
    def _props(cls, v: Any) -> dict[str, Any]:
        return v if isinstance(v, dict) else {}


class Extraction(BaseModel):
    entities: list[ExtractedEntity] = Field(default_factory=list)
    relationships: list[ExtractedRelationship] = Field(default_factory=list)


class CommunitySummary(BaseModel):
    theme: str
    summary: str
    label: str

    @field_validator("theme", "summary", "label", mode="before")
    @classmethod
    def _non_empty(cls, v: Any) -> str:
        s = _clean_str(v)
        if not s:
            raise ValueError("must be a non-empty string")
        return s


@runtime_checkable
class ExtractionService(Protocol):
    """Anything that can turn text into entities/relationships.

    Implementations raise ExtractionError when the backend is unreachable and
    ExtractionFormatError when its answer cannot be understood.
    """

    def extract(self, text: str) -> Extraction: ...

    def same_entity(self, a: Mapping[str, Any], b: Mapping[str, Any]) -> bool: ...

    def summarize(self, context: str) -> CommunitySummary: ...


def strip_code_fences(text: str) -> str:
    m = _FENCE_RE.match(text or "")
    return m.group(1) if m else (text or "").strip()


def parse_json_content(text: str) -> Any:
    try:
        return json.loads(strip_code_fences(text))
    except (TypeError, ValueError) as e:
        raise ExtractionFormatError(f"Response is not valid JSON: {e}") from e


def _items(payload: Mapping[str, Any], name: str) -> list:
    value = payload.get(name)
    if value is None:
        return []
    if not isinstance(value, list):
        raise ExtractionFormatError(f"'{name}' must be a list, got {type(value).__name__}")
    return value


def parse_extraction(payload: Any) -> Extraction:
    """Validate a raw payload item by item.

    A wrong overall shape raises ExtractionFormatError; individual malformed
    entities or relationships are dropped.
    """
    if isinstance(payload, Extraction):
        return payload
    if not isinstance(payload, Mapping):
        raise ExtractionFormatError(f"Extraction payload must be an object, got {type(payload).__name__}")

    entities: list[ExtractedEntity] = []
    for item in _items(payload, "entities"):
        try:
            entities.append(ExtractedEntity.model_validate(item))
        except ValidationError as e:
            logger.debug(f"Dropping malformed entity {item!r}: {e}")

    relationships: list[ExtractedRelationship] = []
    for item in _items(payload, "relationships"):
        try:
            relationships.append(ExtractedRelationship.model_validate(item))
        except ValidationError as e:
            logger.debug(f"Dropping malformed relationship {item!r}: {e}")

    return Extraction(entities=entities, relationships=relationships)


def parse_summary(payload: Any) -> CommunitySummary:
    if isinstance(payload, CommunitySummary):
        return payload
    try:
        return CommunitySummary.model_validate(payload)
    except ValidationError as e:
        raise ExtractionFormatError(f"Malformed community summary: {e}") from e
