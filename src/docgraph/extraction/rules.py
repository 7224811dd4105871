from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Mapping

from ..errors import ExtractionError
from ..text import label_key
from .base import CommunitySummary, ExtractedEntity, ExtractedRelationship, Extraction

_WORD = r"[A-Za-z][A-Za-z0-9_\-']*"
_PHRASE_RE = re.compile(r"\b(?:[A-Z][a-z]+(?:\s+[A-Z][a-z]+){0,4})\b")
_HANDLE_RE = re.compile(r"[@#]" + _WORD)
_UNIT_SPLIT_RE = re.compile(r"[\n\r]+|(?<=[.!?])\s+")
_STRIP = " .,:;\t\"'"

# (pattern, relationship type, confidence, subject type, object type)
_PATTERNS: list[tuple[re.Pattern, str, float, str, str]] = [
    (re.compile(r"(?P<x>.+?)\s+works\s+(?:at|for)\s+(?P<y>.+)", re.IGNORECASE), "WORKS_AT", 0.7, "Person", "Organization"),
    (re.compile(r"(?P<x>.+?)\s+(?:founded|created|started)\s+(?P<y>.+)", re.IGNORECASE), "FOUNDED", 0.7, "Person", "Organization"),
    (re.compile(r"(?P<x>.+?)\s+met\s+(?P<y>.+)", re.IGNORECASE), "MET", 0.55, "Person", "Person"),
    (re.compile(r"(?P<x>.+?)\s+is\s+(?:an?\s+|the\s+)?(?P<y>.+)", re.IGNORECASE), "IS_A", 0.6, "Concept", "Concept"),
]


@dataclass(slots=True)
class RuleBasedExtractionService:
    """Fast, dependency-free extraction service.

    Not meant to be good, meant to be cheap and deterministic. Used when no
    LLM endpoint is configured, and handy for offline runs.

    Patterns (one sentence or line at a time):
    - "X works at Y" => (X)-[:WORKS_AT]->(Y)
    - "X founded Y" / "X created Y" => (X)-[:FOUNDED]->(Y)
    - "X met Y" => (X)-[:MET]->(Y)
    - "X is Y" => (X)-[:IS_A]->(Y)

    Entities also come from capitalized phrases and @handles / #tags.
    """

    min_entity_len: int = 2
    summary_chars: int = 300

    def extract(self, text: str) -> Extraction:
        if not text:
            return Extraction()

        entities: dict[str, ExtractedEntity] = {}
        rels: list[ExtractedRelationship] = []

        def _add(label: str, type_: str, confidence: float) -> None:
            key = label_key(label)
            current = entities.get(key)
            # a typed guess from a relation pattern beats the bare phrase heuristic
            if current is None or (current.type == "Concept" and type_ != "Concept"):
                entities[key] = ExtractedEntity(label=label, type=type_, confidence=confidence)

        # Candidate spans: sequences of CapitalizedWords ("John Doe", "Acme Corp")
        for m in _PHRASE_RE.finditer(text):
            name = m.group(0).strip()
            if len(name) >= self.min_entity_len:
                _add(name, "Concept", 0.5)

        for m in _HANDLE_RE.finditer(text):
            token = m.group(0)
            _add(token, "Handle" if token.startswith("@") else "Tag", 0.5)

        for unit in (u.strip(_STRIP) for u in _UNIT_SPLIT_RE.split(text)):
            if not unit:
                continue
            for pat, rel_type, conf, x_type, y_type in _PATTERNS:
                mm = pat.fullmatch(unit)
                if not mm:
                    continue
                x = mm.group("x").strip(_STRIP)
                y = mm.group("y").strip(_STRIP)
                if not x or not y:
                    continue
                _add(x, x_type, conf)
                _add(y, y_type, conf)
                rels.append(ExtractedRelationship(from_=x, to=y, type=rel_type, confidence=conf))
                break

        # De-dup relations (cheap)
        seen: set[tuple[str, str, str]] = set()
        deduped: list[ExtractedRelationship] = []
        for r in rels:
            key = (label_key(r.from_ or ""), label_key(r.to or ""), r.type or "")
            if key in seen:
                continue
            seen.add(key)
            deduped.append(r)

        return Extraction(entities=list(entities.values()), relationships=deduped)

    def same_entity(self, a: Mapping[str, Any], b: Mapping[str, Any]) -> bool:
        return label_key(str(a.get("label") or "")) == label_key(str(b.get("label") or ""))

    def summarize(self, context: str) -> CommunitySummary:
        # Extractive placeholder: name the cluster after its first member.
        lines = [ln.strip() for ln in context.splitlines() if ln.strip()]
        if not lines:
            raise ExtractionError("empty community context")
        labels = [ln.split(" (", 1)[0] for ln in lines]
        types = sorted({ln.split(" (", 1)[1].split(")", 1)[0] for ln in lines if " (" in ln})
        theme = ", ".join(types) if types else "Mixed"
        summary = f"{len(lines)} connected entities: {', '.join(labels[:5])}"
        if len(labels) > 5:
            summary += ", ..."
        return CommunitySummary(
            theme=theme,
            summary=summary[: self.summary_chars],
            label=f"{labels[0]} cluster",
        )
