"""Extraction service backed by an OpenAI-compatible chat-completions endpoint.

Works with OpenAI proper (Bearer token) and Azure OpenAI deployments
(`api-key` header, deployment URL with `api-version`). Every call runs in JSON
mode and goes through a bounded exponential-backoff retry.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Mapping

import httpx

from ..errors import ExtractionError, ExtractionFormatError
from ..settings import DocGraphSettings, settings as default_settings
from .base import CommunitySummary, Extraction, parse_extraction, parse_json_content, parse_summary
from .http import HttpClientFactory, transient_retry

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = "You are a precise knowledge graph extractor. Output valid JSON only."

EXTRACT_PROMPT = """Analyze this text and extract knowledge graph elements.

Rules:
1. Entities: precise entities (Person, Organization, Location, Event, Concept).
   Add a 'description' property to every entity. For events and log entries add
   a 'timestamp' property (ISO 8601 when possible, else the raw date string).
2. Relationships: precise verbs as types (EMPLOYED_BY, LOCATED_IN, PERFORMED).
   'from' and 'to' are entity labels.
3. A specific action, transaction or log entry is an 'Event'.

Text:
{text}

Output JSON:
{{"entities": [{{"label": "...", "type": "...", "confidence": 0.9, "properties": {{"description": "..."}}}}],
 "relationships": [{{"from": "...", "to": "...", "type": "...", "confidence": 0.8}}]}}
"""

SAME_ENTITY_PROMPT = """Entity resolution: do these two entities refer to the same real-world object?

Entity A: "{a_label}" (type: {a_type})
Context A: {a_props}

Entity B: "{b_label}" (type: {b_type})
Context B: {b_props}

Reply with JSON only: {{"isMatch": true}} or {{"isMatch": false}}
"""

SUMMARIZE_PROMPT = """These entities form one densely connected cluster of a knowledge graph.

{context}

Describe the cluster. Output JSON:
{{"theme": "short theme", "summary": "two or three sentences", "label": "short community name"}}
"""


class LLMExtractionService:
    def __init__(
        self,
        endpoint: str,
        api_key: str | None = None,
        *,
        api_key_header: str = "Authorization",
        model: str | None = None,
        timeout: float = 60.0,
        max_attempts: int = 3,
        backoff_initial: float = 1.0,
        backoff_max: float = 8.0,
        max_input_chars: int = 32000,
        client: httpx.Client | None = None,
    ):
        self.endpoint = endpoint
        self.model = model
        self.max_input_chars = max_input_chars
        headers: dict[str, str] = {}
        if api_key:
            if api_key_header.lower() == "authorization":
                headers["Authorization"] = f"Bearer {api_key}"
            else:
                headers[api_key_header] = api_key
        self._headers = headers
        self._client = client or HttpClientFactory.client(read_timeout=timeout)
        self._post = transient_retry(max_attempts, backoff_initial, backoff_max)(self._post_once)

    @classmethod
    def from_settings(cls, s: DocGraphSettings = default_settings) -> "LLMExtractionService":
        if not s.llm_endpoint:
            raise ValueError("llm_endpoint is not configured")
        return cls(
            s.llm_endpoint,
            s.llm_api_key,
            api_key_header=s.llm_api_key_header,
            model=s.llm_model,
            timeout=s.llm_timeout_seconds,
            max_attempts=s.llm_max_attempts,
            backoff_initial=s.llm_backoff_initial,
            backoff_max=s.llm_backoff_max,
            max_input_chars=s.chunk_max_tokens * s.chars_per_token,
        )

    def close(self) -> None:
        self._client.close()

    def _post_once(self, body: dict[str, Any]) -> dict[str, Any]:
        resp = self._client.post(self.endpoint, json=body, headers=self._headers)
        resp.raise_for_status()
        return resp.json()

    def _complete_json(self, prompt: str, temperature: float = 0.0) -> Any:
        body: dict[str, Any] = {
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            "temperature": temperature,
            "max_tokens": 4000,
            "response_format": {"type": "json_object"},
        }
        if self.model:
            body["model"] = self.model
        try:
            data = self._post(body)
        except httpx.HTTPError as e:
            logger.error(f"LLM request failed after retries: {e}")
            raise ExtractionError(f"LLM request failed: {e}") from e
        except ValueError as e:
            raise ExtractionFormatError(f"LLM response is not JSON: {e}") from e
        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise ExtractionFormatError(f"Unexpected completion shape: {e}") from e
        return parse_json_content(content or "{}")

    def extract(self, text: str) -> Extraction:
        payload = self._complete_json(EXTRACT_PROMPT.format(text=text[: self.max_input_chars]))
        return parse_extraction(payload)

    def same_entity(self, a: Mapping[str, Any], b: Mapping[str, Any]) -> bool:
        prompt = SAME_ENTITY_PROMPT.format(
            a_label=a.get("label"),
            a_type=a.get("type"),
            a_props=json.dumps(a.get("properties") or {}, default=str),
            b_label=b.get("label"),
            b_type=b.get("type"),
            b_props=json.dumps(b.get("properties") or {}, default=str),
        )
        payload = self._complete_json(prompt)
        if not isinstance(payload, dict):
            raise ExtractionFormatError("Entity comparison answer must be an object")
        match = payload.get("isMatch")
        return match is True or (isinstance(match, str) and match.strip().lower() == "true")

    def summarize(self, context: str) -> CommunitySummary:
        return parse_summary(self._complete_json(SUMMARIZE_PROMPT.format(context=context), temperature=0.5))
