"""Extraction service contract and implementations."""

from .base import (
    CommunitySummary,
    ExtractedEntity,
    ExtractedRelationship,
    Extraction,
    ExtractionService,
    parse_extraction,
    parse_summary,
)
from .llm import LLMExtractionService
from .rules import RuleBasedExtractionService

__all__ = [
    "CommunitySummary",
    "ExtractedEntity",
    "ExtractedRelationship",
    "Extraction",
    "ExtractionService",
    "parse_extraction",
    "parse_summary",
    "LLMExtractionService",
    "RuleBasedExtractionService",
]
