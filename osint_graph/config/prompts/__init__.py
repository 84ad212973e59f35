"""Prompt templates for the extraction backend.

Modules:
    entity_extraction_prompts: System and user prompts for entity extraction
"""

from osint_graph.config.prompts.entity_extraction_prompts import (
    ENTITY_EXTRACTION_SYSTEM_PROMPT,
    ENTITY_EXTRACTION_USER_PROMPT,
    PREVIOUS_CONTEXT_PROMPT,
    OUTPUT_FORMAT_PROMPT,
    build_extraction_prompt,
)

__all__ = [
    "ENTITY_EXTRACTION_SYSTEM_PROMPT",
    "ENTITY_EXTRACTION_USER_PROMPT",
    "PREVIOUS_CONTEXT_PROMPT",
    "OUTPUT_FORMAT_PROMPT",
    "build_extraction_prompt",
]
