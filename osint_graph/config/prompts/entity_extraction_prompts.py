"""Prompt templates for entity and relationship extraction.

The user prompt carries the (minified) source text and, when earlier passes
produced results, a compact JSON projection of the cumulative graph so the
model can reuse existing entity names instead of inventing near-duplicates.
"""

ENTITY_EXTRACTION_SYSTEM_PROMPT = (
    "You are an expert in text analysis who accurately extracts named entities "
    "and their relationships. OSINT is your specialty."
)

ENTITY_EXTRACTION_USER_PROMPT = """Analyze this text thoroughly to extract named entities and their relationships for OSINT purposes:

Text:
{text}

For each entity, I need:
1. Name: The primary name of the entity
2. Type: Classify as "person", "organization", "location", "date", or "other"
3. Aliases: Alternative names or references to this entity found in the text
4. Summary: A brief description/summary of this entity based on context (2-3 sentences)

For relationships between entities:
1. Source: Name of the first entity
2. Target: Name of the second entity
3. Strength: A numerical value from 1-10 indicating relationship strength
   - Higher values (8-10) indicate very strong/direct connections
   - Medium values (4-7) indicate moderate connections
   - Lower values (1-3) indicate weak or inferred connections

Be comprehensive and accurate:
- Extract ALL significant entities, not just prominent ones
- Only reference entity names you also list under "entities"
- Identify any alternative names/aliases for each entity
"""

PREVIOUS_CONTEXT_PROMPT = """
Previous analysis context:
{previous_context}

When incorporating the previous context:
- Reuse the exact names of continuing entities
- Add aliases and improve summaries of existing entities
- Create new relationships between existing and new entities as appropriate
"""

OUTPUT_FORMAT_PROMPT = """
Expected JSON format:
{
  "entities": [
    {
      "name": "EntityName",
      "type": "person|organization|location|date|other",
      "aliases": ["Nickname", "Alternate Reference"],
      "summary": "Brief description based on the context"
    }
  ],
  "relationships": [
    {
      "source": "SourceEntityName",
      "target": "TargetEntityName",
      "strength": 5
    }
  ]
}"""


def build_extraction_prompt(text: str, previous_context: str | None = None) -> str:
    """Render the user prompt; ``previous_context`` is a JSON string or None."""
    prompt = ENTITY_EXTRACTION_USER_PROMPT.format(text=text)
    if previous_context:
        prompt += PREVIOUS_CONTEXT_PROMPT.format(previous_context=previous_context)
    return prompt + OUTPUT_FORMAT_PROMPT
