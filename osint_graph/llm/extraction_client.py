"""Entity extraction client: text + prior context in, normalized result out.

Request side:
1. Minify the input text (whitespace, repeated boilerplate, head/tail cut)
2. Project the cumulative graph down to what the model needs to reuse names
   (id, name, type, summary, aliases; strengths and mentions dropped)

Response side:
1. Pull the JSON object out of the raw content (bare or fenced)
2. Require list-shaped "entities" and "relationships"
3. Derive ids, fold duplicates, resolve relationship endpoints by name

Relationships whose endpoints are not among the entities of the same
response are dropped with a warning; the rest of the result is kept.
"""

import json
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from loguru import logger
from pydantic import ValidationError

from osint_graph.config.settings import settings as default_settings
from osint_graph.data_management.schemas import (
    Entity,
    EntityType,
    ExtractionResult,
    Relationship,
)
from osint_graph.llm.exceptions import InputValidationError, MalformedResponseError
from osint_graph.llm.extraction_backend import (
    ExtractionBackend,
    ExtractionRequest,
    create_backend,
)
from osint_graph.llm.text_minifier import minify_text

_FENCED_JSON = re.compile(r"```(?:json)?\s*([\s\S]*?)```")
_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")

DEFAULT_STRENGTH = 1.0


@dataclass
class ParsedExtraction:
    """Normalized result plus what normalization had to discard."""

    result: ExtractionResult
    dropped_relationships: List[str] = field(default_factory=list)
    skipped_entities: int = 0


def project_previous_results(previous: Optional[ExtractionResult]) -> Dict[str, Any]:
    """Compact prior context for the request payload."""
    if previous is None:
        return {"entities": [], "relationships": []}
    return {
        "entities": [
            {
                "id": entity.id,
                "name": entity.name,
                "type": entity.type.value,
                "summary": entity.summary,
                "aliases": list(entity.aliases),
            }
            for entity in previous.entities
        ],
        "relationships": [
            {"source": rel.source, "target": rel.target}
            for rel in previous.relationships
        ],
    }


def extract_json_object(content: str) -> Dict[str, Any]:
    """
    Extract the JSON object from an LLM response, handling markdown blocks.

    Raises:
        MalformedResponseError: If no JSON object can be parsed
    """
    text = (content or "").strip()
    if not text:
        raise MalformedResponseError("Empty response content")

    fenced = _FENCED_JSON.search(text)
    if fenced:
        text = fenced.group(1).strip()

    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        match = _JSON_OBJECT.search(text)
        if not match:
            raise MalformedResponseError("Response is not valid JSON")
        try:
            parsed = json.loads(match.group(0))
        except json.JSONDecodeError as e:
            raise MalformedResponseError(f"Response is not valid JSON: {e.msg}") from e

    if not isinstance(parsed, dict):
        raise MalformedResponseError("Response JSON is not an object")
    return parsed


def _coerce_strength(value: Any) -> float:
    try:
        strength = float(value)
    except (TypeError, ValueError):
        return DEFAULT_STRENGTH
    return max(0.0, strength)


def _coerce_aliases(value: Any) -> List[str]:
    if isinstance(value, str):
        return [value]
    if isinstance(value, list):
        return [str(alias) for alias in value if alias]
    return []


def normalize_extraction(raw: Dict[str, Any]) -> ParsedExtraction:
    """
    Turn the decoded model output into an ExtractionResult.

    Args:
        raw: ``{"entities": [...], "relationships": [...]}``

    Returns:
        ParsedExtraction

    Raises:
        MalformedResponseError: If either collection is missing or not a list
    """
    raw_entities = raw.get("entities")
    raw_relationships = raw.get("relationships")
    if not isinstance(raw_entities, list) or not isinstance(raw_relationships, list):
        raise MalformedResponseError("Invalid response format: entities and relationships must be lists")

    parsed = ParsedExtraction(result=ExtractionResult())

    entities: Dict[str, Entity] = {}
    by_name: Dict[str, str] = {}       # exact name -> id
    by_folded: Dict[str, str] = {}     # casefolded name or alias -> id
    for item in raw_entities:
        if not isinstance(item, dict) or not str(item.get("name") or "").strip():
            parsed.skipped_entities += 1
            continue
        try:
            entity = Entity(
                name=str(item["name"]).strip(),
                type=EntityType.from_label(str(item.get("type") or "")),
                aliases=_coerce_aliases(item.get("aliases")),
                summary=str(item["summary"]) if item.get("summary") else None,
            )
        except ValidationError:
            parsed.skipped_entities += 1
            continue

        existing = entities.get(entity.id)
        if existing:
            aliases = existing.aliases + [a for a in entity.aliases if a not in existing.aliases]
            summary = existing.summary
            if entity.summary and len(entity.summary) > len(summary or ""):
                summary = entity.summary
            entities[entity.id] = existing.model_copy(update={"aliases": aliases, "summary": summary})
        else:
            entities[entity.id] = entity

        by_name.setdefault(entity.name, entity.id)
        for surface in [entity.name, *entity.aliases]:
            by_folded.setdefault(surface.casefold(), entity.id)

    def resolve(name: Any) -> Optional[str]:
        name = str(name or "").strip()
        if not name:
            return None
        return by_name.get(name) or by_folded.get(name.casefold())

    relationships: Dict[str, Relationship] = {}
    for item in raw_relationships:
        if not isinstance(item, dict):
            parsed.dropped_relationships.append(f"Malformed relationship entry: {item!r}")
            continue
        source_id = resolve(item.get("source"))
        target_id = resolve(item.get("target"))
        if not source_id or not target_id:
            parsed.dropped_relationships.append(
                f"Relation ignored: {item.get('source')} -> {item.get('target')} (missing entity)"
            )
            continue
        rel = Relationship(
            source=source_id,
            target=target_id,
            strength=_coerce_strength(item.get("strength")),
        )
        relationships.setdefault(rel.id, rel)

    parsed.result = ExtractionResult(
        entities=list(entities.values()),
        relationships=list(relationships.values()),
    )
    return parsed


def parse_extraction_response(content: str) -> ParsedExtraction:
    """Decode and normalize raw response content."""
    return normalize_extraction(extract_json_object(content))


class EntityExtractionClient:
    """
    Client for the external extraction service.

    Contract: ``analyze_text(text, previous_results)`` returns a normalized
    ExtractionResult or raises (BackendError / MalformedResponseError /
    InputValidationError). The backend is the seam where the language-model
    service is replaced by a fake.

    Attributes:
        backend: Transport to the extraction service
        model_name: Model forwarded with each request
        temperature: Sampling temperature forwarded with each request
        max_tokens: Response token ceiling forwarded with each request
        max_text_length: Minifier character ceiling
    """

    def __init__(
        self,
        backend: Optional[ExtractionBackend] = None,
        model_name: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        max_text_length: Optional[int] = None,
    ):
        self.backend = backend or create_backend()
        self.model_name = model_name or default_settings.extraction_model
        self.temperature = (
            temperature if temperature is not None else default_settings.extraction_temperature
        )
        self.max_tokens = max_tokens or default_settings.extraction_max_tokens
        self.max_text_length = max_text_length or default_settings.max_text_length
        self.logger = logger.bind(component="EntityExtractionClient")

    def build_request(
        self,
        text: str,
        previous_results: Optional[ExtractionResult] = None,
    ) -> ExtractionRequest:
        """Minify text and project prior context into a request."""
        return ExtractionRequest(
            text=minify_text(text, self.max_text_length),
            previous_results=project_previous_results(previous_results),
            model_name=self.model_name,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
        )

    async def analyze_text(
        self,
        text: str,
        previous_results: Optional[ExtractionResult] = None,
    ) -> ExtractionResult:
        """Extract entities and relationships, using prior context if given."""
        parsed = await self.extract(text, previous_results)
        return parsed.result

    async def extract(
        self,
        text: str,
        previous_results: Optional[ExtractionResult] = None,
    ) -> ParsedExtraction:
        """
        Run one extraction request and keep normalization diagnostics.

        Args:
            text: Raw text to analyze
            previous_results: Cumulative graph from earlier passes

        Returns:
            ParsedExtraction with the normalized result

        Raises:
            InputValidationError: If text is empty
            BackendError: If the service call fails
            MalformedResponseError: If the response has the wrong shape
        """
        if not text or not text.strip():
            raise InputValidationError("Missing text to analyze")

        request = self.build_request(text, previous_results)
        self.logger.debug(
            "Sending extraction request",
            text_length=len(text),
            sent_length=len(request.text),
            previous_entities=len(request.previous_results["entities"]),
        )

        content = await self.backend.complete(request)
        parsed = parse_extraction_response(content)

        for message in parsed.dropped_relationships:
            self.logger.warning("Relationship dropped", detail=message)
        if parsed.skipped_entities:
            self.logger.warning("Entities skipped", count=parsed.skipped_entities)

        self.logger.info(
            f"Extracted {len(parsed.result.entities)} entities",
            relationships=len(parsed.result.relationships),
            dropped_relationships=len(parsed.dropped_relationships),
        )
        return parsed

    async def aclose(self) -> None:
        """Close the underlying transport."""
        await self.backend.aclose()
