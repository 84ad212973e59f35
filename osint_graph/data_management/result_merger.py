"""Merge engine folding one extraction pass into the cumulative graph.

Merging is keyed on derived ids:
1. Entities - same id: union aliases, keep the longer summary, add mentions
2. Relationships - same id: reinforce strength with diminishing weight;
   relationships naming an entity absent from the merged set are dropped

Repeated evidence raises confidence but is capped at MAX_STRENGTH. The merge
is not idempotent: feeding the same incoming result twice reinforces its
relationships twice, so each completed task must be merged exactly once.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional

from loguru import logger

from osint_graph.data_management.schemas import (
    Entity,
    ExtractionResult,
    Relationship,
)

MAX_STRENGTH = 10.0
REINFORCEMENT_FACTOR = 0.5


@dataclass
class MergeStats:
    """Counters for one merge call."""

    entities_added: int = 0
    entities_updated: int = 0
    relationships_added: int = 0
    relationships_reinforced: int = 0
    relationships_dropped: int = 0

    def to_dict(self) -> Dict[str, int]:
        """Convert stats to dictionary."""
        return {
            "entities_added": self.entities_added,
            "entities_updated": self.entities_updated,
            "relationships_added": self.relationships_added,
            "relationships_reinforced": self.relationships_reinforced,
            "relationships_dropped": self.relationships_dropped,
        }


def merge_entity(existing: Entity, incoming: Entity) -> Entity:
    """Return a copy of ``existing`` enriched with ``incoming``.

    Summary is replaced only when the incoming one is non-empty and strictly
    longer; length stands in for "more detailed".
    """
    aliases = list(existing.aliases)
    for alias in incoming.aliases:
        if alias not in aliases:
            aliases.append(alias)

    summary = existing.summary
    if incoming.summary and len(incoming.summary) > len(existing.summary or ""):
        summary = incoming.summary

    return existing.model_copy(
        update={
            "aliases": aliases,
            "summary": summary,
            "mentions": existing.mentions + incoming.mentions,
        }
    )


def reinforce_relationship(existing: Relationship, incoming: Relationship) -> Relationship:
    """Return a copy of ``existing`` with strength reinforced by ``incoming``."""
    strength = min(
        MAX_STRENGTH,
        existing.strength + incoming.strength * REINFORCEMENT_FACTOR,
    )
    return existing.model_copy(update={"strength": strength})


def _fold_entities(
    entities: Dict[str, Entity],
    incoming: List[Entity],
    stats: Optional[MergeStats] = None,
) -> None:
    """Fold ``incoming`` into ``entities`` by id, in place."""
    for entity in incoming:
        if entity.id in entities:
            entities[entity.id] = merge_entity(entities[entity.id], entity)
            if stats is not None:
                stats.entities_updated += 1
        else:
            entities[entity.id] = entity.model_copy(deep=True)
            if stats is not None:
                stats.entities_added += 1


def merge_results(
    previous: ExtractionResult,
    incoming: ExtractionResult,
    stats: Optional[MergeStats] = None,
) -> ExtractionResult:
    """
    Combine the cumulative graph with a new extraction pass.

    Neither argument is mutated. Output order: previous items first in their
    original order (some updated), then new items in incoming order.

    Entities repeating an id inside ``previous`` are folded together. A
    relationship whose source or target is not among the merged entities is
    dropped with a warning.

    Args:
        previous: Cumulative result so far
        incoming: Result of the pass being folded in
        stats: Optional counters to fill

    Returns:
        New ExtractionResult
    """
    stats = stats if stats is not None else MergeStats()

    # dicts keep insertion order, so updates stay in place
    entities: Dict[str, Entity] = {}
    _fold_entities(entities, previous.entities)
    _fold_entities(entities, incoming.entities, stats)

    def dangling(rel: Relationship) -> bool:
        if rel.source in entities and rel.target in entities:
            return False
        stats.relationships_dropped += 1
        logger.warning(
            "Relationship dropped during merge: missing entity",
            relationship_id=rel.id,
            source=rel.source,
            target=rel.target,
        )
        return True

    relationships: Dict[str, Relationship] = {}
    for rel in previous.relationships:
        if not dangling(rel):
            relationships.setdefault(rel.id, rel.model_copy())
    for rel in incoming.relationships:
        if dangling(rel):
            continue
        if rel.id in relationships:
            relationships[rel.id] = reinforce_relationship(relationships[rel.id], rel)
            stats.relationships_reinforced += 1
        else:
            # Trusted as reported, even above MAX_STRENGTH
            relationships[rel.id] = rel.model_copy()
            stats.relationships_added += 1

    return ExtractionResult(
        entities=list(entities.values()),
        relationships=list(relationships.values()),
    )
