"""Summary statistics over a cumulative extraction result."""

from dataclasses import dataclass, field
from typing import Any, Dict, List

from osint_graph.data_management.schemas import EntityType, ExtractionResult


@dataclass
class EntityScore:
    """One entity's weight in the graph."""

    id: str
    name: str
    type: EntityType
    value: float


@dataclass
class GraphStats:
    """Rankings and counts for a result."""

    total_entities: int = 0
    total_relationships: int = 0
    by_type: Dict[str, int] = field(default_factory=dict)
    strongest: List[EntityScore] = field(default_factory=list)
    most_connected: List[EntityScore] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert stats to dictionary."""
        return {
            "total_entities": self.total_entities,
            "total_relationships": self.total_relationships,
            "by_type": dict(self.by_type),
            "strongest": [score.__dict__ for score in self.strongest],
            "most_connected": [score.__dict__ for score in self.most_connected],
        }


def compute_graph_stats(result: ExtractionResult, top_n: int = 10) -> GraphStats:
    """
    Rank entities by summed relationship strength and by connection count.

    Ties keep entity order. Every entity type appears in ``by_type``, zero
    counts included.

    Args:
        result: Cumulative (or single-pass) result
        top_n: Maximum entries per ranking

    Returns:
        GraphStats
    """
    strength = {entity.id: 0.0 for entity in result.entities}
    connections = {entity.id: 0 for entity in result.entities}
    for rel in result.relationships:
        for endpoint in {rel.source, rel.target}:
            if endpoint in strength:
                strength[endpoint] += rel.strength
                connections[endpoint] += 1

    by_type = {entity_type.value: 0 for entity_type in EntityType}
    for entity in result.entities:
        by_type[entity.type.value] += 1

    def ranking(values: Dict[str, float]) -> List[EntityScore]:
        scores = [
            EntityScore(id=e.id, name=e.name, type=e.type, value=values[e.id])
            for e in result.entities
        ]
        scores.sort(key=lambda score: score.value, reverse=True)
        return scores[:top_n]

    return GraphStats(
        total_entities=len(result.entities),
        total_relationships=len(result.relationships),
        by_type=by_type,
        strongest=ranking(strength),
        most_connected=ranking(connections),
    )
