"""Schema package for the knowledge graph and the analysis queue.

Primary exports:
- ExtractionResult: Entities + relationships (one pass or cumulative)
- AnalysisTask: Queued unit of extraction work

Usage:
    from osint_graph.data_management.schemas import Entity, EntityType
    entity = Entity(name="Jane Doe", type=EntityType.PERSON)
    assert entity.id == "person-jane-doe"
"""

from osint_graph.data_management.schemas.entity_schema import (
    Entity,
    EntityType,
    ExtractionResult,
    Relationship,
    make_entity_id,
    make_relationship_id,
    slugify_name,
)
from osint_graph.data_management.schemas.task_schema import (
    AnalysisTask,
    DocumentContent,
    ImageContent,
    TaskContent,
    TaskStatus,
    TaskType,
    TextContent,
    generate_task_id,
)

__all__ = [
    "Entity",
    "EntityType",
    "ExtractionResult",
    "Relationship",
    "make_entity_id",
    "make_relationship_id",
    "slugify_name",
    "AnalysisTask",
    "DocumentContent",
    "ImageContent",
    "TaskContent",
    "TaskStatus",
    "TaskType",
    "TextContent",
    "generate_task_id",
]
