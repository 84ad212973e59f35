"""Entity and relationship schemas for the cumulative knowledge graph.

An ExtractionResult is both the output of one extraction pass and the
running, merged state of every pass so far. Identity is derived, never
assigned by the backend:

- Entity id: "<type>-<slug(name)>" (e.g. "person-jane-doe")
- Relationship id: "rel-<source id>-<target id>", direction as reported

Two surface forms that slug to the same id are the same entity. The slug
only folds case and whitespace, so punctuation variants ("O'Brien" vs
"OBrien") stay distinct and are left to alias resolution upstream.
"""

import re
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

_WHITESPACE = re.compile(r"\s+")


class EntityType(str, Enum):
    """Closed set of entity classes."""

    PERSON = "person"
    ORGANIZATION = "organization"
    LOCATION = "location"
    DATE = "date"
    OTHER = "other"

    @classmethod
    def from_label(cls, label: Optional[str]) -> "EntityType":
        """Map a free-form backend label onto the closed set.

        Matching is by substring so "PERSON", "persons" or "Organisation/Org"
        all land in the expected bucket. Unknown labels become OTHER.
        """
        label = (label or "").lower()
        if "person" in label:
            return cls.PERSON
        if "org" in label:
            return cls.ORGANIZATION
        if "loc" in label:
            return cls.LOCATION
        if "date" in label:
            return cls.DATE
        return cls.OTHER


def slugify_name(name: str) -> str:
    """Lowercase and replace whitespace runs with single hyphens."""
    return _WHITESPACE.sub("-", name.strip().lower())


def make_entity_id(entity_type: EntityType, name: str) -> str:
    """Deterministic entity id from type and name."""
    return f"{EntityType(entity_type).value}-{slugify_name(name)}"


def make_relationship_id(source_id: str, target_id: str) -> str:
    """Deterministic relationship id from ordered endpoint ids."""
    return f"rel-{source_id}-{target_id}"


class Entity(BaseModel):
    """Named entity in the knowledge graph.

    Attributes:
        id: Dedup key, derived from type + name when not supplied.
        name: Primary surface form.
        type: Entity class.
        aliases: Alternate surface forms, unique, order irrelevant.
        summary: Free-text description, may be absent.
        mentions: Number of extraction passes that reported this entity.
    """

    id: str = Field("", description="Derived id, e.g. 'person-jane-doe'")
    name: str = Field(..., min_length=1)
    type: EntityType = EntityType.OTHER
    aliases: list[str] = Field(default_factory=list)
    summary: Optional[str] = None
    mentions: int = Field(1, ge=0)

    @field_validator("aliases")
    @classmethod
    def dedupe_aliases(cls, aliases: list[str]) -> list[str]:
        """Collapse duplicate and blank aliases, keeping first occurrence."""
        seen: list[str] = []
        for alias in aliases:
            alias = alias.strip()
            if alias and alias not in seen:
                seen.append(alias)
        return seen

    @model_validator(mode="after")
    def compute_id(self) -> "Entity":
        """Derive the id from type and name if not provided."""
        if not self.id:
            self.id = make_entity_id(self.type, self.name)
        return self

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "id": "person-jane-doe",
                    "name": "Jane Doe",
                    "type": "person",
                    "aliases": ["J. Doe"],
                    "summary": "Spokesperson for the ministry.",
                    "mentions": 1,
                }
            ]
        }
    }


class Relationship(BaseModel):
    """Directed, weighted link between two entities.

    Strength is nominally 1-10. Reinforcement during merges is capped at 10,
    but a strength reported by the backend is kept as-is.
    """

    id: str = ""
    source: str = Field(..., description="Source entity id")
    target: str = Field(..., description="Target entity id")
    strength: float = Field(1.0, ge=0.0)

    @model_validator(mode="after")
    def compute_id(self) -> "Relationship":
        """Derive the id from the endpoint ids if not provided."""
        if not self.id:
            self.id = make_relationship_id(self.source, self.target)
        return self


class ExtractionResult(BaseModel):
    """Entities plus relationships: one pass's output or the cumulative graph."""

    entities: list[Entity] = Field(default_factory=list)
    relationships: list[Relationship] = Field(default_factory=list)

    def is_empty(self) -> bool:
        """True when neither entities nor relationships are present."""
        return not self.entities and not self.relationships

    def get_entity(self, entity_id: str) -> Optional[Entity]:
        """Look up an entity by id."""
        for entity in self.entities:
            if entity.id == entity_id:
                return entity
        return None

    def get_relationship(self, relationship_id: str) -> Optional[Relationship]:
        """Look up a relationship by id."""
        for relationship in self.relationships:
            if relationship.id == relationship_id:
                return relationship
        return None
