# /aurelia/models.py

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional
import uuid

from pydantic import BaseModel, Field

from aurelia.errors import InvalidArgument

# This file holds all the shared Pydantic data structures.


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


class EntityType(str, Enum):
    PROJECT = "project"
    BLOCKER = "blocker"
    EMOTION = "emotion"
    PATTERN = "pattern"
    WIN = "win"
    SKILL = "skill"
    PERSON = "person"
    TOOL = "tool"
    HABIT = "habit"

    @classmethod
    def parse(cls, value) -> "EntityType":
        """Validating factory: accepts an EntityType or a case-insensitive tag."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                pass
        raise InvalidArgument(f"Unknown entity type: {value!r}")


class RelationshipType(str, Enum):
    BLOCKS = "BLOCKS"
    ENABLES = "ENABLES"
    REQUIRES = "REQUIRES"
    TRIGGERS = "TRIGGERS"
    LEADS_TO = "LEADS_TO"
    RELATED_TO = "RELATED_TO"
    PART_OF = "PART_OF"
    USES = "USES"
    IMPROVES = "IMPROVES"
    CONFLICTS_WITH = "CONFLICTS_WITH"
    CAUSED_BY = "CAUSED_BY"
    HELPS_WITH = "HELPS_WITH"

    @classmethod
    def parse(cls, value) -> "RelationshipType":
        """Validating factory: accepts a RelationshipType, a known alias, or a case-insensitive tag."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            tag = value.strip().upper().replace(" ", "_")
            tag = RELATIONSHIP_ALIASES.get(tag, tag)
            try:
                return cls(tag)
            except ValueError:
                pass
        raise InvalidArgument(f"Unknown relationship type: {value!r}")


RELATIONSHIP_ALIASES: Dict[str, str] = {
    "RELATES_TO": "RELATED_TO",
}

# One-line meanings, shared by the extraction prompt and the API docs.
RELATIONSHIP_DESCRIPTIONS: Dict[RelationshipType, str] = {
    RelationshipType.BLOCKS: "X prevents Y from happening",
    RelationshipType.ENABLES: "X makes Y possible",
    RelationshipType.REQUIRES: "X needs Y to work",
    RelationshipType.TRIGGERS: "X causes Y to start",
    RelationshipType.LEADS_TO: "X results in Y over time",
    RelationshipType.RELATED_TO: "X is connected to Y (general)",
    RelationshipType.PART_OF: "X is a component of Y",
    RelationshipType.USES: "X relies on the tool or method Y",
    RelationshipType.IMPROVES: "X makes Y better",
    RelationshipType.CONFLICTS_WITH: "X competes or clashes with Y",
    RelationshipType.CAUSED_BY: "X is a result of Y",
    RelationshipType.HELPS_WITH: "X assists with Y",
}

ENTITY_COLORS: Dict[EntityType, str] = {
    EntityType.PROJECT: "#8B5CF6",
    EntityType.BLOCKER: "#EF4444",
    EntityType.EMOTION: "#F59E0B",
    EntityType.PATTERN: "#06B6D4",
    EntityType.WIN: "#10B981",
    EntityType.SKILL: "#3B82F6",
    EntityType.PERSON: "#EC4899",
    EntityType.TOOL: "#6366F1",
    EntityType.HABIT: "#14B8A6",
}

DEFAULT_IMPORTANCE = 5
DEFAULT_STRENGTH = 5
MAX_STRENGTH = 10


class SelfLoopPolicy(str, Enum):
    ALLOW = "allow"
    FORBID = "forbid"


# --- Graph Records ---

class Entity(BaseModel):
    id: str = Field(default_factory=new_id, description="Opaque, stable identifier.")
    entity_type: EntityType
    name: str = Field(description="Free-text label, unique case-insensitively.")
    description: Optional[str] = None
    frequency: int = Field(1, ge=1, description="How many times the entity has been mentioned.")
    importance: int = Field(DEFAULT_IMPORTANCE, ge=1, le=10)
    color: Optional[str] = None
    last_mentioned: datetime = Field(default_factory=utcnow)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class Relationship(BaseModel):
    id: str = Field(default_factory=new_id)
    source_id: str
    target_id: str
    relationship_type: RelationshipType
    strength: int = Field(DEFAULT_STRENGTH, ge=1, le=MAX_STRENGTH)
    notes: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)


class Subgraph(BaseModel):
    entities: List[Entity] = Field(default_factory=list)
    relationships: List[Relationship] = Field(default_factory=list)


# --- LLM Extraction Payloads ---
# Types stay plain strings here: unknown tags are rejected one by one during
# reconciliation instead of failing the whole batch.

class ExtractedEntity(BaseModel):
    entity_type: str
    name: str
    description: Optional[str] = None


class ExtractedRelationship(BaseModel):
    source_name: str
    relationship_type: str
    target_name: str
    description: Optional[str] = None
    confidence: float = 0.5


class ExtractionResult(BaseModel):
    entities: List[ExtractedEntity] = Field(default_factory=list)
    relationships: List[ExtractedRelationship] = Field(default_factory=list)


class ExtractionStats(BaseModel):
    entities_processed: int = 0
    relationships_processed: int = 0
    relationships_created: int = 0


# --- GraphRAG ---

class GraphContext(BaseModel):
    entities: List[Entity] = Field(default_factory=list)
    relationships: List[Relationship] = Field(default_factory=list)
    paths: List[str] = Field(default_factory=list)
    summary: str = ""
    context: str = ""
