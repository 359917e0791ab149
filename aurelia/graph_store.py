# /aurelia/graph_store.py

import math
from typing import Any, Dict, Iterable, List, Optional, Tuple

from aurelia.config import settings
from aurelia.database import GraphDBInterface
from aurelia.errors import Conflict, InvalidArgument, NotFound
from aurelia.logger import get_logger
from aurelia.models import (
    DEFAULT_IMPORTANCE,
    DEFAULT_STRENGTH,
    ENTITY_COLORS,
    MAX_STRENGTH,
    Entity,
    EntityType,
    Relationship,
    RelationshipType,
    SelfLoopPolicy,
    Subgraph,
    utcnow,
)

logger = get_logger(__name__)

BACKBONE_IMPORTANCE = 7
BACKBONE_LIMIT = 10
UPDATABLE_ENTITY_FIELDS = {"name", "entity_type", "description", "importance", "color"}


def strength_from_confidence(confidence: float) -> int:
    """Maps an extraction confidence in [0, 1] to a strength in [1, 10], rounding halves up."""
    confidence = min(max(float(confidence), 0.0), 1.0)
    return min(max(int(math.floor(confidence * 10 + 0.5)), 1), MAX_STRENGTH)


def _check_range(field: str, value: int, low: int = 1, high: int = 10) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or not low <= value <= high:
        raise InvalidArgument(f"{field} must be an integer between {low} and {high}.")
    return value


def _clean_name(name: str) -> str:
    if not isinstance(name, str) or not name.strip():
        raise InvalidArgument("Entity name must be a non-empty string.")
    return name.strip()


class GraphStore:
    """
    Entity/relationship bookkeeping on top of a GraphDBInterface backend.

    Names are deduplicated case-insensitively here, not by the backend: every write
    does a lookup first. Re-mentioning an entity bumps its frequency; re-detecting a
    (source, target, type) edge strengthens it instead of creating a duplicate.
    """
    def __init__(self, db: GraphDBInterface, self_loop_policy: Optional[SelfLoopPolicy] = None):
        self.db = db
        if self_loop_policy is None:
            self_loop_policy = SelfLoopPolicy.ALLOW if settings.ALLOW_SELF_LOOPS else SelfLoopPolicy.FORBID
        self.self_loop_policy = self_loop_policy

    # --- Lookups ---
    def get_entity(self, entity_id: str) -> Entity:
        entity = self.db.get_entity(entity_id)
        if entity is None:
            raise NotFound(f"Entity {entity_id} not found.")
        return entity

    def get_entities(self, ids: Iterable[str]) -> List[Entity]:
        return self.db.get_entities(ids)

    def find_entity_by_name(self, name: str) -> Optional[Entity]:
        """
        Best match for a name: the case-insensitive exact match if there is one,
        otherwise the closest entity whose name contains it (shortest name, then most mentioned).
        """
        if not name or not name.strip():
            return None
        exact = self.db.find_entities_by_name(name.strip(), exact=True, limit=1)
        if exact:
            return exact[0]
        partial = self.db.find_entities_by_name(name.strip(), exact=False)
        if not partial:
            return None
        return min(partial, key=lambda e: (len(e.name), -e.frequency))

    def find_entities_by_name(self, name: str, limit: Optional[int] = None) -> List[Entity]:
        """All case-insensitive matches for search-style queries, exact matches first."""
        if not name or not name.strip():
            return []
        exact = self.db.find_entities_by_name(name.strip(), exact=True)
        seen = {e.id for e in exact}
        partial = [e for e in self.db.find_entities_by_name(name.strip(), exact=False) if e.id not in seen]
        matches = exact + partial
        return matches[:limit] if limit is not None else matches

    def search_entities(self, term: str, limit: int = 5) -> List[Entity]:
        if not term or not term.strip():
            return []
        return self.db.search_entities(term.strip(), limit)

    def list_entities(self, entity_type=None, min_importance: Optional[int] = None, limit: Optional[int] = None) -> List[Entity]:
        if entity_type is not None:
            entity_type = EntityType.parse(entity_type)
        return self.db.list_entities(entity_type=entity_type, min_importance=min_importance, limit=limit)

    def backbone_entities(self, min_importance: int = BACKBONE_IMPORTANCE, limit: int = BACKBONE_LIMIT) -> List[Entity]:
        """High-importance entities, most frequently mentioned first."""
        return self.db.list_entities(min_importance=min_importance, limit=limit)

    def list_relationships(self, entity_id: Optional[str] = None, relationship_type=None) -> List[Relationship]:
        if relationship_type is not None:
            relationship_type = RelationshipType.parse(relationship_type)
        return self.db.list_relationships(entity_id=entity_id, relationship_type=relationship_type)

    def full_graph(self) -> Subgraph:
        return Subgraph(entities=self.db.list_entities(), relationships=self.db.list_relationships())

    # --- Entity writes ---
    def upsert_entity(
        self,
        entity_type,
        name: str,
        description: Optional[str] = None,
        importance: int = DEFAULT_IMPORTANCE,
    ) -> Entity:
        entity_type = EntityType.parse(entity_type)
        name = _clean_name(name)
        importance = _check_range("importance", importance)
        description = description.strip() if description and description.strip() else None

        existing = self.db.find_entities_by_name(name, exact=True, limit=1)
        if existing:
            current = existing[0]
            now = utcnow()
            changes: Dict[str, Any] = {
                "frequency": current.frequency + 1,
                "last_mentioned": now,
                "updated_at": now,
            }
            if description:
                changes["description"] = description
            updated = self.db.update_entity(current.id, changes)
            logger.info(f"Updated existing entity: {updated.name} (freq: {updated.frequency})")
            return updated

        entity = Entity(
            entity_type=entity_type,
            name=name,
            description=description,
            importance=importance,
            color=ENTITY_COLORS[entity_type],
        )
        created = self.db.insert_entity(entity)
        logger.info(f"Created new entity: {created.name}")
        return created

    def create_entity(
        self,
        entity_type,
        name: str,
        description: Optional[str] = None,
        importance: int = DEFAULT_IMPORTANCE,
        color: Optional[str] = None,
    ) -> Entity:
        """Manual creation. Unlike upsert_entity, an existing name is an error."""
        entity_type = EntityType.parse(entity_type)
        name = _clean_name(name)
        importance = _check_range("importance", importance)
        if self.db.find_entities_by_name(name, exact=True, limit=1):
            raise Conflict("Entity already exists")
        entity = Entity(
            entity_type=entity_type,
            name=name,
            description=description or None,
            importance=importance,
            color=color or ENTITY_COLORS[entity_type],
        )
        return self.db.insert_entity(entity)

    def update_entity(self, entity_id: str, changes: Dict[str, Any]) -> Entity:
        unknown = set(changes) - UPDATABLE_ENTITY_FIELDS
        if unknown:
            raise InvalidArgument(f"Cannot update field(s): {', '.join(sorted(unknown))}")
        current = self.get_entity(entity_id)

        cleaned: Dict[str, Any] = {}
        for field, value in changes.items():
            if field == "name":
                value = _clean_name(value)
                clash = self.db.find_entities_by_name(value, exact=True, limit=1)
                if clash and clash[0].id != current.id:
                    raise Conflict("Entity already exists")
            elif field == "entity_type":
                value = EntityType.parse(value)
            elif field == "importance":
                value = _check_range("importance", value)
            cleaned[field] = value
        cleaned["updated_at"] = utcnow()
        return self.db.update_entity(entity_id, cleaned)

    def mention_entity(self, entity_id: str) -> Entity:
        current = self.get_entity(entity_id)
        now = utcnow()
        return self.db.update_entity(
            entity_id, {"frequency": current.frequency + 1, "last_mentioned": now, "updated_at": now}
        )

    def delete_entity(self, entity_id: str) -> None:
        entity = self.get_entity(entity_id)
        removed = self.db.delete_relationships_for(entity_id)
        self.db.delete_entity(entity_id)
        logger.info(f"Deleted entity '{entity.name}' and {removed} relationship(s).")

    # --- Relationship writes ---
    def _check_endpoints(self, source_id: str, target_id: str):
        if source_id == target_id and self.self_loop_policy == SelfLoopPolicy.FORBID:
            raise InvalidArgument("Self-referencing relationships are not allowed.")
        found = {e.id for e in self.db.get_entities([source_id, target_id])}
        for endpoint in (source_id, target_id):
            if endpoint not in found:
                raise NotFound(f"Entity {endpoint} not found.")

    def upsert_relationship(
        self,
        source_id: str,
        target_id: str,
        relationship_type,
        strength: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> Tuple[Relationship, bool]:
        """
        Creates the directed, typed edge or strengthens it by one (capped at 10).
        Returns the stored relationship and whether it was newly created.
        """
        relationship_type = RelationshipType.parse(relationship_type)
        if strength is not None:
            strength = _check_range("strength", strength)
        self._check_endpoints(source_id, target_id)

        existing = self.db.find_relationship(source_id, target_id, relationship_type)
        if existing:
            changes: Dict[str, Any] = {"strength": min(existing.strength + 1, MAX_STRENGTH)}
            if notes is not None:
                changes["notes"] = notes
            return self.db.update_relationship(existing.id, changes), False

        relationship = Relationship(
            source_id=source_id,
            target_id=target_id,
            relationship_type=relationship_type,
            strength=strength if strength is not None else DEFAULT_STRENGTH,
            notes=notes or None,
        )
        return self.db.insert_relationship(relationship), True

    def create_relationship(
        self,
        source_id: str,
        target_id: str,
        relationship_type,
        strength: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> Relationship:
        """Manual creation. An identical directed, typed edge is an error."""
        relationship_type = RelationshipType.parse(relationship_type)
        if strength is not None:
            strength = _check_range("strength", strength)
        self._check_endpoints(source_id, target_id)
        if self.db.find_relationship(source_id, target_id, relationship_type):
            raise Conflict("Connection already exists")
        relationship = Relationship(
            source_id=source_id,
            target_id=target_id,
            relationship_type=relationship_type,
            strength=strength if strength is not None else DEFAULT_STRENGTH,
            notes=notes or None,
        )
        return self.db.insert_relationship(relationship)

    def delete_relationship(self, relationship_id: str) -> None:
        if not self.db.delete_relationship(relationship_id):
            raise NotFound(f"Relationship {relationship_id} not found.")
