import threading
from typing import Any, Dict, Iterable, List, Optional

from aurelia.database import GraphDBInterface
from aurelia.models import Entity, EntityType, Relationship, RelationshipType


class InMemoryDatabase(GraphDBInterface):
    """
    Concrete implementation of the GraphDBInterface backed by plain dicts.
    Used for local development and tests; nothing survives the process.
    Records are copied on the way in and out so callers never share state with the store.
    """
    def __init__(self):
        self._entities: Dict[str, Entity] = {}
        self._relationships: Dict[str, Relationship] = {}
        self._lock = threading.RLock()

    @staticmethod
    def _by_frequency(entities: Iterable[Entity]) -> List[Entity]:
        return sorted(entities, key=lambda e: e.frequency, reverse=True)

    # --- Entities ---
    def find_entities_by_name(self, name: str, exact: bool = True, limit: Optional[int] = None) -> List[Entity]:
        needle = name.lower()
        with self._lock:
            if exact:
                matches = [e for e in self._entities.values() if e.name.lower() == needle]
            else:
                matches = [e for e in self._entities.values() if needle in e.name.lower()]
            matches = [e.model_copy() for e in self._by_frequency(matches)]
        return matches[:limit] if limit is not None else matches

    def search_entities(self, term: str, limit: int) -> List[Entity]:
        needle = term.lower()
        with self._lock:
            matches = [
                e for e in self._entities.values()
                if needle in e.name.lower() or needle in (e.description or "").lower()
            ]
            return [e.model_copy() for e in self._by_frequency(matches)[:limit]]

    def get_entities(self, ids: Iterable[str]) -> List[Entity]:
        with self._lock:
            return [self._entities[i].model_copy() for i in dict.fromkeys(ids) if i in self._entities]

    def list_entities(
        self,
        entity_type: Optional[EntityType] = None,
        min_importance: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> List[Entity]:
        with self._lock:
            matches = [
                e for e in self._entities.values()
                if (entity_type is None or e.entity_type == entity_type)
                and (min_importance is None or e.importance >= min_importance)
            ]
            matches = [e.model_copy() for e in self._by_frequency(matches)]
        return matches[:limit] if limit is not None else matches

    def insert_entity(self, entity: Entity) -> Entity:
        with self._lock:
            self._entities[entity.id] = entity.model_copy()
        return entity.model_copy()

    def update_entity(self, entity_id: str, changes: Dict[str, Any]) -> Optional[Entity]:
        with self._lock:
            current = self._entities.get(entity_id)
            if current is None:
                return None
            updated = current.model_copy(update=changes)
            self._entities[entity_id] = updated
            return updated.model_copy()

    def delete_entity(self, entity_id: str) -> bool:
        with self._lock:
            return self._entities.pop(entity_id, None) is not None

    # --- Relationships ---
    def find_relationship(
        self, source_id: str, target_id: str, relationship_type: RelationshipType
    ) -> Optional[Relationship]:
        with self._lock:
            for rel in self._relationships.values():
                if (rel.source_id, rel.target_id, rel.relationship_type) == (source_id, target_id, relationship_type):
                    return rel.model_copy()
        return None

    def insert_relationship(self, relationship: Relationship) -> Relationship:
        with self._lock:
            self._relationships[relationship.id] = relationship.model_copy()
        return relationship.model_copy()

    def update_relationship(self, relationship_id: str, changes: Dict[str, Any]) -> Optional[Relationship]:
        with self._lock:
            current = self._relationships.get(relationship_id)
            if current is None:
                return None
            updated = current.model_copy(update=changes)
            self._relationships[relationship_id] = updated
            return updated.model_copy()

    def delete_relationship(self, relationship_id: str) -> bool:
        with self._lock:
            return self._relationships.pop(relationship_id, None) is not None

    def delete_relationships_for(self, entity_id: str) -> int:
        with self._lock:
            doomed = [
                rel_id for rel_id, rel in self._relationships.items()
                if entity_id in (rel.source_id, rel.target_id)
            ]
            for rel_id in doomed:
                del self._relationships[rel_id]
            return len(doomed)

    def _relationships_where(self, predicate, relationship_type: Optional[RelationshipType]) -> List[Relationship]:
        with self._lock:
            return [
                rel.model_copy() for rel in self._relationships.values()
                if predicate(rel) and (relationship_type is None or rel.relationship_type == relationship_type)
            ]

    def relationships_from(
        self, source_ids: Iterable[str], relationship_type: Optional[RelationshipType] = None
    ) -> List[Relationship]:
        ids = set(source_ids)
        return self._relationships_where(lambda rel: rel.source_id in ids, relationship_type)

    def relationships_to(
        self, target_ids: Iterable[str], relationship_type: Optional[RelationshipType] = None
    ) -> List[Relationship]:
        ids = set(target_ids)
        return self._relationships_where(lambda rel: rel.target_id in ids, relationship_type)

    def list_relationships(
        self, entity_id: Optional[str] = None, relationship_type: Optional[RelationshipType] = None
    ) -> List[Relationship]:
        return self._relationships_where(
            lambda rel: entity_id is None or entity_id in (rel.source_id, rel.target_id),
            relationship_type,
        )

    def close(self):
        pass
