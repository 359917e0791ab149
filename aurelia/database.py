# /aurelia/database.py

from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Optional

from neo4j import GraphDatabase

from aurelia.config import settings
from aurelia.logger import get_logger
from aurelia.models import Entity, EntityType, Relationship, RelationshipType

logger = get_logger(__name__)


class GraphDBInterface(ABC):
    """
    An abstract base class defining the storage primitives the graph store is built on.
    Lookups on names are case-insensitive; results of entity listings are ordered by
    frequency, highest first.
    """

    # --- Entities ---
    @abstractmethod
    def find_entities_by_name(self, name: str, exact: bool = True, limit: Optional[int] = None) -> List[Entity]:
        pass

    @abstractmethod
    def search_entities(self, term: str, limit: int) -> List[Entity]:
        """Case-insensitive substring match on name OR description."""
        pass

    @abstractmethod
    def get_entities(self, ids: Iterable[str]) -> List[Entity]:
        pass

    @abstractmethod
    def list_entities(
        self,
        entity_type: Optional[EntityType] = None,
        min_importance: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> List[Entity]:
        pass

    @abstractmethod
    def insert_entity(self, entity: Entity) -> Entity:
        pass

    @abstractmethod
    def update_entity(self, entity_id: str, changes: Dict[str, Any]) -> Optional[Entity]:
        pass

    @abstractmethod
    def delete_entity(self, entity_id: str) -> bool:
        pass

    # --- Relationships ---
    @abstractmethod
    def find_relationship(
        self, source_id: str, target_id: str, relationship_type: RelationshipType
    ) -> Optional[Relationship]:
        pass

    @abstractmethod
    def insert_relationship(self, relationship: Relationship) -> Relationship:
        pass

    @abstractmethod
    def update_relationship(self, relationship_id: str, changes: Dict[str, Any]) -> Optional[Relationship]:
        pass

    @abstractmethod
    def delete_relationship(self, relationship_id: str) -> bool:
        pass

    @abstractmethod
    def delete_relationships_for(self, entity_id: str) -> int:
        """Deletes every relationship where the entity is source or target."""
        pass

    @abstractmethod
    def relationships_from(
        self, source_ids: Iterable[str], relationship_type: Optional[RelationshipType] = None
    ) -> List[Relationship]:
        pass

    @abstractmethod
    def relationships_to(
        self, target_ids: Iterable[str], relationship_type: Optional[RelationshipType] = None
    ) -> List[Relationship]:
        pass

    @abstractmethod
    def list_relationships(
        self, entity_id: Optional[str] = None, relationship_type: Optional[RelationshipType] = None
    ) -> List[Relationship]:
        pass

    @abstractmethod
    def close(self):
        pass

    def get_entity(self, entity_id: str) -> Optional[Entity]:
        found = self.get_entities([entity_id])
        return found[0] if found else None


# Relationship rows are projected with their endpoints and Neo4j type folded in.
_REL_PROJECTION = "r {.*, relationship_type: type(r), source_id: a.id, target_id: b.id} AS rel"


class Neo4jDatabase(GraphDBInterface):
    """
    Concrete implementation of the GraphDBInterface for Neo4j.
    Entities are (:Entity) nodes; relationships are typed Neo4j relationships
    whose type is the RelationshipType value.
    """
    def __init__(
        self,
        uri: Optional[str] = None,
        user: Optional[str] = None,
        password: Optional[str] = None,
        database: Optional[str] = None,
    ):
        uri = uri or settings.NEO4J_URI
        user = user or settings.NEO4J_USERNAME
        password = password or settings.NEO4J_PASSWORD
        if not all([uri, user, password]):
            raise ValueError("Neo4j credentials not found in environment or .env file.")
        self._database = database or settings.NEO4J_DATABASE
        self._driver = GraphDatabase.driver(uri, auth=(user, password))

    def _run(self, query: str, **params) -> List[Dict[str, Any]]:
        with self._driver.session(database=self._database) as session:
            return session.run(query, params).data()

    def ensure_schema(self):
        self._run("CREATE CONSTRAINT entity_id IF NOT EXISTS FOR (e:Entity) REQUIRE e.id IS UNIQUE")
        self._run("CREATE INDEX entity_name_lower IF NOT EXISTS FOR (e:Entity) ON (e.name_lower)")
        logger.info("Neo4j graph schema ensured.")

    # --- Serialization helpers ---
    @staticmethod
    def _entity_props(entity: Entity) -> Dict[str, Any]:
        props = entity.model_dump(mode="json")
        props["name_lower"] = entity.name.lower()
        return props

    @staticmethod
    def _to_entity(row: Dict[str, Any]) -> Entity:
        props = row["entity"]
        return Entity.model_validate({k: v for k, v in props.items() if k in Entity.model_fields})

    @staticmethod
    def _to_relationship(row: Dict[str, Any]) -> Relationship:
        props = row["rel"]
        return Relationship.model_validate({k: v for k, v in props.items() if k in Relationship.model_fields})

    @staticmethod
    def _serialize_changes(changes: Dict[str, Any]) -> Dict[str, Any]:
        serialized = {}
        for key, value in changes.items():
            if hasattr(value, "isoformat"):
                value = value.isoformat()
            elif isinstance(value, (EntityType, RelationshipType)):
                value = value.value
            serialized[key] = value
        if isinstance(serialized.get("name"), str):
            serialized["name_lower"] = serialized["name"].lower()
        return serialized

    # --- Entities ---
    def find_entities_by_name(self, name: str, exact: bool = True, limit: Optional[int] = None) -> List[Entity]:
        condition = "e.name_lower = $name" if exact else "e.name_lower CONTAINS $name"
        query = f"""
        MATCH (e:Entity)
        WHERE {condition}
        RETURN e {{.*}} AS entity
        ORDER BY entity.frequency DESC
        """
        if limit is not None:
            query += " LIMIT $limit"
        rows = self._run(query, name=name.lower(), limit=limit)
        return [self._to_entity(row) for row in rows]

    def search_entities(self, term: str, limit: int) -> List[Entity]:
        query = """
        MATCH (e:Entity)
        WHERE e.name_lower CONTAINS $term
           OR toLower(coalesce(e.description, '')) CONTAINS $term
        RETURN e {.*} AS entity
        ORDER BY entity.frequency DESC
        LIMIT $limit
        """
        rows = self._run(query, term=term.lower(), limit=limit)
        return [self._to_entity(row) for row in rows]

    def get_entities(self, ids: Iterable[str]) -> List[Entity]:
        ids = list(ids)
        if not ids:
            return []
        rows = self._run("MATCH (e:Entity) WHERE e.id IN $ids RETURN e {.*} AS entity", ids=ids)
        return [self._to_entity(row) for row in rows]

    def list_entities(
        self,
        entity_type: Optional[EntityType] = None,
        min_importance: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> List[Entity]:
        conditions = []
        if entity_type is not None:
            conditions.append("e.entity_type = $entity_type")
        if min_importance is not None:
            conditions.append("e.importance >= $min_importance")
        where = f"WHERE {' AND '.join(conditions)}" if conditions else ""
        query = f"MATCH (e:Entity) {where} RETURN e {{.*}} AS entity ORDER BY entity.frequency DESC"
        if limit is not None:
            query += " LIMIT $limit"
        rows = self._run(
            query,
            entity_type=entity_type.value if entity_type else None,
            min_importance=min_importance,
            limit=limit,
        )
        return [self._to_entity(row) for row in rows]

    def insert_entity(self, entity: Entity) -> Entity:
        rows = self._run(
            "CREATE (e:Entity) SET e = $props RETURN e {.*} AS entity",
            props=self._entity_props(entity),
        )
        return self._to_entity(rows[0])

    def update_entity(self, entity_id: str, changes: Dict[str, Any]) -> Optional[Entity]:
        rows = self._run(
            "MATCH (e:Entity {id: $id}) SET e += $changes RETURN e {.*} AS entity",
            id=entity_id, changes=self._serialize_changes(changes),
        )
        return self._to_entity(rows[0]) if rows else None

    def delete_entity(self, entity_id: str) -> bool:
        rows = self._run(
            "MATCH (e:Entity {id: $id}) WITH e, e.id AS eid DETACH DELETE e RETURN count(eid) AS deleted",
            id=entity_id,
        )
        return bool(rows and rows[0]["deleted"])

    # --- Relationships ---
    def find_relationship(
        self, source_id: str, target_id: str, relationship_type: RelationshipType
    ) -> Optional[Relationship]:
        query = f"""
        MATCH (a:Entity {{id: $source_id}})-[r:`{relationship_type.value}`]->(b:Entity {{id: $target_id}})
        RETURN {_REL_PROJECTION}
        LIMIT 1
        """
        rows = self._run(query, source_id=source_id, target_id=target_id)
        return self._to_relationship(rows[0]) if rows else None

    def insert_relationship(self, relationship: Relationship) -> Relationship:
        props = relationship.model_dump(mode="json", exclude={"source_id", "target_id", "relationship_type"})
        query = f"""
        MATCH (a:Entity {{id: $source_id}}), (b:Entity {{id: $target_id}})
        CREATE (a)-[r:`{relationship.relationship_type.value}`]->(b)
        SET r = $props
        RETURN {_REL_PROJECTION}
        """
        rows = self._run(
            query, source_id=relationship.source_id, target_id=relationship.target_id, props=props
        )
        return self._to_relationship(rows[0])

    def update_relationship(self, relationship_id: str, changes: Dict[str, Any]) -> Optional[Relationship]:
        query = f"""
        MATCH (a:Entity)-[r {{id: $id}}]->(b:Entity)
        SET r += $changes
        RETURN {_REL_PROJECTION}
        """
        rows = self._run(query, id=relationship_id, changes=self._serialize_changes(changes))
        return self._to_relationship(rows[0]) if rows else None

    def delete_relationship(self, relationship_id: str) -> bool:
        rows = self._run(
            "MATCH ()-[r {id: $id}]->() WITH r, r.id AS rid DELETE r RETURN count(rid) AS deleted",
            id=relationship_id,
        )
        return bool(rows and rows[0]["deleted"])

    def delete_relationships_for(self, entity_id: str) -> int:
        rows = self._run(
            "MATCH (:Entity {id: $id})-[r]-() WITH DISTINCT r, r.id AS rid DELETE r RETURN count(rid) AS deleted",
            id=entity_id,
        )
        return rows[0]["deleted"] if rows else 0

    def _relationships_where(self, condition: str, relationship_type: Optional[RelationshipType], **params):
        type_filter = " AND type(r) = $relationship_type" if relationship_type else ""
        query = f"""
        MATCH (a:Entity)-[r]->(b:Entity)
        WHERE {condition}{type_filter}
        RETURN {_REL_PROJECTION}
        """
        rows = self._run(
            query, relationship_type=relationship_type.value if relationship_type else None, **params
        )
        return [self._to_relationship(row) for row in rows]

    def relationships_from(
        self, source_ids: Iterable[str], relationship_type: Optional[RelationshipType] = None
    ) -> List[Relationship]:
        return self._relationships_where("a.id IN $ids", relationship_type, ids=list(source_ids))

    def relationships_to(
        self, target_ids: Iterable[str], relationship_type: Optional[RelationshipType] = None
    ) -> List[Relationship]:
        return self._relationships_where("b.id IN $ids", relationship_type, ids=list(target_ids))

    def list_relationships(
        self, entity_id: Optional[str] = None, relationship_type: Optional[RelationshipType] = None
    ) -> List[Relationship]:
        condition = "(a.id = $entity_id OR b.id = $entity_id)" if entity_id else "true"
        return self._relationships_where(condition, relationship_type, entity_id=entity_id)

    def close(self):
        self._driver.close()


def create_database(backend: Optional[str] = None) -> GraphDBInterface:
    """Builds the configured backend ('neo4j' or 'memory')."""
    backend = backend or settings.GRAPH_BACKEND
    if backend == "memory":
        from aurelia.memory_database import InMemoryDatabase
        return InMemoryDatabase()
    if backend == "neo4j":
        db = Neo4jDatabase()
        db.ensure_schema()
        return db
    raise ValueError(f"Unsupported graph backend: {backend}")
