from typing import Dict, Optional

from aurelia.errors import InvalidArgument, NotFound
from aurelia.graph_store import GraphStore, strength_from_confidence
from aurelia.logger import get_logger
from aurelia.models import EntityType, ExtractionResult, ExtractionStats, RelationshipType

logger = get_logger(__name__)


class EntityResolver:
    def __init__(self, store: GraphStore):
        self.store = store

    def _resolve_id(self, name: str, batch: Dict[str, str]) -> Optional[str]:
        """In-batch names first, then a case-insensitive lookup in the store."""
        entity_id = batch.get(name.strip().lower())
        if entity_id:
            return entity_id
        found = self.store.db.find_entities_by_name(name.strip(), exact=True, limit=1)
        return found[0].id if found else None

    def resolve_and_merge_graph(self, extracted: ExtractionResult) -> ExtractionStats:
        """
        Reconciles one batch of extracted entities and relationships into the graph store.

        Entities with an unknown type are skipped without aborting the batch; every accepted
        entity is upserted and remembered by lowercase name so relationships in the same batch
        resolve without another lookup. Relationships whose type is unknown, or whose endpoints
        cannot be resolved, are dropped rather than stored dangling.

        Args:
            extracted: The parsed LLM proposal for one conversation turn.

        Returns:
            Counts of proposals received and of relationships newly created.
        """
        logger.info("--- Starting Entity Resolution ---")
        batch: Dict[str, str] = {}  # lowercase name -> entity id
        created = 0

        for entity in extracted.entities:
            try:
                entity_type = EntityType.parse(entity.entity_type)
                stored = self.store.upsert_entity(entity_type, entity.name, entity.description)
            except InvalidArgument as e:
                logger.warning(f"Skipping entity '{entity.name}': {e.message}")
                continue
            batch[entity.name.strip().lower()] = stored.id

        for rel in extracted.relationships:
            label = f"{rel.source_name} -[{rel.relationship_type}]-> {rel.target_name}"
            try:
                rel_type = RelationshipType.parse(rel.relationship_type)
            except InvalidArgument:
                logger.warning(f"Skipping invalid relationship type: {rel.relationship_type}")
                continue

            source_id = self._resolve_id(rel.source_name, batch)
            target_id = self._resolve_id(rel.target_name, batch)
            if not source_id or not target_id:
                logger.warning(f"Skipping relationship - missing entity: {label}")
                continue

            try:
                _, was_created = self.store.upsert_relationship(
                    source_id,
                    target_id,
                    rel_type,
                    strength=strength_from_confidence(rel.confidence),
                    notes=rel.description or None,
                )
            except (InvalidArgument, NotFound) as e:
                logger.warning(f"Skipping relationship {label}: {e.message}")
                continue

            if was_created:
                created += 1
                logger.info(f"Created relationship: {label}")
            else:
                logger.info(f"Strengthened relationship: {label}")

        stats = ExtractionStats(
            entities_processed=len(extracted.entities),
            relationships_processed=len(extracted.relationships),
            relationships_created=created,
        )
        logger.info(f"--- Entity Resolution Complete: {stats.model_dump()} ---")
        return stats
