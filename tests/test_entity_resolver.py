import unittest
from unittest.mock import patch

# Adjust the path to import from the parent directory's 'aurelia' package
import sys
import os
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from aurelia.entity_resolver import EntityResolver
from aurelia.graph_store import GraphStore
from aurelia.memory_database import InMemoryDatabase
from aurelia.models import ExtractedEntity, ExtractedRelationship, ExtractionResult, RelationshipType


class TestEntityResolver(unittest.TestCase):

    def setUp(self):
        """A fresh in-memory store for every test; no database is touched."""
        self.db = InMemoryDatabase()
        self.store = GraphStore(self.db)
        self.resolver = EntityResolver(self.store)

    def test_relationships_resolve_against_entities_in_the_same_batch(self):
        """
        Entities proposed in one turn are addressable by name from relationships in the
        same turn, without a second store lookup.
        """
        # --- Arrange ---
        extracted = ExtractionResult(
            entities=[
                ExtractedEntity(entity_type="blocker", name="Procrastination"),
                ExtractedEntity(entity_type="project", name="AWS Certification"),
            ],
            relationships=[
                ExtractedRelationship(
                    source_name="procrastination",
                    relationship_type="BLOCKS",
                    target_name="AWS certification",
                    description="Keeps postponing study sessions",
                    confidence=0.8,
                )
            ],
        )

        # --- Act ---
        with patch.object(self.db, "find_entities_by_name", wraps=self.db.find_entities_by_name) as lookup:
            stats = self.resolver.resolve_and_merge_graph(extracted)

        # --- Assert ---
        self.assertEqual(stats.entities_processed, 2)
        self.assertEqual(stats.relationships_processed, 1)
        self.assertEqual(stats.relationships_created, 1)

        relationships = self.store.list_relationships()
        self.assertEqual(len(relationships), 1)
        rel = relationships[0]
        self.assertEqual(rel.relationship_type, RelationshipType.BLOCKS)
        self.assertEqual(rel.strength, 8)
        self.assertEqual(rel.notes, "Keeps postponing study sessions")

        # Only the entity upserts looked names up; the relationship used the batch map.
        self.assertEqual(lookup.call_count, 2)

    def test_existing_entities_resolve_through_the_store(self):
        # --- Arrange ---
        focus = self.store.upsert_entity("skill", "Focus")
        extracted = ExtractionResult(
            entities=[ExtractedEntity(entity_type="tool", name="Pomodoro")],
            relationships=[
                ExtractedRelationship(source_name="Pomodoro", relationship_type="improves", target_name="FOCUS")
            ],
        )

        # --- Act ---
        stats = self.resolver.resolve_and_merge_graph(extracted)

        # --- Assert ---
        self.assertEqual(stats.relationships_created, 1)
        self.assertEqual(self.store.list_relationships()[0].target_id, focus.id)

    def test_unresolvable_relationship_is_dropped_and_the_rest_succeed(self):
        # --- Arrange ---
        extracted = ExtractionResult(
            entities=[
                ExtractedEntity(entity_type="emotion", name="Overwhelm"),
                ExtractedEntity(entity_type="pattern", name="Late-night scrolling"),
            ],
            relationships=[
                ExtractedRelationship(source_name="Overwhelm", relationship_type="TRIGGERS", target_name="Late-night scrolling"),
                ExtractedRelationship(source_name="Guitar", relationship_type="HELPS_WITH", target_name="Overwhelm"),
            ],
        )

        # --- Act ---
        stats = self.resolver.resolve_and_merge_graph(extracted)

        # --- Assert ---
        self.assertEqual(stats.relationships_processed, 2)
        self.assertEqual(stats.relationships_created, 1)
        self.assertIsNone(self.store.find_entity_by_name("Guitar"))
        self.assertEqual(len(self.store.list_relationships()), 1)

    def test_invalid_types_are_skipped_without_aborting(self):
        # --- Arrange ---
        extracted = ExtractionResult(
            entities=[
                ExtractedEntity(entity_type="feeling", name="Joy"),
                ExtractedEntity(entity_type="project", name="Run a marathon"),
                ExtractedEntity(entity_type="habit", name="Morning run"),
            ],
            relationships=[
                ExtractedRelationship(source_name="Morning run", relationship_type="LOVES", target_name="Run a marathon"),
                ExtractedRelationship(source_name="Morning run", relationship_type="enables", target_name="Run a marathon"),
            ],
        )

        # --- Act ---
        stats = self.resolver.resolve_and_merge_graph(extracted)

        # --- Assert ---
        self.assertEqual(stats.entities_processed, 3)
        self.assertEqual(sorted(e.name for e in self.store.list_entities()), ["Morning run", "Run a marathon"])
        self.assertEqual(stats.relationships_created, 1)
        self.assertEqual(self.store.list_relationships()[0].relationship_type, RelationshipType.ENABLES)

    def test_redetected_relationship_is_strengthened_not_counted(self):
        # --- Arrange ---
        turn = ExtractionResult(
            entities=[
                ExtractedEntity(entity_type="blocker", name="Perfectionism"),
                ExtractedEntity(entity_type="project", name="Portfolio site"),
            ],
            relationships=[
                ExtractedRelationship(source_name="Perfectionism", relationship_type="BLOCKS", target_name="Portfolio site", confidence=0.6)
            ],
        )

        # --- Act ---
        first = self.resolver.resolve_and_merge_graph(turn)
        second = self.resolver.resolve_and_merge_graph(turn)

        # --- Assert ---
        self.assertEqual(first.relationships_created, 1)
        self.assertEqual(second.relationships_created, 0)
        relationships = self.store.list_relationships()
        self.assertEqual(len(relationships), 1)
        self.assertEqual(relationships[0].strength, 7)
        self.assertEqual(self.store.find_entity_by_name("Perfectionism").frequency, 2)

    def test_null_description_keeps_the_stored_one(self):
        # --- Arrange ---
        self.store.upsert_entity("blocker", "Procrastination", "Delaying important tasks")
        extracted = ExtractionResult(
            entities=[
                ExtractedEntity(entity_type="blocker", name="Procrastination", description=None),
                ExtractedEntity(entity_type="project", name="AWS Certification", description=None),
            ],
            relationships=[
                ExtractedRelationship(source_name="Procrastination", relationship_type="BLOCKS",
                                      target_name="AWS Certification", description=None)
            ],
        )

        # --- Act ---
        stats = self.resolver.resolve_and_merge_graph(extracted)

        # --- Assert ---
        self.assertEqual(stats.relationships_created, 1)
        self.assertEqual(self.store.find_entity_by_name("Procrastination").description, "Delaying important tasks")
        self.assertIsNone(self.store.list_relationships()[0].notes)

    def test_empty_batch_yields_zero_stats(self):
        stats = self.resolver.resolve_and_merge_graph(ExtractionResult())
        self.assertEqual(stats.entities_processed, 0)
        self.assertEqual(stats.relationships_processed, 0)
        self.assertEqual(stats.relationships_created, 0)


if __name__ == '__main__':
    unittest.main()
