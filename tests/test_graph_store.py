import unittest
from unittest.mock import patch

import sys
import os
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from aurelia.config import settings
from aurelia.errors import Conflict, InvalidArgument, NotFound
from aurelia.graph_store import GraphStore, strength_from_confidence
from aurelia.memory_database import InMemoryDatabase
from aurelia.models import ENTITY_COLORS, EntityType, RelationshipType, SelfLoopPolicy


class TestEntityUpserts(unittest.TestCase):

    def setUp(self):
        self.store = GraphStore(InMemoryDatabase())

    def test_upsert_twice_yields_one_entity_with_frequency_two(self):
        first = self.store.upsert_entity("blocker", "Procrastination", "Delaying tasks")
        second = self.store.upsert_entity("blocker", "Procrastination")

        self.assertEqual(first.id, second.id)
        self.assertEqual(second.frequency, 2)
        self.assertEqual(len(self.store.list_entities()), 1)

    def test_names_are_deduplicated_case_insensitively(self):
        upper = self.store.upsert_entity("blocker", "AWS Cert")
        lower = self.store.upsert_entity("blocker", "aws cert")

        self.assertEqual(upper.id, lower.id)
        self.assertEqual(lower.name, "AWS Cert", "The first spelling is kept as the label.")

    def test_description_is_only_overwritten_when_supplied(self):
        self.store.upsert_entity("habit", "Morning routine", "Walk, coffee, plan")
        again = self.store.upsert_entity("habit", "morning routine", "")
        self.assertEqual(again.description, "Walk, coffee, plan")

        replaced = self.store.upsert_entity("habit", "Morning routine", "Walk and plan")
        self.assertEqual(replaced.description, "Walk and plan")

    def test_remention_refreshes_last_mentioned(self):
        created = self.store.upsert_entity("emotion", "Overwhelmed")
        again = self.store.upsert_entity("emotion", "Overwhelmed")
        self.assertGreaterEqual(again.last_mentioned, created.last_mentioned)

    def test_new_entity_defaults(self):
        entity = self.store.upsert_entity(EntityType.PROJECT, "Thesis")
        self.assertEqual(entity.frequency, 1)
        self.assertEqual(entity.importance, 5)
        self.assertEqual(entity.color, ENTITY_COLORS[EntityType.PROJECT])

    def test_unknown_entity_type_is_rejected(self):
        with self.assertRaises(InvalidArgument):
            self.store.upsert_entity("feeling", "Happy")
        self.assertEqual(self.store.list_entities(), [])

    def test_blank_name_is_rejected(self):
        with self.assertRaises(InvalidArgument):
            self.store.upsert_entity("tool", "   ")

    def test_out_of_range_importance_is_rejected(self):
        with self.assertRaises(InvalidArgument):
            self.store.upsert_entity("tool", "Pomodoro", importance=11)


class TestEntityLookups(unittest.TestCase):

    def setUp(self):
        self.store = GraphStore(InMemoryDatabase())
        self.cert = self.store.upsert_entity("project", "AWS Certification", "Cloud practitioner exam")
        self.store.upsert_entity("project", "AWS Certification Study Group")
        self.focus = self.store.upsert_entity("skill", "Focus")

    def test_exact_match_wins_over_substring(self):
        self.assertEqual(self.store.find_entity_by_name("aws certification").id, self.cert.id)

    def test_substring_match_prefers_closest_name(self):
        self.assertEqual(self.store.find_entity_by_name("aws").id, self.cert.id)

    def test_no_match_returns_none(self):
        self.assertIsNone(self.store.find_entity_by_name("guitar"))

    def test_search_style_lookup_returns_all_matches(self):
        names = [e.name for e in self.store.find_entities_by_name("AWS")]
        self.assertCountEqual(names, ["AWS Certification", "AWS Certification Study Group"])

    def test_search_entities_checks_descriptions_too(self):
        names = [e.name for e in self.store.search_entities("exam")]
        self.assertEqual(names, ["AWS Certification"])

    def test_backbone_entities_are_important_and_ordered_by_frequency(self):
        rare = self.store.create_entity("blocker", "Perfectionism", importance=8)
        common = self.store.create_entity("blocker", "Overwhelm", importance=9)
        self.store.mention_entity(common.id)

        backbone = self.store.backbone_entities()
        self.assertEqual([e.id for e in backbone], [common.id, rare.id])


class TestRelationshipUpserts(unittest.TestCase):

    def setUp(self):
        self.store = GraphStore(InMemoryDatabase())
        self.a = self.store.upsert_entity("blocker", "Procrastination")
        self.b = self.store.upsert_entity("project", "AWS Certification")

    def test_redetection_strengthens_instead_of_duplicating(self):
        first, created = self.store.upsert_relationship(
            self.a.id, self.b.id, "BLOCKS", strength=strength_from_confidence(0.8), notes="first"
        )
        self.assertTrue(created)
        self.assertEqual(first.strength, 8)

        second, created = self.store.upsert_relationship(
            self.a.id, self.b.id, "BLOCKS", strength=strength_from_confidence(0.5), notes="second"
        )
        self.assertFalse(created)
        self.assertEqual(second.id, first.id)
        self.assertEqual(second.strength, 9)
        self.assertEqual(second.notes, "second")
        self.assertEqual(len(self.store.list_relationships()), 1)

    def test_strength_is_capped_at_ten(self):
        self.store.upsert_relationship(self.a.id, self.b.id, "BLOCKS", strength=10)
        rel, _ = self.store.upsert_relationship(self.a.id, self.b.id, "BLOCKS", strength=10)
        self.assertEqual(rel.strength, 10)

    def test_reverse_direction_and_other_types_are_distinct_edges(self):
        self.store.upsert_relationship(self.a.id, self.b.id, "BLOCKS")
        _, reverse_created = self.store.upsert_relationship(self.b.id, self.a.id, "BLOCKS")
        _, typed_created = self.store.upsert_relationship(self.a.id, self.b.id, "TRIGGERS")

        self.assertTrue(reverse_created)
        self.assertTrue(typed_created)
        self.assertEqual(len(self.store.list_relationships()), 3)

    def test_alias_is_normalized(self):
        rel, _ = self.store.upsert_relationship(self.a.id, self.b.id, "relates_to")
        self.assertEqual(rel.relationship_type, RelationshipType.RELATED_TO)

    def test_unknown_relationship_type_is_rejected(self):
        with self.assertRaises(InvalidArgument):
            self.store.upsert_relationship(self.a.id, self.b.id, "LOVES")

    def test_missing_endpoint_is_not_found(self):
        with self.assertRaises(NotFound):
            self.store.upsert_relationship(self.a.id, "missing", "BLOCKS")

    def test_self_loops_follow_policy(self):
        rel, created = self.store.upsert_relationship(self.a.id, self.a.id, "TRIGGERS")
        self.assertTrue(created)

        strict = GraphStore(self.store.db, self_loop_policy=SelfLoopPolicy.FORBID)
        with self.assertRaises(InvalidArgument):
            strict.upsert_relationship(self.b.id, self.b.id, "TRIGGERS")

    def test_omitted_policy_comes_from_settings(self):
        with patch.object(settings, "ALLOW_SELF_LOOPS", False):
            store = GraphStore(self.store.db)
        self.assertEqual(store.self_loop_policy, SelfLoopPolicy.FORBID)
        self.assertEqual(GraphStore(self.store.db, self_loop_policy=None).self_loop_policy, SelfLoopPolicy.ALLOW)


class TestManualCrud(unittest.TestCase):

    def setUp(self):
        self.store = GraphStore(InMemoryDatabase())
        self.a = self.store.create_entity("blocker", "Context switching")
        self.b = self.store.create_entity("skill", "Focus stability", importance=8)
        self.c = self.store.create_entity("tool", "brain.fm", color="#000000")

    def test_manual_create_rejects_duplicates(self):
        with self.assertRaises(Conflict):
            self.store.create_entity("blocker", "context SWITCHING")

    def test_manual_create_keeps_explicit_color(self):
        self.assertEqual(self.c.color, "#000000")

    def test_update_entity_fields(self):
        updated = self.store.update_entity(self.a.id, {"importance": 9, "description": "Jumping between tasks"})
        self.assertEqual(updated.importance, 9)
        self.assertEqual(updated.description, "Jumping between tasks")

    def test_rename_collision_is_a_conflict(self):
        with self.assertRaises(Conflict):
            self.store.update_entity(self.a.id, {"name": "FOCUS stability"})

    def test_update_rejects_unknown_fields(self):
        with self.assertRaises(InvalidArgument):
            self.store.update_entity(self.a.id, {"frequency": 40})

    def test_update_missing_entity_is_not_found(self):
        with self.assertRaises(NotFound):
            self.store.update_entity("missing", {"importance": 3})

    def test_mention_increments_frequency(self):
        self.assertEqual(self.store.mention_entity(self.b.id).frequency, 2)

    def test_manual_relationship_duplicate_is_a_conflict(self):
        self.store.create_relationship(self.a.id, self.b.id, "BLOCKS", strength=7)
        with self.assertRaises(Conflict):
            self.store.create_relationship(self.a.id, self.b.id, "BLOCKS")

    def test_delete_entity_cascades_to_relationships(self):
        self.store.create_relationship(self.a.id, self.b.id, "BLOCKS")
        self.store.create_relationship(self.c.id, self.a.id, "HELPS_WITH")
        keep = self.store.create_relationship(self.c.id, self.b.id, "IMPROVES")

        self.store.delete_entity(self.a.id)

        self.assertEqual([r.id for r in self.store.list_relationships()], [keep.id])
        with self.assertRaises(NotFound):
            self.store.get_entity(self.a.id)

    def test_deleting_missing_rows_is_not_found(self):
        with self.assertRaises(NotFound):
            self.store.delete_entity("missing")
        with self.assertRaises(NotFound):
            self.store.delete_relationship("missing")

    def test_list_filters(self):
        self.store.create_relationship(self.a.id, self.b.id, "BLOCKS")
        self.store.create_relationship(self.c.id, self.b.id, "IMPROVES")

        self.assertEqual([e.name for e in self.store.list_entities(entity_type="skill")], ["Focus stability"])
        self.assertEqual([e.name for e in self.store.list_entities(min_importance=7)], ["Focus stability"])
        self.assertEqual(len(self.store.list_relationships(entity_id=self.b.id)), 2)
        self.assertEqual(len(self.store.list_relationships(relationship_type="improves")), 1)


class TestStrengthFromConfidence(unittest.TestCase):

    def test_rounds_halves_up_and_clamps(self):
        self.assertEqual(strength_from_confidence(0.8), 8)
        self.assertEqual(strength_from_confidence(0.25), 3)
        self.assertEqual(strength_from_confidence(0.0), 1)
        self.assertEqual(strength_from_confidence(1.7), 10)


if __name__ == '__main__':
    unittest.main()
