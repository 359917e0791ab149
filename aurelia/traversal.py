# /aurelia/traversal.py

from typing import Dict, Iterable, List

from aurelia.database import GraphDBInterface
from aurelia.errors import InvalidArgument
from aurelia.logger import get_logger
from aurelia.models import Relationship, Subgraph

logger = get_logger(__name__)


def traverse_graph(db: GraphDBInterface, seed_ids: Iterable[str], max_hops: int = 2) -> Subgraph:
    """
    Breadth-first expansion from a seed set over relationships in both directions.

    Each hop issues two batched lookups for the whole frontier (outgoing and incoming).
    An entity is expanded at most once, so cycles terminate; every distinct relationship
    id is kept, so parallel edges between the same pair all survive. Entities are
    fetched in a single batch once the traversal is done.

    Args:
        db: The storage backend to read from.
        seed_ids: Entity ids to start from.
        max_hops: Number of expansion rounds (0 returns just the seeds).

    Returns:
        The induced subgraph: every visited entity and every relationship touched.
    """
    if max_hops < 0:
        raise InvalidArgument("max_hops must be zero or greater.")

    frontier = list(dict.fromkeys(seed_ids))
    if not frontier:
        return Subgraph()

    visited = set(frontier)
    order = list(frontier)
    relationships: Dict[str, Relationship] = {}

    for hop in range(max_hops):
        if not frontier:
            break

        outgoing = db.relationships_from(frontier)
        incoming = db.relationships_to(frontier)

        next_frontier: List[str] = []
        for rel in outgoing + incoming:
            relationships.setdefault(rel.id, rel)
            for endpoint in (rel.source_id, rel.target_id):
                if endpoint not in visited:
                    visited.add(endpoint)
                    order.append(endpoint)
                    next_frontier.append(endpoint)

        logger.debug(f"Hop {hop + 1}: {len(next_frontier)} new entities, {len(relationships)} relationships so far")
        frontier = next_frontier

    found = {e.id: e for e in db.get_entities(order)}
    entities = [found[entity_id] for entity_id in order if entity_id in found]
    return Subgraph(entities=entities, relationships=list(relationships.values()))
