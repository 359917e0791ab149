# /aurelia/retriever.py

import asyncio
from collections import OrderedDict
from typing import Dict, List, Optional, TypedDict

from langchain_core.prompts import ChatPromptTemplate
from langgraph.graph import StateGraph, END

from aurelia.config import settings
from aurelia.database import GraphDBInterface
from aurelia.errors import UpstreamUnavailable
from aurelia.extraction import validate_text
from aurelia.graph_store import GraphStore
from aurelia.llm import build_text_chain, get_chat_model, invoke_chain, parse_json_payload
from aurelia.logger import get_logger
from aurelia.models import Entity, GraphContext, Relationship, RelationshipType
from aurelia.traversal import traverse_graph

logger = get_logger(__name__)

MAX_QUESTION_LENGTH = 2000
MATCHES_PER_CONCEPT = 5
CAUSAL_SEED_LIMIT = 3
MAX_RELATIONSHIP_LINES = 15
STAR_IMPORTANCE = 7
MENTION_FREQUENCY = 3
STRONG_STRENGTH = 7
WEAK_STRENGTH = 3


# --- GraphRAG State ---
class GraphRAGState(TypedDict, total=False):
    question: str
    include_high_importance: bool
    concepts: List[str]
    seed_entities: List[Entity]
    seed_ids: List[str]
    entities: List[Entity]
    relationships: List[Relationship]
    paths: List[str]
    context: str
    summary: str


def get_concept_prompt() -> ChatPromptTemplate:
    return ChatPromptTemplate.from_messages([
        ("human", """Extract the key concepts, entities, or topics from this question that would be relevant to search in a personal knowledge graph about productivity, projects, blockers, emotions, patterns, skills, and habits.

Question: "{question}"

Return ONLY a JSON array of concept strings (lowercase, normalized). Example: ["procrastination", "aws certification", "focus", "overwhelm"]

If no relevant concepts, return empty array: []"""),
    ])


def parse_concepts(content: str) -> List[str]:
    """Lowercased, de-duplicated concept strings; anything malformed yields []."""
    try:
        payload = parse_json_payload(content or "[]")
    except ValueError:
        logger.warning(f"Failed to parse concepts: {content!r}")
        return []
    if not isinstance(payload, list):
        return []
    concepts = [item.strip().lower() for item in payload if isinstance(item, str) and item.strip()]
    return list(dict.fromkeys(concepts))


def find_causal_paths(db: GraphDBInterface, entity_id: str) -> List[str]:
    """
    One-hop causal lookups around an entity: what blocks it, what triggers it,
    and what it blocks. Each hit becomes a short sentence.
    """
    blocked_by = db.relationships_to([entity_id], RelationshipType.BLOCKS)
    triggered_by = db.relationships_to([entity_id], RelationshipType.TRIGGERS)
    blocking = db.relationships_from([entity_id], RelationshipType.BLOCKS)

    other_ids = [r.source_id for r in blocked_by + triggered_by] + [r.target_id for r in blocking]
    names = {e.id: e for e in db.get_entities(other_ids)}

    paths = []
    for rel in blocked_by:
        source = names.get(rel.source_id)
        if source:
            paths.append(f"{source.name} ({source.entity_type.value}) BLOCKS the target")
    for rel in triggered_by:
        source = names.get(rel.source_id)
        if source:
            paths.append(f"{source.name} ({source.entity_type.value}) TRIGGERS the target")
    for rel in blocking:
        target = names.get(rel.target_id)
        if target:
            paths.append(f"This entity BLOCKS {target.name} ({target.entity_type.value})")
    return paths


def serialize_graph_context(entities: List[Entity], relationships: List[Relationship], paths: List[str]) -> str:
    """Renders the subgraph as a text block for LLM prompts; empty when nothing was found."""
    if not entities:
        return ""

    entity_map = {e.id: e for e in entities}
    by_type: Dict[str, List[Entity]] = OrderedDict()
    for entity in entities:
        by_type.setdefault(entity.entity_type.value, []).append(entity)

    context = "## KNOWLEDGE GRAPH CONTEXT\n\n"
    context += "### Entities from your personal knowledge graph:\n"
    for entity_type, members in by_type.items():
        context += f"\n**{entity_type.upper()}S:**\n"
        for e in members:
            star = "⭐" if e.importance >= STAR_IMPORTANCE else ""
            freq = f" (mentioned {e.frequency}x)" if e.frequency > MENTION_FREQUENCY else ""
            context += f"- {star}{e.name}{freq}"
            if e.description:
                context += f": {e.description}"
            context += "\n"

    if relationships:
        context += "\n### Connections in your graph:\n"
        for r in relationships[:MAX_RELATIONSHIP_LINES]:
            source = entity_map.get(r.source_id)
            target = entity_map.get(r.target_id)
            if not (source and target):
                continue
            if r.strength >= STRONG_STRENGTH:
                qualifier = " (strong)"
            elif r.strength <= WEAK_STRENGTH:
                qualifier = " (weak)"
            else:
                qualifier = ""
            context += f"- {source.name} --[{r.relationship_type.value}{qualifier}]--> {target.name}"
            if r.notes:
                context += f' | "{r.notes}"'
            context += "\n"

    if paths:
        context += "\n### Causal Analysis:\n"
        for p in paths:
            context += f"- {p}\n"

    return context


def summarize(entities: List[Entity], relationships: List[Relationship], paths: List[str]) -> str:
    if not entities:
        return "No matching entities found in knowledge graph."
    summary = f"Found {len(entities)} relevant entities and {len(relationships)} connections in your knowledge graph."
    if paths:
        summary += f" Identified {len(paths)} causal patterns."
    return summary


def should_inject_backbone(state: GraphRAGState):
    return "backbone" if state.get("include_high_importance", True) else "skip"


class GraphRAGEngine:
    """
    Turns a free-text question into a serialized slice of the knowledge graph.

    The steps run as a LangGraph pipeline: concept extraction, seed matching, optional
    backbone injection, bounded traversal, causal-path lookup and serialization. The
    concept step sits on the chat critical path, so it runs under a short deadline and
    falls back to no concepts on any failure.
    """
    def __init__(
        self,
        store: GraphStore,
        llm=None,
        concept_timeout: Optional[float] = None,
        max_hops: Optional[int] = None,
    ):
        self.store = store
        self.llm = llm
        self.concept_timeout = concept_timeout if concept_timeout is not None else settings.GRAPHRAG_CONCEPT_TIMEOUT_SECONDS
        self.max_hops = max_hops if max_hops is not None else settings.GRAPHRAG_MAX_HOPS
        self.app = self._build_workflow()

    def _build_workflow(self):
        workflow = StateGraph(GraphRAGState)
        workflow.add_node("extract_concepts", self.extract_concepts)
        workflow.add_node("match_seeds", self.match_seeds)
        workflow.add_node("inject_backbone", self.inject_backbone)
        workflow.add_node("traverse", self.traverse)
        workflow.add_node("find_causal_paths", self.find_causal_paths)
        workflow.add_node("serialize", self.serialize)

        workflow.set_entry_point("extract_concepts")
        workflow.add_edge("extract_concepts", "match_seeds")
        workflow.add_conditional_edges(
            "match_seeds",
            should_inject_backbone,
            {"backbone": "inject_backbone", "skip": "traverse"}
        )
        workflow.add_edge("inject_backbone", "traverse")
        workflow.add_edge("traverse", "find_causal_paths")
        workflow.add_edge("find_causal_paths", "serialize")
        workflow.add_edge("serialize", END)
        return workflow.compile()

    # --- Pipeline Nodes ---

    async def extract_query_concepts(self, question: str) -> List[str]:
        llm = self.llm or get_chat_model(settings.FAST_MODEL)
        chain = build_text_chain(get_concept_prompt(), llm)
        try:
            content = await invoke_chain(chain, {"question": question}, self.concept_timeout)
        except UpstreamUnavailable as e:
            logger.warning(f"Concept extraction failed, continuing without concepts: {e.message}")
            return []
        return parse_concepts(content)

    async def extract_concepts(self, state: GraphRAGState):
        concepts = await self.extract_query_concepts(state["question"])
        logger.info(f"Extracted concepts: {concepts}")
        return {"concepts": concepts}

    async def match_seeds(self, state: GraphRAGState):
        """Looks every concept up concurrently against entity names and descriptions."""
        concepts = state.get("concepts", [])
        results = await asyncio.gather(*[
            asyncio.to_thread(self.store.search_entities, concept, MATCHES_PER_CONCEPT)
            for concept in concepts
        ])
        seeds: Dict[str, Entity] = OrderedDict()
        for matches in results:
            for entity in matches:
                seeds.setdefault(entity.id, entity)
        logger.info(f"Seed entities found: {len(seeds)}")
        return {"seed_entities": list(seeds.values()), "seed_ids": list(seeds.keys())}

    def inject_backbone(self, state: GraphRAGState):
        seed_ids = list(state.get("seed_ids", []))
        for entity in self.store.backbone_entities():
            if entity.id not in seed_ids:
                seed_ids.append(entity.id)
        return {"seed_ids": seed_ids}

    def traverse(self, state: GraphRAGState):
        subgraph = traverse_graph(self.store.db, state.get("seed_ids", []), self.max_hops)
        logger.info(f"Subgraph: {len(subgraph.entities)} entities, {len(subgraph.relationships)} relationships")
        return {"entities": subgraph.entities, "relationships": subgraph.relationships}

    def find_causal_paths(self, state: GraphRAGState):
        paths: List[str] = []
        for seed in state.get("seed_entities", [])[:CAUSAL_SEED_LIMIT]:
            paths.extend(find_causal_paths(self.store.db, seed.id))
        return {"paths": paths}

    def serialize(self, state: GraphRAGState):
        entities = state.get("entities", [])
        relationships = state.get("relationships", [])
        paths = state.get("paths", [])
        return {
            "context": serialize_graph_context(entities, relationships, paths),
            "summary": summarize(entities, relationships, paths),
        }

    # --- Entry Point ---

    async def query(self, question: str, include_high_importance: bool = True) -> GraphContext:
        question = validate_text(question, "question", MAX_QUESTION_LENGTH)
        logger.info(f"GraphRAG query: {question}")

        final_state = await self.app.ainvoke({
            "question": question,
            "include_high_importance": include_high_importance,
        })

        result = GraphContext(
            entities=final_state.get("entities", []),
            relationships=final_state.get("relationships", []),
            paths=final_state.get("paths", []),
            summary=final_state.get("summary", ""),
            context=final_state.get("context", ""),
        )
        logger.info(f"GraphRAG result: {result.summary}")
        return result
