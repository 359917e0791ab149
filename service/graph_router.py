import random
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel, Field

from aurelia.graph_store import GraphStore
from aurelia.layout import ForceSimulation, backbone_view
from aurelia.models import DEFAULT_IMPORTANCE, Entity, Relationship, Subgraph
from service.dependencies import get_store, require_user

router = APIRouter(
    prefix="/graph",
    tags=["Knowledge Graph"],
    dependencies=[Depends(require_user)],
)


# --- Pydantic Models ---
class EntityCreate(BaseModel):
    entity_type: str
    name: str
    description: Optional[str] = None
    importance: int = DEFAULT_IMPORTANCE
    color: Optional[str] = None


class EntityUpdate(BaseModel):
    entity_type: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
    importance: Optional[int] = None
    color: Optional[str] = None


class RelationshipCreate(BaseModel):
    source_id: str
    target_id: str
    relationship_type: str
    strength: Optional[int] = None
    notes: Optional[str] = None


class LayoutNode(BaseModel):
    id: str
    name: str
    entity_type: str
    color: Optional[str] = None
    x: float
    y: float


class LayoutResponse(BaseModel):
    nodes: List[LayoutNode] = Field(default_factory=list)
    relationships: List[Relationship] = Field(default_factory=list)


# --- API Endpoints ---

@router.get("", response_model=Subgraph)
def get_full_graph(store: GraphStore = Depends(get_store)):
    """Every entity (most mentioned first) and every relationship."""
    return store.full_graph()


@router.get("/entities", response_model=List[Entity])
def list_entities(
    entity_type: Optional[str] = None,
    min_importance: Optional[int] = None,
    store: GraphStore = Depends(get_store),
):
    return store.list_entities(entity_type=entity_type, min_importance=min_importance)


@router.post("/entities", response_model=Entity, status_code=201)
def create_entity(payload: EntityCreate, store: GraphStore = Depends(get_store)):
    return store.create_entity(
        payload.entity_type,
        payload.name,
        description=payload.description,
        importance=payload.importance,
        color=payload.color,
    )


@router.patch("/entities/{entity_id}", response_model=Entity)
def update_entity(entity_id: str, payload: EntityUpdate, store: GraphStore = Depends(get_store)):
    return store.update_entity(entity_id, payload.model_dump(exclude_unset=True))


@router.post("/entities/{entity_id}/mention", response_model=Entity)
def mention_entity(entity_id: str, store: GraphStore = Depends(get_store)):
    """Records one more mention of the entity."""
    return store.mention_entity(entity_id)


@router.delete("/entities/{entity_id}", status_code=204)
def delete_entity(entity_id: str, store: GraphStore = Depends(get_store)):
    """Deletes the entity together with every relationship that references it."""
    store.delete_entity(entity_id)
    return Response(status_code=204)


@router.get("/relationships", response_model=List[Relationship])
def list_relationships(
    entity_id: Optional[str] = None,
    relationship_type: Optional[str] = None,
    store: GraphStore = Depends(get_store),
):
    return store.list_relationships(entity_id=entity_id, relationship_type=relationship_type)


@router.post("/relationships", response_model=Relationship, status_code=201)
def create_relationship(payload: RelationshipCreate, store: GraphStore = Depends(get_store)):
    return store.create_relationship(
        payload.source_id,
        payload.target_id,
        payload.relationship_type,
        strength=payload.strength,
        notes=payload.notes,
    )


@router.delete("/relationships/{relationship_id}", status_code=204)
def delete_relationship(relationship_id: str, store: GraphStore = Depends(get_store)):
    store.delete_relationship(relationship_id)
    return Response(status_code=204)


@router.get("/layout", response_model=LayoutResponse)
def get_layout(
    view: Literal["full", "backbone"] = "full",
    seed: Optional[int] = None,
    store: GraphStore = Depends(get_store),
):
    """Runs the force-directed layout once and returns node positions. Nothing is persisted."""
    graph = store.full_graph()
    entities, relationships = graph.entities, graph.relationships
    if view == "backbone":
        entities, relationships = backbone_view(entities, relationships)

    simulation = ForceSimulation.from_graph(entities, relationships, rng=random.Random(seed))
    positions = simulation.run()
    nodes = [
        LayoutNode(
            id=e.id,
            name=e.name,
            entity_type=e.entity_type.value,
            color=e.color,
            x=positions[e.id][0],
            y=positions[e.id][1],
        )
        for e in entities
    ]
    return LayoutResponse(nodes=nodes, relationships=relationships)
