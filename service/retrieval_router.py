from fastapi import APIRouter, Depends
from pydantic import BaseModel

from aurelia.models import GraphContext
from aurelia.retriever import GraphRAGEngine
from service.dependencies import get_graphrag_engine, require_user

router = APIRouter(
    prefix="/graphrag",
    tags=["GraphRAG"],
    dependencies=[Depends(require_user)],
)


class GraphRAGQueryRequest(BaseModel):
    question: str
    include_high_importance: bool = True


@router.post("/query", response_model=GraphContext)
async def graphrag_query(
    request: GraphRAGQueryRequest,
    engine: GraphRAGEngine = Depends(get_graphrag_engine),
):
    """
    Returns the slice of the knowledge graph relevant to a question, with a serialized
    context block for LLM prompts. An empty context means nothing relevant was found.
    """
    return await engine.query(request.question, include_high_importance=request.include_high_importance)
