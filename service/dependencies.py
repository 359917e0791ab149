from functools import lru_cache
from typing import Optional

from fastapi import Header

from aurelia.auth import AuthenticatedUser, authenticate_request
from aurelia.database import create_database
from aurelia.extraction import ExtractionPipeline
from aurelia.graph_store import GraphStore
from aurelia.retriever import GraphRAGEngine


@lru_cache
def get_store() -> GraphStore:
    return GraphStore(create_database())


@lru_cache
def get_extraction_pipeline() -> ExtractionPipeline:
    return ExtractionPipeline(get_store())


@lru_cache
def get_graphrag_engine() -> GraphRAGEngine:
    return GraphRAGEngine(get_store())


async def require_user(authorization: Optional[str] = Header(None)) -> AuthenticatedUser:
    return await authenticate_request(authorization)
