# /aurelia/extraction.py

import asyncio
from typing import Optional

from aurelia.entity_resolver import EntityResolver
from aurelia.errors import InvalidArgument
from aurelia.graph_builder import extract_graph
from aurelia.graph_store import GraphStore
from aurelia.logger import get_logger
from aurelia.models import ExtractionStats

logger = get_logger(__name__)

MAX_USER_MESSAGE_LENGTH = 10000
MAX_ASSISTANT_MESSAGE_LENGTH = 20000


def validate_text(value, field: str, max_length: int) -> str:
    """Rejects non-strings, oversized strings and strings that are empty once trimmed."""
    if not isinstance(value, str):
        raise InvalidArgument(f"{field} must be a string.")
    if len(value) > max_length:
        raise InvalidArgument(f"{field} exceeds {max_length} characters.")
    value = value.strip()
    if not value:
        raise InvalidArgument(f"{field} is required.")
    return value


class ExtractionPipeline:
    """One conversation turn in, reconciled graph updates out."""

    def __init__(self, store: GraphStore, llm=None, timeout: Optional[float] = None):
        self.store = store
        self.llm = llm
        self.timeout = timeout
        self.resolver = EntityResolver(store)

    async def run(self, user_message: str, assistant_message: str) -> ExtractionStats:
        user_message = validate_text(user_message, "user_message", MAX_USER_MESSAGE_LENGTH)
        assistant_message = validate_text(assistant_message, "assistant_message", MAX_ASSISTANT_MESSAGE_LENGTH)

        extracted = await extract_graph(user_message, assistant_message, llm=self.llm, timeout=self.timeout)
        if not extracted.entities and not extracted.relationships:
            logger.info("Nothing worth remembering in this turn.")
            return ExtractionStats()

        # Store calls block; keep them off the event loop.
        stats = await asyncio.to_thread(self.resolver.resolve_and_merge_graph, extracted)
        logger.info(f"Extraction complete: {stats.model_dump()}")
        return stats


async def run_extraction_job(pipeline: ExtractionPipeline, user_message: str, assistant_message: str) -> Optional[ExtractionStats]:
    """
    Fire-and-forget wrapper scheduled after the assistant reply is saved.
    Its own error boundary: failures are logged and never reach the chat turn.
    """
    logger.info("Background extraction job started")
    try:
        stats = await pipeline.run(user_message, assistant_message)
    except Exception as e:
        logger.error(f"Background extraction job failed: {e}", exc_info=True)
        return None
    logger.info(f"Background extraction job finished: {stats.model_dump()}")
    return stats
