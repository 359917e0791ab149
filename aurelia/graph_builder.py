# /aurelia/graph_builder.py

from typing import List, Optional

from langchain_core.prompts import ChatPromptTemplate
from pydantic import ValidationError

from aurelia.config import settings
from aurelia.errors import UpstreamUnavailable
from aurelia.llm import build_text_chain, get_chat_model, invoke_chain, parse_json_payload
from aurelia.logger import get_logger
from aurelia.models import (
    RELATIONSHIP_DESCRIPTIONS,
    ExtractedEntity,
    ExtractedRelationship,
    ExtractionResult,
)

logger = get_logger(__name__)

EXTRACTION_TEMPERATURE = 0.3

ENTITY_TYPE_GUIDE = """\
- project: Work/study projects (AWS Cert, GreenLedger.AI, thesis)
- blocker: Obstacles (procrastination, perfectionism, context switching, overwhelm)
- emotion: Emotional states (overwhelmed, confident, stressed, frustrated, motivated)
- pattern: Recurring behaviors (energy crash, hyperfocus, avoidance, phone rabbit hole)
- win: Achievements (shipped code, landed gig, completed task, passed exam)
- skill: Abilities needed (focus stability, time management, execution reliability)
- person: People mentioned (collaborators, mentors)
- tool: Tools/systems (brain.fm, Pomodoro, calendar blocking)
- habit: Routines (morning routine, deep work blocks)"""


def relationship_type_guide() -> str:
    return "\n".join(f"- {rel_type.value}: {meaning}" for rel_type, meaning in RELATIONSHIP_DESCRIPTIONS.items())


def get_extraction_prompt() -> ChatPromptTemplate:
    prompt = ChatPromptTemplate.from_messages([
        ("human", """
You are an entity and relationship extractor for a personal productivity knowledge graph for someone with ADHD.

CONVERSATION:
{conversation}

Extract entities and relationships mentioned or implied in this conversation. Be selective - only extract meaningful, reusable concepts.

ENTITY TYPES (use exactly these):
{entity_types}

RELATIONSHIP TYPES (use exactly these):
{relationship_types}

RULES:
1. Only extract entities that could be useful for future pattern recognition
2. Skip trivial or one-off mentions
3. Normalize names (e.g., "AWS" and "AWS Cert" should be "AWS Certification")
4. Confidence score 0.0-1.0 (how certain is this relationship?)
5. If nothing meaningful to extract, return empty arrays

Return ONLY valid JSON:
{{
  "entities": [
    {{"entity_type": "blocker", "name": "Procrastination", "description": "Tendency to delay important tasks"}}
  ],
  "relationships": [
    {{"source_name": "Procrastination", "relationship_type": "BLOCKS", "target_name": "AWS Certification", "description": "Procrastination is preventing progress on AWS cert", "confidence": 0.8}}
  ]
}}
"""),
    ])
    return prompt.partial(
        entity_types=ENTITY_TYPE_GUIDE,
        relationship_types=relationship_type_guide(),
    )


def get_graph_extraction_chain(llm):
    return build_text_chain(get_extraction_prompt(), llm)


def format_conversation(user_message: str, assistant_message: str) -> str:
    return f"User: {user_message}\n\nAURELIA: {assistant_message}"


def _parse_items(raw_items, model) -> List:
    if not isinstance(raw_items, list):
        return []
    items = []
    for raw in raw_items:
        try:
            items.append(model.model_validate(raw))
        except ValidationError:
            logger.warning(f"Skipping malformed {model.__name__}: {raw!r}")
    return items


def parse_extraction_output(content: str) -> ExtractionResult:
    """
    Turns raw LLM text into an ExtractionResult. Code fences are stripped first;
    anything that does not parse into an object yields empty results.
    """
    try:
        payload = parse_json_payload(content)
    except ValueError:
        logger.warning(f"Failed to parse extraction result: {content!r}")
        return ExtractionResult()

    if not isinstance(payload, dict):
        logger.warning("Extraction result is not a JSON object; ignoring it.")
        return ExtractionResult()

    return ExtractionResult(
        entities=_parse_items(payload.get("entities"), ExtractedEntity),
        relationships=_parse_items(payload.get("relationships"), ExtractedRelationship),
    )


async def extract_graph(
    user_message: str,
    assistant_message: str,
    llm=None,
    timeout: Optional[float] = None,
) -> ExtractionResult:
    """
    Asks the LLM for entities and relationships worth remembering from one conversation turn.
    Extraction is best-effort: gateway failures and timeouts yield an empty result.
    """
    llm = llm or get_chat_model(settings.GENERATION_MODEL, temperature=EXTRACTION_TEMPERATURE)
    timeout = timeout if timeout is not None else settings.EXTRACTION_TIMEOUT_SECONDS
    chain = get_graph_extraction_chain(llm)

    logger.info("Extracting entities from conversation...")
    try:
        content = await invoke_chain(
            chain, {"conversation": format_conversation(user_message, assistant_message)}, timeout
        )
    except UpstreamUnavailable as e:
        logger.error(f"Entity extraction degraded to no-op: {e.message}")
        return ExtractionResult()

    if not content:
        logger.info("No content in AI response")
        return ExtractionResult()
    return parse_extraction_output(content)
