# /aurelia/llm.py

import asyncio
import json
from typing import Any, Dict, Optional

from langchain_core.output_parsers import StrOutputParser
from langchain_core.prompts import ChatPromptTemplate
from langchain_google_genai import ChatGoogleGenerativeAI

from aurelia.config import settings
from aurelia.errors import UpstreamUnavailable
from aurelia.logger import get_logger

logger = get_logger(__name__)


def get_chat_model(model: Optional[str] = None, temperature: float = 0):
    """Builds the Gemini chat model used for extraction and concept steps."""
    kwargs = {"model": model or settings.GENERATION_MODEL, "temperature": temperature}
    if settings.GOOGLE_API_KEY:
        kwargs["google_api_key"] = settings.GOOGLE_API_KEY
    return ChatGoogleGenerativeAI(**kwargs)


def build_text_chain(prompt: ChatPromptTemplate, llm):
    return prompt | llm | StrOutputParser()


def strip_code_fence(text: str) -> str:
    """Removes a leading ```json / ``` fence and a trailing ``` fence, if present."""
    cleaned = text.strip()
    if cleaned.startswith("```json"):
        cleaned = cleaned[7:]
    elif cleaned.startswith("```"):
        cleaned = cleaned[3:]
    if cleaned.endswith("```"):
        cleaned = cleaned[:-3]
    return cleaned.strip()


def parse_json_payload(text: Optional[str]) -> Any:
    """Parses LLM output as JSON after stripping fences. Raises ValueError on malformed input."""
    if not text or not text.strip():
        raise ValueError("Empty LLM response")
    return json.loads(strip_code_fence(text))


def _upstream_status(exc: Exception) -> Optional[int]:
    for attr in ("status_code", "code"):
        value = getattr(exc, attr, None)
        if isinstance(value, int):
            return value
    return None


async def invoke_chain(chain, inputs: Dict[str, Any], timeout: float) -> str:
    """
    Runs a chain under a deadline. Every failure, including the deadline, is raised
    as UpstreamUnavailable so callers can decide whether to degrade or propagate.
    """
    try:
        return await asyncio.wait_for(chain.ainvoke(inputs), timeout=timeout)
    except asyncio.TimeoutError as e:
        raise UpstreamUnavailable(f"LLM call timed out after {timeout}s") from e
    except Exception as e:
        raise UpstreamUnavailable(f"LLM call failed: {e}", upstream_status=_upstream_status(e)) from e
