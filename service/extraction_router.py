from fastapi import APIRouter, BackgroundTasks, Depends
from pydantic import BaseModel

from aurelia.extraction import (
    MAX_ASSISTANT_MESSAGE_LENGTH,
    MAX_USER_MESSAGE_LENGTH,
    ExtractionPipeline,
    run_extraction_job,
    validate_text,
)
from aurelia.logger import get_logger
from aurelia.models import ExtractionStats
from service.dependencies import get_extraction_pipeline, require_user

logger = get_logger(__name__)

router = APIRouter(
    prefix="/graph",
    tags=["Entity Extraction"],
    dependencies=[Depends(require_user)],
)


class ExtractionRequest(BaseModel):
    user_message: str
    assistant_message: str


@router.post("/extract", response_model=ExtractionStats)
async def extract_entities(
    request: ExtractionRequest,
    pipeline: ExtractionPipeline = Depends(get_extraction_pipeline),
):
    """Extracts entities and relationships from one conversation turn and stores them."""
    return await pipeline.run(request.user_message, request.assistant_message)


@router.post("/extract/background", status_code=202)
async def extract_entities_in_background(
    request: ExtractionRequest,
    background_tasks: BackgroundTasks,
    pipeline: ExtractionPipeline = Depends(get_extraction_pipeline),
):
    """Validates the turn and schedules extraction after the response is sent."""
    user_message = validate_text(request.user_message, "user_message", MAX_USER_MESSAGE_LENGTH)
    assistant_message = validate_text(request.assistant_message, "assistant_message", MAX_ASSISTANT_MESSAGE_LENGTH)
    background_tasks.add_task(run_extraction_job, pipeline, user_message, assistant_message)
    logger.info("Extraction job scheduled")
    return {"status": "accepted", "message": "Extraction has started in the background."}
