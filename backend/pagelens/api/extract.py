"""Page extraction endpoint."""

import json

from fastapi import APIRouter, Depends, Request

from pagelens.dependencies import get_pipeline
from pagelens.errors import InputValidationError
from pagelens.schemas import ErrorResponse, ExtractionMetadata, ExtractionResponse
from pagelens.services.pipeline import ExtractionPipeline, run_with_budget
from pagelens.services.validation import validate_extraction_request

router = APIRouter(prefix="/api", tags=["Extraction"])


@router.post(
    "/extract",
    response_model=ExtractionResponse,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}, 504: {"model": ErrorResponse}},
)
async def extract(request: Request, pipeline: ExtractionPipeline = Depends(get_pipeline)):
    """Load a page, extract content and optionally run it through a model.

    Args:
        request: Raw request; the body is validated explicitly so malformed
            input is rejected before any browser session is opened.
        pipeline: Extraction pipeline injected by FastAPI.

    Returns:
        ExtractionResponse: Action-specific data plus timing metadata.

    Raises:
        InputValidationError: When the body is not valid JSON or fails
        validation.
        PipelineError: For any fatal failure while loading or analyzing.
    """
    try:
        payload = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise InputValidationError(
            "Invalid request body",
            details=[{"field": "body", "message": "Request body must be valid JSON", "type": "json_invalid"}],
        ) from exc

    extraction_request = validate_extraction_request(payload)

    result = await run_with_budget(pipeline.run(extraction_request), is_disconnected=request.is_disconnected)

    return ExtractionResponse(
        data=result.data,
        metadata=ExtractionMetadata(
            url=str(extraction_request.url),
            action=extraction_request.action.value,
            model_used=result.model_used,
            execution_time_ms=result.execution_time_ms,
            inference_performed=result.inference_performed,
            input_truncated=result.input_truncated,
        ),
    )
