"""Link analysis endpoint."""

from fastapi import APIRouter, Depends, Request

from pagelens.dependencies import get_pipeline
from pagelens.schemas import AnalyzeLinkRequest, AnalyzeLinkResponse, ErrorResponse
from pagelens.services.pipeline import ANALYZE_LINK, ExtractionPipeline, run_with_budget
from pagelens.utils.helpers import iso_timestamp

router = APIRouter(prefix="/api", tags=["Extraction"])


@router.post("/analyze-link", response_model=AnalyzeLinkResponse, responses={400: {"model": ErrorResponse}})
async def analyze_link(body: AnalyzeLinkRequest, request: Request, pipeline: ExtractionPipeline = Depends(get_pipeline)):
    """Summarize the visible text of a single page with the link-analysis model.

    Args:
        body: The URL to analyze.
        request: Raw request, watched for client disconnects.
        pipeline: Extraction pipeline injected by FastAPI.

    Returns:
        AnalyzeLinkResponse: The summary and the analyzed URL.
    """
    url = str(body.url)
    result = await run_with_budget(
        pipeline.execute(pipeline.policies[ANALYZE_LINK], url),
        is_disconnected=request.is_disconnected,
    )
    return AnalyzeLinkResponse(
        analysis=result.data.get("analysis", ""),
        original_url=url,
        timestamp=iso_timestamp(),
        truncated=result.input_truncated,
    )
