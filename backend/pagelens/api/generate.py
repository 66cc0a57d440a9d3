"""Code generation endpoint."""

from fastapi import APIRouter, Depends

from pagelens.config import config
from pagelens.dependencies import get_invoker
from pagelens.schemas import ErrorResponse, GenerateRequest, GenerateResponse
from pagelens.services.llm import InferenceInvoker
from pagelens.utils.helpers import iso_timestamp

router = APIRouter(prefix="/api", tags=["Generation"])


@router.post("/generate", response_model=GenerateResponse, responses={400: {"model": ErrorResponse}})
async def generate(body: GenerateRequest, invoker: InferenceInvoker = Depends(get_invoker)):
    """Generate service code from a natural-language request."""
    reply = await invoker.run(
        config.CODEGEN_MODEL,
        body.prompt,
        system_prompt=config.CODEGEN_SYSTEM_PROMPT,
        temperature=config.CODEGEN_TEMPERATURE,
        max_tokens=config.CODEGEN_MAX_TOKENS,
    )
    return GenerateResponse(generated_code=reply.text, timestamp=iso_timestamp())
