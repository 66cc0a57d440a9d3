"""FastAPI dependency helpers."""

from pagelens.services.llm import InferenceInvoker, inference_invoker
from pagelens.services.pipeline import ExtractionPipeline, extraction_pipeline


def get_pipeline() -> ExtractionPipeline:
    """Return the process-wide extraction pipeline.

    Returns:
        ExtractionPipeline: Pipeline bound to the shared browser manager and
        inference invoker. Tests override this dependency with fakes.
    """
    return extraction_pipeline


def get_invoker() -> InferenceInvoker:
    """Return the process-wide inference invoker."""
    return inference_invoker
