"""Browser-driven extraction and inference pipeline.

Every endpoint that loads a page goes through ``ExtractionPipeline.execute``:
acquire a session, extract one artifact, release the session, optionally call
the model, then shape the reply. Per-action differences (artifact kind,
truncation bound, prompts, fixed models, wait policy) live in
``ActionPolicy`` entries instead of separate handlers.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

from pagelens.config import config
from pagelens.errors import PipelineTimeoutError, RequestAbandonedError
from pagelens.schemas import ActionKind, ExtractionRequest, RenderOptions
from pagelens.services.browser import RemoteBrowserManager, browser_manager
from pagelens.services.extractor import ArtifactKind, ExtractionArtifact, extract_artifact, truncate_artifact
from pagelens.services.llm import InferenceInvoker, InferenceReply, inference_invoker
from pagelens.services.shaping import resolve_structured_reply

logger = logging.getLogger(__name__)

T = TypeVar("T")

ANALYZE_LINK = "analyze_link"

SUMMARY_INSTRUCTIONS = (
    "Summarize the following text from a webpage. Focus on key information and main points. "
    "If the text is too short or irrelevant, state that."
)
STRUCTURED_INSTRUCTIONS = (
    "Extract structured data from the following text from a webpage. "
    "Return a single JSON document inside a ```json fenced block."
)
TRUNCATION_NOTICE = "Note: the text was cut to fit the model context and covers only the beginning of the page."


@dataclass(frozen=True)
class PromptContext:
    """Inputs available when building a model prompt."""

    artifact: ExtractionArtifact
    instruction: Optional[str] = None
    schema: Optional[Dict[str, Any]] = None


@dataclass(frozen=True)
class ActionPolicy:
    """Configuration that specializes the pipeline for one action."""

    name: str
    artifact: ArtifactKind
    runs_inference: bool = True
    text_limit: Optional[int] = None
    system_prompt: Optional[str] = None
    fixed_model: Optional[str] = None
    wait_until: Optional[str] = None
    navigation_timeout_ms: Optional[int] = None
    build_prompt: Optional[Callable[[PromptContext], str]] = None
    shape: Optional[Callable[[InferenceReply, PromptContext], Dict[str, Any]]] = None


@dataclass(frozen=True)
class PipelineResult:
    """Shaped payload plus the metadata reported to the caller."""

    data: Dict[str, Any]
    model_used: str
    inference_performed: bool
    input_truncated: bool
    execution_time_ms: int


def _text_block(context: PromptContext, header: str) -> str:
    parts = [header]
    if context.instruction:
        parts.append(f"Additional instructions: {context.instruction}")
    if context.artifact.truncated:
        parts.append(TRUNCATION_NOTICE)
    parts.append(f"Text:\n{context.artifact.content}")
    return "\n\n".join(parts)


def build_summary_prompt(context: PromptContext) -> str:
    return _text_block(context, SUMMARY_INSTRUCTIONS)


def build_structured_prompt(context: PromptContext) -> str:
    header = STRUCTURED_INSTRUCTIONS
    if context.schema:
        header = f"{header}\nThe JSON must satisfy this JSON Schema:\n{json.dumps(context.schema, ensure_ascii=False)}"
    return _text_block(context, header)


def build_image_prompt(context: PromptContext) -> str:
    return context.instruction or ""


def shape_analysis(reply: InferenceReply, context: PromptContext) -> Dict[str, Any]:
    return {"analysis": reply.text}


def shape_summary(reply: InferenceReply, context: PromptContext) -> Dict[str, Any]:
    return {"summary": reply.text}


def shape_structured(reply: InferenceReply, context: PromptContext) -> Dict[str, Any]:
    result = resolve_structured_reply(reply.text, context.schema)
    data: Dict[str, Any] = {
        "result": result.value,
        "resolved": result.resolved,
        "raw": reply.text,
        "schemaErrors": list(result.schema_errors),
    }
    if result.error:
        data["error"] = result.error
    return data


def build_default_policies() -> Dict[str, ActionPolicy]:
    """Return the policy table built from the loaded configuration."""
    return {
        ActionKind.ANALYZE_IMAGE.value: ActionPolicy(
            name=ActionKind.ANALYZE_IMAGE.value,
            artifact=ArtifactKind.IMAGE,
            system_prompt=config.IMAGE_SYSTEM_PROMPT,
            build_prompt=build_image_prompt,
            shape=shape_analysis,
        ),
        ActionKind.SUMMARIZE_TEXT.value: ActionPolicy(
            name=ActionKind.SUMMARIZE_TEXT.value,
            artifact=ArtifactKind.TEXT,
            text_limit=config.SUMMARY_MAX_CHARS,
            system_prompt=config.SUMMARY_SYSTEM_PROMPT,
            build_prompt=build_summary_prompt,
            shape=shape_summary,
        ),
        ActionKind.EXTRACT_HTML.value: ActionPolicy(
            name=ActionKind.EXTRACT_HTML.value,
            artifact=ArtifactKind.HTML,
            runs_inference=False,
        ),
        ActionKind.EXTRACT_STRUCTURED.value: ActionPolicy(
            name=ActionKind.EXTRACT_STRUCTURED.value,
            artifact=ArtifactKind.TEXT,
            text_limit=config.ANALYSIS_MAX_CHARS,
            system_prompt=config.STRUCTURED_SYSTEM_PROMPT,
            build_prompt=build_structured_prompt,
            shape=shape_structured,
        ),
        ANALYZE_LINK: ActionPolicy(
            name=ANALYZE_LINK,
            artifact=ArtifactKind.TEXT,
            text_limit=config.ANALYSIS_MAX_CHARS,
            system_prompt=config.LINK_ANALYSIS_SYSTEM_PROMPT,
            fixed_model=config.LINK_ANALYSIS_MODEL,
            wait_until="domcontentloaded",
            navigation_timeout_ms=30000,
            build_prompt=build_summary_prompt,
            shape=shape_analysis,
        ),
    }


class ExtractionPipeline:
    """Run one action: acquire, extract, release, infer, shape."""

    def __init__(
        self,
        browser: Optional[RemoteBrowserManager] = None,
        invoker: Optional[InferenceInvoker] = None,
        policies: Optional[Dict[str, ActionPolicy]] = None,
    ) -> None:
        self.browser = browser or browser_manager
        self.invoker = invoker or inference_invoker
        self.policies = policies or build_default_policies()

    async def run(self, request: ExtractionRequest) -> PipelineResult:
        """Execute the policy matching ``request.action``."""
        policy = self.policies[request.action.value]
        return await self.execute(
            policy,
            str(request.url),
            render=request.render_options,
            model=request.model,
            instruction=request.prompt,
            schema=request.output_schema,
        )

    async def execute(
        self,
        policy: ActionPolicy,
        url: str,
        *,
        render: Optional[RenderOptions] = None,
        model: Optional[str] = None,
        instruction: Optional[str] = None,
        schema: Optional[Dict[str, Any]] = None,
    ) -> PipelineResult:
        """Load ``url`` and process it according to ``policy``.

        Args:
            policy: Action-specific configuration.
            url: Page to load.
            render: Viewport, capture and wait settings.
            model: Model identifier; ignored when the policy pins one.
            instruction: Caller prompt.
            schema: Declared JSON shape for structured extraction.

        Returns:
            PipelineResult: The shaped data and response metadata.

        Raises:
            PipelineError: Any fatal pipeline failure. The browser session is
            already released when it propagates.
        """
        render = render or RenderOptions()
        model_used = policy.fixed_model or model or config.DEFAULT_TEXT_MODEL
        started = time.perf_counter()
        logger.info("Running %s for %s", policy.name, url)

        async with self.browser.session(
            url,
            render,
            wait_until=policy.wait_until,
            navigation_timeout_ms=policy.navigation_timeout_ms,
        ) as session:
            artifact = await extract_artifact(session, policy.artifact, full_page=render.full_page)

        artifact = truncate_artifact(artifact, policy.text_limit)

        if not policy.runs_inference or policy.build_prompt is None or policy.shape is None:
            # No model call; modelUsed still reports the request/default model.
            data: Dict[str, Any] = {policy.artifact.value: artifact.content}
            inference_performed = False
        else:
            context = PromptContext(artifact=artifact, instruction=instruction, schema=schema)
            prompt = policy.build_prompt(context)
            image = artifact.content if isinstance(artifact.content, bytes) else None
            reply = await self.invoker.run(model_used, prompt, image=image, system_prompt=policy.system_prompt)
            data = policy.shape(reply, context)
            inference_performed = True

        execution_time_ms = int((time.perf_counter() - started) * 1000)
        logger.info("Finished %s for %s in %dms", policy.name, url, execution_time_ms)
        return PipelineResult(
            data=data,
            model_used=model_used,
            inference_performed=inference_performed,
            input_truncated=artifact.truncated,
            execution_time_ms=execution_time_ms,
        )


async def _watch_disconnect(
    is_disconnected: Callable[[], Awaitable[bool]],
    task: "asyncio.Future[Any]",
    flag: asyncio.Event,
    poll_seconds: float,
) -> None:
    while not task.done():
        if await is_disconnected():
            logger.info("Client disconnected; cancelling pipeline")
            flag.set()
            task.cancel()
            return
        await asyncio.sleep(poll_seconds)


async def run_with_budget(
    awaitable: Awaitable[T],
    timeout_seconds: Optional[float] = None,
    is_disconnected: Optional[Callable[[], Awaitable[bool]]] = None,
    poll_seconds: Optional[float] = None,
) -> T:
    """Await ``awaitable`` under a wall-clock budget and a disconnect watch.

    Cancellation propagates into the pipeline, so scoped browser sessions are
    released before this function returns or raises.

    Raises:
        PipelineTimeoutError: When the budget elapses.
        RequestAbandonedError: When the client disconnects first.
    """
    timeout_seconds = config.REQUEST_TIMEOUT_SECONDS if timeout_seconds is None else timeout_seconds
    poll_seconds = config.DISCONNECT_POLL_SECONDS if poll_seconds is None else poll_seconds
    task = asyncio.ensure_future(awaitable)
    disconnected = asyncio.Event()
    watcher = None
    if is_disconnected is not None:
        watcher = asyncio.ensure_future(_watch_disconnect(is_disconnected, task, disconnected, poll_seconds))

    try:
        return await asyncio.wait_for(task, timeout_seconds)
    except asyncio.TimeoutError as exc:
        logger.warning("Request exceeded its %ss budget", timeout_seconds)
        raise PipelineTimeoutError(f"Request exceeded its {timeout_seconds:g}s budget") from exc
    except asyncio.CancelledError:
        if disconnected.is_set():
            raise RequestAbandonedError("Client disconnected before the response was ready") from None
        raise
    finally:
        if watcher is not None:
            watcher.cancel()


extraction_pipeline = ExtractionPipeline()
