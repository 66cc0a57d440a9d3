"""OpenAI-compatible inference helpers."""

import base64
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from openai import APIStatusError, AsyncOpenAI, OpenAIError

from pagelens.config import config
from pagelens.errors import InferenceError
from pagelens.services.images import ImageProcessingError, compress_image

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InferenceReply:
    """Raw model output for one invocation."""

    text: str
    model: str
    finish_reason: Optional[str] = None
    usage: Optional[Dict[str, Any]] = None


def image_data_url(image: bytes) -> str:
    """Encode screenshot bytes as a ``data:`` URL, downscaling when possible."""
    try:
        payload, mime_type = compress_image(image, config.IMAGE_MAX_DIMENSION)
    except ImageProcessingError as exc:
        logger.warning("Sending screenshot uncompressed", exc_info=exc)
        payload, mime_type = image, "image/png"
    encoded = base64.b64encode(payload).decode("utf-8")
    return f"data:{mime_type};base64,{encoded}"


class InferenceInvoker:
    """Single-shot chat completion calls against the hosted model service.

    Every call is independent: no retries, no caching, no batching.
    """

    def __init__(self, client: Optional[AsyncOpenAI] = None) -> None:
        self._client = client

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = AsyncOpenAI(
                api_key=config.OPENAI_API_KEY,
                base_url=config.OPENAI_BASE_URL or None,
                timeout=config.LLM_TIMEOUT_SECONDS,
                max_retries=0,
            )
        return self._client

    async def run(
        self,
        model_id: str,
        prompt: str,
        *,
        image: Optional[bytes] = None,
        system_prompt: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> InferenceReply:
        """Send one prompt (optionally with a screenshot) to the model.

        Args:
            model_id: Identifier of the model to invoke.
            prompt: User prompt text.
            image: Optional screenshot bytes attached to the user message.
            system_prompt: Optional system instruction.
            temperature: Optional override for sampling temperature.
            max_tokens: Optional override for maximum completion tokens.

        Returns:
            InferenceReply: The model's text answer.

        Raises:
            InferenceError: When the service rejects the call or fails.
        """
        # Fall back to configured defaults when optional overrides are missing.
        if temperature is None:
            temperature = config.LLM_TEMPERATURE
        if max_tokens is None:
            max_tokens = config.LLM_MAX_TOKENS

        messages: List[Dict[str, Any]] = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        if image is None:
            messages.append({"role": "user", "content": prompt})
        else:
            messages.append(
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": prompt},
                        {"type": "image_url", "image_url": {"url": image_data_url(image)}},
                    ],
                }
            )

        request_params: Dict[str, Any] = {
            "model": model_id,
            "messages": messages,
            "stream": False,
            "temperature": temperature,
        }
        # Only include max_tokens when a value is provided.
        if max_tokens is not None:
            request_params["max_tokens"] = max_tokens

        try:
            response = await self.client.chat.completions.create(**request_params)
        except APIStatusError as exc:
            logger.warning("Model %s returned status %s", model_id, exc.status_code)
            raise InferenceError(f"Model {model_id} call failed: {exc.message}", upstream_status=exc.status_code) from exc
        except OpenAIError as exc:
            logger.warning("Model %s call failed", model_id, exc_info=exc)
            raise InferenceError(f"Model {model_id} call failed: {exc}") from exc

        if not response.choices:
            raise InferenceError(f"Model {model_id} returned no choices")

        choice = response.choices[0]
        usage = response.usage.model_dump() if response.usage is not None else None
        return InferenceReply(
            text=choice.message.content or "",
            model=model_id,
            finish_reason=choice.finish_reason,
            usage=usage,
        )


inference_invoker = InferenceInvoker()
