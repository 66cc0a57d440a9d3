"""
Unit tests for the inference invoker.
"""

import io
import unittest
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest
from openai import APIConnectionError, APIStatusError
from PIL import Image

from pagelens.config import config
from pagelens.errors import InferenceError
from pagelens.services.images import ImageProcessingError, compress_image
from pagelens.services.llm import InferenceInvoker, image_data_url

REQUEST = httpx.Request("POST", "https://models.test/v1/chat/completions")


def _png(width=64, height=32, mode="RGBA"):
    buffer = io.BytesIO()
    Image.new(mode, (width, height), (10, 20, 30, 255) if mode == "RGBA" else (10, 20, 30)).save(buffer, format="PNG")
    return buffer.getvalue()


def _completion(content="Hello", finish_reason="stop", usage=None):
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content), finish_reason=finish_reason)],
        usage=usage,
    )


def _invoker(response=None, error=None):
    client = MagicMock()
    client.chat.completions.create = AsyncMock(return_value=response, side_effect=error)
    return InferenceInvoker(client=client), client.chat.completions.create


@pytest.mark.unit
class TestInferenceInvoker(unittest.IsolatedAsyncioTestCase):
    """Tests for InferenceInvoker.run."""

    async def test_text_prompt(self):
        """Should send system and user messages with configured defaults."""
        invoker, create = _invoker(_completion("Summary text"))
        reply = await invoker.run("@cf/meta/llama-3.1-8b-instruct", "Summarize this", system_prompt="Be brief")

        self.assertEqual(reply.text, "Summary text")
        self.assertEqual(reply.model, "@cf/meta/llama-3.1-8b-instruct")
        self.assertEqual(reply.finish_reason, "stop")
        kwargs = create.await_args.kwargs
        self.assertEqual(
            kwargs["messages"],
            [{"role": "system", "content": "Be brief"}, {"role": "user", "content": "Summarize this"}],
        )
        self.assertFalse(kwargs["stream"])
        self.assertEqual(kwargs["temperature"], config.LLM_TEMPERATURE)
        self.assertEqual(kwargs["max_tokens"], config.LLM_MAX_TOKENS)

    async def test_image_prompt(self):
        """Should attach the screenshot as a data url content part."""
        invoker, create = _invoker(_completion("A login form"))
        await invoker.run("@cf/vision", "What is shown?", image=_png())

        user_message = create.await_args.kwargs["messages"][-1]
        self.assertEqual(user_message["content"][0], {"type": "text", "text": "What is shown?"})
        self.assertEqual(user_message["content"][1]["type"], "image_url")
        self.assertTrue(user_message["content"][1]["image_url"]["url"].startswith("data:image/"))

    async def test_overrides(self):
        """Should honour explicit temperature and token overrides."""
        invoker, create = _invoker(_completion())
        await invoker.run("m", "p", temperature=0.7, max_tokens=None)

        self.assertEqual(create.await_args.kwargs["temperature"], 0.7)

    async def test_none_content_is_empty_text(self):
        """Should treat a missing message body as empty text."""
        invoker, _ = _invoker(_completion(content=None))
        reply = await invoker.run("m", "p")

        self.assertEqual(reply.text, "")

    async def test_status_error(self):
        """Should map non-success upstream statuses to InferenceError."""
        error = APIStatusError(
            "Rate limited", response=httpx.Response(429, request=REQUEST), body=None
        )
        invoker, _ = _invoker(error=error)

        with self.assertRaises(InferenceError) as ctx:
            await invoker.run("m", "p")

        self.assertEqual(ctx.exception.upstream_status, 429)
        self.assertIn("429", ctx.exception.message)
        self.assertEqual(ctx.exception.status_code, 500)

    async def test_connection_error(self):
        """Should map transport failures to InferenceError."""
        invoker, _ = _invoker(error=APIConnectionError(request=REQUEST))

        with self.assertRaises(InferenceError) as ctx:
            await invoker.run("m", "p")

        self.assertIsNone(ctx.exception.upstream_status)

    async def test_no_choices(self):
        """Should fail when the service returns no choices."""
        invoker, _ = _invoker(SimpleNamespace(choices=[], usage=None))

        with self.assertRaises(InferenceError):
            await invoker.run("m", "p")


@pytest.mark.unit
class TestImages(unittest.TestCase):
    """Tests for screenshot compression."""

    def test_compress_downscales(self):
        """Should bound the longest side and re-encode."""
        data, mime_type = compress_image(_png(400, 100), max_dimension=200)

        self.assertEqual(mime_type, "image/webp")
        self.assertEqual(Image.open(io.BytesIO(data)).size, (200, 50))

    def test_decompression_bomb_translated(self):
        """Should report oversized screenshots as ImageProcessingError."""
        with patch("pagelens.services.images.Image.open", side_effect=Image.DecompressionBombError("too many pixels")):
            with self.assertRaises(ImageProcessingError):
                compress_image(_png())

    def test_data_url_falls_back_to_png(self):
        """Should send undecodable bytes unchanged as PNG."""
        with self.assertLogs("pagelens.services.llm", level="WARNING"):
            url = image_data_url(b"not an image")

        self.assertTrue(url.startswith("data:image/png;base64,"))


if __name__ == "__main__":
    unittest.main()
