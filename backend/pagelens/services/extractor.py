"""Content extraction from an already loaded browser page."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional, Union

from playwright.async_api import Error as PlaywrightError

from pagelens.errors import ExtractionError
from pagelens.services.browser import BrowserSession

logger = logging.getLogger(__name__)

VISIBLE_TEXT_SCRIPT = "() => document.body ? document.body.innerText || '' : ''"


class ArtifactKind(str, Enum):
    """Shape of the content pulled from the page."""

    IMAGE = "image"
    TEXT = "text"
    HTML = "html"


@dataclass(frozen=True)
class ExtractionArtifact:
    """Extracted content unit handed to inference or returned directly."""

    kind: ArtifactKind
    content: Union[bytes, str]
    truncated: bool = False
    original_length: Optional[int] = None


def truncate_text(text: str, limit: int) -> tuple[str, bool]:
    """Cut ``text`` to at most ``limit`` characters.

    Returns:
        tuple[str, bool]: The kept prefix and whether anything was dropped.
    """
    if limit <= 0 or len(text) <= limit:
        return text, False
    return text[:limit], True


def truncate_artifact(artifact: ExtractionArtifact, limit: Optional[int]) -> ExtractionArtifact:
    """Return a copy of a text artifact bounded to ``limit`` characters.

    Image and HTML artifacts are returned unchanged. Truncated artifacts are
    marked so results are never presented as covering the whole document.
    """
    if artifact.kind is not ArtifactKind.TEXT or not limit or not isinstance(artifact.content, str):
        return artifact
    kept, truncated = truncate_text(artifact.content, limit)
    if not truncated:
        return artifact
    logger.debug("Text artifact truncated from %d to %d characters", len(artifact.content), len(kept))
    return replace(artifact, content=kept, truncated=True, original_length=len(artifact.content))


async def extract_artifact(session: BrowserSession, kind: ArtifactKind, full_page: bool = False) -> ExtractionArtifact:
    """Read one artifact from the session's page without mutating it.

    Args:
        session: An acquired, navigated session.
        kind: Which artifact to produce.
        full_page: For screenshots, capture the whole scrollable page instead
            of the viewport.

    Returns:
        ExtractionArtifact: Screenshot bytes, visible text or serialized HTML.

    Raises:
        ExtractionError: When the page cannot be read.
    """
    page = session.page
    if page is None:
        raise ExtractionError(f"No open page for {session.url}")

    try:
        if kind is ArtifactKind.IMAGE:
            png_bytes = await page.screenshot(full_page=full_page)
            content: Union[bytes, str] = png_bytes
        elif kind is ArtifactKind.TEXT:
            value = await page.evaluate(VISIBLE_TEXT_SCRIPT)
            content = value if isinstance(value, str) else ""
        else:
            content = await page.content()
    except PlaywrightError as exc:
        logger.warning("Failed to extract %s from %s", kind.value, session.url, exc_info=exc)
        raise ExtractionError(f"Failed to extract {kind.value} from {session.url}: {exc}") from exc

    return ExtractionArtifact(kind=kind, content=content, original_length=len(content))
