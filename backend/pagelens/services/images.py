"""Screenshot preparation before upload to the model service."""

import io
from typing import Optional, Tuple

from PIL import Image

from pagelens.config import config

MIME_TYPES = {"webp": "image/webp", "jpeg": "image/jpeg", "png": "image/png"}


class ImageProcessingError(Exception):
    """Raised when a screenshot cannot be re-encoded."""


def _flatten(img: Image.Image) -> Image.Image:
    # Lossy encoders want RGB; transparent areas are painted white.
    if img.mode in ("RGBA", "LA"):
        canvas = Image.new("RGB", img.size, "white")
        canvas.paste(img, mask=img.getchannel("A"))
        return canvas
    if img.mode != "RGB":
        return img.convert("RGB")
    return img


def compress_image(image_data: bytes, max_dimension: Optional[int] = None) -> Tuple[bytes, str]:
    """Shrink a screenshot and re-encode it in the configured format.

    Args:
        image_data: PNG bytes captured by the browser.
        max_dimension: Longest allowed side in pixels; the aspect ratio is
            kept and smaller images are never enlarged.

    Returns:
        Tuple[bytes, str]: Encoded bytes plus their MIME type.

    Raises:
        ImageProcessingError: When Pillow cannot decode or encode the data.
    """
    image_format = config.IMAGE_FORMAT if config.IMAGE_FORMAT in MIME_TYPES else "webp"
    try:
        with Image.open(io.BytesIO(image_data)) as source:
            img = _flatten(source)
            if max_dimension:
                img.thumbnail((max_dimension, max_dimension), Image.Resampling.LANCZOS)

            out = io.BytesIO()
            save_kwargs = {} if image_format == "png" else {"quality": config.IMAGE_COMPRESSION_QUALITY}
            img.save(out, format=image_format.upper(), **save_kwargs)
    except (OSError, ValueError, Image.DecompressionBombError) as exc:
        raise ImageProcessingError(f"Could not re-encode screenshot: {exc}") from exc
    return out.getvalue(), MIME_TYPES[image_format]
