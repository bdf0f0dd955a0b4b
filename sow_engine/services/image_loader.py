"""
Decode logo / signature images for embedding.

Sources are raw bytes or ``data:image/...;base64,`` URLs. Pillow identifies
the real format; anything it cannot read is dropped with a warning so a bad
image never aborts an export.
"""
from __future__ import annotations

import base64
import binascii
import io
import logging
import re
from typing import Optional, Union

from PIL import Image, UnidentifiedImageError

from sow_engine.config import settings
from sow_engine.models.value_store import EmbeddedImage

logger = logging.getLogger(__name__)

_DATA_URL_RE = re.compile(r"^data:(image/[\w.+-]+)?(;[\w=-]+)*?;base64,(.*)$", re.DOTALL | re.IGNORECASE)

# Formats Word renders inline -> (extension, mime)
_FORMATS = {
    "PNG": ("png", "image/png"),
    "JPEG": ("jpeg", "image/jpeg"),
    "GIF": ("gif", "image/gif"),
    "BMP": ("bmp", "image/bmp"),
}


def decode_data_url(source: str) -> bytes:
    """Return the payload of a base64 image data URL.

    Raises:
        ValueError: not a base64 image data URL, or the payload is corrupt.
    """
    match = _DATA_URL_RE.match(source.strip())
    if not match:
        raise ValueError("Not a base64 image data URL")
    try:
        return base64.b64decode(re.sub(r"\s+", "", match.group(3)), validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValueError(f"Corrupt base64 payload: {exc}") from exc


def load_image(
    source: Union[bytes, bytearray, str, None],
    slot: str = "logo",
    width_px: Optional[int] = None,
    height_px: Optional[int] = None,
) -> Optional[EmbeddedImage]:
    """
    Decode an image for an image slot.

    Args:
        source:    Raw bytes or a data URL. None/empty means no image.
        slot:      Slot name ("logo" or "signature"); selects default size.
        width_px:  Display width override.
        height_px: Display height override.

    Returns:
        EmbeddedImage, or None when the source is empty or undecodable.
    """
    if not source:
        return None
    try:
        data = decode_data_url(source) if isinstance(source, str) else bytes(source)
        with Image.open(io.BytesIO(data)) as img:
            img.verify()
            fmt = (img.format or "").upper()
    except (ValueError, OSError, UnidentifiedImageError, Image.DecompressionBombError) as exc:
        logger.warning("Dropping %s image: cannot decode (%s)", slot, exc)
        return None

    if fmt not in _FORMATS:
        # Re-encode anything exotic (webp, tiff ...) as PNG
        try:
            with Image.open(io.BytesIO(data)) as img:
                buf = io.BytesIO()
                img.save(buf, format="PNG")
            data, fmt = buf.getvalue(), "PNG"
        except (OSError, ValueError) as exc:
            logger.warning("Dropping %s image: cannot convert %s to PNG (%s)", slot, fmt or "unknown", exc)
            return None

    ext, mime = _FORMATS[fmt]
    default_w, default_h = settings.image_size(slot)
    return EmbeddedImage(
        data=data,
        ext=ext,
        mime=mime,
        width_px=width_px or default_w,
        height_px=height_px or default_h,
        name=slot,
    )
