"""
Image decoding and storage encoding (Pillow).

Images with an alpha channel are stored as PNG so transparency survives;
everything else is stored as JPEG at a fixed quality.
"""

import io
import logging
from typing import Tuple

from PIL import Image

from .exceptions import ImageDecodeError, ImageEncodeError
from .types import ImageFormat

logger = logging.getLogger(__name__)

_ALPHA_MODES = {"RGBA", "LA", "PA", "RGBa", "La"}
_PNG_MODES = {"1", "L", "LA", "I", "I;16", "P", "RGB", "RGBA"}
_JPEG_MODES = {"1", "L", "RGB", "CMYK"}


def decode_image(data: bytes) -> Image.Image:
    """
    Decode raw bytes into a fully loaded Pillow image.

    Raises:
        ImageDecodeError: If the bytes are not a readable image
    """
    if not data:
        raise ImageDecodeError("empty image data")
    try:
        image = Image.open(io.BytesIO(data))
        image.load()
    except (OSError, ValueError, SyntaxError, Image.DecompressionBombError) as exc:
        raise ImageDecodeError(f"cannot decode image ({len(data)} bytes): {exc}") from exc
    return image


def has_alpha(image: Image.Image) -> bool:
    """True if the image carries an alpha band or a transparency key."""
    return image.mode in _ALPHA_MODES or "transparency" in image.info


def choose_format(image: Image.Image) -> ImageFormat:
    """PNG for images with alpha, JPEG otherwise. Pure and deterministic."""
    return ImageFormat.PNG if has_alpha(image) else ImageFormat.JPEG


def encode_image(image: Image.Image, quality: int = 70) -> Tuple[bytes, ImageFormat]:
    """
    Encode an image for the disk cache.

    Args:
        image: Decoded image
        quality: JPEG quality (ignored for PNG)

    Returns:
        (encoded bytes, chosen format)

    Raises:
        ImageEncodeError: If Pillow fails to encode the image
    """
    image_format = choose_format(image)
    buf = io.BytesIO()
    try:
        if image_format is ImageFormat.PNG:
            if image.mode not in _PNG_MODES:
                image = image.convert("RGBA")
            image.save(buf, format=image_format.pillow_format, optimize=True)
        else:
            if image.mode not in _JPEG_MODES:
                image = image.convert("RGB")
            image.save(buf, format=image_format.pillow_format, quality=quality)
    except (OSError, ValueError, KeyError) as exc:
        raise ImageEncodeError(f"cannot encode {image.mode} image as {image_format.name}: {exc}") from exc

    logger.debug(f"Encoded {image.size[0]}x{image.size[1]} {image.mode} image as {image_format.name}")
    return buf.getvalue(), image_format
