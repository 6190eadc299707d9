# Copyright 2025 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# ==============================================================================

from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from typing import Optional

from PIL import Image, ImageOps, UnidentifiedImageError

logger = logging.getLogger(__name__)

OUTPUT_FORMAT = "JPEG"
OUTPUT_CONTENT_TYPE = "image/jpeg"

OPTIMIZED_MAX_EDGE = 1200
OPTIMIZED_QUALITY = 80
THUMBNAIL_MAX_EDGE = 300
THUMBNAIL_QUALITY = 70

# Flattening background for images with transparency.
BACKGROUND_COLOR = (255, 255, 255)


class TranscodeError(Exception):
    """An image variant could not be produced."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.message = message
        self.cause = cause


class UndecodableImage(TranscodeError):
    """The input is empty or not a decodable image."""


@dataclass(frozen=True)
class TranscodedImage:
    """The derived variants of one uploaded image."""

    optimized: bytes
    thumbnail: bytes
    original_size: int
    content_type: str = OUTPUT_CONTENT_TYPE

    @property
    def optimized_size(self) -> int:
        return len(self.optimized)

    @property
    def thumbnail_size(self) -> int:
        return len(self.thumbnail)


def _open_image(raw_bytes: bytes) -> Image.Image:
    """
    Decodes raw bytes into a fully loaded RGB image.

    Args:
        raw_bytes (bytes): The uploaded file contents.

    Returns:
        Image.Image: An RGB image with EXIF orientation applied.

    Raises:
        UndecodableImage: If the bytes are empty, not a decodable image, or
            carry metadata that cannot be applied.
    """
    if not raw_bytes:
        raise UndecodableImage("Image file is empty")
    try:
        img = Image.open(io.BytesIO(raw_bytes))
        # Multi-frame formats (GIF, WebP) keep only the first frame.
        img.seek(0)
        img.load()
        img = ImageOps.exif_transpose(img)
        return _flatten(img)
    except (UnidentifiedImageError, Image.DecompressionBombError) as e:
        raise UndecodableImage(f"Unsupported image format: {e}", cause=e) from e
    except (OSError, ValueError, SyntaxError, KeyError, TypeError) as e:
        raise UndecodableImage(f"Could not decode image: {e}", cause=e) from e


def _flatten(img: Image.Image) -> Image.Image:
    if img.mode == "RGB":
        return img
    if img.mode == "P":
        img = img.convert("RGBA")
    if img.mode in ("RGBA", "LA"):
        background = Image.new("RGB", img.size, BACKGROUND_COLOR)
        background.paste(img.convert("RGBA"), mask=img.convert("RGBA").split()[-1])
        return background
    return img.convert("RGB")


def fit_within(size: tuple[int, int], max_edge: int) -> tuple[int, int]:
    """
    Returns the dimensions that fit `size` within a `max_edge` square.

    The aspect ratio is preserved and images are never enlarged. Neither
    dimension drops below one pixel.
    """
    width, height = size
    longest = max(width, height)
    if longest <= max_edge:
        return width, height
    scale = max_edge / float(longest)
    return max(1, round(width * scale)), max(1, round(height * scale))


def _encode_variant(img: Image.Image, max_edge: int, quality: int) -> bytes:
    target = fit_within(img.size, max_edge)
    variant = img if target == img.size else img.resize(target, Image.LANCZOS)
    buffer = io.BytesIO()
    variant.save(buffer, format=OUTPUT_FORMAT, quality=quality, optimize=True)
    return buffer.getvalue()


def transcode(raw_bytes: bytes) -> TranscodedImage:
    """
    Derives the optimized and thumbnail JPEG variants of an upload.

    The optimized variant has its longest edge capped at 1200px (quality
    80); the thumbnail at 300px (quality 70). Small images are re-encoded
    at their original dimensions.

    Args:
        raw_bytes (bytes): The raw uploaded file.

    Returns:
        TranscodedImage: Both variants plus the original byte size.

    Raises:
        UndecodableImage: If the input cannot be decoded as an image.
        TranscodeError: If encoding either variant fails.
    """
    img = _open_image(raw_bytes)
    try:
        optimized = _encode_variant(img, OPTIMIZED_MAX_EDGE, OPTIMIZED_QUALITY)
        thumbnail = _encode_variant(img, THUMBNAIL_MAX_EDGE, THUMBNAIL_QUALITY)
    except (OSError, ValueError) as e:
        logger.exception("Image encoding failed for %d byte upload", len(raw_bytes))
        raise TranscodeError("Image processing failed", cause=e) from e
    finally:
        img.close()

    if not optimized or not thumbnail:
        raise TranscodeError("Image processing produced an empty variant")

    logger.info(
        "Transcoded image: original=%d optimized=%d thumbnail=%d bytes",
        len(raw_bytes),
        len(optimized),
        len(thumbnail),
    )
    return TranscodedImage(
        optimized=optimized,
        thumbnail=thumbnail,
        original_size=len(raw_bytes),
    )
