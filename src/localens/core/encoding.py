"""Image loading and base64 transport encoding.

The Gemini request carries the image inline, so every payload passes
through here first. Failures surface as EncodingError before any network
activity happens.
"""

from __future__ import annotations

import base64
import binascii
import io
import logging
from pathlib import Path

from PIL import Image, UnidentifiedImageError

from localens.core.models import ImagePayload
from localens.errors import EncodingError

logger = logging.getLogger(__name__)

SUPPORTED_MIME_TYPES: frozenset[str] = frozenset({"image/png", "image/jpeg", "image/webp"})

_DATA_URL_MARKER = ";base64,"


def detect_mime_type(data: bytes) -> str:
    """Identify an image's MIME type from its content.

    Raises:
        EncodingError: If Pillow cannot identify the image or the type is
            not one the service accepts.
    """
    try:
        with Image.open(io.BytesIO(data)) as img:
            fmt = img.format
    except (UnidentifiedImageError, OSError) as e:
        raise EncodingError(f"Could not read image data: {e}") from e

    mime_type = Image.MIME.get(fmt or "", "")
    if mime_type not in SUPPORTED_MIME_TYPES:
        supported = ", ".join(sorted(SUPPORTED_MIME_TYPES))
        raise EncodingError(f"Unsupported image type '{fmt}'. Supported types: {supported}")
    return mime_type


def load_image(path: Path | str) -> ImagePayload:
    """Read an image file into an ImagePayload.

    Args:
        path: Path to a PNG, JPEG or WebP file.

    Returns:
        Immutable payload with bytes and detected MIME type.

    Raises:
        EncodingError: If the file cannot be read or is not a supported image.
    """
    path = Path(path)
    try:
        data = path.read_bytes()
    except OSError as e:
        raise EncodingError(f"Could not read image file: {e.strerror or e}", path=str(path)) from e

    if not data:
        raise EncodingError("Image file is empty.", path=str(path))

    try:
        mime_type = detect_mime_type(data)
    except EncodingError as e:
        raise EncodingError(e.message, path=str(path)) from e

    logger.debug(f"Loaded image {path.name}: {mime_type}, {len(data) / 1024:.1f} KB")
    return ImagePayload(data=data, mime_type=mime_type, filename=path.name)


def payload_from_bytes(
    data: bytes,
    mime_type: str | None = None,
    filename: str | None = None,
) -> ImagePayload:
    """Wrap in-memory image bytes, detecting the MIME type when not given."""
    if not data:
        raise EncodingError("Image data is empty.")
    return ImagePayload(
        data=data,
        mime_type=mime_type or detect_mime_type(data),
        filename=filename,
    )


def to_data_url(payload: ImagePayload) -> str:
    """Render the payload as a ``data:<mime>;base64,<data>`` URL."""
    encoded = base64.b64encode(payload.data).decode("ascii")
    return f"data:{payload.mime_type}{_DATA_URL_MARKER}{encoded}"


def strip_data_url_prefix(data_url: str) -> str:
    """Return only the base64 body of a data URL.

    Raises:
        EncodingError: If the value is not a base64 data URL or has no body.
    """
    if not isinstance(data_url, str):
        raise EncodingError("Image reader did not return a string.")

    header, sep, body = data_url.partition(",")
    if not sep or not header.startswith("data:") or not header.endswith(";base64"):
        raise EncodingError("Could not extract base64 string from file.")
    if not body:
        raise EncodingError("Could not extract base64 string from file.")
    return body


def encode_image(payload: ImagePayload) -> str:
    """Encode an image payload as base64 text with no data-URL prefix.

    Raises:
        EncodingError: If the payload is empty or cannot be encoded.
    """
    if not payload.data:
        raise EncodingError("Could not extract base64 string from file.")
    return strip_data_url_prefix(to_data_url(payload))


def decode_image(encoded: str) -> bytes:
    """Decode base64 text produced by encode_image back to bytes.

    Raises:
        EncodingError: If the text is not valid base64.
    """
    try:
        return base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as e:
        raise EncodingError(f"Invalid base64 image data: {e}") from e
