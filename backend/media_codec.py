from __future__ import annotations

import base64
import logging
from typing import Optional, Protocol

from .errors import EncodingError, ImageValidationError
from .models import ImageInput
from .utils import strip_data_url_prefix

logger = logging.getLogger("storylab.codec")

TOO_LARGE_MESSAGE = "Image size should be less than 4MB."


class ImageUpload(Protocol):
    """The parts of an uploaded file the codec relies on (matches Starlette's UploadFile)."""
    content_type: Optional[str]

    async def read(self, size: int = -1) -> bytes:
        ...


def validate_image_upload(size: Optional[int], mime_type: Optional[str], limit: int) -> None:
    """Purpose: Reject an upload before any encoding or network call happens.
    Inputs/Outputs: Inputs are the declared size, MIME type and byte limit; no return.
    Side Effects / State: None.
    Dependencies: Raises ImageValidationError; called by the upload route.
    Failure Modes: Too large -> status 413; empty or non-image -> status 422.
        An unknown size (None) passes here and is checked after reading.
    If Removed: Oversized files reach the codec and the provider.
    Testing Notes: 5 MiB PNG raises with 413; 2 MB JPEG passes.
    """
    if size is not None and size > limit:
        raise ImageValidationError(TOO_LARGE_MESSAGE, status_code=413)
    if size == 0:
        raise ImageValidationError("The selected file is empty.")
    if not mime_type or not mime_type.lower().startswith("image/"):
        raise ImageValidationError("Please upload an image file.")


async def encode_image(upload: ImageUpload, limit: Optional[int] = None) -> ImageInput:
    """Purpose: Convert an uploaded image into the inline payload the model API expects.
    Inputs/Outputs: Input is an upload with async read(); output is ImageInput with bare
        base64 data and the declared MIME type, unmodified.
    Side Effects / State: Consumes the upload stream.
    Dependencies: Uses base64 and strip_data_url_prefix.
    Failure Modes: Read failures raise EncodingError. When limit is given and the bytes
        read exceed it, ImageValidationError is raised instead of encoding.
    If Removed: No image reaches the analyzer or the story generator.
    Testing Notes: Output data has no "data:" header; mime_type equals content_type.
    """
    mime_type = upload.content_type or ""
    try:
        raw = await upload.read()
    except Exception as exc:
        logger.exception("op=encode_image status=read_failed mime=%s", mime_type)
        raise EncodingError("Failed to read the selected image.") from exc
    if limit is not None and len(raw) > limit:
        raise ImageValidationError(TOO_LARGE_MESSAGE, status_code=413)
    if not raw:
        raise EncodingError("The selected image has no content.")

    # Browsers may hand over a data URL; keep only its payload.
    if raw[:5].lower() == b"data:":
        payload = strip_data_url_prefix(raw.decode("ascii", errors="ignore"))
    else:
        payload = base64.b64encode(raw).decode("ascii")
    logger.debug("op=encode_image mime=%s bytes=%s", mime_type, len(raw))
    return ImageInput(data=payload, mime_type=mime_type)


def image_part(image: ImageInput) -> dict:
    """Inline-data part for google-generativeai contents (bytes, not base64 text)."""
    try:
        data = base64.b64decode(image.data, validate=True)
    except ValueError as exc:
        raise EncodingError("Image payload is not valid base64.") from exc
    return {"mime_type": image.mime_type, "data": data}
