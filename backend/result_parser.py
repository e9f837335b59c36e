"""Normalize provider responses into the shapes the studio hands to the UI.

Three kinds of result come back from the model service:
    - plain text (chat, image analysis, continuation): trimmed ``response.text``;
    - schema-constrained JSON (initial story): decoded into StoryGenerationResult;
    - audio (read-aloud): the first inline payload of the first candidate, as base64.

Malformed structured output raises StoryDecodeError, a StoryGenerationError, so
callers see the same error type as for a failed call.
"""

from __future__ import annotations

import base64
import json
import logging
from typing import Any, Optional

from pydantic import ValidationError

from .errors import StoryDecodeError
from .models import StoryGenerationResult
from .utils import strip_code_fence

logger = logging.getLogger("storylab.parser")


def response_text(response: Any) -> str:
    """Return the trimmed text of a response, or an empty string when it has none."""
    text: Optional[str] = getattr(response, "text", None)
    return (text or "").strip()


def parse_story_result(raw: Optional[str]) -> StoryGenerationResult:
    """Purpose: Decode schema-constrained story output into a typed record.
    Inputs/Outputs: Input is the raw response text; output is StoryGenerationResult.
    Side Effects / State: Logs decode failures at WARNING.
    Dependencies: Uses json, strip_code_fence and pydantic validation.
    Failure Modes: Empty text, invalid JSON, a non-object, a missing field, a blank
        story, or fewer than 3 / more than 5 prompts all raise StoryDecodeError.
        No partially decoded result is ever returned.
    If Removed: Story generation cannot hand structured data to the UI.
    Testing Notes: Fenced JSON decodes; two prompts raise; six prompts raise.
    """
    # Trim and unwrap before decoding; everything else is the schema's job.
    cleaned = strip_code_fence(raw or "")
    if not cleaned:
        raise StoryDecodeError("Story response was empty")
    try:
        payload = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        logger.warning("op=parse_story status=invalid_json error=%s", exc)
        raise StoryDecodeError("Story response was not valid JSON") from exc
    if not isinstance(payload, dict):
        raise StoryDecodeError("Story response was not a JSON object")
    try:
        return StoryGenerationResult(**payload)
    except ValidationError as exc:
        logger.warning("op=parse_story status=schema_mismatch errors=%s", exc.error_count())
        raise StoryDecodeError("Story response did not match the expected structure") from exc


def extract_audio(response: Any) -> Optional[str]:
    """Purpose: Pull the first inline audio payload out of a speech response.
    Inputs/Outputs: Input is the raw SDK response; output is base64 text or None.
    Side Effects / State: None.
    Dependencies: Walks candidates[0].content.parts[0].inline_data.data.
    Failure Modes: Any missing level yields None; never raises.
    If Removed: Read-aloud cannot find the audio in the response.
    Testing Notes: Bytes data is base64-encoded; str data is returned unchanged.
    """
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        return None
    content = getattr(candidates[0], "content", None)
    parts = getattr(content, "parts", None) or []
    if not parts:
        return None
    inline_data = getattr(parts[0], "inline_data", None)
    data = getattr(inline_data, "data", None)
    if not data:
        return None
    if isinstance(data, (bytes, bytearray)):
        return base64.b64encode(bytes(data)).decode("ascii")
    return str(data)
