from __future__ import annotations


class StudioError(Exception):
    """Base class for errors raised by the storylab backend."""


class MissingCredentialError(StudioError):
    """Raised at startup when no Gemini API key is configured."""


class ImageValidationError(StudioError):
    """Upload rejected before encoding (too large, empty, not an image)."""

    def __init__(self, message: str, status_code: int = 422) -> None:
        super().__init__(message)
        self.status_code = status_code


class EncodingError(StudioError):
    """Reading or base64-encoding an uploaded image failed."""


class StoryGenerationError(StudioError):
    """Initial story generation failed; the caller offers a retry."""


class StoryDecodeError(StoryGenerationError):
    """Provider returned structured output that does not match the story schema."""


class PlaybackError(StudioError):
    """Returned audio could not be decoded or rendered."""


class ActionInProgressError(StudioError):
    """The same action is already running and must finish first."""

    def __init__(self, key: str) -> None:
        super().__init__(f"{key} is already in progress")
        self.key = key
