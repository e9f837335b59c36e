from __future__ import annotations

import uuid
from typing import List, Literal

from pydantic import BaseModel, Field, field_validator

from .utils import join_paragraphs, strip_data_url_prefix

GENRES = ["Fantasy", "Mystery", "Science Fiction", "Horror", "Romance", "Adventure", "Fairy Tale"]
STYLES = ["Descriptive", "Minimalist", "Poetic", "Humorous", "Noir", "Whimsical"]


class ChatMessage(BaseModel):
    """One displayed chat turn; history is for display only."""
    role: Literal["user", "model"]
    content: str


class ChatRequest(BaseModel):
    """Request payload for the chat API."""
    message: str = Field(min_length=1)


class ChatResponse(BaseModel):
    """Reply text plus the display transcript after the turn."""
    reply: str
    messages: List[ChatMessage]


class ImageInput(BaseModel):
    """Inline image payload: bare base64 data and the declared MIME type."""
    data: str = Field(min_length=1)
    mime_type: str = Field(min_length=1)

    @field_validator("data")
    @classmethod
    def _strip_prefix(cls, value: str) -> str:
        # Accept data URLs from the browser; keep only the payload.
        payload = strip_data_url_prefix(value)
        if not payload:
            raise ValueError("image data is empty")
        return payload


class StoryGenerationResult(BaseModel):
    """Structured decode target of the initial story call."""
    story: str = Field(min_length=1)
    prompts: List[str] = Field(min_length=3, max_length=5)

    @field_validator("story")
    @classmethod
    def _story_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("story is blank")
        return value.strip()

    @field_validator("prompts")
    @classmethod
    def _prompts_not_blank(cls, value: List[str]) -> List[str]:
        if any(not isinstance(item, str) or not item.strip() for item in value):
            raise ValueError("inspiration prompts must be non-empty strings")
        return [item.strip() for item in value]


class StoryState(BaseModel):
    """Accumulated story plus the parameters fixed at generation time."""
    story_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    story: str
    genre: str = Field(min_length=1)
    style: str = Field(min_length=1)
    inspiration_prompts: List[str] = Field(default_factory=list)

    @classmethod
    def from_result(cls, result: StoryGenerationResult, genre: str, style: str) -> "StoryState":
        return cls(story=result.story, genre=genre, style=style, inspiration_prompts=list(result.prompts))

    def append_paragraph(self, paragraph: str) -> "StoryState":
        """Purpose: Return a new state with a paragraph appended after a blank line.
        Inputs/Outputs: Input is the generated paragraph; output is a new StoryState.
        Side Effects / State: None; the current state is left untouched.
        Dependencies: Uses join_paragraphs.
        Failure Modes: A blank paragraph returns an equal copy of the state.
        If Removed: Continuations cannot be threaded into the accumulated story.
        Testing Notes: genre, style, prompts and story_id must carry over unchanged.
        """
        return self.model_copy(update={"story": join_paragraphs(self.story, paragraph)})


class AnalyzeImageRequest(BaseModel):
    """Free-text prompt plus the uploaded image."""
    prompt: str = Field(min_length=1)
    image: ImageInput


class AnalyzeImageResponse(BaseModel):
    text: str


class GenerateStoryRequest(BaseModel):
    """Image plus the genre and style fixed for the story's lifetime."""
    image: ImageInput
    genre: str = Field(min_length=1)
    style: str = Field(min_length=1)


class ContinueStoryRequest(BaseModel):
    """Current story state and the original image."""
    state: StoryState
    image: ImageInput


class ContinueStoryResponse(BaseModel):
    paragraph: str
    state: StoryState
    appended: bool


class SpeechRequest(BaseModel):
    text: str = Field(min_length=1)


class StoryOptions(BaseModel):
    genres: List[str]
    styles: List[str]
    max_image_bytes: int
