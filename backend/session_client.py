"""Request orchestration between the browser page and the Gemini service.

Role:
    Owns the single chat session and the one-shot calls used by the image
    analyzer, the story starter and read-aloud. Each operation has a fixed
    error-handling mode:

    - chat turn, image analysis, continuation: soft. Failures are logged and a
      fixed apology string is returned.
    - speech synthesis: soft. Failures and empty audio both return None.
    - story generation: hard. Failures raise StoryGenerationError so the page
      can offer a retry.

No operation retries on its own; every retry is a new user action.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional, Tuple

from .errors import StoryGenerationError
from .gemini_client import GeminiClient
from .media_codec import image_part
from .models import ImageInput, StoryGenerationResult, StoryState
from .prompt_builder import STORY_RESPONSE_SCHEMA, PromptBuilder
from .result_parser import extract_audio, parse_story_result, response_text
from .utils import strip_repeated_paragraph

logger = logging.getLogger("storylab.studio")

CHAT_FALLBACK = "Sorry, I encountered an error. Please try again."
ANALYZE_FALLBACK = "Sorry, I couldn't analyze the image. Please try again."
CONTINUE_FALLBACK = "Sorry, I couldn't continue the story. Please try again."
STORY_FAILURE = "Failed to generate story. Please try again."


class StudioService:
    """Chat session owner and one-shot request functions for the three modes."""

    def __init__(self, gemini: GeminiClient, prompts: PromptBuilder) -> None:
        """Purpose: Wire the provider wrapper and prompt templates together.
        Inputs/Outputs: Inputs are a GeminiClient and a PromptBuilder; no return value.
        Side Effects / State: Creates the (empty) chat session slot and its lock.
        Dependencies: GeminiClient for calls, PromptBuilder for instructions.
        Failure Modes: None; the chat session is created lazily.
        If Removed: The API has nothing to delegate to.
        Testing Notes: Pass a fake client exposing the GeminiClient coroutine methods.
        """
        self._gemini = gemini
        self._prompts = prompts
        self._chat: Optional[Any] = None
        self._chat_lock = asyncio.Lock()

    async def get_chat_session(self) -> Any:
        """Purpose: Return the chat session, creating it on first use.
        Inputs/Outputs: No inputs; returns the provider ChatSession.
        Side Effects / State: Sets self._chat once and logs the creation.
        Dependencies: GeminiClient.start_chat and the chat system instruction.
        Failure Modes: Errors from start_chat propagate and leave the slot empty,
            so the next call tries again.
        If Removed: Every chat turn would start a new conversation.
        Testing Notes: Concurrent callers must all receive the same session object.
        """
        # Check and create under one lock so concurrent callers cannot both create.
        async with self._chat_lock:
            if self._chat is None:
                self._chat = self._gemini.start_chat(self._prompts.chat_system_instruction())
                logger.info("op=start_chat status=created")
            return self._chat

    async def send_chat_turn(self, message: str) -> str:
        """Send one turn on the shared session; the provider keeps the history."""
        try:
            chat = await self.get_chat_session()
            response = await self._gemini.send_chat_message(chat, message)
            reply = response_text(response)
        except Exception:
            logger.exception("op=chat status=fallback")
            return CHAT_FALLBACK
        logger.debug("op=chat status=ok chars=%s", len(reply))
        return reply

    async def analyze_image(self, prompt: str, image: ImageInput) -> str:
        """Stateless prompt-plus-image call; the prompt is sent as typed."""
        try:
            contents = [self._prompts.image_analysis(prompt), image_part(image)]
            response = await self._gemini.generate_content(contents)
            text = response_text(response)
        except Exception:
            logger.exception("op=analyze_image status=fallback mime=%s", image.mime_type)
            return ANALYZE_FALLBACK
        logger.debug("op=analyze_image status=ok chars=%s", len(text))
        return text

    async def generate_story(self, image: ImageInput, genre: str, style: str) -> StoryGenerationResult:
        """Purpose: Generate an opening paragraph plus inspiration prompts for an image.
        Inputs/Outputs: Inputs are the image, genre and style; output is a validated
            StoryGenerationResult with a non-empty story and 3 to 5 prompts.
        Side Effects / State: None beyond logging.
        Dependencies: PromptBuilder.story_generation, GeminiClient.generate_structured,
            parse_story_result.
        Failure Modes: Provider errors and undecodable output both raise
            StoryGenerationError (the latter as StoryDecodeError). EncodingError from an
            invalid image payload propagates as itself.
        If Removed: The story starter cannot begin a story.
        Testing Notes: Inject a failing stub and a garbage-JSON stub; both must raise.
        """
        contents = [image_part(image), self._prompts.story_generation(genre, style)]
        try:
            response = await self._gemini.generate_structured(contents, STORY_RESPONSE_SCHEMA)
            raw = response_text(response)
        except Exception as exc:
            logger.exception("op=generate_story status=provider_error genre=%s style=%s", genre, style)
            raise StoryGenerationError(STORY_FAILURE) from exc
        result = parse_story_result(raw)
        logger.info(
            "op=generate_story status=ok genre=%s style=%s prompts=%s",
            genre,
            style,
            len(result.prompts),
        )
        return result

    async def continue_story(self, story_so_far: str, image: ImageInput, genre: str, style: str) -> str:
        """Purpose: Produce exactly the next paragraph of an existing story.
        Inputs/Outputs: Inputs are the full story so far, the original image, and the
            genre/style fixed at generation time; output is the new paragraph.
        Side Effects / State: None beyond logging.
        Dependencies: PromptBuilder.story_continuation, strip_repeated_paragraph.
        Failure Modes: Any failure, or a reply that only echoes the previous
            paragraph, returns CONTINUE_FALLBACK.
        If Removed: Stories cannot grow past the opening paragraph.
        Testing Notes: An echoed final paragraph must not appear in the output.
        """
        paragraph = await self._next_paragraph(story_so_far, image, genre, style)
        return CONTINUE_FALLBACK if paragraph is None else paragraph

    async def _next_paragraph(self, story_so_far: str, image: ImageInput, genre: str, style: str) -> Optional[str]:
        # None on failure; callers map it to CONTINUE_FALLBACK.
        try:
            contents = [image_part(image), self._prompts.story_continuation(story_so_far, genre, style)]
            response = await self._gemini.generate_content(contents)
            paragraph = strip_repeated_paragraph(story_so_far, response_text(response))
        except Exception:
            logger.exception("op=continue_story status=fallback genre=%s style=%s", genre, style)
            return None
        if not paragraph:
            logger.warning("op=continue_story status=empty genre=%s style=%s", genre, style)
            return None
        logger.debug("op=continue_story status=ok chars=%s", len(paragraph))
        return paragraph

    async def continue_story_state(self, state: StoryState, image: ImageInput) -> Tuple[str, StoryState, bool]:
        """Continue a StoryState; the apology is returned but never appended to the story."""
        paragraph = await self._next_paragraph(state.story, image, state.genre, state.style)
        if paragraph is None:
            return CONTINUE_FALLBACK, state, False
        return paragraph, state.append_paragraph(paragraph), True

    async def synthesize_speech(self, text: str) -> Optional[str]:
        """Purpose: Narrate text with the fixed voice and return base64 audio.
        Inputs/Outputs: Input is the story text; output is base64 audio or None.
        Side Effects / State: None beyond logging.
        Dependencies: PromptBuilder.speech, GeminiClient.generate_speech, extract_audio.
        Failure Modes: Never raises. Provider errors and responses without audio
            both return None.
        If Removed: Read-aloud has nothing to play.
        Testing Notes: Both an empty-response stub and a raising stub return None.
        """
        try:
            response = await self._gemini.generate_speech(self._prompts.speech(text))
        except Exception:
            logger.exception("op=speech status=fallback chars=%s", len(text))
            return None
        audio = extract_audio(response)
        if audio is None:
            logger.warning("op=speech status=no_audio chars=%s", len(text))
        return audio
