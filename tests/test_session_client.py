"""
Unit tests for StudioService - per-operation error policy and the chat session.

The provider is replaced by a Mock with AsyncMock coroutines, so no network
calls are made.

Run with: python -m pytest tests/test_session_client.py -v
"""

import asyncio
import base64

import pytest

from backend.errors import StoryDecodeError, StoryGenerationError
from backend.prompt_builder import STORY_RESPONSE_SCHEMA
from backend.session_client import (
    ANALYZE_FALLBACK,
    CHAT_FALLBACK,
    CONTINUE_FALLBACK,
)
from backend.models import StoryState
from conftest import IMAGE_BYTES, audio_response, story_json, text_response


class TestChatSession:
    def test_session_created_once_for_many_turns(self, studio, gemini):
        async def run():
            return [await studio.send_chat_turn(f"message {i}") for i in range(3)]

        replies = asyncio.run(run())

        assert replies == ["Hi there!"] * 3
        assert gemini.start_chat.call_count == 1
        assert gemini.send_chat_message.await_count == 3

    def test_turns_go_to_the_same_session(self, studio, gemini):
        async def run():
            await studio.send_chat_turn("one")
            await studio.send_chat_turn("two")

        asyncio.run(run())

        sessions = {call.args[0] for call in gemini.send_chat_message.await_args_list}
        assert len(sessions) == 1
        assert [call.args[1] for call in gemini.send_chat_message.await_args_list] == ["one", "two"]

    def test_system_instruction_is_fixed(self, studio, gemini):
        asyncio.run(studio.send_chat_turn("hello"))
        gemini.start_chat.assert_called_once_with("You are a friendly and helpful assistant.")

    def test_concurrent_get_or_create_is_idempotent(self, studio, gemini):
        async def run():
            return await asyncio.gather(*(studio.get_chat_session() for _ in range(5)))

        sessions = asyncio.run(run())

        assert all(session is sessions[0] for session in sessions)
        assert gemini.start_chat.call_count == 1

    def test_send_failure_returns_apology(self, studio, gemini):
        gemini.send_chat_message.side_effect = RuntimeError("quota exceeded")
        assert asyncio.run(studio.send_chat_turn("hello")) == CHAT_FALLBACK

    def test_failed_session_creation_is_retried_next_turn(self, studio, gemini):
        session = object()
        gemini.start_chat.side_effect = [RuntimeError("boom"), session]

        async def run():
            return await studio.send_chat_turn("first"), await studio.send_chat_turn("second")

        first, second = asyncio.run(run())

        assert first == CHAT_FALLBACK
        assert second == "Hi there!"
        assert gemini.start_chat.call_count == 2
        assert gemini.send_chat_message.await_args.args[0] is session


class TestAnalyzeImage:
    def test_prompt_and_image_are_sent(self, studio, gemini, image):
        text = asyncio.run(studio.analyze_image("Describe this.", image))

        assert text == "A cat on a windowsill."
        contents = gemini.generate_content.await_args.args[0]
        assert contents == ["Describe this.", {"mime_type": "image/png", "data": IMAGE_BYTES}]

    def test_failure_returns_apology(self, studio, gemini, image):
        gemini.generate_content.side_effect = TimeoutError()
        assert asyncio.run(studio.analyze_image("Describe this.", image)) == ANALYZE_FALLBACK


class TestGenerateStory:
    def test_returns_structured_result(self, studio, gemini, image):
        result = asyncio.run(studio.generate_story(image, "Mystery", "Minimalist"))

        assert result.story
        assert 3 <= len(result.prompts) <= 5
        contents, schema = gemini.generate_structured.await_args.args
        assert schema == STORY_RESPONSE_SCHEMA
        assert contents[0] == {"mime_type": "image/png", "data": IMAGE_BYTES}
        assert "Mystery genre" in contents[1]
        assert "Minimalist style" in contents[1]

    def test_provider_failure_propagates(self, studio, gemini, image):
        gemini.generate_structured.side_effect = ConnectionError("reset")
        with pytest.raises(StoryGenerationError):
            asyncio.run(studio.generate_story(image, "Mystery", "Minimalist"))

    def test_garbage_output_raises_same_error_kind(self, studio, gemini, image):
        gemini.generate_structured.return_value = text_response("Once upon a time, no JSON here.")
        with pytest.raises(StoryGenerationError) as excinfo:
            asyncio.run(studio.generate_story(image, "Mystery", "Minimalist"))
        assert isinstance(excinfo.value, StoryDecodeError)

    def test_too_few_prompts_is_never_returned(self, studio, gemini, image):
        gemini.generate_structured.return_value = text_response(story_json(prompts=["only", "two"]))
        with pytest.raises(StoryGenerationError):
            asyncio.run(studio.generate_story(image, "Mystery", "Minimalist"))


class TestContinueStory:
    STORY = "The fog rolled in.\n\nSomeone knocked twice."

    def test_prompt_carries_story_and_fixed_parameters(self, studio, gemini, image):
        gemini.generate_content.return_value = text_response("Nobody was there.")

        paragraph = asyncio.run(studio.continue_story(self.STORY, image, "Mystery", "Minimalist"))

        assert paragraph == "Nobody was there."
        contents = gemini.generate_content.await_args.args[0]
        assert contents[0]["mime_type"] == "image/png"
        assert self.STORY in contents[1]
        assert "same Mystery genre and Minimalist style" in contents[1]

    def test_echoed_paragraph_is_not_repeated(self, studio, gemini, image):
        gemini.generate_content.return_value = text_response("Someone knocked twice.\n\nNobody was there.")

        paragraph = asyncio.run(studio.continue_story(self.STORY, image, "Mystery", "Minimalist"))

        assert "Someone knocked twice." not in paragraph

    def test_failure_returns_apology(self, studio, gemini, image):
        gemini.generate_content.side_effect = RuntimeError("500")
        assert asyncio.run(studio.continue_story(self.STORY, image, "Mystery", "Minimalist")) == CONTINUE_FALLBACK

    def test_state_gets_paragraph_after_blank_line(self, studio, gemini, image):
        gemini.generate_content.return_value = text_response("Nobody was there.")
        state = StoryState(story=self.STORY, genre="Mystery", style="Minimalist", inspiration_prompts=["a", "b", "c"])

        paragraph, updated, appended = asyncio.run(studio.continue_story_state(state, image))

        assert appended
        assert updated.story == self.STORY + "\n\nNobody was there."
        assert updated.inspiration_prompts == ["a", "b", "c"]
        assert gemini.generate_structured.await_count == 0

    def test_apology_is_not_appended(self, studio, gemini, image):
        gemini.generate_content.side_effect = RuntimeError("500")
        state = StoryState(story=self.STORY, genre="Mystery", style="Minimalist")

        paragraph, updated, appended = asyncio.run(studio.continue_story_state(state, image))

        assert paragraph == CONTINUE_FALLBACK
        assert not appended
        assert updated.story == self.STORY

    def test_reply_matching_apology_text_is_still_appended(self, studio, gemini, image):
        gemini.generate_content.return_value = text_response(CONTINUE_FALLBACK)
        state = StoryState(story=self.STORY, genre="Mystery", style="Minimalist")

        paragraph, updated, appended = asyncio.run(studio.continue_story_state(state, image))

        assert appended
        assert paragraph == CONTINUE_FALLBACK
        assert updated.story == self.STORY + "\n\n" + CONTINUE_FALLBACK

    def test_empty_reply_counts_as_failure(self, studio, gemini, image):
        gemini.generate_content.return_value = text_response("   ")
        state = StoryState(story=self.STORY, genre="Mystery", style="Minimalist")

        paragraph, updated, appended = asyncio.run(studio.continue_story_state(state, image))

        assert paragraph == CONTINUE_FALLBACK
        assert not appended
        assert updated.story == self.STORY


class TestSynthesizeSpeech:
    def test_returns_base64_audio(self, studio, gemini):
        audio = asyncio.run(studio.synthesize_speech("Once upon a time."))

        assert base64.b64decode(audio) == b"\x00\x01" * 2400
        gemini.generate_speech.assert_awaited_once_with("Say with a dramatic, narrative tone: Once upon a time.")

    def test_no_audio_part_returns_none(self, studio, gemini):
        gemini.generate_speech.return_value = audio_response(None)
        assert asyncio.run(studio.synthesize_speech("text")) is None

    def test_provider_exception_returns_none(self, studio, gemini):
        gemini.generate_speech.side_effect = RuntimeError("tts unavailable")
        assert asyncio.run(studio.synthesize_speech("text")) is None
