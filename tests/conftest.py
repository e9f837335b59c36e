import base64
import json
from pathlib import Path
from types import SimpleNamespace
from unittest import mock

import pytest
from fastapi.testclient import TestClient

from backend.app import create_app
from backend.config import Settings
from backend.models import ImageInput
from backend.prompt_builder import PromptBuilder
from backend.session_client import StudioService

PROMPTS_DIR = Path(__file__).resolve().parent.parent / "backend" / "prompts"
IMAGE_BYTES = b"\x89PNG\r\n\x1a\nnot-really-a-png"


def text_response(text):
    return SimpleNamespace(text=text)


def audio_response(data):
    """Speech response shaped like the SDK: candidates[0].content.parts[0].inline_data.data."""
    part = SimpleNamespace(inline_data=SimpleNamespace(mime_type="audio/L16;rate=24000", data=data))
    return SimpleNamespace(candidates=[SimpleNamespace(content=SimpleNamespace(parts=[part]))])


def story_json(story="The lighthouse had been dark for years.", prompts=None):
    if prompts is None:
        prompts = ["Who lit the lamp?", "What does the keeper hide?", "Why now?"]
    return json.dumps({"story": story, "prompts": prompts})


@pytest.fixture
def settings():
    return Settings(
        gemini_api_key="test-key",
        chat_model="gemini-2.5-flash",
        vision_model="gemini-2.5-flash",
        story_model="gemini-2.5-flash",
        tts_model="gemini-2.5-flash-preview-tts",
        tts_voice="Kore",
        prompts_dir=PROMPTS_DIR,
    )


@pytest.fixture
def gemini():
    """Stand-in for GeminiClient; coroutine methods are AsyncMocks."""
    fake = mock.Mock()
    fake.start_chat.side_effect = lambda *args, **kwargs: object()
    fake.send_chat_message = mock.AsyncMock(return_value=text_response("Hi there!"))
    fake.generate_content = mock.AsyncMock(return_value=text_response("A cat on a windowsill."))
    fake.generate_structured = mock.AsyncMock(return_value=text_response(story_json()))
    fake.generate_speech = mock.AsyncMock(return_value=audio_response(b"\x00\x01" * 2400))
    return fake


@pytest.fixture
def prompts():
    return PromptBuilder(PROMPTS_DIR)


@pytest.fixture
def studio(gemini, prompts):
    return StudioService(gemini, prompts)


@pytest.fixture
def image():
    return ImageInput(data=base64.b64encode(IMAGE_BYTES).decode("ascii"), mime_type="image/png")


@pytest.fixture
def app(settings, studio):
    return create_app(settings=settings, studio=studio)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client
