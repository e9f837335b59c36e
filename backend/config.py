from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from .errors import MissingCredentialError

BASE_DIR = Path(__file__).resolve().parent

DEFAULT_MODEL = "gemini-2.5-flash"
DEFAULT_TTS_MODEL = "gemini-2.5-flash-preview-tts"
DEFAULT_TTS_VOICE = "Kore"
DEFAULT_MAX_IMAGE_BYTES = 4 * 1024 * 1024


@dataclass(frozen=True)
class Settings:
    """Configuration container for models, voice, and upload limits."""
    gemini_api_key: str
    chat_model: str
    vision_model: str
    story_model: str
    tts_model: str
    tts_voice: str
    prompts_dir: Path
    max_image_bytes: int = DEFAULT_MAX_IMAGE_BYTES
    audio_sample_rate: int = 24000


def load_settings() -> Settings:
    """Purpose: Load configuration from environment variables and defaults.
    Inputs/Outputs: No inputs; returns a Settings instance.
    Side Effects / State: Reads environment variables.
    Dependencies: Uses os.getenv and BASE_DIR for the prompts directory.
    Failure Modes: Invalid MAX_IMAGE_BYTES/AUDIO_SAMPLE_RATE values raise ValueError.
        A missing API key is not checked here; see require_api_key.
    If Removed: App cannot configure models and fails at startup.
    Testing Notes: Verify defaults and overrides via environment variables.
    """
    # Per-operation models fall back to GEMINI_MODEL, then the flash default.
    shared_model = os.getenv("GEMINI_MODEL", DEFAULT_MODEL)
    return Settings(
        gemini_api_key=os.getenv("GEMINI_API_KEY") or os.getenv("API_KEY", ""),
        chat_model=os.getenv("GEMINI_CHAT_MODEL") or shared_model,
        vision_model=os.getenv("GEMINI_VISION_MODEL") or shared_model,
        story_model=os.getenv("GEMINI_STORY_MODEL") or shared_model,
        tts_model=os.getenv("GEMINI_TTS_MODEL", DEFAULT_TTS_MODEL),
        tts_voice=os.getenv("GEMINI_TTS_VOICE", DEFAULT_TTS_VOICE),
        prompts_dir=(BASE_DIR / "prompts").resolve(),
        max_image_bytes=int(os.getenv("MAX_IMAGE_BYTES", str(DEFAULT_MAX_IMAGE_BYTES))),
        audio_sample_rate=int(os.getenv("AUDIO_SAMPLE_RATE", "24000")),
    )


def require_api_key(settings: Settings) -> str:
    """Return the configured API key or refuse to start without one."""
    if not settings.gemini_api_key.strip():
        raise MissingCredentialError("GEMINI_API_KEY (or API_KEY) environment variable not set")
    return settings.gemini_api_key.strip()
