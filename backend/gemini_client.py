from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import google.generativeai as genai
from google import genai as google_genai_sdk
from google.genai import types as speech_types
from google.generativeai import types as genai_types

from .config import Settings, require_api_key

logger = logging.getLogger("storylab.gemini")

DEFAULT_SAFETY_SETTINGS = [
    {
        "category": genai_types.HarmCategory.HARM_CATEGORY_HARASSMENT,
        "threshold": genai_types.HarmBlockThreshold.BLOCK_ONLY_HIGH,
    },
    {
        "category": genai_types.HarmCategory.HARM_CATEGORY_HATE_SPEECH,
        "threshold": genai_types.HarmBlockThreshold.BLOCK_ONLY_HIGH,
    },
    {
        "category": genai_types.HarmCategory.HARM_CATEGORY_SEXUALLY_EXPLICIT,
        "threshold": genai_types.HarmBlockThreshold.BLOCK_ONLY_HIGH,
    },
    {
        "category": genai_types.HarmCategory.HARM_CATEGORY_DANGEROUS_CONTENT,
        "threshold": genai_types.HarmBlockThreshold.BLOCK_ONLY_HIGH,
    },
]


class GeminiClient:
    """Thin async wrapper around the Gemini SDKs with model caching and safety settings.

    Every method raises on provider failure; callers decide whether to degrade.
    """

    def __init__(self, settings: Settings) -> None:
        """Purpose: Configure both Gemini SDKs and initialize the model cache.
        Inputs/Outputs: Input is Settings; no return value.
        Side Effects / State: Configures the google-generativeai global API key and
            creates a google-genai client for speech.
        Dependencies: Uses google.generativeai, google.genai and Settings from config.
        Failure Modes: Raises MissingCredentialError if the API key is missing.
        If Removed: No provider call can execute and the app fails at startup.
        Testing Notes: Validate missing key raises and models are cached per name.
        """
        # Configure API key once; speech goes through the newer SDK.
        api_key = require_api_key(settings)
        self._settings = settings
        genai.configure(api_key=api_key)
        self._models: Dict[str, genai.GenerativeModel] = {}
        self._speech_client = google_genai_sdk.Client(api_key=api_key)

    def _model(self, name: str, system_instruction: Optional[str] = None) -> genai.GenerativeModel:
        model_name = _normalize_model_name(name)
        if not model_name:
            raise ValueError("Gemini model name is required")
        # System instructions are bound at construction, so those models are not cached.
        if system_instruction:
            return genai.GenerativeModel(
                model_name,
                system_instruction=system_instruction,
                safety_settings=DEFAULT_SAFETY_SETTINGS,
            )
        if model_name not in self._models:
            self._models[model_name] = genai.GenerativeModel(model_name, safety_settings=DEFAULT_SAFETY_SETTINGS)
        return self._models[model_name]

    def start_chat(self, system_instruction: str, model: Optional[str] = None) -> Any:
        """Purpose: Open a provider-side chat session with a fixed system instruction.
        Inputs/Outputs: Inputs are the instruction and optional model; returns a ChatSession.
        Side Effects / State: None locally; history accumulates inside the session object.
        Dependencies: Uses GenerativeModel.start_chat.
        Failure Modes: Raises ValueError if the model name is empty.
        If Removed: Chat mode has no session to send turns to.
        Testing Notes: Instruction must be passed to the GenerativeModel constructor.
        """
        model_name = model or self._settings.chat_model
        logger.info("op=start_chat model=%s", model_name)
        return self._model(model_name, system_instruction=system_instruction).start_chat(history=[])

    async def send_chat_message(self, chat: Any, message: str) -> Any:
        return await chat.send_message_async(message)

    async def generate_content(
        self,
        contents: List[Any],
        model: Optional[str] = None,
        generation_config: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """Purpose: One-shot multimodal completion for text and inline image parts.
        Inputs/Outputs: Input is a list of parts (strings and inline-data dicts) and an
            optional generation config; returns the raw SDK response.
        Side Effects / State: May add a model to the internal cache.
        Dependencies: Uses GenerativeModel.generate_content_async.
        Failure Modes: Provider and transport errors propagate unchanged.
        If Removed: Image analysis and story generation cannot reach the model.
        Testing Notes: Replace with a stub returning an object that has .text.
        """
        model_name = model or self._settings.vision_model
        kwargs: Dict[str, Any] = {"safety_settings": DEFAULT_SAFETY_SETTINGS}
        if generation_config:
            kwargs["generation_config"] = generation_config
        return await self._model(model_name).generate_content_async(contents, **kwargs)

    async def generate_structured(
        self,
        contents: List[Any],
        response_schema: Dict[str, Any],
        model: Optional[str] = None,
    ) -> Any:
        # JSON mode constrained by the declared schema.
        return await self.generate_content(
            contents,
            model=model or self._settings.story_model,
            generation_config={
                "response_mime_type": "application/json",
                "response_schema": response_schema,
            },
        )

    async def generate_speech(self, prompt: str, voice: Optional[str] = None, model: Optional[str] = None) -> Any:
        """Purpose: Request audio-only output spoken by a prebuilt voice.
        Inputs/Outputs: Inputs are the prompt, voice and model; returns the raw response.
        Side Effects / State: None.
        Dependencies: Uses google-genai's async models.generate_content with
            response_modalities=["AUDIO"] and a prebuilt voice config.
        Failure Modes: Provider and transport errors propagate unchanged.
        If Removed: Read-aloud has no audio source.
        Testing Notes: Stub the client and check the voice name in the config.
        """
        model_name = _normalize_model_name(model or self._settings.tts_model)
        voice_name = voice or self._settings.tts_voice
        config = speech_types.GenerateContentConfig(
            response_modalities=["AUDIO"],
            speech_config=speech_types.SpeechConfig(
                voice_config=speech_types.VoiceConfig(
                    prebuilt_voice_config=speech_types.PrebuiltVoiceConfig(voice_name=voice_name),
                ),
            ),
        )
        logger.debug("op=generate_speech model=%s voice=%s chars=%s", model_name, voice_name, len(prompt))
        return await self._speech_client.aio.models.generate_content(
            model=model_name,
            contents=prompt,
            config=config,
        )


def _normalize_model_name(name: Optional[str]) -> str:
    """Purpose: Normalize model names by stripping prefix and whitespace.
    Inputs/Outputs: Input is a model name string; output is normalized name.
    Side Effects / State: None.
    Dependencies: None; used by GeminiClient.
    Failure Modes: Returns empty string for falsy input.
    If Removed: Model caching and selection may use invalid names and fail.
    Testing Notes: Ensure "models/foo" becomes "foo" and whitespace is trimmed.
    """
    # Strip "models/" prefix and whitespace.
    if not name:
        return ""
    cleaned = name.strip()
    if cleaned.startswith("models/"):
        return cleaned.split("/", 1)[1]
    return cleaned
