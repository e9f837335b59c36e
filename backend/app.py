from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv
from fastapi import FastAPI, File, Request, UploadFile
from fastapi.responses import FileResponse, JSONResponse, Response
from fastapi.staticfiles import StaticFiles

from .config import Settings, load_settings, require_api_key
from .errors import (
    ActionInProgressError,
    EncodingError,
    ImageValidationError,
    PlaybackError,
    StoryGenerationError,
)
from .gemini_client import GeminiClient
from .media_codec import encode_image, validate_image_upload
from .models import (
    GENRES,
    STYLES,
    AnalyzeImageRequest,
    AnalyzeImageResponse,
    ChatMessage,
    ChatRequest,
    ChatResponse,
    ContinueStoryRequest,
    ContinueStoryResponse,
    GenerateStoryRequest,
    ImageInput,
    SpeechRequest,
    StoryOptions,
    StoryState,
)
from .playback import AudioPlayer
from .prompt_builder import PromptBuilder
from .session_client import StudioService
from .session_store import ChatTranscript, InFlightGate

BASE_DIR = Path(__file__).resolve().parent
FRONTEND_DIR = (BASE_DIR / ".." / "frontend").resolve()
ENV_PATH = BASE_DIR / ".env"

NO_AUDIO_MESSAGE = "Could not generate audio for the story."

log_level_name = os.getenv("LOG_LEVEL", "INFO").upper()
log_level = getattr(logging, log_level_name, logging.INFO)
if not logging.getLogger().handlers:
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

logging.getLogger("storylab").setLevel(log_level)
logger = logging.getLogger("storylab.api")


def create_app(
    settings: Optional[Settings] = None,
    studio: Optional[StudioService] = None,
    frontend_dir: Path = FRONTEND_DIR,
) -> FastAPI:
    """Purpose: Build the FastAPI app that serves the page and the studio API.
    Inputs/Outputs: Optional Settings and StudioService (injected in tests); returns
        a configured FastAPI instance.
    Side Effects / State: Loads .env, configures the Gemini SDKs when no studio is
        given, and holds the chat transcript and in-flight gates in memory.
    Dependencies: load_settings, GeminiClient, PromptBuilder, StudioService, AudioPlayer.
    Failure Modes: Raises MissingCredentialError without an API key, so the server
        refuses to start. Missing frontend_dir raises from StaticFiles.
    If Removed: Nothing serves the page or the API.
    Testing Notes: Inject a StudioService over a fake client and use TestClient.
    """
    # Credential check happens before anything else is built.
    if settings is None:
        if ENV_PATH.exists():
            load_dotenv(ENV_PATH, override=True)
        settings = load_settings()
    require_api_key(settings)
    if studio is None:
        studio = StudioService(GeminiClient(settings), PromptBuilder(settings.prompts_dir))

    app = FastAPI(title="Storylab Creative Writing Partner")
    app.mount("/static", StaticFiles(directory=frontend_dir), name="static")

    transcript = ChatTranscript()
    gate = InFlightGate()
    player = AudioPlayer(sample_rate=settings.audio_sample_rate)
    app.state.settings = settings
    app.state.studio = studio
    app.state.transcript = transcript
    app.state.gate = gate

    @app.exception_handler(ImageValidationError)
    async def _image_validation_error(request: Request, exc: ImageValidationError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content={"detail": str(exc)})

    @app.exception_handler(EncodingError)
    async def _encoding_error(request: Request, exc: EncodingError) -> JSONResponse:
        return JSONResponse(status_code=422, content={"detail": str(exc)})

    @app.exception_handler(StoryGenerationError)
    async def _story_error(request: Request, exc: StoryGenerationError) -> JSONResponse:
        # Provider failure and unparseable output look the same to the page.
        return JSONResponse(
            status_code=502,
            content={"detail": "Failed to generate story. Please try again.", "retryable": True},
        )

    @app.exception_handler(PlaybackError)
    async def _playback_error(request: Request, exc: PlaybackError) -> JSONResponse:
        return JSONResponse(status_code=500, content={"detail": "Failed to play audio. Please try again."})

    @app.exception_handler(ActionInProgressError)
    async def _in_progress(request: Request, exc: ActionInProgressError) -> JSONResponse:
        return JSONResponse(status_code=409, content={"detail": str(exc)})

    @app.get("/", include_in_schema=False)
    def serve_index() -> FileResponse:
        # Serve the static index.html from the frontend directory.
        return FileResponse(frontend_dir / "index.html")

    @app.post("/api/images", response_model=ImageInput)
    async def upload_image(file: UploadFile = File(...)) -> ImageInput:
        """Purpose: Validate and encode an uploaded image for later requests.
        Inputs/Outputs: Multipart file; returns ImageInput (bare base64 + MIME type).
        Side Effects / State: None; the page keeps the ImageInput.
        Dependencies: validate_image_upload, encode_image.
        Failure Modes: Too large -> 413; not an image -> 422; read failure -> 422.
            Rejected uploads never reach the codec or the provider.
        If Removed: The analyzer and story starter have no image to send.
        Testing Notes: Post 5 MiB and verify 413 with the size message.
        """
        validate_image_upload(file.size, file.content_type, settings.max_image_bytes)
        image = await encode_image(file, limit=settings.max_image_bytes)
        logger.info("route=images mime=%s", image.mime_type)
        return image

    @app.post("/api/chat", response_model=ChatResponse)
    async def chat(request: ChatRequest) -> ChatResponse:
        """Purpose: Send one chat turn on the shared session.
        Inputs/Outputs: Input is ChatRequest; output is the reply and the transcript.
        Side Effects / State: Appends the user and model messages to the transcript.
        Dependencies: StudioService.send_chat_turn, ChatTranscript, InFlightGate.
        Failure Modes: Provider errors come back as the apology text (200);
            a second send while one is running is rejected with 409.
        If Removed: Chat mode is unavailable.
        Testing Notes: Two sends create one session and four transcript entries.
        """
        async with gate.hold("chat"):
            transcript.add("user", request.message)
            reply = await studio.send_chat_turn(request.message)
            transcript.add("model", reply)
        return ChatResponse(reply=reply, messages=transcript.messages())

    @app.get("/api/chat/history", response_model=List[ChatMessage])
    def chat_history() -> List[ChatMessage]:
        return transcript.messages()

    @app.post("/api/analyze", response_model=AnalyzeImageResponse)
    async def analyze(request: AnalyzeImageRequest) -> AnalyzeImageResponse:
        async with gate.hold("analyze"):
            text = await studio.analyze_image(request.prompt, request.image)
        return AnalyzeImageResponse(text=text)

    @app.get("/api/story/options", response_model=StoryOptions)
    def story_options() -> StoryOptions:
        return StoryOptions(genres=GENRES, styles=STYLES, max_image_bytes=settings.max_image_bytes)

    @app.post("/api/story", response_model=StoryState)
    async def generate_story(request: GenerateStoryRequest) -> StoryState:
        """Purpose: Start a story from an image, genre and style.
        Inputs/Outputs: Input is GenerateStoryRequest; output is a fresh StoryState.
        Side Effects / State: None server-side; the page keeps the state.
        Dependencies: StudioService.generate_story.
        Failure Modes: StoryGenerationError -> 502 with retryable=true.
        If Removed: The story starter cannot begin.
        Testing Notes: A garbage-JSON provider stub must yield 502, not a partial story.
        """
        async with gate.hold("story"):
            result = await studio.generate_story(request.image, request.genre, request.style)
        return StoryState.from_result(result, request.genre, request.style)

    @app.post("/api/story/continue", response_model=ContinueStoryResponse)
    async def continue_story(request: ContinueStoryRequest) -> ContinueStoryResponse:
        # One continuation per story at a time keeps paragraphs in order.
        async with gate.hold(f"continue:{request.state.story_id}"):
            paragraph, state, appended = await studio.continue_story_state(request.state, request.image)
        logger.info("route=story_continue story=%s appended=%s", state.story_id, appended)
        return ContinueStoryResponse(paragraph=paragraph, state=state, appended=appended)

    @app.post("/api/speech")
    async def speech(request: SpeechRequest) -> Response:
        """Purpose: Narrate text and return playable WAV audio.
        Inputs/Outputs: Input is SpeechRequest; output is audio/wav bytes.
        Side Effects / State: None.
        Dependencies: StudioService.synthesize_speech, AudioPlayer.play.
        Failure Modes: No audio -> 404 with NO_AUDIO_MESSAGE; undecodable audio ->
            500 via PlaybackError. The two are kept distinct for the page.
        If Removed: Read-aloud is unavailable.
        Testing Notes: Empty-audio stub gives 404; valid PCM gives a RIFF body.
        """
        async with gate.hold("speech"):
            audio = await studio.synthesize_speech(request.text)
        if audio is None:
            return JSONResponse(status_code=404, content={"detail": NO_AUDIO_MESSAGE})
        result = await player.play(audio)
        return Response(
            content=result.wav,
            media_type="audio/wav",
            headers={"X-Audio-Duration": f"{result.duration_seconds:.3f}"},
        )

    return app


def main() -> None:
    import uvicorn

    uvicorn.run(
        "backend.app:create_app",
        factory=True,
        host=os.getenv("HOST", "127.0.0.1"),
        port=int(os.getenv("PORT", "8000")),
    )


if __name__ == "__main__":
    main()
