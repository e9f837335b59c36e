from __future__ import annotations

import base64
import binascii
import io
import logging
import wave
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from .errors import PlaybackError

logger = logging.getLogger("storylab.playback")

AudioSink = Callable[[bytes], Awaitable[None]]

SAMPLE_WIDTH_BYTES = 2
CHANNELS = 1


@dataclass
class PlaybackResult:
    """Rendered audio handed to the sink, with its length in seconds."""
    wav: bytes
    duration_seconds: float


def decode_audio(payload: str) -> bytes:
    """Purpose: Decode a base64 audio payload into raw PCM bytes.
    Inputs/Outputs: Input is base64 text; output is the decoded bytes.
    Side Effects / State: None.
    Dependencies: Uses base64.
    Failure Modes: Empty or invalid base64 raises PlaybackError.
    If Removed: Returned speech cannot be rendered.
    Testing Notes: "not base64!" raises PlaybackError, not binascii.Error.
    """
    if not payload:
        raise PlaybackError("No audio data to play")
    try:
        pcm = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise PlaybackError("Audio payload is not valid base64") from exc
    if not pcm:
        raise PlaybackError("Audio payload decoded to zero bytes")
    return pcm


def pcm_to_wav(pcm: bytes, sample_rate: int) -> bytes:
    # Provider speech is 16-bit little-endian mono PCM with no container.
    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as wav_file:
        wav_file.setnchannels(CHANNELS)
        wav_file.setsampwidth(SAMPLE_WIDTH_BYTES)
        wav_file.setframerate(sample_rate)
        wav_file.writeframes(pcm)
    return buffer.getvalue()


class AudioPlayer:
    """Decodes speech payloads and drives an async sink until playback completes."""

    def __init__(self, sample_rate: int = 24000, sink: Optional[AudioSink] = None) -> None:
        self._sample_rate = sample_rate
        self._sink = sink

    async def play(self, payload: str) -> PlaybackResult:
        """Purpose: Decode, render and play a base64 audio payload.
        Inputs/Outputs: Input is base64 PCM; resolves to a PlaybackResult once the sink
            has finished with the audio.
        Side Effects / State: Invokes the sink, if one was given.
        Dependencies: decode_audio, pcm_to_wav, and the configured AudioSink.
        Failure Modes: Decode, render or sink failures raise PlaybackError. This is
            separate from "no audio returned", which never reaches the player.
        If Removed: Read-aloud has no way to turn a payload into sound.
        Testing Notes: A raising sink must surface as PlaybackError.
        """
        pcm = decode_audio(payload)
        try:
            wav = pcm_to_wav(pcm, self._sample_rate)
        except (wave.Error, ValueError) as exc:
            raise PlaybackError("Could not render audio") from exc
        duration = len(pcm) / float(self._sample_rate * SAMPLE_WIDTH_BYTES * CHANNELS)
        if self._sink is not None:
            try:
                await self._sink(wav)
            except Exception as exc:
                logger.exception("op=play status=sink_failed bytes=%s", len(wav))
                raise PlaybackError("Failed to play audio. Please try again.") from exc
        logger.debug("op=play status=ok seconds=%.2f", duration)
        return PlaybackResult(wav=wav, duration_seconds=duration)
