"""ElevenLabs synthesis provider implementation."""

import asyncio
import os
from io import BytesIO
from typing import List, Optional
import pygame
from elevenlabs import VoiceSettings
from elevenlabs.client import ElevenLabs
import structlog

from .base import SpeechSynthesizer, Voice
from ...errors import DeviceError


logger = structlog.get_logger()


class ElevenLabsProvider(SpeechSynthesizer):
    """
    ElevenLabs synthesis with pygame playback.

    Audio for an utterance is generated in a worker thread, then played
    through the pygame mixer while the coroutine polls for completion.
    """

    def __init__(
        self,
        voice_id: str = "EXAVITQu4vr4xnSDxMaL",
        model_id: str = "eleven_flash_v2_5",
        output_format: str = "mp3_22050_32",
        stability: float = 0.5,
        similarity_boost: float = 0.8,
        style: float = 0.0,
        speed: float = 0.9,
        use_speaker_boost: bool = True,
        poll_interval: float = 0.05,
    ):
        self.voice_id = voice_id
        self.model_id = model_id
        self.output_format = output_format
        self.poll_interval = poll_interval

        self.voice_settings = VoiceSettings(
            stability=stability,
            similarity_boost=similarity_boost,
            style=style,
            use_speaker_boost=use_speaker_boost,
            speed=speed,
        )

        self.client: Optional[ElevenLabs] = None
        self.is_playing = False
        self._cancelled = False
        self.utterances = 0

    def initialize(self) -> None:
        """Initialize ElevenLabs client and pygame mixer."""
        logger.info("Initializing ElevenLabs provider", voice_id=self.voice_id)

        api_key = os.getenv("ELEVENLABS_API_KEY")
        if not api_key:
            raise ValueError("ELEVENLABS_API_KEY environment variable not set")

        self.client = ElevenLabs(api_key=api_key)

        pygame.mixer.pre_init(frequency=22050, size=-16, channels=2, buffer=1024)
        pygame.mixer.init()

        logger.info("ElevenLabs provider initialized")

    def list_voices(self) -> List[Voice]:
        if not self.client:
            return []
        try:
            response = self.client.voices.get_all()
        except Exception as e:
            logger.warning("Failed to list ElevenLabs voices", error=str(e))
            return []

        voices = []
        for item in response.voices:
            labels = dict(item.labels or {})
            voices.append(
                Voice(
                    id=item.voice_id,
                    name=item.name or item.voice_id,
                    language=labels.get("language", "en"),
                    labels=labels,
                )
            )
        return voices

    def _convert(self, text: str, voice_id: str) -> bytes:
        audio = self.client.text_to_speech.convert(
            voice_id=voice_id,
            text=text,
            model_id=self.model_id,
            output_format=self.output_format,
            voice_settings=self.voice_settings,
        )
        if isinstance(audio, (bytes, bytearray)):
            return bytes(audio)
        # The SDK returns an iterator of byte chunks
        return b"".join(audio)

    async def speak(self, text: str, voice: Optional[Voice] = None) -> None:
        if not self.client:
            raise RuntimeError("ElevenLabs not initialized")

        voice_id = voice.id if voice else self.voice_id
        self._cancelled = False
        logger.debug("Generating speech", text_length=len(text), voice_id=voice_id)

        loop = asyncio.get_running_loop()
        try:
            audio_data = await loop.run_in_executor(None, self._convert, text, voice_id)
        except Exception as e:
            raise DeviceError(f"ElevenLabs synthesis failed: {e}") from e

        if self._cancelled:
            logger.debug("Speech cancelled before playback")
            return

        try:
            pygame.mixer.music.load(BytesIO(audio_data))
            pygame.mixer.music.play()
        except pygame.error as e:
            raise DeviceError(f"Audio playback failed: {e}") from e

        self.is_playing = True
        self.utterances += 1
        try:
            while pygame.mixer.music.get_busy() and not self._cancelled:
                await asyncio.sleep(self.poll_interval)
        finally:
            self.is_playing = False

        logger.debug("Speech playback completed", cancelled=self._cancelled)

    def cancel(self) -> None:
        self._cancelled = True
        if self.is_playing and pygame.mixer.get_init() is not None:
            pygame.mixer.music.stop()
            logger.debug("Stopped audio playback")
        self.is_playing = False

    def stop(self) -> None:
        """Stop ElevenLabs provider."""
        logger.info("Stopping ElevenLabs provider")
        self.cancel()
        if pygame.mixer.get_init() is not None:
            pygame.mixer.quit()
        self.client = None

    def get_status(self) -> dict:
        return {
            "provider": "elevenlabs",
            "voice_id": self.voice_id,
            "model_id": self.model_id,
            "is_playing": self.is_playing,
            "utterances": self.utterances,
            "initialized": self.client is not None,
            "mixer_initialized": pygame.mixer.get_init() is not None,
        }
