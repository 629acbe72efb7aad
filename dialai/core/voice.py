"""
Voice I/O coordination: one duplex channel over a capture device and a
synthesis engine, never listening while speaking.

States and transitions::

    IDLE      --start_listening-->  LISTENING
    LISTENING --stop_listening--->  IDLE
    LISTENING --speak------------>  SPEAKING  (capture paused)
    IDLE      --speak------------>  SPEAKING
    SPEAKING  --speech done------>  LISTENING if capture was active, else IDLE
    any       --cancel----------->  IDLE

Inside LISTENING the coordinator restarts capture sessions the device ends on
its own, recovers once from capture errors, and reports caller silence.
"""

import asyncio
import inspect
import time
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, List, Optional, Set, Union
import structlog

from ..errors import DeviceError
from ..providers.capture.base import SpeechCapture, NO_SPEECH
from ..providers.synthesis.base import SpeechSynthesizer, Voice


logger = structlog.get_logger()


class VoiceState(Enum):
    IDLE = "idle"
    LISTENING = "listening"
    SPEAKING = "speaking"


@dataclass(frozen=True)
class Utterance:
    """Something the caller said, or the explicit signal that they went quiet."""
    text: str
    is_silence: bool = False

    @classmethod
    def silence(cls) -> "Utterance":
        return cls(text="", is_silence=True)


UtteranceHandler = Callable[[Utterance], Union[None, Awaitable[None]]]


class VoiceCoordinator:
    """Owns the capture and synthesis lifecycles for a call."""

    def __init__(
        self,
        capture: SpeechCapture,
        synthesizer: SpeechSynthesizer,
        silence_threshold: float = 3.0,
        silence_tick: float = 1.0,
        restart_delay: float = 0.3,
        recovery_delay: float = 1.0,
        synthesis_retries: int = 3,
        synthesis_retry_delay: float = 0.1,
        resume_delay: float = 0.3,
        voice_wait_timeout: float = 5.0,
        voice_poll_interval: float = 0.1,
        preferred_voice: Optional[str] = None,
        preferred_language: str = "en",
    ):
        self.capture = capture
        self.synthesizer = synthesizer
        self.silence_threshold = silence_threshold
        self.silence_tick = silence_tick
        self.restart_delay = restart_delay
        self.recovery_delay = recovery_delay
        self.synthesis_retries = synthesis_retries
        self.synthesis_retry_delay = synthesis_retry_delay
        self.resume_delay = resume_delay
        self.voice_wait_timeout = voice_wait_timeout
        self.voice_poll_interval = voice_poll_interval
        self.preferred_voice = preferred_voice
        self.preferred_language = preferred_language

        self._state = VoiceState.IDLE
        self._on_utterance: Optional[UtteranceHandler] = None
        self._resume_handler: Optional[UtteranceHandler] = None
        self._recovery_handler: Optional[UtteranceHandler] = None
        self._capture_active = False
        self._session_token = 0
        self._last_activity = 0.0
        self._silence_reported = False

        self._watchdog: Optional[asyncio.Task] = None
        self._restart_task: Optional[asyncio.Task] = None
        self._recovery_task: Optional[asyncio.Task] = None
        self._handler_tasks: Set[asyncio.Task] = set()

        self._speak_lock = asyncio.Lock()
        # Bumped by cancel(); speech requested under an older value is dropped
        self._cancel_generation = 0
        self._voices: Optional[List[Voice]] = None

        self.silence_signals = 0
        self.capture_restarts = 0
        self.recoveries = 0

    @property
    def state(self) -> VoiceState:
        return self._state

    @property
    def is_listening(self) -> bool:
        return self._state is VoiceState.LISTENING

    @property
    def is_speaking(self) -> bool:
        return self._state is VoiceState.SPEAKING

    # Listening

    def start_listening(self, on_utterance: UtteranceHandler) -> None:
        """
        Start capturing caller speech, delivering each utterance to ``on_utterance``.

        While speaking, the handler is remembered and capture starts once
        the utterance is finished. Raises DeviceError if the device refuses
        to start; the coordinator is then idle.
        """
        if self._state is VoiceState.SPEAKING:
            logger.debug("Deferring capture until speech finishes")
            self._resume_handler = on_utterance
            return

        if self._state is VoiceState.LISTENING:
            self.stop_listening()

        self._on_utterance = on_utterance
        self._state = VoiceState.LISTENING
        self._mark_activity()

        try:
            self._start_capture()
        except DeviceError:
            self.stop_listening()
            raise

        self._watchdog = asyncio.get_running_loop().create_task(self._silence_watchdog())
        logger.info("Listening started")

    def stop_listening(self) -> None:
        """Stop capture and all of its timers. Safe to call repeatedly."""
        self._session_token += 1
        self._on_utterance = None
        self._resume_handler = None
        self._recovery_handler = None

        for task in (self._watchdog, self._restart_task, self._recovery_task):
            if task and not task.done() and task is not asyncio.current_task():
                task.cancel()
        self._watchdog = None
        self._restart_task = None
        self._recovery_task = None

        self._stop_capture()

        if self._state is VoiceState.LISTENING:
            self._state = VoiceState.IDLE
            logger.info("Listening stopped")

    def _start_capture(self) -> None:
        try:
            self.capture.start(
                self._handle_result, self._handle_error, self._handle_session_end
            )
        except DeviceError:
            raise
        except Exception as e:
            raise DeviceError(f"Speech capture failed to start: {e}") from e
        self._capture_active = True

    def _stop_capture(self) -> None:
        if not self._capture_active:
            return
        self._capture_active = False
        try:
            self.capture.stop()
        except Exception as e:
            logger.warning("Error stopping speech capture", error=str(e))

    def _mark_activity(self) -> None:
        self._last_activity = time.monotonic()
        self._silence_reported = False

    def _handle_result(self, text: str, is_final: bool) -> None:
        if self._state is not VoiceState.LISTENING:
            return

        self._mark_activity()
        if is_final and text.strip():
            logger.debug("Caller utterance", text=text[:50])
            self._dispatch(Utterance(text=text.strip()))

    def _handle_session_end(self) -> None:
        self._capture_active = False
        if self._state is not VoiceState.LISTENING:
            return

        if self._restart_task and not self._restart_task.done():
            self._restart_task.cancel()
        self._restart_task = asyncio.get_running_loop().create_task(
            self._restart_capture(self._session_token)
        )

    async def _restart_capture(self, token: int) -> None:
        await asyncio.sleep(self.restart_delay)
        if token != self._session_token or self._state is not VoiceState.LISTENING:
            return

        try:
            self._start_capture()
        except DeviceError as e:
            logger.warning("Capture restart failed", error=str(e))
            self._handle_error(str(e))
            return

        self.capture_restarts += 1
        logger.debug("Capture session restarted", restarts=self.capture_restarts)

    def _handle_error(self, code: str) -> None:
        if code == NO_SPEECH:
            self._check_silence()
            return

        logger.warning("Speech capture error", error=code)
        if self._state is not VoiceState.LISTENING:
            return

        handler = self._on_utterance
        self.stop_listening()
        self._recovery_handler = handler
        self._recovery_task = asyncio.get_running_loop().create_task(
            self._recover(handler, self._session_token)
        )

    async def _recover(self, handler: UtteranceHandler, token: int) -> None:
        await asyncio.sleep(self.recovery_delay)
        if token != self._session_token or self._state is not VoiceState.IDLE:
            return

        self.recoveries += 1
        self._recovery_task = None
        self._recovery_handler = None
        try:
            self.start_listening(handler)
        except DeviceError as e:
            # One attempt only; the call carries on without capture
            logger.error("Capture recovery failed", error=str(e))
        else:
            logger.info("Capture recovered", recoveries=self.recoveries)

    async def _silence_watchdog(self) -> None:
        while self._state is VoiceState.LISTENING:
            await asyncio.sleep(self.silence_tick)
            self._check_silence()

    def _check_silence(self) -> None:
        if self._state is not VoiceState.LISTENING or self._silence_reported:
            return
        if time.monotonic() - self._last_activity > self.silence_threshold:
            self._silence_reported = True
            self.silence_signals += 1
            logger.debug("Caller silence detected")
            self._dispatch(Utterance.silence())

    def _dispatch(self, utterance: Utterance) -> None:
        handler = self._on_utterance
        if handler is None:
            return

        try:
            result = handler(utterance)
        except Exception as e:
            logger.error("Utterance handler failed", error=str(e), exc_info=True)
            return

        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._handler_tasks.add(task)
            task.add_done_callback(self._handler_done)

    def _handler_done(self, task: asyncio.Task) -> None:
        self._handler_tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error("Utterance handler failed", error=str(error))

    # Speaking

    async def _ensure_voices(self) -> List[Voice]:
        if self._voices:
            return self._voices

        deadline = time.monotonic() + self.voice_wait_timeout
        while True:
            voices = self.synthesizer.list_voices()
            if voices:
                self._voices = voices
                return voices
            if time.monotonic() >= deadline:
                logger.warning("No synthesis voices available, using provider default")
                return []
            await asyncio.sleep(self.voice_poll_interval)

    def _pick_voice(self, voices: List[Voice]) -> Optional[Voice]:
        if not voices:
            return None
        if self.preferred_voice:
            wanted = self.preferred_voice.lower()
            for voice in voices:
                if wanted in (voice.name.lower(), voice.id.lower()):
                    return voice
        for voice in voices:
            if voice.language and voice.language.startswith(self.preferred_language):
                return voice
        return voices[0]

    async def speak(self, text: str) -> None:
        """
        Speak ``text``, pausing capture for the duration.

        Synthesis failures are retried; if every attempt fails the call still
        returns normally and the conversation goes on without audio. Speech
        still waiting for its turn when cancel() runs is dropped.
        """
        generation = self._cancel_generation
        async with self._speak_lock:
            if generation != self._cancel_generation:
                logger.debug("Dropping speech cancelled while queued", text=text[:50])
                return

            voices = await self._ensure_voices()
            if generation != self._cancel_generation:
                return

            if self.is_listening:
                resume = self._on_utterance
            elif self._resume_handler is not None:
                resume = self._resume_handler
            else:
                # A pending capture recovery resumes after speech instead
                resume = self._recovery_handler
            self.stop_listening()

            # start_listening/stop_listening during speech replace or clear this
            self._resume_handler = resume
            self._state = VoiceState.SPEAKING
            try:
                await self._speak_with_retries(text, self._pick_voice(voices), generation)
            finally:
                if self._state is VoiceState.SPEAKING:
                    self._state = VoiceState.IDLE
                resume = self._resume_handler
                self._resume_handler = None

            if resume is None or generation != self._cancel_generation:
                return

            await asyncio.sleep(self.resume_delay)
            if generation != self._cancel_generation or self._state is not VoiceState.IDLE:
                return
            try:
                self.start_listening(resume)
            except DeviceError as e:
                logger.error("Could not resume listening after speech", error=str(e))

    async def _speak_with_retries(
        self, text: str, voice: Optional[Voice], generation: int
    ) -> None:
        for attempt in range(self.synthesis_retries + 1):
            if generation != self._cancel_generation:
                return
            try:
                await self.synthesizer.speak(text, voice)
                return
            except Exception as e:
                logger.warning(
                    "Speech synthesis failed", error=str(e), attempt=attempt + 1
                )
                if attempt == self.synthesis_retries:
                    logger.warning("Speech synthesis failed after retries, continuing without voice")
                    return

            # Fall back to the provider default voice on retries
            voice = None
            try:
                self.synthesizer.cancel()
            except Exception as e:
                logger.debug("Error resetting synthesizer", error=str(e))
            await asyncio.sleep(self.synthesis_retry_delay * (attempt + 1))

    def cancel(self) -> None:
        """Stop speech and capture, dropping queued speech; the coordinator ends up idle."""
        self._cancel_generation += 1
        if self._state is VoiceState.SPEAKING:
            try:
                self.synthesizer.cancel()
            except Exception as e:
                logger.warning("Error cancelling speech synthesis", error=str(e))
        self.stop_listening()
        self._state = VoiceState.IDLE

    def get_status(self) -> dict:
        return {
            "state": self._state.value,
            "capture_active": self._capture_active,
            "silence_signals": self.silence_signals,
            "capture_restarts": self.capture_restarts,
            "recoveries": self.recoveries,
            "capture": self.capture.get_status(),
            "synthesis": self.synthesizer.get_status(),
        }
