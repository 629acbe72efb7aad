"""
Mock provider implementations for offline calls and tests.
"""

import asyncio
from typing import Callable, List, Optional, Sequence, Union

from dialai.errors import DeviceError
from dialai.providers.generation.base import GenerationProvider
from dialai.providers.capture.base import SpeechCapture
from dialai.providers.synthesis.base import SpeechSynthesizer, Voice


class MockGenerationProvider(GenerationProvider):
    """Mock generation provider with scripted replies.

    Scripted items are consumed in order; an item that is an exception is
    raised instead of returned. Once the script runs out the canned sales
    replies are cycled.
    """

    def __init__(
        self,
        responses: Optional[Sequence[Union[str, Exception]]] = None,
        delay: float = 0.0,
    ):
        self.script: List[Union[str, Exception]] = list(responses or [])
        self.delay = delay
        self.prompts: List[str] = []
        self.initialized = False
        self.mock_responses = [
            "Thanks for taking my call. How many sales calls does your team make each month?",
            "That's a great fit. DialAI cuts calling costs by about 60% while tripling lead qualification speed.",
            "Our Professional plan is $999 a month for 5000 calls. Could I get your name and email to send details?",
            '{"summary": "Mock call", "keyPoints": [], "nextSteps": "Follow up", '
            '"leadQuality": "warm", "customerInfo": {}}',
        ]
        self.response_index = 0

    def queue(self, *items: Union[str, Exception]) -> None:
        """Append scripted replies or errors."""
        self.script.extend(items)

    def initialize(self) -> None:
        """Initialize mock generation provider."""
        self.initialized = True

    async def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.delay:
            await asyncio.sleep(self.delay)

        if self.script:
            item = self.script.pop(0)
        else:
            item = self.mock_responses[self.response_index % len(self.mock_responses)]
            self.response_index += 1

        if isinstance(item, Exception):
            raise item
        return item

    def stop(self) -> None:
        self.initialized = False

    def get_status(self) -> dict:
        return {
            "provider": "mock_generation",
            "prompts": len(self.prompts),
            "scripted_remaining": len(self.script),
        }


class MockCapture(SpeechCapture):
    """Mock capture device driven by the test through ``emit_*`` methods."""

    def __init__(self, fail_start: int = 0):
        # Number of upcoming start() calls that fail
        self.fail_start = fail_start
        self.is_active = False
        self.starts = 0
        self.stops = 0
        self._on_result = None
        self._on_error = None
        self._on_session_end = None

    def start(self, on_result, on_error, on_session_end) -> None:
        if self.fail_start > 0:
            self.fail_start -= 1
            raise DeviceError("Mock microphone unavailable")
        self._on_result = on_result
        self._on_error = on_error
        self._on_session_end = on_session_end
        self.is_active = True
        self.starts += 1

    def stop(self) -> None:
        self.is_active = False
        self.stops += 1

    def emit_result(self, text: str, is_final: bool = True) -> None:
        if self.is_active:
            self._on_result(text, is_final)

    def emit_error(self, code: str) -> None:
        if self.is_active:
            self._on_error(code)

    def end_session(self) -> None:
        """Simulate the device ending the session on its own."""
        if self.is_active:
            self.is_active = False
            self._on_session_end()

    def get_status(self) -> dict:
        return {
            "provider": "mock_capture",
            "is_active": self.is_active,
            "starts": self.starts,
            "stops": self.stops,
        }


class MockSynthesizer(SpeechSynthesizer):
    """Mock synthesis engine that "plays" each utterance for ``duration`` seconds."""

    def __init__(
        self,
        voices: Optional[List[Voice]] = None,
        failures: int = 0,
        duration: float = 0.0,
        capture: Optional[MockCapture] = None,
        on_speak: Optional[Callable[[str], None]] = None,
    ):
        self.voices = voices if voices is not None else [
            Voice(id="mock-en", name="Mock English", language="en-US"),
        ]
        self.failures = failures
        self.duration = duration
        self.capture = capture
        self.on_speak = on_speak

        self.spoken: List[str] = []
        self.voices_used: List[Optional[Voice]] = []
        self.attempts = 0
        self.cancels = 0
        # Times capture was running while audio was playing
        self.overlaps = 0
        self.is_playing = False
        self._cancel_event: Optional[asyncio.Event] = None

    def initialize(self) -> None:
        pass

    async def speak(self, text: str, voice: Optional[Voice] = None) -> None:
        self.attempts += 1
        self.voices_used.append(voice)
        if self.failures > 0:
            self.failures -= 1
            raise DeviceError("Mock synthesis failure")

        if self.capture is not None and self.capture.is_active:
            self.overlaps += 1

        self._cancel_event = asyncio.Event()
        self.is_playing = True
        if self.on_speak:
            self.on_speak(text)
        try:
            if self.duration:
                try:
                    await asyncio.wait_for(self._cancel_event.wait(), timeout=self.duration)
                except asyncio.TimeoutError:
                    pass
        finally:
            self.is_playing = False

        if not self._cancel_event.is_set():
            self.spoken.append(text)

    def cancel(self) -> None:
        self.cancels += 1
        if self._cancel_event is not None:
            self._cancel_event.set()

    def list_voices(self) -> List[Voice]:
        return list(self.voices)

    def stop(self) -> None:
        self.cancel()

    def get_status(self) -> dict:
        return {
            "provider": "mock_synthesis",
            "is_playing": self.is_playing,
            "spoken": len(self.spoken),
            "attempts": self.attempts,
        }
