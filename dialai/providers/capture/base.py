"""Base interface for speech capture providers."""

from abc import ABC, abstractmethod
from typing import Callable


# Error code reported when a capture session heard nothing at all
NO_SPEECH = "no-speech"

ResultCallback = Callable[[str, bool], None]
ErrorCallback = Callable[[str], None]
SessionEndCallback = Callable[[], None]


class SpeechCapture(ABC):
    """Abstract base class for speech capture sessions.

    A session is started with three callbacks and must tolerate being
    started and stopped repeatedly. Callbacks are invoked on the event loop
    thread:

    - ``on_result(text, is_final)`` for interim and final recognitions
    - ``on_error(code)`` for failures; ``NO_SPEECH`` means nothing was heard
    - ``on_session_end()`` when the device ends the session on its own
    """

    @abstractmethod
    def start(
        self,
        on_result: ResultCallback,
        on_error: ErrorCallback,
        on_session_end: SessionEndCallback,
    ) -> None:
        """Start a capture session."""
        pass

    @abstractmethod
    def stop(self) -> None:
        """Stop the current capture session, if any."""
        pass

    @abstractmethod
    def get_status(self) -> dict:
        """Get current status of the capture provider."""
        pass
