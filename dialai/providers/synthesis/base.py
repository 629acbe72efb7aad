"""Base interface for speech synthesis providers."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional


@dataclass
class Voice:
    """A synthesis voice offered by the provider."""
    id: str
    name: str
    language: Optional[str] = None
    labels: dict = field(default_factory=dict)


class SpeechSynthesizer(ABC):
    """Abstract base class for speech synthesis providers."""

    @abstractmethod
    def initialize(self) -> None:
        """Initialize the synthesis provider."""
        pass

    @abstractmethod
    async def speak(self, text: str, voice: Optional[Voice] = None) -> None:
        """
        Speak the text and return once playback has finished or was cancelled.

        Args:
            text: The text to speak
            voice: Voice to use; the provider default when None

        Raises:
            DeviceError: if synthesis or playback failed
        """
        pass

    @abstractmethod
    def cancel(self) -> None:
        """Stop the utterance currently being spoken."""
        pass

    @abstractmethod
    def list_voices(self) -> List[Voice]:
        """List the voices currently available; may be empty while loading."""
        pass

    @abstractmethod
    def stop(self) -> None:
        """Stop the provider and clean up resources."""
        pass

    @abstractmethod
    def get_status(self) -> dict:
        """Get current status of the synthesis provider."""
        pass
