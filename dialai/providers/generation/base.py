"""Base interface for text generation providers."""

from abc import ABC, abstractmethod


class GenerationProvider(ABC):
    """Abstract base class for text generation providers.

    ``generate`` returns the completion text (possibly empty) or raises
    ``RateLimitedError`` when the provider throttles the caller and
    ``ProviderError`` for anything else.
    """

    @abstractmethod
    def initialize(self) -> None:
        """Initialize the provider."""
        pass

    @abstractmethod
    async def generate(self, prompt: str) -> str:
        """
        Generate a completion for the prompt.

        Args:
            prompt: Complete prompt text

        Returns:
            The completion text
        """
        pass

    @abstractmethod
    def stop(self) -> None:
        """Stop the provider and clean up resources."""
        pass

    @abstractmethod
    def get_status(self) -> dict:
        """Get current status of the provider."""
        pass
