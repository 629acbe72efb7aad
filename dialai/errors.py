"""Exception types shared across the calling agent."""

RATE_LIMIT_STATUS = 429


class DialAIError(Exception):
    """Base class for all calling agent errors."""


class RateLimitedError(DialAIError):
    """The generation provider refused the request because of its rate limit."""

    status_code = RATE_LIMIT_STATUS

    def __init__(self, message: str = "Rate limited"):
        super().__init__(message)


class ProviderError(DialAIError):
    """Non-retryable failure reported by the generation provider."""


class DeviceError(DialAIError):
    """Speech capture or synthesis device failure."""


class GenerationFailedError(DialAIError):
    """A turn could not produce an agent reply."""


class EmptyCompletionError(GenerationFailedError):
    """The provider answered without any usable text."""


class NoActiveCallError(DialAIError):
    """A turn was requested while no call is active."""


class StartFailedError(DialAIError):
    """A call could not be started."""


class CallNotFoundError(DialAIError):
    """The requested call id is not in the store."""
