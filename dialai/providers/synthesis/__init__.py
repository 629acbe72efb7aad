"""Speech synthesis providers."""


def register_providers():
    """Register all synthesis providers."""
    # Import at function level to avoid circular imports
    from ..registry import registry
    from ...config.settings import settings
    from .elevenlabs import ElevenLabsProvider

    def get_elevenlabs_config():
        return settings.get_provider_config("elevenlabs")

    registry.register_synthesis_provider(
        "elevenlabs", ElevenLabsProvider, get_elevenlabs_config
    )
