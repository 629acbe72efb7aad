"""Speech capture providers."""


def register_providers():
    """Register all capture providers."""
    from ..registry import registry
    from .console import ConsoleCapture

    registry.register_capture_provider("console", ConsoleCapture)
