"""Provider interfaces and implementations for generation, capture and synthesis."""

from .registry import registry

# Defer provider registration to avoid circular imports
def _register_all_providers():
    """Register all provider types."""
    from . import generation, capture, synthesis
    generation.register_providers()
    capture.register_providers()
    synthesis.register_providers()

# Register providers after module initialization
_register_all_providers()

__all__ = ['registry']
