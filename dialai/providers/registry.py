"""Provider registry for dynamic provider loading."""

from typing import Dict, Type, Callable, Any, Optional
import structlog

from .generation.base import GenerationProvider
from .capture.base import SpeechCapture
from .synthesis.base import SpeechSynthesizer


logger = structlog.get_logger()


class ProviderRegistry:
    """Registry for managing provider implementations by kind and name."""

    KINDS = ("generation", "capture", "synthesis")

    def __init__(self):
        self._providers: Dict[str, Dict[str, type]] = {kind: {} for kind in self.KINDS}
        self._provider_configs: Dict[str, Callable[[], Dict[str, Any]]] = {}

    def _register(
        self,
        kind: str,
        name: str,
        provider_class: type,
        config_getter: Optional[Callable[[], Dict[str, Any]]] = None,
    ) -> None:
        self._providers[kind][name] = provider_class
        if config_getter:
            self._provider_configs[f"{kind}:{name}"] = config_getter
        logger.debug(
            "Registered provider", kind=kind, name=name, class_name=provider_class.__name__
        )

    def _create(self, kind: str, name: str, **kwargs) -> Any:
        if name not in self._providers[kind]:
            raise ValueError(f"Unknown {kind} provider: {name}")

        provider_class = self._providers[kind][name]
        config_key = f"{kind}:{name}"

        # Explicit kwargs win over configured values
        if config_key in self._provider_configs:
            config = self._provider_configs[config_key]()
            config.update(kwargs)
            kwargs = config

        return provider_class(**kwargs)

    def register_generation_provider(
        self,
        name: str,
        provider_class: Type[GenerationProvider],
        config_getter: Callable[[], Dict[str, Any]] = None,
    ) -> None:
        """Register a text generation provider."""
        self._register("generation", name, provider_class, config_getter)

    def register_capture_provider(
        self,
        name: str,
        provider_class: Type[SpeechCapture],
        config_getter: Callable[[], Dict[str, Any]] = None,
    ) -> None:
        """Register a speech capture provider."""
        self._register("capture", name, provider_class, config_getter)

    def register_synthesis_provider(
        self,
        name: str,
        provider_class: Type[SpeechSynthesizer],
        config_getter: Callable[[], Dict[str, Any]] = None,
    ) -> None:
        """Register a speech synthesis provider."""
        self._register("synthesis", name, provider_class, config_getter)

    def get_generation_provider(self, name: str, **kwargs) -> GenerationProvider:
        return self._create("generation", name, **kwargs)

    def get_capture_provider(self, name: str, **kwargs) -> SpeechCapture:
        return self._create("capture", name, **kwargs)

    def get_synthesis_provider(self, name: str, **kwargs) -> SpeechSynthesizer:
        return self._create("synthesis", name, **kwargs)

    def list_providers(self, kind: str) -> list[str]:
        """List registered providers of one kind."""
        if kind not in self._providers:
            raise ValueError(f"Unknown provider kind: {kind}")
        return list(self._providers[kind].keys())

    def clear(self) -> None:
        """Clear all registered providers."""
        for providers in self._providers.values():
            providers.clear()
        self._provider_configs.clear()


# Global registry instance
registry = ProviderRegistry()
