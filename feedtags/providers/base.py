"""
Base provider protocol and registry.

Using Protocol for structural subtyping - no explicit inheritance required.
"""

from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from ..config import Provider, ProviderSettings
from ..errors import ConfigurationError


@dataclass
class ConnectionStatus:
    """Outcome of a provider connection check."""
    ok: bool
    message: str


@runtime_checkable
class ClassifierProvider(Protocol):
    """
    Sends a classification prompt to an LLM and returns its raw text.

    One network round trip per call, no internal retry. Parsing the
    text is the caller's job (see feedtags.parsing.parse_tags).

    Example implementation:
        class EchoClassifier:
            name = "echo"

            def classify(self, prompt: str) -> str:
                return '[{"tag": "tech", "reason": "always"}]'

            def check(self) -> ConnectionStatus:
                return ConnectionStatus(True, "ok")
    """

    name: str

    def classify(self, prompt: str) -> str:
        """
        Classify using the given prompt.

        Args:
            prompt: Complete prompt from build_prompt()

        Returns:
            The model's raw response text (may be empty)

        Raises:
            ConfigurationError: If the provider is not usable as configured
            NetworkError: If the provider could not be reached or timed out
            ProviderHTTPError: On non-2xx status or a malformed response
        """
        ...

    def check(self) -> ConnectionStatus:
        """Test connectivity and credentials. Never raises."""
        ...


class ProviderRegistry:
    """
    Registry mapping Provider values to classifier classes.

    Concrete providers register themselves when feedtags.providers.llm
    is imported; the registry imports it lazily on first use.

    Example:
        registry = ProviderRegistry()
        registry.register_classifier(Provider.LOCAL, OllamaClassifier)

        # Later, from settings:
        classifier = registry.create_classifier(settings)
    """

    def __init__(self):
        self._classifiers: dict[Provider, type] = {}
        self._lazy_loaded = False

    def _ensure_providers_loaded(self) -> None:
        """Lazily load provider modules."""
        if self._lazy_loaded:
            return
        self._lazy_loaded = True
        # Importing registers the classes; nothing is instantiated
        from . import llm  # noqa: F401

    def register_classifier(self, provider: Provider, provider_class: type) -> None:
        """Register a classifier class for a provider."""
        self._classifiers[provider] = provider_class

    def create_classifier(self, settings: ProviderSettings) -> ClassifierProvider:
        """
        Create the classifier selected by settings.provider.

        Raises:
            ConfigurationError: Unknown provider, missing API key, or
                missing client library
        """
        self._ensure_providers_loaded()
        provider = Provider.parse(settings.provider)
        if provider not in self._classifiers:
            available = ", ".join(p.value for p in self._classifiers) or "none"
            raise ConfigurationError(
                f"No classifier registered for provider '{provider.value}'. "
                f"Available providers: {available}"
            )
        try:
            return self._classifiers[provider](**settings.provider_params())
        except ImportError as e:
            raise ConfigurationError(
                f"Failed to create classifier '{provider.value}': {e}\n"
                f"Install required dependencies."
            ) from e

    def list_classifiers(self) -> list[str]:
        """List registered provider names."""
        self._ensure_providers_loaded()
        return [p.value for p in self._classifiers]


# Global registry instance
_registry = ProviderRegistry()


def get_registry() -> ProviderRegistry:
    """Get the global provider registry."""
    return _registry


def create_classifier(settings: ProviderSettings) -> ClassifierProvider:
    """Create the classifier for these settings from the global registry."""
    return _registry.create_classifier(settings)
