"""
Classifier providers.

Concrete providers live in feedtags.providers.llm and register themselves
with the global registry on import.
"""

from .base import (
    ClassifierProvider,
    ConnectionStatus,
    ProviderRegistry,
    create_classifier,
    get_registry,
)

__all__ = [
    "ClassifierProvider",
    "ConnectionStatus",
    "ProviderRegistry",
    "create_classifier",
    "get_registry",
]
