"""Runtime registry: maps provider names to runtime client classes."""

from __future__ import annotations

from typing import TYPE_CHECKING, Type

import httpx

from .base import RuntimeClient, RuntimeConfigurationError

if TYPE_CHECKING:
    from ..config import Settings


# Runtime client class registry, populated via @register decorator
_RUNTIME_REGISTRY: dict[str, Type[RuntimeClient]] = {}


def register(cls: Type[RuntimeClient]) -> Type[RuntimeClient]:
    """Class decorator that registers a runtime client under its provider_name."""
    _RUNTIME_REGISTRY[cls.provider_name] = cls
    return cls


def list_providers() -> list[str]:
    return sorted(_RUNTIME_REGISTRY)


def get_client_class(provider: str) -> Type[RuntimeClient]:
    cls = _RUNTIME_REGISTRY.get(provider)
    if cls is None:
        raise RuntimeConfigurationError(
            f"Unknown runtime provider '{provider}'. Available: {', '.join(list_providers())}"
        )
    return cls


def create_runtime_client(settings: Settings, http_client: httpx.AsyncClient) -> RuntimeClient:
    """Build the client for settings.runtime_provider, failing fast on missing credentials."""
    cls = get_client_class(settings.runtime_provider)
    if not cls.is_configured(settings):
        raise RuntimeConfigurationError(
            f"Runtime provider '{settings.runtime_provider}' is missing credentials"
        )
    return cls.from_settings(settings, http_client)
