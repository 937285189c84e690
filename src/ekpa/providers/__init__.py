"""Model backends, selected by name from configuration."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from ekpa.providers.base import ProviderAdapter
from ekpa.providers.claude import ClaudeAdapter
from ekpa.providers.gemini import GeminiAdapter

if TYPE_CHECKING:
    from ekpa.config import ProviderConfig

logger = logging.getLogger(__name__)

PROVIDERS: dict[str, type] = {
    "gemini": GeminiAdapter,
    "claude": ClaudeAdapter,
}


def available_providers() -> list[str]:
    return list(PROVIDERS)


def create_provider(config: ProviderConfig, *, client: Any = None) -> ProviderAdapter:
    """Build the adapter named by config.name (default gemini)."""
    name = (config.name or "gemini").lower()
    adapter_cls = PROVIDERS.get(name)
    if adapter_cls is None:
        raise ValueError(
            f'Unknown AI provider: "{config.name}". '
            f"Available providers: {', '.join(available_providers())}"
        )

    kwargs: dict[str, Any] = {"timeout": config.timeout, "api_key": config.api_key, "client": client}
    if config.model:
        kwargs["model"] = config.model
    if adapter_cls is ClaudeAdapter:
        kwargs["max_tokens"] = config.max_tokens

    adapter = adapter_cls(**kwargs)
    logger.info("Using %s provider (model: %s)", adapter.name, adapter.model)
    return adapter


__all__ = [
    "PROVIDERS",
    "ClaudeAdapter",
    "GeminiAdapter",
    "ProviderAdapter",
    "available_providers",
    "create_provider",
]
