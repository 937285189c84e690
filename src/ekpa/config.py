"""Configuration loading from environment variables and ekpa.toml."""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib
from pathlib import Path

from ekpa.memory.relevance import RelevanceWeights

_DEFAULT_DATA_DIR = Path.home() / ".ekpa"
_CONFIG_FILENAME = "ekpa.toml"


@dataclass
class ProviderConfig:
    """Configuration for the model backend."""

    name: str = "gemini"
    model: str | None = None
    api_key: str | None = None
    max_tokens: int = 4096
    timeout: int = 120


@dataclass
class AgentConfig:
    """Orchestration loop settings."""

    profile: str = "assistant"
    max_iterations: int = 10
    turn_timeout: float | None = 300.0
    memory_results: int = 5


@dataclass
class MemoryConfig:
    """Memory bank and relevance calibration."""

    max_results: int = 15
    weights: RelevanceWeights = field(default_factory=RelevanceWeights)


@dataclass
class EkpaConfig:
    """Top-level Ekpa configuration."""

    provider: ProviderConfig = field(default_factory=ProviderConfig)
    agent: AgentConfig = field(default_factory=AgentConfig)
    memory: MemoryConfig = field(default_factory=MemoryConfig)
    data_dir: Path = _DEFAULT_DATA_DIR
    log_level: str = "INFO"

    @property
    def memory_dir(self) -> Path:
        return self.data_dir / "memory"

    @property
    def conversations_dir(self) -> Path:
        return self.data_dir / "customers"


def _api_key_for(provider: str, provider_data: dict) -> str | None:
    if provider == "claude":
        env = os.getenv("CLAUDE_API_KEY") or os.getenv("ANTHROPIC_API_KEY")
    elif provider == "gemini":
        env = os.getenv("GEMINI_API_KEY") or os.getenv("GOOGLE_API_KEY")
    else:
        env = None
    return env or provider_data.get("api_key")


def _optional_float(value) -> float | None:
    if value is None or value == "" or str(value).lower() == "none":
        return None
    return float(value)


def load_config(config_path: Path | None = None) -> EkpaConfig:
    """Load configuration from environment variables and optional ekpa.toml.

    Priority: environment variables > ekpa.toml > defaults.
    """
    file_data: dict = {}
    if config_path and config_path.exists():
        file_data = tomllib.loads(config_path.read_text())
    else:
        # Search current dir and ~/.ekpa/
        for candidate in [Path.cwd() / _CONFIG_FILENAME, _DEFAULT_DATA_DIR / _CONFIG_FILENAME]:
            if candidate.exists():
                file_data = tomllib.loads(candidate.read_text())
                break

    provider_data = file_data.get("provider", {})
    agent_data = file_data.get("agent", {})
    memory_data = file_data.get("memory", {})
    weights_data = memory_data.get("weights", {})

    provider_name = os.getenv("EKPA_PROVIDER", provider_data.get("name", "gemini")).lower()
    defaults = RelevanceWeights()

    config = EkpaConfig(
        provider=ProviderConfig(
            name=provider_name,
            model=os.getenv("EKPA_MODEL", provider_data.get("model")),
            api_key=_api_key_for(provider_name, provider_data),
            max_tokens=int(os.getenv("EKPA_MAX_TOKENS", provider_data.get("max_tokens", 4096))),
            timeout=int(os.getenv("EKPA_TIMEOUT", provider_data.get("timeout", 120))),
        ),
        agent=AgentConfig(
            profile=os.getenv("EKPA_PROFILE", agent_data.get("profile", "assistant")),
            max_iterations=int(
                os.getenv("EKPA_MAX_ITERATIONS", agent_data.get("max_iterations", 10))
            ),
            turn_timeout=_optional_float(
                os.getenv("EKPA_TURN_TIMEOUT", agent_data.get("turn_timeout", 300.0))
            ),
            memory_results=int(agent_data.get("memory_results", 5)),
        ),
        memory=MemoryConfig(
            max_results=int(memory_data.get("max_results", 15)),
            weights=RelevanceWeights(
                importance=float(weights_data.get("importance", defaults.importance)),
                recency=float(weights_data.get("recency", defaults.recency)),
                lexical=float(weights_data.get("lexical", defaults.lexical)),
                entity=float(weights_data.get("entity", defaults.entity)),
                recency_scale_days=float(
                    memory_data.get("recency_scale_days", defaults.recency_scale_days)
                ),
                entity_boost=float(memory_data.get("entity_boost", defaults.entity_boost)),
            ),
        ),
        data_dir=Path(os.getenv("EKPA_DATA_DIR", file_data.get("data_dir", str(_DEFAULT_DATA_DIR)))),
        log_level=os.getenv("EKPA_LOG_LEVEL", file_data.get("log_level", "INFO")),
    )
    return config
