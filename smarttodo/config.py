"""
Configuration management for the AI categorization engine.

The configuration is stored as a TOML file. It names the AI provider and
its parameters, the tag curation limits and the request retry settings.
Environment variables override the file.
"""

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

# tomli_w for writing TOML (tomllib is read-only)
try:
    import tomli_w
except ImportError:
    tomli_w = None  # type: ignore

from .curation import DEFAULT_MAX_PROMPT_TAGS, DEFAULT_TAG_TOKEN_BUDGET
from .providers.base import DEFAULT_TIMEOUT

CONFIG_FILENAME = "smarttodo.toml"
CONFIG_VERSION = 1
DEFAULT_MAX_ATTEMPTS = 3


@dataclass
class ProviderConfig:
    """Configuration for a single provider."""
    name: str
    params: dict[str, Any] = field(default_factory=dict)


@dataclass
class AIConfig:
    """Complete configuration."""
    path: Path
    version: int = CONFIG_VERSION

    provider: ProviderConfig = field(default_factory=lambda: ProviderConfig("noop"))

    # Tag curation
    max_prompt_tags: int = DEFAULT_MAX_PROMPT_TAGS
    tag_token_budget: int = DEFAULT_TAG_TOKEN_BUDGET

    # Upstream requests
    timeout: float = DEFAULT_TIMEOUT
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    retry_quota: bool = False

    # Log full prompts and responses instead of short previews
    full_log: bool = False

    @property
    def config_path(self) -> Path:
        """Path to the TOML config file."""
        return self.path / CONFIG_FILENAME

    def exists(self) -> bool:
        return self.config_path.exists()

    def provider_params(self) -> dict[str, Any]:
        """Parameters for ProviderRegistry.create, including the shared settings."""
        params = dict(self.provider.params)
        if self.provider.name != "noop":
            params.setdefault("timeout", self.timeout)
            params.setdefault("max_prompt_tags", self.max_prompt_tags)
            params.setdefault("tag_token_budget", self.tag_token_budget)
            params.setdefault("full_log", self.full_log)
        return params


def _env_flag(name: str) -> bool | None:
    value = os.environ.get(name)
    if value is None:
        return None
    return value.strip().lower() in ("1", "true", "yes", "on")


def detect_default_provider() -> ProviderConfig:
    """
    Pick a provider from the environment.

    Priority:
    1. AI_PROVIDER, if set
    2. OpenAI (if an API key is available)
    3. Anthropic (if an API key is available)
    4. Fallback: noop
    """
    name = os.environ.get("AI_PROVIDER")
    if name:
        return ProviderConfig(name)
    if os.environ.get("SMARTTODO_OPENAI_API_KEY") or os.environ.get("OPENAI_API_KEY"):
        return ProviderConfig("openai")
    if os.environ.get("ANTHROPIC_API_KEY"):
        return ProviderConfig("anthropic")
    return ProviderConfig("noop")


def apply_env_overrides(config: AIConfig) -> AIConfig:
    """Apply AI_PROVIDER, AI_MODEL, AI_BASE_URL and SMARTTODO_FULL_LOG."""
    name = os.environ.get("AI_PROVIDER")
    if name and name != config.provider.name:
        config.provider = ProviderConfig(name)
    model = os.environ.get("AI_MODEL")
    if model:
        config.provider.params["model"] = model
    base_url = os.environ.get("AI_BASE_URL")
    if base_url:
        config.provider.params["base_url"] = base_url
    full_log = _env_flag("SMARTTODO_FULL_LOG")
    if full_log is not None:
        config.full_log = full_log
    return config


def create_default_config(path: Path) -> AIConfig:
    """Create a new config with an auto-detected provider."""
    return AIConfig(path=path, provider=detect_default_provider())


def load_config(path: Path) -> AIConfig:
    """
    Load configuration from a directory.

    Raises:
        FileNotFoundError: If config doesn't exist
        ValueError: If config is invalid
    """
    config_path = path / CONFIG_FILENAME

    if not config_path.exists():
        raise FileNotFoundError(f"Config not found: {config_path}")

    with open(config_path, "rb") as f:
        data = tomllib.load(f)

    version = data.get("config", {}).get("version", 1)
    if version > CONFIG_VERSION:
        raise ValueError(f"Config version {version} is newer than supported ({CONFIG_VERSION})")

    provider_section = data.get("provider", {"name": "noop"})
    if not provider_section.get("name"):
        raise ValueError(f"Config {config_path}: [provider] requires a name")

    curation = data.get("curation", {})
    requests_section = data.get("requests", {})
    logging_section = data.get("logging", {})

    try:
        return AIConfig(
            path=path,
            version=version,
            provider=ProviderConfig(
                name=provider_section["name"],
                params={k: v for k, v in provider_section.items() if k != "name"},
            ),
            max_prompt_tags=int(curation.get("max_prompt_tags", DEFAULT_MAX_PROMPT_TAGS)),
            tag_token_budget=int(curation.get("tag_token_budget", DEFAULT_TAG_TOKEN_BUDGET)),
            timeout=float(requests_section.get("timeout", DEFAULT_TIMEOUT)),
            max_attempts=int(requests_section.get("max_attempts", DEFAULT_MAX_ATTEMPTS)),
            retry_quota=bool(requests_section.get("retry_quota", False)),
            full_log=bool(logging_section.get("full_content", False)),
        )
    except (TypeError, ValueError) as e:
        raise ValueError(f"Invalid config {config_path}: {e}") from e


def save_config(config: AIConfig) -> None:
    """
    Save configuration to its directory.

    API keys are never written; they come from the environment.
    """
    if tomli_w is None:
        raise RuntimeError("tomli_w is required to save config. Install with: pip install tomli-w")

    config.path.mkdir(parents=True, exist_ok=True)

    provider = {"name": config.provider.name}
    provider.update({k: v for k, v in config.provider.params.items() if k != "api_key"})

    data = {
        "config": {"version": config.version},
        "provider": provider,
        "curation": {
            "max_prompt_tags": config.max_prompt_tags,
            "tag_token_budget": config.tag_token_budget,
        },
        "requests": {
            "timeout": config.timeout,
            "max_attempts": config.max_attempts,
            "retry_quota": config.retry_quota,
        },
        "logging": {"full_content": config.full_log},
    }

    with open(config.config_path, "wb") as f:
        tomli_w.dump(data, f)


def load_or_create_config(path: Path) -> AIConfig:
    """
    Load existing config or create a new one with defaults.

    This is the main entry point for config management.
    """
    if (path / CONFIG_FILENAME).exists():
        config = load_config(path)
    else:
        config = create_default_config(path)
        save_config(config)
    return apply_env_overrides(config)


def default_config_dir() -> Path:
    """SMARTTODO_CONFIG_DIR, or ~/.smarttodo."""
    configured = os.environ.get("SMARTTODO_CONFIG_DIR")
    if configured:
        return Path(configured).expanduser()
    return Path.home() / ".smarttodo"
