import os
from pathlib import Path
from typing import Optional

import yaml

from adolens_core.models import ProviderConfig

DEFAULT_CONFIG: dict = {
    "provider": "anthropic",
    "model": None,  # None = provider default (see DEFAULT_MODELS)
    "base_url": None,  # only used by the OpenAI-compatible providers
    "org_url": None,
    "max_chars_per_file": 20000,
    "max_retries": 2,
    "retry_base_delay_ms": 1000,
    "retry_max_delay_ms": 30000,
    "min_post_interval_ms": 150,
    "exclude": [],  # fnmatch patterns or directory names to skip on top of the built-in rules
    "store": "sqlite",
    "store_path": ".adolens.db",
}

DEFAULT_MODELS = {
    "anthropic": "claude-sonnet-4-20250514",
    "openai": "gpt-4o",
    "ollama": "llama3.1",
    "external": "default",
}

DEFAULT_BASE_URLS = {
    "ollama": "http://localhost:11434/v1",
    "external": "http://localhost:8000/v1",
}

# Providers that run locally or behind a proxy may not need a key.
_KEYLESS_PROVIDERS = {"ollama", "external"}


def load_config(config_path: str = ".adolens.yml", cli_overrides: Optional[dict] = None) -> dict:
    """
    Load configuration by merging (in order of precedence):
      1. Built-in defaults
      2. .adolens.yml in the current directory
      3. CLI argument overrides
    """
    config = {**DEFAULT_CONFIG, "exclude": list(DEFAULT_CONFIG["exclude"])}

    path = Path(config_path)
    if path.exists():
        with open(path) as f:
            file_config = yaml.safe_load(f) or {}
        config.update(file_config)

    if cli_overrides:
        for key, value in cli_overrides.items():
            if value is not None:
                config[key] = value

    # Resolve credentials from environment variables
    config["anthropic_api_key"] = os.environ.get("ANTHROPIC_API_KEY")
    config["openai_api_key"] = os.environ.get("OPENAI_API_KEY")
    config["ado_pat"] = os.environ.get("ADO_PAT") or os.environ.get("AZURE_DEVOPS_EXT_PAT")

    return config


def get_provider_config(config: dict) -> ProviderConfig | None:
    """Return the active provider configuration, or None if it is incomplete.

    An explicit ``api_key`` (set from the settings store) wins over the
    provider-specific environment variable.
    """
    provider = config.get("provider")
    if provider not in DEFAULT_MODELS:
        return None

    api_key = config.get("api_key") or config.get(f"{provider}_api_key") or ""
    if not api_key and provider not in _KEYLESS_PROVIDERS:
        return None

    return ProviderConfig(
        provider=provider,
        model=config.get("model") or DEFAULT_MODELS[provider],
        api_key=api_key,
        base_url=config.get("base_url") or DEFAULT_BASE_URLS.get(provider),
    )


def retry_settings(config: dict) -> dict:
    """Keyword arguments for with_retry taken from the config."""
    return {
        "max_retries": int(config.get("max_retries", DEFAULT_CONFIG["max_retries"])),
        "base_delay_ms": int(config.get("retry_base_delay_ms", DEFAULT_CONFIG["retry_base_delay_ms"])),
        "max_delay_ms": int(config.get("retry_max_delay_ms", DEFAULT_CONFIG["retry_max_delay_ms"])),
    }
