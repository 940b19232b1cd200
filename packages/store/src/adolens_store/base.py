"""Abstract store interface.

Settings are kept as JSON values under a handful of well-known keys. A
backend implements the four raw key/value methods; the typed accessors
below are shared. The CLI depends on BaseStore, not on a concrete backend,
so backends are swappable without touching CLI code.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any

from adolens_store.models import ProviderSettings

logger = logging.getLogger(__name__)


class StorageKeys:
    PAT = "pat"
    OPENAI_API_KEY = "openai_api_key"  # legacy, read-only
    AI_PROVIDER_CONFIG = "ai_provider_config"
    ORG_URL = "org_url"


class BaseStore(ABC):
    """Pluggable persistence layer for user settings.

    Implementations must be safe to call from CI environments where no
    interactive credentials are available. Missing keys read as None and
    never raise.
    """

    @abstractmethod
    def get(self, key: str) -> Any:
        """Return the value stored under ``key`` or None."""

    @abstractmethod
    def set(self, key: str, value: Any) -> None:
        """Persist a JSON-serialisable value under ``key``."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove ``key``; deleting a missing key is not an error."""

    def close(self) -> None:
        """Release any resources held by the store (connections, file handles).

        Optional. Subclasses that need cleanup should override this.
        Default is a no-op so callers can always call close() safely.
        """

    # ------------------------------------------------------------------ #
    # Typed accessors                                                      #
    # ------------------------------------------------------------------ #

    def get_pat(self) -> str | None:
        return self.get(StorageKeys.PAT)

    def set_pat(self, pat: str) -> None:
        self.set(StorageKeys.PAT, pat)

    def clear_pat(self) -> None:
        self.delete(StorageKeys.PAT)

    def get_org_url(self) -> str | None:
        return self.get(StorageKeys.ORG_URL)

    def set_org_url(self, url: str) -> None:
        self.set(StorageKeys.ORG_URL, url.rstrip("/"))

    def get_provider_settings(self) -> ProviderSettings | None:
        stored = self.get(StorageKeys.AI_PROVIDER_CONFIG)
        if stored:
            return ProviderSettings.from_dict(stored)

        # Older installs only kept an OpenAI key.
        legacy_key = self.get(StorageKeys.OPENAI_API_KEY)
        if legacy_key:
            logger.debug("Using legacy OpenAI key from the store")
            return ProviderSettings(provider="openai", model="gpt-4o", api_key=legacy_key)
        return None

    def set_provider_settings(self, settings: ProviderSettings) -> None:
        self.set(StorageKeys.AI_PROVIDER_CONFIG, settings.to_dict())
