"""Settings data models.

Decoupled from adolens_core so the store layer can be used independently
and adolens_core has no knowledge of persistence concerns.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass


@dataclass
class ProviderSettings:
    """The AI provider chosen by the user, as persisted under ``ai_provider_config``.

    The CLI maps this onto the core ``provider`` / ``model`` / ``api_key`` /
    ``base_url`` config keys before a review starts.
    """

    provider: str
    model: str
    api_key: str = ""
    base_url: str | None = None

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> ProviderSettings:
        return cls(
            provider=data.get("provider", ""),
            model=data.get("model", ""),
            api_key=data.get("api_key") or data.get("apiKey") or "",
            base_url=data.get("base_url") or data.get("baseUrl"),
        )
