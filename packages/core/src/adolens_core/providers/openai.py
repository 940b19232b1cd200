from __future__ import annotations

try:
    from openai import AsyncOpenAI as _AsyncOpenAI
except ImportError:
    _AsyncOpenAI = None  # type: ignore[assignment,misc]

from adolens_core.providers.base import BaseReviewer


class OpenAIReviewer(BaseReviewer):
    """OpenAI, and any server speaking its chat completions API (Ollama, proxies)."""

    # temperature=0.2 for OpenAI, lower than Anthropic's 0.3 to lean toward
    # more deterministic, structured JSON output.
    TEMPERATURE = 0.2

    def __init__(self, api_key: str, model: str, base_url: str | None = None, json_mode: bool = True):
        super().__init__(model)
        if _AsyncOpenAI is None:
            raise ImportError(
                "The 'openai' package is required for this provider. " "Install it with: pip install 'adolens[openai]'"
            )
        # Local servers accept any key but the SDK refuses an empty one.
        self.client = _AsyncOpenAI(api_key=api_key or "not-needed", base_url=base_url)
        self.json_mode = json_mode

    async def _call_api(self, system_prompt: str, user_prompt: str) -> str:
        kwargs = {}
        if self.json_mode:
            kwargs["response_format"] = {"type": "json_object"}
        response = await self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            temperature=self.TEMPERATURE,
            max_tokens=self.MAX_TOKENS,
            **kwargs,
        )
        return response.choices[0].message.content or ""
