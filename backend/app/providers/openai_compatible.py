"""
OpenAI-compatible adapter for OpenAI, OpenRouter, DeepSeek and custom endpoints.
"""

from typing import Any, Dict

from app.config import settings
from app.providers.base import BaseAdapter
from app.providers.presets import ProviderFamily, ProviderId


class OpenAICompatibleAdapter(BaseAdapter):
    """Adapter for the chat-completions dialect.

    OpenRouter gets HTTP-Referer and X-Title headers for attribution. They are
    left off for every other endpoint; some custom servers reject unknown
    headers.
    """

    family = ProviderFamily.OPENAI

    def __init__(
        self,
        base_url: str,
        api_key: str,
        provider: ProviderId | str = ProviderId.CUSTOM,
        app_url: str | None = None,
        app_title: str | None = None,
    ):
        super().__init__(base_url, api_key, provider)
        self.app_url = app_url or settings.app_url
        self.app_title = app_title or settings.app_title

    def _headers(self) -> Dict[str, str]:
        headers = super()._headers()
        headers["Authorization"] = f"Bearer {self.api_key}"
        if self.provider == ProviderId.OPENROUTER:
            headers["HTTP-Referer"] = self.app_url
            headers["X-Title"] = self.app_title
        return headers

    def _payload(self, model: str, system: str, user: str, temperature: float) -> Dict[str, Any]:
        return {
            "model": model,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            "temperature": temperature,
            "stream": False,
        }

    def extract_content(self, data: Any) -> str:
        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            return ""
        return str(content) if content else ""
