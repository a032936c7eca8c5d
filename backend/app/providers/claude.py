from typing import Any, Dict

from app.providers.base import BaseAdapter
from app.providers.presets import ProviderFamily

ANTHROPIC_VERSION = "2023-06-01"
MAX_TOKENS = 1024


class AnthropicAdapter(BaseAdapter):
    family = ProviderFamily.ANTHROPIC

    def _headers(self) -> Dict[str, str]:
        headers = super()._headers()
        headers["x-api-key"] = self.api_key
        headers["anthropic-version"] = ANTHROPIC_VERSION
        return headers

    def _payload(self, model: str, system: str, user: str, temperature: float) -> Dict[str, Any]:
        # Messages API takes the system prompt as a top-level field
        return {
            "model": model,
            "system": system,
            "max_tokens": MAX_TOKENS,
            "messages": [
                {"role": "user", "content": [{"type": "text", "text": user}]},
            ],
        }

    def extract_content(self, data: Any) -> str:
        """Extract text from the first content block."""
        try:
            text = data["content"][0]["text"]
        except (KeyError, IndexError, TypeError):
            return ""
        return str(text) if text else ""
