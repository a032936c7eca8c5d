import logging
from abc import ABC, abstractmethod
from typing import Any, Dict

import httpx

from app.providers.presets import ProviderFamily, ProviderId

logger = logging.getLogger(__name__)


class BaseAdapter(ABC):
    """Abstract base class for provider request shaping.

    An adapter knows how to turn a prompt into a wire request for one provider
    family and how to read that family's success envelope. It never sends
    anything itself; the orchestrator owns the client and the retry loop.
    """

    family: ProviderFamily

    def __init__(self, base_url: str, api_key: str, provider: ProviderId | str = ProviderId.CUSTOM):
        self.base_url = base_url
        self.api_key = api_key
        self.provider = provider

    def _headers(self) -> Dict[str, str]:
        """Headers shared by every request. Override to add authentication."""
        return {"Content-Type": "application/json"}

    @abstractmethod
    def _payload(self, model: str, system: str, user: str, temperature: float) -> Dict[str, Any]:
        """JSON body for a non-streaming completion request"""
        pass

    def build_request(
        self,
        client: httpx.AsyncClient,
        model: str,
        system: str,
        user: str,
        temperature: float = 0.2,
    ) -> httpx.Request:
        """Build (but do not send) a POST request to the profile's endpoint."""
        return client.build_request(
            "POST",
            self.base_url,
            headers=self._headers(),
            json=self._payload(model, system, user, temperature),
        )

    @abstractmethod
    def extract_content(self, data: Any) -> str:
        """
        Extract the answer text from a success envelope.

        Must return "" for a missing or malformed envelope instead of raising,
        so the caller can report an unexpected response shape.
        """
        pass
