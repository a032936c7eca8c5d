import logging
from typing import Dict, Type

from app.providers.base import BaseAdapter
from app.providers.claude import AnthropicAdapter
from app.providers.openai_compatible import OpenAICompatibleAdapter
from app.providers.presets import ProviderFamily, ProviderId, provider_family

logger = logging.getLogger(__name__)


# Mapping of provider families to their adapter classes
ADAPTER_CLASSES: Dict[ProviderFamily, Type[BaseAdapter]] = {
    ProviderFamily.OPENAI: OpenAICompatibleAdapter,
    ProviderFamily.ANTHROPIC: AnthropicAdapter,
}


def create_adapter(provider: ProviderId | str, base_url: str, api_key: str) -> BaseAdapter:
    """Instantiate the adapter for ``provider``'s wire dialect."""
    family = provider_family(provider)
    adapter_class = ADAPTER_CLASSES[family]
    logger.debug(f"Using {adapter_class.__name__} for provider '{provider}'")
    return adapter_class(base_url, api_key, provider)
