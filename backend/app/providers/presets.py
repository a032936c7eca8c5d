"""
Provider presets: canonical endpoints, default models and fallback models.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional


class ProviderId(str, Enum):
    OPENROUTER = "openrouter"
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    DEEPSEEK = "deepseek"
    CUSTOM = "custom"


class ProviderFamily(str, Enum):
    """Wire dialect a provider speaks."""

    OPENAI = "openai"
    ANTHROPIC = "anthropic"


@dataclass(frozen=True)
class ProviderPreset:
    name: str
    base_url: str
    model: str
    docs: str
    family: ProviderFamily = ProviderFamily.OPENAI


# Primary provider, used to synthesize the default profile
DEFAULT_PROVIDER = ProviderId.OPENROUTER

AI_PROVIDERS: Dict[ProviderId, ProviderPreset] = {
    ProviderId.OPENROUTER: ProviderPreset(
        name="OpenRouter (Default)",
        base_url="https://openrouter.ai/api/v1/chat/completions",
        model="qwen/qwen3-235b-a22b:free",
        docs="https://openrouter.ai",
    ),
    ProviderId.OPENAI: ProviderPreset(
        name="OpenAI",
        base_url="https://api.openai.com/v1/chat/completions",
        model="gpt-4o-mini",
        docs="https://platform.openai.com/docs",
    ),
    ProviderId.ANTHROPIC: ProviderPreset(
        name="Anthropic",
        base_url="https://api.anthropic.com/v1/messages",
        model="claude-sonnet-4-5",
        docs="https://docs.anthropic.com",
        family=ProviderFamily.ANTHROPIC,
    ),
    ProviderId.DEEPSEEK: ProviderPreset(
        name="DeepSeek",
        base_url="https://api.deepseek.com/v1/chat/completions",
        model="deepseek-chat",
        docs="https://platform.deepseek.com",
    ),
}

# Used when a non-custom profile has no model set
DEFAULT_MODELS: Dict[ProviderFamily, str] = {
    ProviderFamily.OPENAI: "gpt-4o-mini",
    ProviderFamily.ANTHROPIC: "claude-sonnet-4-5",
}

# Substituted after sustained rate limiting on the profile's own model
FALLBACK_MODELS: Dict[ProviderId, str] = {
    ProviderId.OPENROUTER: "openai/gpt-4o-mini",
    ProviderId.OPENAI: "gpt-4o-mini",
    ProviderId.ANTHROPIC: "claude-haiku-4-5",
    ProviderId.DEEPSEEK: "deepseek-chat",
}

# Host fragments checked in order when inferring a provider from a URL
_HOST_PATTERNS = (
    ("openrouter.ai", ProviderId.OPENROUTER),
    ("api.openai.com", ProviderId.OPENAI),
    ("anthropic.com", ProviderId.ANTHROPIC),
    ("deepseek.com", ProviderId.DEEPSEEK),
)


def get_preset(provider: ProviderId | str) -> Optional[ProviderPreset]:
    """Preset for a provider, or None for custom/unknown providers."""
    try:
        return AI_PROVIDERS.get(ProviderId(provider))
    except ValueError:
        return None


def infer_provider(base_url: Optional[str]) -> ProviderId:
    """Guess the provider from an endpoint URL; ``custom`` when nothing matches."""
    url = (base_url or "").lower()
    for fragment, provider in _HOST_PATTERNS:
        if fragment in url:
            return provider
    return ProviderId.CUSTOM


def provider_family(provider: ProviderId | str) -> ProviderFamily:
    """Wire dialect for a provider; unknown and custom providers speak OpenAI."""
    preset = get_preset(provider)
    return preset.family if preset else ProviderFamily.OPENAI


def pick_fallback_model(provider: ProviderId | str, current: str) -> Optional[str]:
    """Fallback model for ``provider``, or None when there is nothing different to try."""
    try:
        fallback = FALLBACK_MODELS.get(ProviderId(provider))
    except ValueError:
        return None
    if not fallback or fallback == current:
        return None
    return fallback
