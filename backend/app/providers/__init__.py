from app.providers.base import BaseAdapter
from app.providers.presets import ProviderFamily, ProviderId
from app.providers.registry import create_adapter

__all__ = ["BaseAdapter", "ProviderFamily", "ProviderId", "create_adapter"]
