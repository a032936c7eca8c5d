"""
Profile models.

Profiles are persisted with the camelCase keys the dashboard has always
written (``baseUrl``, ``apiKey``, ``isDefault``, ``isDraft``); the Python side
uses snake_case attributes.
"""

import secrets
import time
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from app.providers.presets import ProviderId, infer_provider

_PROVIDER_VALUES = {p.value for p in ProviderId}


def new_profile_id() -> str:
    """Opaque profile id: random part plus a hex millisecond timestamp."""
    return f"p-{secrets.token_hex(3)}{int(time.time() * 1000):x}"


class Profile(BaseModel):
    """A named set of connection parameters for one LLM provider"""

    model_config = ConfigDict(populate_by_name=True, use_enum_values=True)

    id: str
    name: str = "New Profile"
    provider: ProviderId = ProviderId.CUSTOM
    base_url: str = Field("", alias="baseUrl")
    api_key: str = Field("", alias="apiKey")
    model: str = ""
    is_default: bool = Field(False, alias="isDefault")
    is_draft: bool = Field(False, alias="isDraft")

    @model_validator(mode="before")
    @classmethod
    def _known_provider(cls, data):
        # Records written by older builds may carry provider names we no longer know
        if not isinstance(data, dict):
            return data
        provider = data.get("provider")
        if isinstance(provider, ProviderId):
            provider = provider.value
        if provider not in _PROVIDER_VALUES:
            base_url = data.get("baseUrl", data.get("base_url")) or ""
            data = {**data, "provider": infer_provider(base_url).value}
        return data

    @field_validator("name", "base_url", "api_key", "model", mode="before")
    @classmethod
    def _none_to_empty(cls, value):
        return "" if value is None else value

    def to_record(self) -> dict:
        """Dictionary in the persisted (camelCase) shape."""
        return self.model_dump(by_alias=True, mode="json")


class ProfileInput(BaseModel):
    """Fields accepted by ProfileManager.save_profile()"""

    model_config = ConfigDict(populate_by_name=True)

    id: Optional[str] = None
    name: Optional[str] = None
    provider: Optional[ProviderId] = None
    base_url: Optional[str] = Field(None, alias="baseUrl")
    api_key: Optional[str] = Field(None, alias="apiKey")
    model: Optional[str] = None
    is_draft: bool = Field(False, alias="isDraft")
