"""
Profile Manager - business logic for LLM connection profiles.

Handles default-profile synthesis, active selection, save (upsert), drafts
and delete. Every mutation is written through to the ProfileStore as a
whole-collection replacement.
"""

import logging
from typing import List, Optional, Union

from fastapi import Request

from app.config import settings
from app.errors import ProtectedProfileError
from app.models.profile import Profile, ProfileInput, new_profile_id
from app.providers.presets import AI_PROVIDERS, DEFAULT_PROVIDER, ProviderId, get_preset, infer_provider
from app.services.profile_store import ProfileStore

logger = logging.getLogger(__name__)

DEFAULT_PROFILE_NAME = "Default (OpenRouter)"


class ProfileManager:
    """Manages profile operations with persistence."""

    def __init__(self, store: ProfileStore, default_api_key: Optional[str] = None):
        self.store = store
        # Credential for the synthesized default profile; comes from configuration
        self.default_api_key = default_api_key if default_api_key is not None else (settings.default_api_key or "")

    @staticmethod
    def infer_provider(base_url: Optional[str]) -> ProviderId:
        return infer_provider(base_url)

    def ensure_default_profile(self) -> None:
        """Synthesize the default profile, or backfill its empty API key. Idempotent."""
        profiles = self.get_profiles()
        default = next((p for p in profiles if p.is_default), None)

        if default is None:
            preset = AI_PROVIDERS[DEFAULT_PROVIDER]
            default = Profile(
                id=new_profile_id(),
                name=DEFAULT_PROFILE_NAME,
                provider=DEFAULT_PROVIDER,
                base_url=preset.base_url,
                api_key=self.default_api_key,
                model=preset.model,
                is_default=True,
                is_draft=False,
            )
            profiles.insert(0, default)
            self.store.set_profiles(profiles)
            logger.info(f"Default profile created: {default.id}")
            if not self.get_active_profile_id():
                self.set_active_profile_id(default.id)
            return

        if not default.api_key and self.default_api_key:
            default.api_key = self.default_api_key
            self.store.set_profiles(profiles)
            logger.info("Default profile API key backfilled from configuration")

    def get_profiles(self) -> List[Profile]:
        return self.store.get_profiles()

    def get_profile(self, profile_id: str) -> Optional[Profile]:
        return next((p for p in self.get_profiles() if p.id == profile_id), None)

    def get_active_profile_id(self) -> str:
        return self.store.get_active_id()

    def set_active_profile_id(self, profile_id: str) -> None:
        if profile_id:
            self.store.set_active_id(profile_id)

    def get_active_profile(self) -> Optional[Profile]:
        """
        Resolve the active profile.

        A stale active id heals to the first profile in the collection.
        """
        self.ensure_default_profile()
        active_id = self.get_active_profile_id()
        profiles = self.get_profiles()
        profile = next((p for p in profiles if p.id == active_id), None)
        if profile is None and profiles:
            profile = profiles[0]
            logger.info(f"Active profile '{active_id}' not found, falling back to {profile.id}")
            self.set_active_profile_id(profile.id)
        return profile

    def save_profile(self, data: Union[ProfileInput, dict]) -> Profile:
        """
        Create or update a profile.

        Writes targeting the default profile are ignored and the stored record
        is returned unchanged. For every provider except ``custom`` the base
        URL is replaced with the preset endpoint.

        Args:
            data: Profile fields; a missing ``id`` creates a new profile

        Returns:
            The stored profile
        """
        if not isinstance(data, ProfileInput):
            data = ProfileInput.model_validate(data)

        profiles = self.get_profiles()
        index = next((i for i, p in enumerate(profiles) if data.id and p.id == data.id), -1)
        if index >= 0 and profiles[index].is_default:
            logger.warning(f"Ignoring write to default profile {data.id}")
            return profiles[index]

        provider = data.provider or infer_provider(data.base_url)
        base_url = data.base_url or ""
        preset = get_preset(provider)
        if provider != ProviderId.CUSTOM and preset is not None:
            base_url = preset.base_url

        # Keys are never sent back to clients, so an update without one keeps the stored key
        api_key = data.api_key
        if api_key is None:
            api_key = profiles[index].api_key if index >= 0 else ""

        record = Profile(
            id=data.id or new_profile_id(),
            name=data.name or "New Profile",
            provider=provider,
            base_url=base_url,
            api_key=api_key,
            model=data.model or "",
            is_default=False,
            is_draft=data.is_draft,
        )

        if index >= 0:
            profiles[index] = record
            logger.info(f"Profile updated: {record.id}")
        else:
            profiles.append(record)
            logger.info(f"Profile created: {record.id} ({record.provider})")
        self.store.set_profiles(profiles)
        return record

    def create_draft(self, provider: ProviderId | str = DEFAULT_PROVIDER) -> Profile:
        """Start a new unsaved profile, replacing any existing draft, and activate it."""
        self.discard_draft()
        preset = get_preset(provider)
        draft = self.save_profile(
            ProfileInput(
                name="New Profile",
                provider=ProviderId(provider),
                base_url=preset.base_url if preset else "",
                api_key="",
                model=preset.model if preset else "",
                is_draft=True,
            )
        )
        self.set_active_profile_id(draft.id)
        return draft

    def discard_draft(self) -> None:
        """Delete the current draft, if any."""
        for profile in self.get_profiles():
            if profile.is_draft and not profile.is_default:
                self.delete_profile(profile.id)

    def delete_profile(self, profile_id: str) -> None:
        """
        Delete a profile.

        Raises:
            ProtectedProfileError: if the profile is the default profile
        """
        profiles = self.get_profiles()
        index = next((i for i, p in enumerate(profiles) if p.id == profile_id), -1)
        if index < 0:
            return
        if profiles[index].is_default:
            raise ProtectedProfileError()

        del profiles[index]
        self.store.set_profiles(profiles)
        logger.info(f"Profile deleted: {profile_id}")

        if self.get_active_profile_id() == profile_id:
            if profiles:
                self.set_active_profile_id(profiles[0].id)
            else:
                self.store.clear_active_id()


def get_profile_manager(request: Request) -> ProfileManager:
    """FastAPI dependency: the manager created at startup."""
    return request.app.state.profile_manager
