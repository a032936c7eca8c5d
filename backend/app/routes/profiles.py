"""
Profile routes for the LLM settings panel.
"""

import logging

from fastapi import APIRouter, Depends

from app.errors import ProtectedProfileError
from app.models.profile import ProfileInput
from app.models.request import ActiveProfileRequest, DraftRequest, ProfileSaveRequest
from app.models.response import ProfileResponse
from app.providers.presets import AI_PROVIDERS
from app.services.profiles import ProfileManager, get_profile_manager
from app.utils.exceptions import raise_forbidden, raise_not_found

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/providers")
async def list_providers():
    """Provider presets for the settings form"""
    return {
        "providers": [
            {
                "id": provider_id.value,
                "name": preset.name,
                "base_url": preset.base_url,
                "model": preset.model,
                "docs": preset.docs,
                "family": preset.family.value,
            }
            for provider_id, preset in AI_PROVIDERS.items()
        ]
    }


@router.get("/profiles")
async def list_profiles(manager: ProfileManager = Depends(get_profile_manager)):
    """List profiles and the active profile id."""
    active = manager.get_active_profile()
    active_id = active.id if active else ""
    return {
        "profiles": [ProfileResponse.from_profile(p, active_id) for p in manager.get_profiles()],
        "active_id": active_id,
    }


@router.get("/profiles/active", response_model=ProfileResponse)
async def get_active_profile(manager: ProfileManager = Depends(get_profile_manager)):
    profile = manager.get_active_profile()
    if profile is None:
        raise_not_found("Active profile")
    return ProfileResponse.from_profile(profile, profile.id)


@router.put("/profiles/active", response_model=ProfileResponse)
async def set_active_profile(
    request: ActiveProfileRequest,
    manager: ProfileManager = Depends(get_profile_manager),
):
    profile = manager.get_profile(request.id)
    if profile is None:
        raise_not_found("Profile", request.id)
    manager.set_active_profile_id(profile.id)
    return ProfileResponse.from_profile(profile, profile.id)


@router.post("/profiles", response_model=ProfileResponse)
async def save_profile(
    request: ProfileSaveRequest,
    manager: ProfileManager = Depends(get_profile_manager),
):
    """
    Create or update a profile and make it active.

    Writes to the default profile leave it unchanged.
    """
    saved = manager.save_profile(ProfileInput(**request.model_dump()))
    manager.set_active_profile_id(saved.id)
    return ProfileResponse.from_profile(saved, saved.id)


@router.post("/profiles/draft", response_model=ProfileResponse)
async def create_draft(
    request: DraftRequest,
    manager: ProfileManager = Depends(get_profile_manager),
):
    """Start a new unsaved profile; an earlier draft is discarded."""
    draft = manager.create_draft(request.provider)
    return ProfileResponse.from_profile(draft, draft.id)


@router.delete("/profiles/draft")
async def discard_draft(manager: ProfileManager = Depends(get_profile_manager)):
    manager.discard_draft()
    active = manager.get_active_profile()
    return {"active_id": active.id if active else ""}


@router.delete("/profiles/{profile_id}")
async def delete_profile(
    profile_id: str,
    manager: ProfileManager = Depends(get_profile_manager),
):
    if manager.get_profile(profile_id) is None:
        raise_not_found("Profile", profile_id)
    try:
        manager.delete_profile(profile_id)
    except ProtectedProfileError:
        raise_forbidden(
            "The default profile is read-only and cannot be deleted. Create another profile instead."
        )
    active = manager.get_active_profile()
    return {"deleted": profile_id, "active_id": active.id if active else ""}
