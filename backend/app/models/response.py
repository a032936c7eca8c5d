from pydantic import BaseModel
from typing import Optional

from app.models.profile import Profile


class ProfileResponse(BaseModel):
    """Profile as returned to the UI; the API key itself is never echoed back"""

    id: str
    name: str
    provider: str
    base_url: str
    model: str
    has_api_key: bool
    is_default: bool
    is_draft: bool
    is_active: bool = False

    @classmethod
    def from_profile(cls, profile: Profile, active_id: Optional[str] = None) -> "ProfileResponse":
        return cls(
            id=profile.id,
            name=profile.name,
            provider=profile.provider,
            base_url=profile.base_url,
            model=profile.model,
            has_api_key=bool(profile.api_key),
            is_default=profile.is_default,
            is_draft=profile.is_draft,
            is_active=profile.id == active_id,
        )
