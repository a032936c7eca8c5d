from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, Optional, Union

from app.providers.presets import ProviderId


class ProfileSaveRequest(BaseModel):
    """Create (no id) or update (with id) a profile"""
    model_config = ConfigDict(populate_by_name=True)

    id: Optional[str] = None
    name: Optional[str] = Field(None, max_length=100)
    provider: Optional[ProviderId] = None
    base_url: Optional[str] = Field(None, alias="baseUrl", max_length=500)
    api_key: Optional[str] = Field(None, alias="apiKey")
    model: Optional[str] = Field(None, max_length=200)
    is_draft: bool = Field(False, alias="isDraft")


class DraftRequest(BaseModel):
    provider: ProviderId = ProviderId.OPENROUTER


class ActiveProfileRequest(BaseModel):
    id: str = Field(..., min_length=1)


class AnalyzeRequest(BaseModel):
    report: Union[Dict[str, Any], str] = Field(
        ..., description="/actuator/startup document, decoded or as JSON text"
    )
    full_json: bool = False  # Send the whole report instead of the compact prompt
    attempts: Optional[int] = Field(None, ge=1, le=10)
    allow_fallback: bool = False
