from fastapi import APIRouter, Depends

from app.services.profiles import ProfileManager, get_profile_manager


router = APIRouter()


@router.get("/health")
async def health(manager: ProfileManager = Depends(get_profile_manager)):
    """Health check endpoint"""
    active = manager.get_active_profile()
    return {
        "status": "healthy",
        "active_profile": active.name if active else None,
    }
