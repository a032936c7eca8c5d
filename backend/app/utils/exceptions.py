"""
HTTP Exception helpers for the profile and analysis routes.

Usage:
    from app.utils.exceptions import raise_forbidden, raise_bad_request

    raise_forbidden("The default profile is read-only")
    raise_bad_request("API Key is missing for the active profile")
"""

from typing import NoReturn

from fastapi import HTTPException, status


def raise_bad_request(detail: str) -> NoReturn:
    """Raise HTTP 400 Bad Request."""
    raise HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail=detail,
    )


def raise_forbidden(detail: str = "Forbidden") -> NoReturn:
    """Raise HTTP 403 Forbidden."""
    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail=detail,
    )


def raise_not_found(resource: str, id: int | str | None = None) -> NoReturn:
    """Raise HTTP 404 Not Found."""
    if id is not None:
        detail = f"{resource} with id {id} not found"
    else:
        detail = f"{resource} not found"
    raise HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=detail,
    )
