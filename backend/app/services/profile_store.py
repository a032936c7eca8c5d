"""
Persistence of LLM profiles over a key/value storage backend.

Two entries are kept: a JSON array of profile records and the active
profile id. Backends implement ``get_item``/``set_item``/``remove_item``;
``MemoryStorage`` is used in tests and ``app.database.DatabaseStorage`` in
the service.
"""

import logging
from typing import Dict, List, Optional, Protocol

import orjson
from pydantic import ValidationError

from app.models.profile import Profile

logger = logging.getLogger(__name__)

PROFILES_KEY = "llm.profiles"
ACTIVE_ID_KEY = "llm.activeProfileId"


class KeyValueStorage(Protocol):
    def get_item(self, key: str) -> Optional[str]: ...

    def set_item(self, key: str, value: str) -> None: ...

    def remove_item(self, key: str) -> None: ...


class MemoryStorage:
    """Process-local storage backend."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._items: Dict[str, str] = dict(initial or {})

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)


class ProfileStore:
    def __init__(self, storage: KeyValueStorage):
        if storage is None:
            raise ValueError("ProfileStore requires a storage backend")
        self.storage = storage

    def get_profiles(self) -> List[Profile]:
        """Load stored profiles; unreadable data yields an empty list."""
        raw = self.storage.get_item(PROFILES_KEY)
        if not raw:
            return []
        try:
            records = orjson.loads(raw)
        except orjson.JSONDecodeError as e:
            logger.warning(f"Discarding unreadable profile list: {e}")
            return []
        if not isinstance(records, list):
            return []

        profiles = []
        for record in records:
            try:
                profiles.append(Profile.model_validate(record))
            except ValidationError as e:
                logger.warning(f"Skipping malformed profile record: {e.error_count()} error(s)")
        return profiles

    def set_profiles(self, profiles: List[Profile]) -> None:
        """Replace the whole stored collection."""
        payload = orjson.dumps([p.to_record() for p in profiles or []])
        self.storage.set_item(PROFILES_KEY, payload.decode())

    def get_active_id(self) -> str:
        return self.storage.get_item(ACTIVE_ID_KEY) or ""

    def set_active_id(self, profile_id: str) -> None:
        if profile_id:
            self.storage.set_item(ACTIVE_ID_KEY, profile_id)

    def clear_active_id(self) -> None:
        self.storage.remove_item(ACTIVE_ID_KEY)
