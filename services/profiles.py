from __future__ import annotations

from datetime import datetime, timezone

from app.schemas import ProfileOut, ProfileUpdate
from datastore.base import Backend
from models.records import Profile


class ProfileService:
    def __init__(self, backend: Backend) -> None:
        self.backend = backend

    def get_profile(self, user_id: str) -> ProfileOut:
        profile = self.backend.get_profile(user_id)
        if profile is None:
            raise KeyError(f"Profile for user {user_id!r} not found.")
        return ProfileOut.model_validate(profile.model_dump())

    def update_profile(self, user_id: str, request: ProfileUpdate) -> ProfileOut:
        """Merge the supplied fields into the stored profile, creating it if needed."""
        current = self.backend.get_profile(user_id) or Profile(id=user_id)
        changes = request.model_dump(exclude_unset=True)
        changes["updated_at"] = datetime.now(timezone.utc)
        stored = self.backend.upsert_profile(current.model_copy(update=changes))
        return ProfileOut.model_validate(stored.model_dump())
