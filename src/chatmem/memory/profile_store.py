"""Cross-chat user profile store.

Profiles are additive: a merge never removes a known fact. Scalar fields are
overwritten only by a newer non-empty value, list fields are unioned.
"""

from __future__ import annotations

import logging
from typing import Any

from chatmem.models import ProfileDelta, UserProfile, _utcnow
from chatmem.memory.storage import InMemoryStoragePort, StoragePort

logger = logging.getLogger(__name__)

_SCALAR_FIELDS = ("name", "role", "background", "conversation_style")
_LIST_FIELDS = ("interests", "preferences")


def _union(existing: list[str], new: list[str] | None) -> list[str]:
    """Ordered, case-insensitive union keeping the first spelling seen."""
    merged = list(existing)
    seen = {item.casefold() for item in existing}
    for item in new or []:
        item = item.strip()
        if item and item.casefold() not in seen:
            merged.append(item)
            seen.add(item.casefold())
    return merged


class UserProfileStore:
    """Profile tier of the hybrid memory, keyed by user_id."""

    def __init__(self, storage: StoragePort | None = None):
        self._storage = storage if storage is not None else InMemoryStoragePort()

    def get(self, user_id: str) -> UserProfile | None:
        """Return a copy of the stored profile, or None."""
        profile = self._storage.get(user_id)
        return profile.model_copy(deep=True) if profile else None

    def upsert(
        self,
        user_id: str,
        fields: ProfileDelta | dict[str, Any],
        from_conversation: bool = False,
    ) -> UserProfile:
        """Merge partial fields into the user's profile, creating it if absent.

        Args:
            from_conversation: The delta was extracted from a chat, so it counts
                toward conversation_count. Manual overrides leave the count alone.
        """
        delta = fields if isinstance(fields, ProfileDelta) else ProfileDelta.model_validate(fields)

        profile = self._storage.get(user_id)
        created = profile is None
        if profile is None:
            profile = UserProfile(user_id=user_id)
        else:
            profile = profile.model_copy(deep=True)

        changed: list[str] = []
        for field in _SCALAR_FIELDS:
            value = getattr(delta, field)
            if isinstance(value, str):
                value = value.strip()
            if value and value != getattr(profile, field):
                setattr(profile, field, value)
                changed.append(field)

        for field in _LIST_FIELDS:
            before = getattr(profile, field)
            after = _union(before, getattr(delta, field))
            if len(after) != len(before):
                setattr(profile, field, after)
                changed.append(field)

        if from_conversation:
            profile.conversation_count += 1
        profile.last_updated = _utcnow()
        self._storage.put(user_id, profile)

        if created:
            logger.info(f"[PROFILE] Created profile for user {user_id}")
        elif changed:
            logger.info(f"[PROFILE] Updated {', '.join(changed)} for user {user_id}")
        return profile.model_copy(deep=True)

    def delete(self, user_id: str) -> bool:
        deleted = self._storage.delete(user_id)
        if deleted:
            logger.info(f"[PROFILE] Deleted profile for user {user_id}")
        return deleted

    def all_profiles(self) -> list[UserProfile]:
        return [p.model_copy(deep=True) for _, p in self._storage.items()]

    def generate_context(self, user_id: str) -> str:
        """Render the profile as a short block for a retrieval result.

        Returns an empty string when the user has no profile or the profile
        holds no facts yet.
        """
        profile = self._storage.get(user_id)
        if profile is None:
            return ""

        parts = []
        if profile.name:
            parts.append(f"The user's name is {profile.name}.")
        if profile.role:
            parts.append(f"They work as {profile.role}.")
        if profile.background:
            parts.append(f"Background: {profile.background}.")
        if profile.interests:
            parts.append(f"They are interested in {', '.join(profile.interests)}.")
        if profile.preferences:
            parts.append(f"Preferences: {', '.join(profile.preferences)}.")
        if profile.conversation_style:
            parts.append(f"Conversation style: {profile.conversation_style}.")

        if not parts:
            return ""
        return "\n--- USER PROFILE ---\n" + " ".join(parts) + "\n--- END PROFILE ---\n"
