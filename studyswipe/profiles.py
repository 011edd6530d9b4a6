"""Profile Service - profile setup and owner-only edits.

Interface Contract:
- create_profile(store, user_id, name, ...) -> Profile
- get_profile(store, user_id) -> Profile
- update_profile(store, owner_id, profile_id, **changes) -> Profile
- Bad input raises ValidationError before any remote call
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Iterable, Optional

from studyswipe.errors import ConflictError, NotParticipant, ReferenceGone, ValidationError
from studyswipe.logger import logger
from studyswipe.schemas import Profile, normalize_subjects
from studyswipe.store import Collections, Store

COMMON_SUBJECTS = [
    "Mathematics",
    "Computer Science",
    "Physics",
    "Chemistry",
    "Biology",
    "Engineering",
    "Psychology",
    "Economics",
    "Business",
    "English",
    "History",
    "Philosophy",
    "Art",
    "Music",
    "Medicine",
]

EDITABLE_FIELDS = ("name", "school", "major", "bio", "photo_url", "subjects")


def _clean_optional(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def _validate_name(name: str) -> str:
    name = (name or "").strip()
    if not name:
        raise ValidationError("Name is required")
    if len(name) > 60:
        raise ValidationError("Name must be at most 60 characters")
    return name


def _validate_bio(bio: Optional[str]) -> Optional[str]:
    bio = _clean_optional(bio)
    if bio and len(bio) > 500:
        raise ValidationError("Bio must be at most 500 characters")
    return bio


def _validate_subjects(subjects: Iterable[str]) -> list:
    cleaned = normalize_subjects(subjects or [])
    if not cleaned:
        raise ValidationError("Please select at least one subject")
    return cleaned


async def create_profile(
    store: Store,
    user_id: str,
    name: str,
    *,
    school: Optional[str] = None,
    major: Optional[str] = None,
    bio: Optional[str] = None,
    photo_url: Optional[str] = None,
    subjects: Iterable[str] = (),
) -> Profile:
    """Create the profile of ``user_id``.

    Raises:
        ValidationError: Missing name or no subjects
        ConflictError: The user already has a profile
    """
    doc = {
        "id": user_id,
        "name": _validate_name(name),
        "school": _clean_optional(school),
        "major": _clean_optional(major),
        "bio": _validate_bio(bio),
        "photo_url": _clean_optional(photo_url),
        "subjects": _validate_subjects(subjects),
    }
    try:
        stored = await store.insert_one(Collections.PROFILES, doc)
    except ConflictError:
        logger.info(f"Profile for {user_id} already exists")
        raise
    logger.info(f"Created profile {user_id}")
    return Profile.model_validate(stored)


async def find_profile(store: Store, user_id: str) -> Optional[Profile]:
    doc = await store.find_one(Collections.PROFILES, {"id": user_id})
    return Profile.model_validate(doc) if doc else None


async def get_profile(store: Store, user_id: str) -> Profile:
    profile = await find_profile(store, user_id)
    if profile is None:
        raise ReferenceGone(f"Profile {user_id} not found")
    return profile


async def update_profile(store: Store, owner_id: str, profile_id: str, **changes) -> Profile:
    """Apply ``changes`` to a profile. Only its owner may edit it."""
    if owner_id != profile_id:
        raise NotParticipant("Profiles can only be edited by their owner")
    unknown = set(changes) - set(EDITABLE_FIELDS)
    if unknown:
        raise ValidationError(f"Unknown profile fields: {', '.join(sorted(unknown))}")

    update = {}
    for key, value in changes.items():
        if key == "name":
            update["name"] = _validate_name(value)
        elif key == "bio":
            update["bio"] = _validate_bio(value)
        elif key == "subjects":
            update["subjects"] = _validate_subjects(value)
        else:
            update[key] = _clean_optional(value)
    update["updated_at"] = datetime.now(timezone.utc)

    doc = await store.update_one(Collections.PROFILES, {"id": profile_id}, update)
    if doc is None:
        raise ReferenceGone(f"Profile {profile_id} not found")
    return Profile.model_validate(doc)
