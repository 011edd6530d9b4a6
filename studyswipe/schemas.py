"""
Database Schemas for the StudySwipe core

Each Pydantic model maps to a collection in the store.
- Profile -> "profiles"
- Swipe -> "swipes"
- Match -> "matches"
- Message -> "messages"

Records carry the store-assigned string ``id`` and ``created_at``.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional, Tuple

from pydantic import BaseModel, Field, field_validator


class Direction(str, Enum):
    LIKE = "right"
    PASS = "left"


class Profile(BaseModel):
    id: str = Field(..., description="Authenticated user ID")
    name: str = Field(..., min_length=1, max_length=60, description="Display name")
    school: Optional[str] = Field(None, description="School or university")
    major: Optional[str] = Field(None, description="Field of study")
    bio: Optional[str] = Field(None, max_length=500, description="Short bio")
    photo_url: Optional[str] = Field(None, description="Avatar image URL")
    subjects: List[str] = Field(default_factory=list, description="Subject tags, unique")
    created_at: datetime
    updated_at: Optional[datetime] = None

    @field_validator("subjects", mode="before")
    @classmethod
    def _unique_subjects(cls, value):
        if value is None:
            return []
        return normalize_subjects(value)


class Swipe(BaseModel):
    id: str
    swiper_id: str = Field(..., description="User ID who swiped")
    swiped_id: str = Field(..., description="User ID who was swiped on")
    direction: Direction = Field(..., description="right = like, left = pass")
    created_at: datetime

    @property
    def is_like(self) -> bool:
        return self.direction == Direction.LIKE


class Match(BaseModel):
    id: str
    user1_id: str = Field(..., description="Lexicographically smaller user ID")
    user2_id: str = Field(..., description="Lexicographically larger user ID")
    created_at: datetime

    @property
    def participants(self) -> Tuple[str, str]:
        return (self.user1_id, self.user2_id)

    def has_participant(self, user_id: str) -> bool:
        return user_id in self.participants

    def other(self, user_id: str) -> str:
        """Return the participant that is not ``user_id``."""
        return self.user2_id if user_id == self.user1_id else self.user1_id


class Message(BaseModel):
    id: str
    match_id: str = Field(..., description="Match ID")
    sender_id: str = Field(..., description="Sender user ID")
    text: str = Field(..., min_length=1, description="Message text")
    created_at: datetime

    @property
    def sort_key(self) -> Tuple[datetime, str]:
        return (self.created_at, self.id)


def normalize_subjects(subjects) -> List[str]:
    """Strip, drop blanks and duplicates, keep first-seen order."""
    seen = []
    for subject in subjects:
        cleaned = str(subject).strip()
        if cleaned and cleaned not in seen:
            seen.append(cleaned)
    return seen
