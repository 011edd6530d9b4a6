"""StudySwipe matching core: swipes, mutual matches and match chat."""

from .conversation import Conversation, MessageLog, fetch_messages, send_message
from .feed import next_candidates
from .inbox import UnreadCounter, count_unread, list_matches
from .matching import canonical_pair, confirm_match, try_form_match
from .schemas import Direction, Match, Message, Profile, Swipe
from .swipes import SwipeOutcome, record_swipe, swipe
from .unmatch import UnmatchResult, unmatch

__all__ = [
    "Conversation",
    "MessageLog",
    "fetch_messages",
    "send_message",
    "next_candidates",
    "UnreadCounter",
    "count_unread",
    "list_matches",
    "canonical_pair",
    "confirm_match",
    "try_form_match",
    "Direction",
    "Match",
    "Message",
    "Profile",
    "Swipe",
    "SwipeOutcome",
    "record_swipe",
    "swipe",
    "UnmatchResult",
    "unmatch",
]
