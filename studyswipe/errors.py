"""
Domain errors for the matching core.

- ValidationError: bad input, rejected before any remote call
- ConflictError: duplicate swipe or match, benign
- ReferenceGone: the match or profile no longer exists
- TransientIOError: the store call failed
"""


class StudySwipeError(Exception):
    """Base class for every error raised by the core."""


class ValidationError(StudySwipeError):
    pass


class NotParticipant(ValidationError):
    """The acting user is not one of the match's two participants."""


class ConflictError(StudySwipeError):
    pass


class ReferenceGone(StudySwipeError):
    pass


class TransientIOError(StudySwipeError):
    pass


class SendFailed(TransientIOError):
    """The message could not be persisted. The caller may retry manually."""


class UnmatchIncomplete(TransientIOError):
    """Messages were deleted but the match row could not be removed."""
