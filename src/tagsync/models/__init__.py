from tagsync.models.models import (
    Added,
    ChangeNotification,
    KeywordChange,
    KeywordSet,
    Removed,
    SessionEvent,
    SignedIn,
    SignedOut,
    User,
    normalize_keyword,
)

__all__ = [
    "Added",
    "ChangeNotification",
    "KeywordChange",
    "KeywordSet",
    "Removed",
    "SessionEvent",
    "SignedIn",
    "SignedOut",
    "User",
    "normalize_keyword",
]
