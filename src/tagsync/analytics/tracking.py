"""
Analytics events for keyword edits.

Every change notification becomes a ``keyword_edited`` event. Delivering the
events anywhere beyond the configured sink is not handled here.
"""

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Callable, Optional, Tuple

from tagsync.models import KeywordChange
from tagsync.session import SessionContext

logger = logging.getLogger(__name__)

EVENT_NAME = "keyword_edited"


@dataclass(frozen=True)
class KeywordEditEvent:
    action: str
    keyword: str
    keywords: Tuple[str, ...]
    user: Optional[str] = None
    name: str = EVENT_NAME
    timestamp: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )

    def to_dict(self) -> dict:
        data = asdict(self)
        data["keywords"] = list(self.keywords)
        return data


EventSink = Callable[[KeywordEditEvent], None]


def log_sink(event: KeywordEditEvent) -> None:
    logger.info(
        f"Tracked {event.name}: {event.action} '{event.keyword}' "
        f"for {event.user or 'anonymous'} ({len(event.keywords)} keywords)"
    )


class KeywordEditTracker:
    """
    Change-notification subscriber that records keyword edits as analytics events.

    The signed-in user is read from the session at the time of the edit.
    """

    def __init__(self, session: SessionContext, sink: Optional[EventSink] = None):
        self._session = session
        self._sink = sink if sink is not None else log_sink

    def __call__(self, change: KeywordChange) -> None:
        user = self._session.current_user
        event = KeywordEditEvent(
            action=change.action,
            keyword=change.keyword,
            keywords=change.keywords,
            user=user.id if user else None,
        )
        self._sink(event)
