"""
Session state shared between the sign-in flow and the components that react to it.

The session is owned by whoever creates it and passed explicitly to the
components that subscribe to it; there is no process-wide instance.
"""

import logging
from typing import Optional

from tagsync.models import SessionEvent, SignedIn, SignedOut, User
from tagsync.util.messagebus import Callback, MessageBus, Subscription

logger = logging.getLogger(__name__)

SESSION_TOPIC = "session.events"


class SessionContext:
    """
    Tracks the signed-in user and broadcasts sign-in/sign-out events.

    ``generation`` increases on every transition, so a consumer can tell whether
    the session it captured earlier is still the current one.
    """

    def __init__(self, bus: Optional[MessageBus] = None):
        self._bus = bus if bus is not None else MessageBus()
        self._user: Optional[User] = None
        self._generation = 0

    @property
    def current_user(self) -> Optional[User]:
        return self._user

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def is_signed_in(self) -> bool:
        return self._user is not None

    def is_current(self, user: User, generation: int) -> bool:
        """Whether the given user is still signed in within the given session generation."""
        return self._generation == generation and self._user == user

    def subscribe(self, callback: Callback) -> Subscription:
        """Receive every SessionEvent emitted from now on."""
        return self._bus.subscribe(SESSION_TOPIC, callback, expected_type=SessionEvent)

    async def sign_in(self, user: User) -> None:
        self._user = user
        self._generation += 1
        logger.info(f"User {user.id} signed in")
        await self._bus.publish(SESSION_TOPIC, SignedIn(user))

    async def sign_out(self) -> None:
        if self._user is None:
            logger.debug("Sign-out requested with no signed-in user")
        else:
            logger.info(f"User {self._user.id} signed out")
        self._user = None
        self._generation += 1
        await self._bus.publish(SESSION_TOPIC, SignedOut())
