"""
Keeps the user's keyword set consistent between memory, the secure store and
the remote keyword service.
"""

import asyncio
import logging
from collections import deque
from typing import Any, Deque, List, Optional, Set, Tuple

from tagsync.constants import KEYWORDS_CHANGED, KEYWORDS_ERROR
from tagsync.keywords.errors import KeywordSyncError, StorageError
from tagsync.keywords.gateway import KeywordGateway
from tagsync.keywords.store import KeywordStore
from tagsync.models import (
    Added,
    KeywordChange,
    KeywordSet,
    Removed,
    SessionEvent,
    SignedIn,
    SignedOut,
    User,
    normalize_keyword,
)
from tagsync.session import SessionContext
from tagsync.util.config import SignOutPolicy
from tagsync.util.messagebus import Callback, MessageBus, Subscription, SubscriptionGroup

logger = logging.getLogger(__name__)


class TagReconciler:
    """
    Owner of the canonical in-memory keyword set.

    Every mutation runs under a single lock so the membership check and the
    append or removal happen as one step. The stored set is loaded before the
    first mutation, whether or not ``initialize`` was called. Each mutation is
    persisted and then announced on the ``keywords.changed`` topic. Storage and
    network failures are logged and published on ``keywords.error``; they never
    undo a mutation that was already applied in memory.

    Notifications are queued under the lock and published after it is released,
    one at a time and in mutation order. A subscriber may therefore call back
    into the reconciler; such a nested call returns once its own notification
    is queued, and it is delivered after the current one.
    """

    def __init__(
        self,
        store: KeywordStore,
        gateway: KeywordGateway,
        session: SessionContext,
        bus: Optional[MessageBus] = None,
        sign_out_policy: SignOutPolicy = SignOutPolicy.RETAIN,
    ):
        self._store = store
        self._gateway = gateway
        self._session = session
        self._bus = bus if bus is not None else MessageBus()
        self._sign_out_policy = SignOutPolicy(sign_out_policy)

        self._current = KeywordSet()
        self._lock = asyncio.Lock()
        self._initialized = False
        self._subscriptions = SubscriptionGroup()
        self._pending: Set[asyncio.Task] = set()
        self._outbox: Deque[Tuple[str, Any]] = deque()
        self._delivering = False

        self._bus.register_topic(KEYWORDS_CHANGED, KeywordChange)
        self._bus.register_topic(KEYWORDS_ERROR, KeywordSyncError)

    @property
    def keywords(self) -> Tuple[str, ...]:
        """Snapshot of the current keyword set, in display order."""
        return self._current.snapshot()

    @property
    def bus(self) -> MessageBus:
        return self._bus

    def subscribe(self, callback: Callback) -> Subscription:
        """Receive an Added or Removed notification after every mutation."""
        return self._bus.subscribe(KEYWORDS_CHANGED, callback)

    def subscribe_errors(self, callback: Callback) -> Subscription:
        """Receive storage and network errors as they are handled."""
        return self._bus.subscribe(KEYWORDS_ERROR, callback)

    async def initialize(self) -> Tuple[str, ...]:
        """
        Load the keyword set from the secure store. Calling it again has no effect.

        An unreadable store is reported and treated as empty.
        """
        async with self._lock:
            self._load_locked()
            snapshot = self.keywords
        await self._deliver()
        return snapshot

    def _load_locked(self) -> None:
        if self._initialized:
            return
        self._initialized = True

        try:
            stored = self._store.load()
        except StorageError as e:
            logger.error(f"Unable to load stored keywords, starting empty: {e}")
            self._emit(KEYWORDS_ERROR, e)
            return

        if stored is not None:
            self._current = stored.copy()
            logger.debug(f"Added {list(self._current)} to keyword set")
        else:
            logger.debug("No keywords to set")

    def bind(self, session: Optional[SessionContext] = None) -> Subscription:
        """
        Start reacting to sign-in and sign-out events of a session.

        The subscription is owned by the reconciler and released by ``close``.
        """
        session = session if session is not None else self._session
        self._session = session
        return self._subscriptions.add(session.subscribe(self._handle_session_event))

    async def add_keyword(self, raw: str) -> bool:
        """
        Add a keyword if it is not empty and not already present.

        Returns:
            True if the set changed, False otherwise
        """
        async with self._lock:
            self._load_locked()
            changed = self._add_locked(raw)
        await self._deliver()
        return changed

    async def remove_keyword(self, raw: str) -> bool:
        """
        Remove a keyword if present.

        Returns:
            True if the set changed, False otherwise
        """
        async with self._lock:
            self._load_locked()
            changed = self._remove_locked(raw)
        await self._deliver()
        return changed

    def _add_locked(self, raw: str) -> bool:
        keyword = self._current.add(raw)
        if keyword is None:
            return False

        self._persist()
        logger.debug(f"Persisted keyword '{keyword}'")
        self._emit(KEYWORDS_CHANGED, Added(keyword, self.keywords))
        return True

    def _remove_locked(self, raw: str) -> bool:
        keyword = self._current.remove(raw)
        if keyword is None:
            logger.debug(f"Keyword '{normalize_keyword(raw)}' not present, nothing removed")
            return False

        self._persist()
        logger.debug(f"Removed keyword '{keyword}'")
        self._emit(KEYWORDS_CHANGED, Removed(keyword, self.keywords))
        return True

    def _persist(self) -> None:
        try:
            self._store.save(self._current.copy())
        except StorageError as e:
            # The in-memory change stands; the next successful save catches up
            logger.error(f"Failed to persist keywords: {e}")
            self._emit(KEYWORDS_ERROR, e)

    def _emit(self, topic: str, data: Any) -> None:
        self._outbox.append((topic, data))

    async def _deliver(self) -> None:
        """Publish queued notifications in the order they were queued."""
        if self._delivering:
            return

        self._delivering = True
        try:
            while self._outbox:
                topic, data = self._outbox.popleft()
                await self._bus.publish(topic, data)
        finally:
            self._delivering = False

    async def on_session_event(
        self, event: SessionEvent, generation: Optional[int] = None
    ) -> None:
        """
        Apply a session transition.

        Events are expected to come from the bound session, so a SignedIn event
        is only merged while that session still has the same user signed in.
        """
        if isinstance(event, SignedIn):
            await self.merge_remote(event.user, generation)
        elif isinstance(event, SignedOut):
            await self._handle_signed_out()
        else:
            logger.warning(f"Ignoring unknown session event: {event!r}")

    def _handle_session_event(self, event: SessionEvent) -> None:
        """Session subscriber: run the event handling without blocking the publisher."""
        generation = self._session.generation
        task = asyncio.get_running_loop().create_task(
            self.on_session_event(event, generation)
        )
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def merge_remote(
        self, user: User, generation: Optional[int] = None
    ) -> List[str]:
        """
        Fetch the user's remote keywords and merge the missing ones into the set.

        Remote entries are applied in response order with the same rule as
        ``add_keyword``, so each one persists and emits its own Added
        notification. The result is discarded if the session moved on (sign-out
        or another sign-in) since ``generation``.

        Returns:
            The keywords that were newly added
        """
        if generation is None:
            generation = self._session.generation
        logger.info(f"Fetching remote keywords for {user.id}")

        try:
            remote = await self._gateway.fetch_keywords(user)
        except KeywordSyncError as e:
            logger.warning(f"Could not fetch remote keywords for {user.id}: {e}")
            self._emit(KEYWORDS_ERROR, e)
            await self._deliver()
            return []

        added: List[str] = []
        async with self._lock:
            if not self._session.is_current(user, generation):
                logger.info(
                    f"Discarding {len(remote)} remote keywords for {user.id}: session changed"
                )
                return []

            self._load_locked()
            for keyword in remote:
                if self._add_locked(keyword):
                    added.append(normalize_keyword(keyword))

        await self._deliver()
        logger.info(f"Merged {len(added)} of {len(remote)} remote keywords for {user.id}")
        return added

    async def _handle_signed_out(self) -> None:
        if self._sign_out_policy == SignOutPolicy.RETAIN:
            logger.debug(f"Signed out, keeping {len(self._current)} cached keywords")
            return

        async with self._lock:
            self._load_locked()
            for keyword in list(self._current):
                self._remove_locked(keyword)
            logger.info("Signed out, cleared cached keywords")
        await self._deliver()

    async def wait_idle(self) -> None:
        """Wait until every session event handled so far has finished."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def close(self) -> None:
        """Release session subscriptions and wait for in-flight merges."""
        self._subscriptions.dispose()
        await self.wait_idle()
        await self._deliver()
