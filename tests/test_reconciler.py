import asyncio
from unittest.mock import AsyncMock, Mock

import pytest

from tagsync.keywords import (
    KeywordGateway,
    MemoryKeywordStore,
    NetworkError,
    StorageError,
    TagReconciler,
)
from tagsync.models import Added, KeywordSet, Removed, SignedIn, SignedOut, User
from tagsync.session import SessionContext
from tagsync.util.config import SignOutPolicy


class StaticGateway(KeywordGateway):
    """Gateway returning a fixed list, optionally held until released."""

    def __init__(self, keywords, hold: bool = False):
        self.keywords = keywords
        self.calls = []
        self.started = asyncio.Event()
        self.release = asyncio.Event()
        if not hold:
            self.release.set()

    async def fetch_keywords(self, user):
        self.calls.append(user)
        self.started.set()
        await self.release.wait()
        return KeywordSet(self.keywords)


def make_reconciler(store=None, gateway=None, session=None, **kwargs):
    store = store if store is not None else MemoryKeywordStore()
    gateway = gateway if gateway is not None else StaticGateway([])
    session = session if session is not None else SessionContext()
    reconciler = TagReconciler(store, gateway, session, **kwargs)
    notifications = []
    errors = []
    reconciler.subscribe(notifications.append)
    reconciler.subscribe_errors(errors.append)
    return reconciler, notifications, errors


@pytest.mark.asyncio
async def test_initialize_loads_stored_keywords():
    reconciler, _, _ = make_reconciler(store=MemoryKeywordStore(["python", "go"]))

    assert await reconciler.initialize() == ("python", "go")
    assert reconciler.keywords == ("python", "go")


@pytest.mark.asyncio
async def test_initialize_is_idempotent():
    store = MemoryKeywordStore(["python"])
    reconciler, _, _ = make_reconciler(store=store)

    await reconciler.initialize()
    await reconciler.add_keyword("rust")

    # Store changes after the first load are not re-read
    store._keywords = ["java"]
    await reconciler.initialize()

    assert reconciler.keywords == ("python", "rust")


@pytest.mark.asyncio
async def test_initialize_with_empty_store():
    reconciler, _, _ = make_reconciler()

    assert await reconciler.initialize() == ()


@pytest.mark.asyncio
async def test_initialize_with_unreadable_store_starts_empty():
    store = MemoryKeywordStore()
    store.load = Mock(side_effect=StorageError("corrupt"))
    reconciler, _, errors = make_reconciler(store=store)

    assert await reconciler.initialize() == ()
    assert len(errors) == 1
    assert isinstance(errors[0], StorageError)


@pytest.mark.asyncio
async def test_add_keyword_normalizes_and_persists():
    store = MemoryKeywordStore()
    reconciler, notifications, _ = make_reconciler(store=store)
    await reconciler.initialize()

    assert await reconciler.add_keyword("  Ruby ") is True

    assert reconciler.keywords == ("ruby",)
    assert store.load() == ["ruby"]
    assert notifications == [Added("ruby", ("ruby",))]


@pytest.mark.asyncio
async def test_add_keyword_is_idempotent_across_case():
    store = MemoryKeywordStore()
    reconciler, notifications, _ = make_reconciler(store=store)
    await reconciler.initialize()

    await reconciler.add_keyword("Go")
    assert await reconciler.add_keyword("GO") is False
    assert await reconciler.add_keyword("go") is False

    assert reconciler.keywords == ("go",)
    assert len(notifications) == 1
    assert store.save_count == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("raw", ["", "   ", "\t\n"])
async def test_add_empty_keyword_is_noop(raw):
    store = MemoryKeywordStore()
    reconciler, notifications, _ = make_reconciler(store=store)
    await reconciler.initialize()

    assert await reconciler.add_keyword(raw) is False

    assert reconciler.keywords == ()
    assert notifications == []
    assert store.save_count == 0


@pytest.mark.asyncio
async def test_remove_after_add_restores_previous_set():
    reconciler, notifications, _ = make_reconciler(
        store=MemoryKeywordStore(["python", "go"])
    )
    await reconciler.initialize()
    before = reconciler.keywords

    await reconciler.add_keyword("Elixir")
    assert await reconciler.remove_keyword("ELIXIR ") is True

    assert reconciler.keywords == before
    assert notifications == [
        Added("elixir", ("python", "go", "elixir")),
        Removed("elixir", ("python", "go")),
    ]


@pytest.mark.asyncio
async def test_remove_missing_keyword_is_noop():
    store = MemoryKeywordStore(["python"])
    reconciler, notifications, _ = make_reconciler(store=store)
    await reconciler.initialize()

    assert await reconciler.remove_keyword("rust") is False
    assert notifications == []
    assert store.save_count == 0


@pytest.mark.asyncio
async def test_storage_failure_keeps_in_memory_change():
    store = MemoryKeywordStore()
    reconciler, notifications, errors = make_reconciler(store=store)
    await reconciler.initialize()

    store.fail_saves = True
    assert await reconciler.add_keyword("swift") is True

    assert reconciler.keywords == ("swift",)
    assert len(errors) == 1 and isinstance(errors[0], StorageError)
    assert notifications == [Added("swift", ("swift",))]

    # Once the store recovers the next add persists the full set
    store.fail_saves = False
    assert await reconciler.add_keyword("kotlin") is True
    assert store.load() == ["swift", "kotlin"]
    assert len(errors) == 1


@pytest.mark.asyncio
async def test_sign_in_merges_remote_keywords_in_order():
    session = SessionContext()
    store = MemoryKeywordStore()
    gateway = StaticGateway(["go", "Go", "rust"])
    reconciler, notifications, _ = make_reconciler(store, gateway, session)
    await reconciler.initialize()
    reconciler.bind()

    user = User("octocat", name="The Octocat")
    await session.sign_in(user)
    await reconciler.wait_idle()

    assert gateway.calls == [user]
    assert reconciler.keywords == ("go", "rust")
    assert store.load() == ["go", "rust"]
    assert notifications == [
        Added("go", ("go",)),
        Added("rust", ("go", "rust")),
    ]


@pytest.mark.asyncio
async def test_merge_keeps_local_only_keywords():
    session = SessionContext()
    gateway = StaticGateway(["python", "haskell"])
    reconciler, notifications, _ = make_reconciler(
        MemoryKeywordStore(["Python", "elm"]), gateway, session
    )
    await reconciler.initialize()

    user = User("octocat")
    await session.sign_in(user)
    added = await reconciler.merge_remote(user)

    assert added == ["haskell"]
    assert reconciler.keywords == ("python", "elm", "haskell")
    assert [n.keyword for n in notifications] == ["haskell"]


@pytest.mark.asyncio
async def test_remote_failure_leaves_set_unchanged():
    session = SessionContext()
    gateway = AsyncMock(spec=KeywordGateway)
    gateway.fetch_keywords.side_effect = NetworkError("unreachable")
    reconciler, notifications, errors = make_reconciler(
        MemoryKeywordStore(["python"]), gateway, session
    )
    await reconciler.initialize()
    reconciler.bind()

    await session.sign_in(User("octocat"))
    await reconciler.wait_idle()

    assert reconciler.keywords == ("python",)
    assert notifications == []
    assert len(errors) == 1 and isinstance(errors[0], NetworkError)

    # Local edits still work afterwards
    assert await reconciler.add_keyword("go") is True


@pytest.mark.asyncio
async def test_fetch_resolving_after_sign_out_is_discarded():
    session = SessionContext()
    store = MemoryKeywordStore()
    gateway = StaticGateway(["go", "rust"], hold=True)
    reconciler, notifications, _ = make_reconciler(store, gateway, session)
    await reconciler.initialize()
    reconciler.bind()

    await session.sign_in(User("octocat"))
    await gateway.started.wait()

    await session.sign_out()
    gateway.release.set()
    await reconciler.wait_idle()

    assert reconciler.keywords == ()
    assert notifications == []
    assert store.save_count == 0


@pytest.mark.asyncio
async def test_fetch_for_previous_user_is_discarded_after_switch():
    session = SessionContext()
    slow = StaticGateway(["go"], hold=True)
    reconciler, _, _ = make_reconciler(gateway=slow, session=session)
    await reconciler.initialize()

    first = User("first")
    await session.sign_in(first)
    generation = session.generation
    merge = asyncio.ensure_future(reconciler.merge_remote(first, generation))
    await slow.started.wait()

    # Same user signs out and back in; the old fetch belongs to a stale session
    await session.sign_out()
    await session.sign_in(first)
    slow.release.set()

    assert await merge == []
    assert reconciler.keywords == ()


@pytest.mark.asyncio
async def test_sign_out_retains_keywords_by_default():
    session = SessionContext()
    reconciler, notifications, _ = make_reconciler(
        MemoryKeywordStore(["python"]), session=session
    )
    await reconciler.initialize()
    reconciler.bind()

    await session.sign_in(User("octocat"))
    await session.sign_out()
    await reconciler.wait_idle()

    assert reconciler.keywords == ("python",)
    assert notifications == []


@pytest.mark.asyncio
async def test_sign_out_clear_policy_removes_every_keyword():
    session = SessionContext()
    store = MemoryKeywordStore(["python", "go"])
    reconciler, notifications, _ = make_reconciler(
        store, session=session, sign_out_policy=SignOutPolicy.CLEAR
    )
    await reconciler.initialize()

    await reconciler.on_session_event(SignedOut())

    assert reconciler.keywords == ()
    assert store.load() == []
    assert notifications == [
        Removed("python", ("go",)),
        Removed("go", ()),
    ]


@pytest.mark.asyncio
async def test_on_session_event_signed_in_merges_for_current_user():
    session = SessionContext()
    gateway = StaticGateway(["scala"])
    reconciler, _, _ = make_reconciler(gateway=gateway, session=session)
    await reconciler.initialize()

    user = User("octocat")
    await session.sign_in(user)
    await reconciler.on_session_event(SignedIn(user))

    assert reconciler.keywords == ("scala",)


@pytest.mark.asyncio
async def test_concurrent_adds_do_not_duplicate():
    store = MemoryKeywordStore()
    reconciler, notifications, _ = make_reconciler(store=store)
    await reconciler.initialize()

    results = await asyncio.gather(
        *(reconciler.add_keyword(raw) for raw in ["go", "Go", " GO", "rust", "go "])
    )

    assert sorted(reconciler.keywords) == ["go", "rust"]
    assert results.count(True) == 2
    assert len(notifications) == 2


@pytest.mark.asyncio
async def test_close_releases_session_subscription():
    session = SessionContext()
    gateway = StaticGateway(["go"])
    reconciler, _, _ = make_reconciler(gateway=gateway, session=session)
    await reconciler.initialize()
    reconciler.bind()

    await reconciler.close()
    await session.sign_in(User("octocat"))
    await reconciler.wait_idle()

    assert gateway.calls == []
    assert reconciler.keywords == ()


@pytest.mark.asyncio
async def test_add_before_initialize_keeps_stored_keywords():
    store = MemoryKeywordStore(["python", "go"])
    reconciler, notifications, _ = make_reconciler(store=store)

    assert await reconciler.add_keyword("rust") is True

    assert store.load() == ["python", "go", "rust"]
    assert await reconciler.initialize() == ("python", "go", "rust")
    assert notifications == [Added("rust", ("python", "go", "rust"))]


@pytest.mark.asyncio
async def test_remove_before_initialize_sees_stored_keywords():
    store = MemoryKeywordStore(["python", "go"])
    reconciler, _, _ = make_reconciler(store=store)

    assert await reconciler.remove_keyword("python") is True

    assert reconciler.keywords == ("go",)
    assert store.load() == ["go"]


@pytest.mark.asyncio
async def test_merge_before_initialize_keeps_stored_keywords():
    session = SessionContext()
    store = MemoryKeywordStore(["python"])
    reconciler, _, _ = make_reconciler(
        store=store, gateway=StaticGateway(["rust", "python"]), session=session
    )

    user = User("octocat")
    await session.sign_in(user)
    assert await reconciler.merge_remote(user) == ["rust"]

    assert reconciler.keywords == ("python", "rust")
    assert store.load() == ["python", "rust"]


@pytest.mark.asyncio
async def test_clear_on_sign_out_before_initialize_clears_stored_keywords():
    store = MemoryKeywordStore(["python", "go"])
    reconciler, notifications, _ = make_reconciler(
        store=store, sign_out_policy=SignOutPolicy.CLEAR
    )

    await reconciler.on_session_event(SignedOut())

    assert store.load() == []
    assert [n.keyword for n in notifications] == ["python", "go"]


@pytest.mark.asyncio
async def test_subscriber_can_mutate_from_its_callback():
    reconciler, notifications, _ = make_reconciler()
    await reconciler.initialize()

    async def add_related(change):
        if isinstance(change, Added) and change.keyword == "django":
            await reconciler.add_keyword("python")

    reconciler.subscribe(add_related)

    assert await asyncio.wait_for(reconciler.add_keyword("django"), timeout=1) is True

    assert reconciler.keywords == ("django", "python")
    # Nested changes are delivered after the one that triggered them
    assert notifications == [
        Added("django", ("django",)),
        Added("python", ("django", "python")),
    ]
