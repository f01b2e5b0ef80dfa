from logging import Logger, getLogger
from typing import Optional

from tagsync.analytics import KeywordEditTracker
from tagsync.keywords import EncryptedFileKeywordStore, HttpKeywordGateway, TagReconciler
from tagsync.session import SessionContext
from tagsync.util.config import Settings
from tagsync.util.messagebus import MessageBus, SubscriptionGroup


class Main:
    """
    Wires the keyword store, gateway, session and reconciler together from settings.

    All subscriptions created here are released by ``shutdown``.
    """

    _logger: Logger

    def __init__(self, settings: Settings, logger: Optional[Logger] = None) -> None:
        self._logger = logger if logger is not None else getLogger(__name__)
        self.settings = settings

        self.bus = MessageBus()
        self.session = SessionContext(self.bus)
        self.store = EncryptedFileKeywordStore(
            settings.store.path,
            key=settings.store.key,
            key_file=settings.store.key_file,
        )
        self.gateway = HttpKeywordGateway(
            settings.gateway.base_url,
            keywords_path=settings.gateway.keywords_path,
            timeout=settings.gateway.timeout,
            token=settings.gateway.token,
        )
        self.reconciler = TagReconciler(
            self.store,
            self.gateway,
            self.session,
            bus=self.bus,
            sign_out_policy=settings.reconciler.sign_out_policy,
        )
        self.tracker = KeywordEditTracker(self.session)
        self._subscriptions = SubscriptionGroup()

    async def start(self) -> None:
        self._logger.debug("Starting keyword reconciler")
        await self.reconciler.initialize()
        self.reconciler.bind(self.session)
        self._subscriptions.add(self.reconciler.subscribe(self.tracker))

    async def shutdown(self) -> None:
        self._subscriptions.dispose()
        await self.reconciler.close()
        self._logger.debug("Keyword reconciler shut down")
