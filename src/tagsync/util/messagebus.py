from collections import defaultdict
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    List,
    Optional,
    Type,
    Union,
    get_args,
    get_origin,
)
import asyncio
import inspect
import logging
import traceback

Callback = Union[Callable[[Any], None], Callable[[Any], Awaitable[None]]]


class Subscription:
    """Handle returned by ``subscribe``; disposing it stops further deliveries."""

    def __init__(self, bus: "MessageBus", topic: str, callback: Callback):
        self._bus = bus
        self.topic = topic
        self.callback = callback
        self.disposed = False

    def dispose(self) -> None:
        if self.disposed:
            return
        self._bus._remove(self)
        self.disposed = True

    def __repr__(self) -> str:
        state = "disposed" if self.disposed else "active"
        return f"<Subscription topic={self.topic!r} {state}>"


class SubscriptionGroup:
    """
    Collects subscriptions owned by one consumer so they can be released together.

    Can be used as a context manager; all subscriptions are disposed on exit.
    """

    def __init__(self) -> None:
        self._subscriptions: List[Subscription] = []

    def add(self, subscription: Subscription) -> Subscription:
        self._subscriptions.append(subscription)
        return subscription

    def dispose(self) -> None:
        while self._subscriptions:
            self._subscriptions.pop().dispose()

    def __len__(self) -> int:
        return len(self._subscriptions)

    def __enter__(self) -> "SubscriptionGroup":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.dispose()


class MessageBus:
    def __init__(self):
        self.subscribers: Dict[str, List[Subscription]] = defaultdict(list)
        self.topic_types: Dict[str, Type] = {}  # Track expected types for topics
        self._logger = logging.getLogger(__name__)

    def register_topic(self, topic: str, expected_type: Type) -> None:
        """
        Register the type of data that is published on a topic.

        Args:
            topic: The topic name
            expected_type: Type every published item should be an instance of
        """
        existing = self.topic_types.get(topic)
        if existing is not None and existing != expected_type:
            raise ValueError(
                f"Conflicting types for topic '{topic}': "
                f"{self._type_name(existing)} vs {self._type_name(expected_type)}"
            )
        self.topic_types[topic] = expected_type
        self._logger.debug(
            f"Registered topic '{topic}' with type '{self._type_name(expected_type)}'"
        )

    @staticmethod
    def _type_name(expected_type: Type) -> str:
        return getattr(expected_type, "__name__", str(expected_type))

    def _is_instance_of_type(self, data: Any, expected_type: Type) -> bool:
        """
        Check data against an expected type, handling Any, Union and generics.
        """
        if expected_type is Any:
            return True

        origin = get_origin(expected_type)
        if origin is Union:
            return any(
                self._is_instance_of_type(data, arg) for arg in get_args(expected_type)
            )
        if origin is not None:
            # Inner types of generics such as List[str] are not validated
            return isinstance(data, origin)

        return isinstance(data, expected_type)

    def has_subscribers(self, topic: str) -> bool:
        return bool(self.subscribers.get(topic))

    async def publish(self, topic: str, data: Any) -> None:
        """
        Publish data to every current subscriber of a topic, in subscription order.

        A subscriber that raises is logged and skipped; the remaining subscribers
        still receive the data and the publisher never sees the error.
        """
        if not self.has_subscribers(topic):
            self._logger.debug(f"Publishing to topic '{topic}' with no subscribers")
            return

        expected_type = self.topic_types.get(topic)
        if expected_type and not self._is_instance_of_type(data, expected_type):
            self._logger.warning(
                f"Type validation failed: Data published to topic '{topic}' is of type "
                f"{type(data).__name__}, expected {self._type_name(expected_type)}"
            )

        tasks = []

        # Copy so subscribers may dispose themselves during delivery
        for subscription in list(self.subscribers[topic]):
            if subscription.disposed:
                continue
            callback = subscription.callback

            if inspect.iscoroutinefunction(callback):

                async def safe_subscriber_call(sub, item):
                    try:
                        return await sub(item)
                    except Exception as call_error:
                        self._logger.error(
                            f"Error in async subscriber for topic '{topic}': {call_error}\n"
                            f"{traceback.format_exc()}"
                        )
                        return None

                tasks.append(safe_subscriber_call(callback, data))
            else:
                try:
                    callback(data)
                except Exception as sync_error:
                    self._logger.error(
                        f"Error in sync subscriber for topic '{topic}': {sync_error}\n"
                        f"{traceback.format_exc()}"
                    )

        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def subscribe(
        self,
        topic: str,
        callback: Callback,
        expected_type: Optional[Type] = None,
    ) -> Subscription:
        """Subscribe a callback to a topic with optional type registration."""
        if expected_type is not None:
            self.register_topic(topic, expected_type)

        subscription = Subscription(self, topic, callback)
        self.subscribers[topic].append(subscription)
        self._logger.debug(f"Subscribed to topic '{topic}'")
        return subscription

    def _remove(self, subscription: Subscription) -> None:
        subscribers = self.subscribers.get(subscription.topic, [])
        if subscription in subscribers:
            subscribers.remove(subscription)
            self._logger.debug(f"Unsubscribed from topic '{subscription.topic}'")
