import asyncio
import itertools
import logging
from collections import defaultdict
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Protocol

from inbox.infra.realtime.events import RealtimeEvent

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ChangeEnvelope:
    event: RealtimeEvent
    channel: str
    payload: dict[str, Any]
    sent_at: datetime


ChangeHandler = Callable[[ChangeEnvelope], Awaitable[None]]


class ChangePublisher(Protocol):
    async def publish(
        self,
        channels: Sequence[str],
        event: RealtimeEvent,
        payload: Mapping[str, Any],
    ) -> None: ...


class InMemoryChangeHub:
    """In-process channel hub fanning change notifications out to handlers."""

    def __init__(self) -> None:
        self._channel_subscribers: dict[str, dict[int, ChangeHandler]] = defaultdict(dict)
        self._subscription_channels: dict[int, str] = {}
        self._ids = itertools.count(1)
        self._lock = asyncio.Lock()

    def subscriber_count(self, channel: str) -> int:
        subscribers = self._channel_subscribers.get(channel)
        if subscribers is None:
            return 0
        return len(subscribers)

    async def subscribe(self, channel: str, handler: ChangeHandler) -> int:
        async with self._lock:
            subscription_id = next(self._ids)
            self._channel_subscribers[channel][subscription_id] = handler
            self._subscription_channels[subscription_id] = channel
            return subscription_id

    async def unsubscribe(self, subscription_id: int) -> None:
        async with self._lock:
            channel = self._subscription_channels.pop(subscription_id, None)
            if channel is None:
                return

            subscribers = self._channel_subscribers.get(channel)
            if subscribers is not None:
                subscribers.pop(subscription_id, None)
                if not subscribers:
                    self._channel_subscribers.pop(channel, None)

    async def publish(
        self,
        channels: Sequence[str],
        event: RealtimeEvent,
        payload: Mapping[str, Any],
    ) -> None:
        unique_channels = [channel for channel in dict.fromkeys(channels) if channel]
        if not unique_channels:
            return

        async with self._lock:
            handlers_by_channel = {
                channel: list(self._channel_subscribers.get(channel, {}).values())
                for channel in unique_channels
            }

        for channel, handlers in handlers_by_channel.items():
            if not handlers:
                continue

            envelope = ChangeEnvelope(
                event=event,
                channel=channel,
                payload=dict(payload),
                sent_at=datetime.now(UTC),
            )
            for handler in handlers:
                try:
                    await handler(envelope)
                except Exception:
                    logger.exception(
                        "Change handler failed channel=%s event=%s", channel, event.value
                    )
