from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from inbox.infra.db.repositories import ConversationRepository, MessageRepository
from inbox.infra.realtime.channels import (
    CONVERSATIONS_CHANNEL,
    conversation_messages_channel,
)
from inbox.infra.realtime.hub import ChangeEnvelope, InMemoryChangeHub
from inbox.schemas.conversation import ConversationResponse
from inbox.schemas.message import MessageResponse


@dataclass(slots=True)
class MessageSnapshot:
    """The newest page of a conversation plus the session facts of its full history.

    The facts come from the whole conversation, not from the page, so a long
    outbound run cannot push the last inbound message out of view.
    """

    messages: list[MessageResponse] = field(default_factory=list)
    last_inbound_at: datetime | None = None
    template_sent_since_inbound: bool = False


Unsubscribe = Callable[[], Awaitable[None]]
ConversationsHandler = Callable[[list[ConversationResponse]], None]
MessagesHandler = Callable[[MessageSnapshot], None]


class RepositoryFeed:
    """Live query snapshots over the repository.

    Each subscription delivers an initial snapshot, then re-runs its query
    whenever the hub reports a change on the matching channel.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        hub: InMemoryChangeHub,
    ) -> None:
        self._session_factory = session_factory
        self._hub = hub

    async def subscribe_conversations(
        self,
        limit: int,
        handler: ConversationsHandler,
    ) -> Unsubscribe:
        async def refresh(_: ChangeEnvelope | None = None) -> None:
            async with self._session_factory() as session:
                rows = await ConversationRepository(session).list_recent(limit)
                snapshot = [ConversationResponse.model_validate(row) for row in rows]
            handler(snapshot)

        return await self._subscribe(CONVERSATIONS_CHANNEL, refresh)

    async def subscribe_messages(
        self,
        conversation_id: UUID,
        limit: int,
        handler: MessagesHandler,
    ) -> Unsubscribe:
        async def refresh(_: ChangeEnvelope | None = None) -> None:
            async with self._session_factory() as session:
                repository = MessageRepository(session)
                rows = await repository.list_recent(conversation_id, limit)
                last_inbound_at = await repository.get_last_inbound_at(conversation_id)
                template_sent = last_inbound_at is not None and (
                    await repository.has_outbound_template_since(
                        conversation_id, last_inbound_at
                    )
                )
                snapshot = MessageSnapshot(
                    messages=[MessageResponse.model_validate(row) for row in rows],
                    last_inbound_at=last_inbound_at,
                    template_sent_since_inbound=template_sent,
                )
            handler(snapshot)

        return await self._subscribe(conversation_messages_channel(conversation_id), refresh)

    async def fetch_messages_before(
        self,
        conversation_id: UUID,
        before: datetime,
        limit: int,
    ) -> list[MessageResponse]:
        async with self._session_factory() as session:
            rows = await MessageRepository(session).list_before(
                conversation_id, before=before, limit=limit
            )
            return [MessageResponse.model_validate(row) for row in rows]

    async def _subscribe(
        self,
        channel: str,
        refresh: Callable[..., Awaitable[None]],
    ) -> Unsubscribe:
        subscription_id = await self._hub.subscribe(channel, refresh)
        try:
            await refresh()
        except BaseException:
            # The caller never receives an unsubscribe handle in this case.
            await self._hub.unsubscribe(subscription_id)
            raise
        return self._unsubscriber(subscription_id)

    def _unsubscriber(self, subscription_id: int) -> Unsubscribe:
        async def unsubscribe() -> None:
            await self._hub.unsubscribe(subscription_id)

        return unsubscribe
