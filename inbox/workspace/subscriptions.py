import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any, Protocol
from uuid import UUID

from inbox.infra.realtime.feed import (
    ConversationsHandler,
    MessageSnapshot,
    MessagesHandler,
    Unsubscribe,
)
from inbox.schemas.message import MessageResponse
from inbox.services.errors import AssignmentPersistenceError
from inbox.services.optimistic import OptimisticUpdates
from inbox.workspace.store import InboxStore

logger = logging.getLogger(__name__)

MarkAsRead = Callable[[UUID], Awaitable[Any]]
AssignConversation = Callable[[UUID, str | None], Awaitable[Any]]


class InboxFeed(Protocol):
    async def subscribe_conversations(
        self, limit: int, handler: ConversationsHandler
    ) -> Unsubscribe: ...

    async def subscribe_messages(
        self, conversation_id: UUID, limit: int, handler: MessagesHandler
    ) -> Unsubscribe: ...

    async def fetch_messages_before(
        self, conversation_id: UUID, before: datetime, limit: int
    ) -> list[MessageResponse]: ...


class InboxSubscriptionManager:
    """Owns the live subscriptions of one agent workspace.

    At most one conversation-list subscription and one message subscription
    are open at a time. While the workspace is hidden nothing is subscribed,
    but the store keeps its state.
    """

    def __init__(
        self,
        store: InboxStore,
        feed: InboxFeed,
        mark_as_read: MarkAsRead,
        assign_conversation: AssignConversation,
        conversation_limit: int = 50,
        message_page_size: int = 50,
    ) -> None:
        self.store = store
        self.feed = feed
        self._mark_as_read = mark_as_read
        self._assign_conversation = assign_conversation
        self.conversation_limit = conversation_limit
        self.message_page_size = message_page_size

        self.visible = True
        self._lock = asyncio.Lock()
        self._conversations_unsubscribe: Unsubscribe | None = None
        self._messages_unsubscribe: Unsubscribe | None = None
        self._loading_older: set[UUID] = set()
        self.optimistic = OptimisticUpdates()

    @property
    def has_conversation_subscription(self) -> bool:
        return self._conversations_unsubscribe is not None

    @property
    def has_message_subscription(self) -> bool:
        return self._messages_unsubscribe is not None

    async def init(self) -> None:
        async with self._lock:
            await self._open_conversations()

    async def select_conversation(self, conversation_id: UUID | None) -> None:
        async with self._lock:
            await self._select(conversation_id)

    async def set_visibility(self, visible: bool) -> None:
        async with self._lock:
            if visible == self.visible:
                return
            self.visible = visible

            if not visible:
                await self._close_all()
                return

            await self._open_conversations()
            if self.store.selected_conversation_id is not None:
                await self._select(self.store.selected_conversation_id)

    async def load_older_messages(
        self,
        conversation_id: UUID | None = None,
    ) -> list[MessageResponse]:
        target_id = conversation_id or self.store.selected_conversation_id
        if target_id is None or target_id in self._loading_older:
            return []
        if self.store.has_more_older(target_id) is False:
            return []

        loaded = self.store.messages_for(target_id)
        if not loaded:
            return []

        self._loading_older.add(target_id)
        try:
            page = await self.feed.fetch_messages_before(
                target_id, loaded[0].created_at, self.message_page_size
            )
        finally:
            self._loading_older.discard(target_id)

        added = self.store.prepend_messages(target_id, page)
        self.store.set_has_more_older(target_id, len(page) >= self.message_page_size)
        return added

    async def assign(self, conversation_id: UUID, agent_id: str | None) -> bool:
        async def persist() -> None:
            try:
                await self._assign_conversation(conversation_id, agent_id)
            except Exception as exc:
                raise AssignmentPersistenceError(conversation_id, agent_id) from exc

        conversation = self.store.get_conversation(conversation_id)
        try:
            if conversation is None:
                await persist()
            else:
                await self.optimistic.apply(conversation, "assigned_to", agent_id, persist)
        except AssignmentPersistenceError:
            logger.exception(
                "Assignment rolled back conversation_id=%s agent_id=%s",
                conversation_id,
                agent_id,
            )
            return False
        return True

    async def close(self) -> None:
        async with self._lock:
            await self._close_all()

    async def _open_conversations(self) -> None:
        await self._close_conversations()
        if not self.visible:
            return
        self._conversations_unsubscribe = await self.feed.subscribe_conversations(
            self.conversation_limit, self.store.set_conversations
        )

    async def _select(self, conversation_id: UUID | None) -> None:
        await self._close_messages()
        if conversation_id is None:
            self.store.clear_selection()
            return

        self.store.select(conversation_id)
        if self.visible:
            self._messages_unsubscribe = await self.feed.subscribe_messages(
                conversation_id,
                self.message_page_size,
                lambda snapshot: self._on_messages(conversation_id, snapshot),
            )

        conversation = self.store.get_conversation(conversation_id)
        if conversation is not None and conversation.unread_count > 0:
            try:
                await self._mark_as_read(conversation_id)
            except Exception:
                logger.warning(
                    "Marking conversation as read failed conversation_id=%s",
                    conversation_id,
                    exc_info=True,
                )

    def _on_messages(self, conversation_id: UUID, snapshot: MessageSnapshot) -> None:
        self.store.set_session_facts(
            conversation_id,
            snapshot.last_inbound_at,
            snapshot.template_sent_since_inbound,
        )
        self.store.set_messages(conversation_id, snapshot.messages)
        if self.store.has_more_older(conversation_id) is None:
            self.store.set_has_more_older(
                conversation_id, len(snapshot.messages) >= self.message_page_size
            )

    async def _close_all(self) -> None:
        await self._close_messages()
        await self._close_conversations()

    async def _close_conversations(self) -> None:
        unsubscribe, self._conversations_unsubscribe = self._conversations_unsubscribe, None
        if unsubscribe is not None:
            await unsubscribe()

    async def _close_messages(self) -> None:
        unsubscribe, self._messages_unsubscribe = self._messages_unsubscribe, None
        if unsubscribe is not None:
            await unsubscribe()
