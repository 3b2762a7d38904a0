from collections.abc import Callable, Iterable
from datetime import datetime
from uuid import UUID

from inbox.domain.session_window import (
    SessionWindow,
    evaluate_session_window,
    session_window_for_messages,
)
from inbox.schemas.conversation import ConversationResponse
from inbox.schemas.message import MessageResponse


class InboxStore:
    """State of one agent workspace: conversation list, selection, loaded messages.

    Session windows are evaluated on every read and never stored. They use
    the session facts reported with the live window when present, and the
    loaded messages otherwise.
    """

    def __init__(self, on_change: Callable[[str, UUID | None], None] | None = None) -> None:
        self.on_change = on_change
        self.conversations: list[ConversationResponse] = []
        self.selected_conversation_id: UUID | None = None
        self._messages: dict[UUID, list[MessageResponse]] = {}
        self._has_more_older: dict[UUID, bool] = {}
        self._session_facts: dict[UUID, tuple[datetime | None, bool]] = {}

    @property
    def selected_conversation(self) -> ConversationResponse | None:
        if self.selected_conversation_id is None:
            return None
        return self.get_conversation(self.selected_conversation_id)

    def get_conversation(self, conversation_id: UUID) -> ConversationResponse | None:
        for conversation in self.conversations:
            if conversation.id == conversation_id:
                return conversation
        return None

    def messages_for(self, conversation_id: UUID) -> list[MessageResponse]:
        return list(self._messages.get(conversation_id, []))

    def has_more_older(self, conversation_id: UUID) -> bool | None:
        """``None`` until the first page for the conversation has been seen."""
        return self._has_more_older.get(conversation_id)

    def session_window(
        self,
        conversation_id: UUID,
        now: datetime | None = None,
    ) -> SessionWindow:
        facts = self._session_facts.get(conversation_id)
        if facts is not None:
            last_inbound_at, template_sent = facts
            return evaluate_session_window(last_inbound_at, template_sent, now=now)
        return session_window_for_messages(self._messages.get(conversation_id, []), now=now)

    def set_session_facts(
        self,
        conversation_id: UUID,
        last_inbound_at: datetime | None,
        template_sent_since_inbound: bool,
    ) -> None:
        self._session_facts[conversation_id] = (last_inbound_at, template_sent_since_inbound)

    def set_conversations(self, conversations: Iterable[ConversationResponse]) -> None:
        self.conversations = list(conversations)
        self._notify("conversations", None)

    def set_messages(
        self,
        conversation_id: UUID,
        messages: Iterable[MessageResponse],
    ) -> None:
        """Replace the live window, keeping older pages loaded before it."""
        snapshot = list(messages)
        if not snapshot:
            self._messages[conversation_id] = []
            self._notify("messages", conversation_id)
            return

        snapshot_ids = {message.id for message in snapshot}
        oldest = (snapshot[0].created_at, str(snapshot[0].id))
        older = [
            message
            for message in self._messages.get(conversation_id, [])
            if message.id not in snapshot_ids
            and (message.created_at, str(message.id)) < oldest
        ]
        self._messages[conversation_id] = older + snapshot
        self._notify("messages", conversation_id)

    def prepend_messages(
        self,
        conversation_id: UUID,
        messages: Iterable[MessageResponse],
    ) -> list[MessageResponse]:
        """Add an older page in front; returns the messages that were new."""
        existing = self._messages.get(conversation_id, [])
        known_ids = {message.id for message in existing}
        added = [message for message in messages if message.id not in known_ids]
        self._messages[conversation_id] = added + existing
        if added:
            self._notify("messages", conversation_id)
        return added

    def set_has_more_older(self, conversation_id: UUID, has_more: bool) -> None:
        self._has_more_older[conversation_id] = has_more

    def select(self, conversation_id: UUID) -> None:
        self.selected_conversation_id = conversation_id

    def clear_selection(self) -> None:
        self.selected_conversation_id = None

    def _notify(self, section: str, conversation_id: UUID | None) -> None:
        if self.on_change is not None:
            self.on_change(section, conversation_id)
