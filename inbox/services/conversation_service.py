from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from inbox.domain.enums import ConversationChannel, ConversationContext, DealStatus
from inbox.domain.exceptions import ConversationValidationError
from inbox.domain.session_window import SessionWindow, evaluate_session_window
from inbox.domain.settings import ChannelIntegration
from inbox.infra.channel.client import normalize_phone
from inbox.infra.db.models import Conversation, Message
from inbox.infra.db.repositories import (
    ConversationRepository,
    MessageRepository,
    SettingsRepository,
)
from inbox.infra.realtime.hub import ChangePublisher
from inbox.services.errors import ConversationNotFoundError
from inbox.services.notifier import ChangeNotifier


EDITABLE_FIELDS = frozenset({"name", "phone", "email", "company", "deal_status"})


def _clean_name(name: str | None) -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise ConversationValidationError("Name cannot be empty.", field="name")
    return cleaned


def _clean_phone(phone: str | None) -> str | None:
    """Digits only, the form inbound messages are matched on."""
    if phone is None or not phone.strip():
        return None
    digits = normalize_phone(phone)
    if not digits:
        raise ConversationValidationError("Phone must contain digits.", field="phone")
    return digits


def _clean_optional(value: str | None) -> str | None:
    return (value or "").strip() or None


@dataclass(slots=True)
class MessagePage:
    messages: list[Message]
    has_more: bool


class ConversationService:
    def __init__(
        self,
        session: AsyncSession,
        conversations: ConversationRepository | None = None,
        messages: MessageRepository | None = None,
        settings: SettingsRepository | None = None,
        realtime: ChangePublisher | None = None,
    ) -> None:
        self.session = session
        self.conversations = conversations or ConversationRepository(session)
        self.messages = messages or MessageRepository(session)
        self.settings = settings or SettingsRepository(session)
        self.notifier = ChangeNotifier(realtime)

    async def create_conversation(
        self,
        name: str,
        phone: str | None = None,
        email: str | None = None,
        company: str | None = None,
        channel: ConversationChannel = ConversationChannel.WHATSAPP,
        context: ConversationContext = ConversationContext.SALES,
    ) -> Conversation:
        conversation = await self.conversations.create(
            name=_clean_name(name),
            phone=_clean_phone(phone),
            email=_clean_optional(email),
            company=_clean_optional(company),
            channel=channel,
            context=context,
        )
        await self.session.commit()
        await self.session.refresh(conversation)
        await self.notifier.conversation_updated(conversation)
        return conversation

    async def update_details(
        self,
        conversation_id: UUID,
        changes: Mapping[str, Any],
    ) -> Conversation:
        """Edit the lead fields of a conversation. Only keys present in ``changes`` are touched."""
        unknown = set(changes) - EDITABLE_FIELDS
        if unknown:
            field = sorted(unknown)[0]
            raise ConversationValidationError(f"Field '{field}' cannot be edited.", field=field)

        conversation = await self._get_conversation_or_raise(conversation_id)
        cleaned: dict[str, Any] = {}
        for name, value in changes.items():
            if name == "name":
                cleaned[name] = _clean_name(value)
            elif name == "phone":
                cleaned[name] = _clean_phone(value)
            elif name == "deal_status":
                try:
                    cleaned[name] = DealStatus(value)
                except ValueError as exc:
                    raise ConversationValidationError(
                        f"Unknown deal status '{value}'.", field=name
                    ) from exc
            else:
                cleaned[name] = _clean_optional(value)

        if not cleaned:
            return conversation

        await self.conversations.update_details(conversation, cleaned)
        await self.session.commit()
        await self.session.refresh(conversation)
        await self.notifier.conversation_updated(conversation)
        return conversation

    async def list_recent(self, limit: int = 50) -> list[Conversation]:
        return await self.conversations.list_recent(limit)

    async def get_conversation(self, conversation_id: UUID) -> Conversation:
        return await self._get_conversation_or_raise(conversation_id)

    async def list_messages(
        self,
        conversation_id: UUID,
        before: datetime | None = None,
        limit: int = 50,
    ) -> MessagePage:
        """Newest ``limit`` messages (older than ``before`` when given), oldest first."""
        await self._get_conversation_or_raise(conversation_id)
        if before is None:
            rows = await self.messages.list_recent(conversation_id, limit + 1)
        else:
            rows = await self.messages.list_before(conversation_id, before=before, limit=limit + 1)
        has_more = len(rows) > limit
        return MessagePage(messages=rows[-limit:] if has_more else rows, has_more=has_more)

    async def mark_as_read(self, conversation_id: UUID) -> Conversation:
        conversation = await self._get_conversation_or_raise(conversation_id)
        if conversation.unread_count == 0:
            return conversation

        await self.conversations.mark_read(conversation)
        await self.session.commit()
        await self.session.refresh(conversation)
        await self.notifier.conversation_updated(conversation)
        return conversation

    async def session_window(
        self,
        conversation_id: UUID,
        now: datetime | None = None,
    ) -> SessionWindow:
        await self._get_conversation_or_raise(conversation_id)
        last_inbound_at = await self.messages.get_last_inbound_at(conversation_id)
        template_sent = False
        if last_inbound_at is not None:
            template_sent = await self.messages.has_outbound_template_since(
                conversation_id, last_inbound_at
            )
        return evaluate_session_window(last_inbound_at, template_sent, now=now)

    async def get_channel_integration(self) -> ChannelIntegration:
        return await self.settings.get_channel_integration()

    async def save_channel_integration(
        self, integration: ChannelIntegration
    ) -> ChannelIntegration:
        await self.settings.save_channel_integration(integration)
        await self.session.commit()
        return integration

    async def _get_conversation_or_raise(self, conversation_id: UUID) -> Conversation:
        conversation = await self.conversations.get_by_id(conversation_id)
        if conversation is None:
            raise ConversationNotFoundError(conversation_id)
        return conversation
