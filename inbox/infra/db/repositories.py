from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from inbox.domain.enums import (
    ConversationChannel,
    ConversationContext,
    ConversationStatus,
    MessageDirection,
    MessageStatus,
    MessageType,
)
from inbox.domain.settings import (
    CHANNEL_INTEGRATION_KEY,
    LEAD_DISTRIBUTION_KEY,
    ChannelIntegration,
    DistributionSettings,
)
from inbox.infra.db.models import Conversation, Message, SettingEntry

PREVIEW_MAX_LENGTH = 100


def _preview(content: str) -> str:
    return content.strip()[:PREVIEW_MAX_LENGTH]


class ConversationRepository:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_by_id(self, conversation_id: UUID) -> Conversation | None:
        return await self.session.get(Conversation, conversation_id)

    async def get_latest_by_phone(self, phone: str) -> Conversation | None:
        stmt: Select[tuple[Conversation]] = (
            select(Conversation)
            .where(Conversation.phone == phone)
            .order_by(Conversation.updated_at.desc())
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def create(
        self,
        name: str | None = None,
        phone: str | None = None,
        email: str | None = None,
        company: str | None = None,
        channel: ConversationChannel = ConversationChannel.WHATSAPP,
        context: ConversationContext = ConversationContext.SALES,
    ) -> Conversation:
        now = datetime.now(UTC)
        conversation = Conversation(
            id=uuid4(),
            name=name,
            phone=phone,
            email=email,
            company=company,
            channel=channel,
            status=ConversationStatus.OPEN,
            context=context,
            unread_count=0,
            created_at=now,
            updated_at=now,
        )
        self.session.add(conversation)
        await self.session.flush()
        return conversation

    async def list_recent(self, limit: int = 50) -> list[Conversation]:
        last_activity = func.coalesce(Conversation.last_message_at, Conversation.created_at)
        stmt: Select[tuple[Conversation]] = (
            select(Conversation)
            .order_by(last_activity.desc(), Conversation.id.desc())
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_unassigned_open(self) -> list[Conversation]:
        stmt: Select[tuple[Conversation]] = (
            select(Conversation)
            .where(
                Conversation.assigned_to.is_(None),
                Conversation.status != ConversationStatus.CLOSED,
            )
            .order_by(Conversation.created_at.asc(), Conversation.id.asc())
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def count_active_by_assignee(self) -> dict[str, int]:
        stmt = (
            select(Conversation.assigned_to, func.count(Conversation.id))
            .where(
                Conversation.assigned_to.is_not(None),
                Conversation.status != ConversationStatus.CLOSED,
            )
            .group_by(Conversation.assigned_to)
        )
        result = await self.session.execute(stmt)
        return {str(agent_id): int(count) for agent_id, count in result.all()}

    async def record_outbound(self, conversation: Conversation, content: str, at: datetime) -> None:
        conversation.last_message_preview = _preview(content)
        conversation.last_message_at = at
        conversation.unread_count = 0
        conversation.updated_at = at
        await self.session.flush()

    async def record_inbound(
        self,
        conversation: Conversation,
        content: str,
        at: datetime,
        contact_name: str | None = None,
    ) -> None:
        conversation.last_message_preview = _preview(content)
        conversation.last_message_at = at
        conversation.unread_count = (conversation.unread_count or 0) + 1
        conversation.updated_at = at
        if contact_name and contact_name != conversation.phone:
            conversation.name = contact_name
        await self.session.flush()

    async def mark_read(self, conversation: Conversation) -> None:
        conversation.unread_count = 0
        await self.session.flush()

    async def assign(self, conversation: Conversation, agent_id: str | None) -> None:
        conversation.assigned_to = agent_id
        conversation.updated_at = datetime.now(UTC)
        await self.session.flush()

    async def set_status(self, conversation: Conversation, status: ConversationStatus) -> None:
        conversation.status = status
        conversation.updated_at = datetime.now(UTC)
        await self.session.flush()

    async def update_details(self, conversation: Conversation, changes: Mapping[str, Any]) -> None:
        for name, value in changes.items():
            setattr(conversation, name, value)
        conversation.updated_at = datetime.now(UTC)
        await self.session.flush()

    async def move_to_post_sales(self, conversation: Conversation) -> None:
        now = datetime.now(UTC)
        conversation.context = ConversationContext.POST_SALES
        conversation.status = ConversationStatus.OPEN
        conversation.assigned_to = None
        conversation.transferred_to_post_sales_at = now
        conversation.updated_at = now
        await self.session.flush()


class MessageRepository:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create(
        self,
        conversation_id: UUID,
        content: str,
        type: MessageType,
        direction: MessageDirection,
        status: MessageStatus,
        sender_id: str | None = None,
        media_url: str | None = None,
        media_name: str | None = None,
        scheduled_for: datetime | None = None,
        provider_message_id: str | None = None,
        metadata_json: dict | None = None,
        created_at: datetime | None = None,
    ) -> Message:
        message = Message(
            id=uuid4(),
            conversation_id=conversation_id,
            content=content,
            type=type,
            direction=direction,
            status=status,
            sender_id=sender_id if direction == MessageDirection.OUT else None,
            media_url=media_url,
            media_name=media_name,
            scheduled_for=scheduled_for,
            provider_message_id=provider_message_id,
            metadata_json=metadata_json,
            created_at=created_at or datetime.now(UTC),
        )
        self.session.add(message)
        await self.session.flush()
        return message

    async def get_by_id(self, message_id: UUID) -> Message | None:
        return await self.session.get(Message, message_id)

    async def get_by_provider_message_id(self, provider_message_id: str) -> Message | None:
        stmt: Select[tuple[Message]] = (
            select(Message)
            .where(Message.provider_message_id == provider_message_id)
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def update_status(
        self,
        message: Message,
        status: MessageStatus,
        provider_message_id: str | None = None,
    ) -> None:
        message.status = status
        if provider_message_id:
            message.provider_message_id = provider_message_id
        await self.session.flush()

    async def list_recent(self, conversation_id: UUID, limit: int = 50) -> list[Message]:
        stmt: Select[tuple[Message]] = (
            select(Message)
            .where(Message.conversation_id == conversation_id)
            .order_by(Message.created_at.desc(), Message.id.desc())
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(reversed(result.scalars().all()))

    async def list_before(
        self,
        conversation_id: UUID,
        before: datetime,
        limit: int = 50,
    ) -> list[Message]:
        stmt: Select[tuple[Message]] = (
            select(Message)
            .where(
                Message.conversation_id == conversation_id,
                Message.created_at < before,
            )
            .order_by(Message.created_at.desc(), Message.id.desc())
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(reversed(result.scalars().all()))

    async def get_last_inbound_at(self, conversation_id: UUID) -> datetime | None:
        stmt = select(func.max(Message.created_at)).where(
            Message.conversation_id == conversation_id,
            Message.direction == MessageDirection.IN,
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def has_outbound_template_since(self, conversation_id: UUID, since: datetime) -> bool:
        stmt = (
            select(Message.id)
            .where(
                Message.conversation_id == conversation_id,
                Message.direction == MessageDirection.OUT,
                Message.type == MessageType.TEMPLATE,
                Message.created_at >= since,
            )
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none() is not None


class SettingsRepository:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_value(self, key: str) -> dict | None:
        entry = await self.session.get(SettingEntry, key)
        if entry is None:
            return None
        return dict(entry.value)

    async def set_value(self, key: str, value: dict) -> None:
        entry = await self.session.get(SettingEntry, key)
        if entry is None:
            self.session.add(SettingEntry(key=key, value=value))
        else:
            entry.value = value
            entry.updated_at = datetime.now(UTC)
        await self.session.flush()

    async def get_distribution_settings(self) -> DistributionSettings:
        return DistributionSettings.from_value(await self.get_value(LEAD_DISTRIBUTION_KEY))

    async def save_distribution_settings(self, settings: DistributionSettings) -> None:
        await self.set_value(LEAD_DISTRIBUTION_KEY, settings.to_value())

    async def get_channel_integration(self) -> ChannelIntegration:
        return ChannelIntegration.from_value(await self.get_value(CHANNEL_INTEGRATION_KEY))

    async def save_channel_integration(self, integration: ChannelIntegration) -> None:
        await self.set_value(CHANNEL_INTEGRATION_KEY, integration.to_value())
