import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from inbox.domain.enums import (
    ConversationChannel,
    ConversationStatus,
    MessageDirection,
    MessageStatus,
    MessageType,
)
from inbox.infra.channel.client import normalize_phone
from inbox.infra.db.models import Conversation, Message
from inbox.infra.db.repositories import (
    ConversationRepository,
    MessageRepository,
    SettingsRepository,
)
from inbox.infra.realtime.hub import ChangePublisher
from inbox.schemas.webhook import WebhookPayload, WebhookValue
from inbox.services.delivery_service import MessageDeliveryService
from inbox.services.distribution_service import DistributionService
from inbox.services.notifier import ChangeNotifier

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class InboundMessageResult:
    conversation: Conversation
    message: Message
    created_conversation: bool
    assigned_to: str | None


@dataclass(slots=True)
class WebhookResult:
    messages_recorded: int = 0
    duplicates: int = 0
    statuses_matched: int = 0


class InboundService:
    """Stores customer messages and provider status callbacks."""

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
        self.distribution = DistributionService(
            session,
            conversations=self.conversations,
            settings=self.settings,
            realtime=realtime,
        )
        self.delivery = MessageDeliveryService(
            session,
            conversations=self.conversations,
            messages=self.messages,
            settings=self.settings,
            realtime=realtime,
        )

    async def process_webhook(self, payload: WebhookPayload) -> WebhookResult:
        result = WebhookResult()
        for value in payload.change_values():
            await self._process_value(value, result)
        return result

    async def record_inbound_message(
        self,
        phone: str,
        content: str,
        message_type: MessageType = MessageType.TEXT,
        provider_message_id: str | None = None,
        contact_name: str | None = None,
        received_at: datetime | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> InboundMessageResult | None:
        """Returns ``None`` for a message the provider already delivered once."""
        if provider_message_id:
            existing = await self.messages.get_by_provider_message_id(provider_message_id)
            if existing is not None:
                return None

        normalized_phone = normalize_phone(phone)
        received = received_at or datetime.now(UTC)

        conversation = await self.conversations.get_latest_by_phone(normalized_phone)
        created = conversation is None
        assigned_to: str | None = None
        if conversation is None:
            conversation = await self.conversations.create(
                name=contact_name or normalized_phone,
                phone=normalized_phone,
                channel=ConversationChannel.WHATSAPP,
            )
            assigned_to = await self.distribution.auto_assign(conversation)
            logger.info(
                "Conversation opened from inbound message conversation_id=%s assigned_to=%s",
                conversation.id,
                assigned_to,
            )
        elif conversation.status == ConversationStatus.CLOSED:
            await self.conversations.set_status(conversation, ConversationStatus.OPEN)

        message = await self.messages.create(
            conversation_id=conversation.id,
            content=content,
            type=message_type,
            direction=MessageDirection.IN,
            status=MessageStatus.DELIVERED,
            provider_message_id=provider_message_id,
            metadata_json=metadata,
            created_at=received,
        )
        await self.conversations.record_inbound(
            conversation, content, received, contact_name=contact_name
        )

        await self.session.commit()
        await self.session.refresh(conversation)

        await self.notifier.message_created(message)
        await self.notifier.conversation_updated(conversation)
        if assigned_to is not None:
            await self.notifier.conversation_assigned(conversation)

        return InboundMessageResult(
            conversation=conversation,
            message=message,
            created_conversation=created,
            assigned_to=assigned_to,
        )

    async def _process_value(self, value: WebhookValue, result: WebhookResult) -> None:
        for incoming in value.messages:
            contact = value.contact_for(incoming.from_)
            contact_name = contact.profile.name if contact and contact.profile else None
            media = incoming.media
            recorded = await self.record_inbound_message(
                phone=incoming.from_,
                content=incoming.content(),
                message_type=incoming.message_type,
                provider_message_id=incoming.id,
                contact_name=contact_name,
                received_at=incoming.sent_at,
                metadata=(
                    {"provider_type": incoming.type, "media_id": media.id}
                    if media is not None
                    else {"provider_type": incoming.type}
                ),
            )
            if recorded is None:
                result.duplicates += 1
            else:
                result.messages_recorded += 1

        for status in value.statuses:
            message = await self.delivery.reconcile_status(status.id, status.status)
            if message is not None:
                result.statuses_matched += 1
