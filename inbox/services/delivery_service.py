import asyncio
import logging
from collections.abc import Coroutine, Mapping, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from inbox.domain.enums import (
    ConversationChannel,
    MessageDirection,
    MessageStatus,
    MessageType,
)
from inbox.domain.exceptions import InvalidMessageStatusTransition, MessageValidationError
from inbox.domain.state_machine import MessageStatusLifecycle
from inbox.infra.channel.client import ChannelClientFactory
from inbox.infra.channel.errors import ChannelDispatchError
from inbox.infra.channel.payloads import (
    InteractivePayload,
    MediaPayload,
    OutboundPayload,
    TemplatePayload,
    TextPayload,
    payload_from_message,
)
from inbox.infra.db.models import Conversation, Message
from inbox.infra.db.repositories import (
    ConversationRepository,
    MessageRepository,
    SettingsRepository,
)
from inbox.infra.realtime.hub import ChangePublisher
from inbox.services.errors import (
    ConversationNotFoundError,
    MessageNotFoundError,
    MessageNotRetryableError,
)
from inbox.services.notifier import ChangeNotifier

logger = logging.getLogger(__name__)

# Statuses a provider callback may report.
PROVIDER_STATUSES = frozenset(
    {
        MessageStatus.SENT,
        MessageStatus.DELIVERED,
        MessageStatus.READ,
        MessageStatus.FAILED,
    }
)


@dataclass(slots=True)
class DeliveryResult:
    conversation: Conversation
    message: Message
    dispatched: bool


class DeliveryTracker:
    """Holds deliveries that outlive their request until they settle.

    Shutdown drains it so a pending message is not abandoned mid-dispatch.
    """

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task[DeliveryResult]] = set()

    def __len__(self) -> int:
        return len(self._tasks)

    def start(
        self, delivery: Coroutine[Any, Any, DeliveryResult]
    ) -> asyncio.Task[DeliveryResult]:
        task = asyncio.create_task(delivery)
        self._tasks.add(task)
        task.add_done_callback(self._finished)
        return task

    async def drain(self) -> None:
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _finished(self, task: asyncio.Task[DeliveryResult]) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Delivery did not complete", exc_info=task.exception())


class MessageDeliveryService:
    """Save-first outbound delivery.

    The message is committed as ``pending`` before the provider is called.
    Provider failures are recorded on the message and never raised.
    """

    def __init__(
        self,
        session: AsyncSession,
        channel_factory: ChannelClientFactory | None = None,
        conversations: ConversationRepository | None = None,
        messages: MessageRepository | None = None,
        settings: SettingsRepository | None = None,
        realtime: ChangePublisher | None = None,
        default_language: str = "pt_BR",
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        tracker: DeliveryTracker | None = None,
    ) -> None:
        self.session = session
        self.session_factory = session_factory
        self.tracker = tracker or DeliveryTracker()
        self.channel_factory = channel_factory
        self.conversations = conversations or ConversationRepository(session)
        self.messages = messages or MessageRepository(session)
        self.settings = settings or SettingsRepository(session)
        self.notifier = ChangeNotifier(realtime)
        self.default_language = default_language

    async def send_text(
        self,
        conversation_id: UUID,
        content: str,
        sender_id: str | None = None,
    ) -> DeliveryResult:
        payload = TextPayload(body=content.strip())
        return await self._deliver(conversation_id, payload, sender_id)

    async def send_media(
        self,
        conversation_id: UUID,
        media_type: MessageType,
        media_url: str,
        media_name: str | None = None,
        caption: str | None = None,
        size_bytes: int | None = None,
        view_once: bool = False,
        sender_id: str | None = None,
    ) -> DeliveryResult:
        payload = MediaPayload(
            media_type=media_type,
            url=media_url.strip(),
            caption=(caption or "").strip() or None,
            filename=media_name,
            size_bytes=size_bytes,
            view_once=view_once,
        )
        return await self._deliver(conversation_id, payload, sender_id)

    async def send_template(
        self,
        conversation_id: UUID,
        template_name: str,
        language: str | None = None,
        body: str = "",
        variables: Mapping[int, str] | None = None,
        sender_id: str | None = None,
    ) -> DeliveryResult:
        payload = TemplatePayload.from_template(
            name=template_name,
            language=language or self.default_language,
            body=body,
            variables=variables,
        )
        return await self._deliver(conversation_id, payload, sender_id)

    async def send_interactive(
        self,
        conversation_id: UUID,
        body: str,
        buttons: Sequence[tuple[str | None, str]],
        header: str | None = None,
        sender_id: str | None = None,
    ) -> DeliveryResult:
        payload = InteractivePayload.build(body.strip(), buttons, header=header)
        return await self._deliver(conversation_id, payload, sender_id)

    async def schedule_message(
        self,
        conversation_id: UUID,
        content: str,
        scheduled_for: datetime,
        sender_id: str | None = None,
    ) -> Message:
        cleaned_content = content.strip()
        if not cleaned_content:
            raise MessageValidationError("Message content cannot be empty.", field="content")
        if scheduled_for.tzinfo is None:
            raise MessageValidationError(
                "scheduled_for must include a timezone.", field="scheduled_for"
            )
        if scheduled_for <= datetime.now(UTC):
            raise MessageValidationError(
                "scheduled_for must be in the future.", field="scheduled_for"
            )

        conversation = await self._get_conversation_or_raise(conversation_id)
        message = await self.messages.create(
            conversation_id=conversation.id,
            content=cleaned_content,
            type=MessageType.TEXT,
            direction=MessageDirection.OUT,
            status=MessageStatus.SCHEDULED,
            sender_id=sender_id,
            scheduled_for=scheduled_for,
            metadata_json=TextPayload(body=cleaned_content).to_metadata(),
        )
        await self.session.commit()
        await self.notifier.message_created(message)
        return message

    async def retry_message(
        self,
        message_id: UUID,
        sender_id: str | None = None,
    ) -> DeliveryResult:
        """Send a failed message again as a new message. The failed one is left as is."""
        original = await self.messages.get_by_id(message_id)
        if original is None:
            raise MessageNotFoundError(message_id)
        if original.direction != MessageDirection.OUT or not MessageStatusLifecycle.is_retryable(
            original.status
        ):
            raise MessageNotRetryableError(original.id, original.status)

        payload = payload_from_message(original.type, original.content, original.metadata_json)
        return await self._deliver(
            original.conversation_id,
            payload,
            sender_id or original.sender_id,
            retry_of=original.id,
        )

    async def reconcile_status(
        self,
        provider_message_id: str,
        provider_status: str,
    ) -> Message | None:
        try:
            target = MessageStatus(provider_status)
        except ValueError:
            target = None
        if target not in PROVIDER_STATUSES:
            logger.info(
                "Ignoring unknown provider status provider_message_id=%s status=%s",
                provider_message_id,
                provider_status,
            )
            return None

        message = await self.messages.get_by_provider_message_id(provider_message_id)
        if message is None:
            logger.info(
                "Ignoring status for unknown message provider_message_id=%s status=%s",
                provider_message_id,
                provider_status,
            )
            return None

        try:
            await self._apply_status(message, target)
        except InvalidMessageStatusTransition as exc:
            logger.info(
                "Ignoring out-of-order status message_id=%s: %s", message.id, exc
            )
        return message

    async def _deliver(
        self,
        conversation_id: UUID,
        payload: OutboundPayload,
        sender_id: str | None,
        retry_of: UUID | None = None,
    ) -> DeliveryResult:
        conversation = await self._get_conversation_or_raise(conversation_id)

        metadata = payload.to_metadata()
        if retry_of is not None:
            metadata["retry_of"] = str(retry_of)

        now = datetime.now(UTC)
        message = await self.messages.create(
            conversation_id=conversation.id,
            content=payload.preview,
            type=payload.message_type,
            direction=MessageDirection.OUT,
            status=MessageStatus.PENDING,
            sender_id=sender_id,
            media_url=payload.url if isinstance(payload, MediaPayload) else None,
            media_name=payload.filename if isinstance(payload, MediaPayload) else None,
            metadata_json=metadata,
            created_at=now,
        )
        await self.conversations.record_outbound(conversation, payload.preview, now)
        await self.session.commit()

        # The message is durable as pending: everything after this point runs
        # to sent or failed even if the caller is cancelled.
        task = self.tracker.start(
            self._complete_delivery(conversation.id, message.id, payload)
        )
        return await asyncio.shield(task)

    async def _complete_delivery(
        self,
        conversation_id: UUID,
        message_id: UUID,
        payload: OutboundPayload,
    ) -> DeliveryResult:
        if self.session_factory is None:
            return await self._publish_and_dispatch(conversation_id, message_id, payload)

        # The request session may be closed while this runs.
        async with self.session_factory() as session:
            worker = type(self)(
                session,
                channel_factory=self.channel_factory,
                realtime=self.notifier.realtime,
                default_language=self.default_language,
            )
            return await worker._publish_and_dispatch(conversation_id, message_id, payload)

    async def _publish_and_dispatch(
        self,
        conversation_id: UUID,
        message_id: UUID,
        payload: OutboundPayload,
    ) -> DeliveryResult:
        conversation = await self._get_conversation_or_raise(conversation_id)
        message = await self.messages.get_by_id(message_id)
        if message is None:
            raise MessageNotFoundError(message_id)

        await self.notifier.message_created(message)
        await self.notifier.conversation_updated(conversation)

        dispatched = await self._dispatch(conversation, message, payload)
        return DeliveryResult(conversation=conversation, message=message, dispatched=dispatched)

    async def _dispatch(
        self,
        conversation: Conversation,
        message: Message,
        payload: OutboundPayload,
    ) -> bool:
        integration = await self.settings.get_channel_integration()
        channel = None
        if (
            integration.enabled
            and conversation.phone
            and conversation.channel == ConversationChannel.WHATSAPP
            and self.channel_factory is not None
        ):
            channel = self.channel_factory(integration.provider)

        if channel is None or not channel.is_configured:
            logger.info(
                "Channel disabled, keeping message locally message_id=%s conversation_id=%s",
                message.id,
                conversation.id,
            )
            await self._apply_status(message, MessageStatus.SENT)
            return False

        try:
            provider_message_id = await channel.send(conversation.phone, payload)
        except ChannelDispatchError as exc:
            logger.warning(
                "Message dispatch failed message_id=%s status_code=%s detail=%s",
                message.id,
                exc.status_code,
                exc.detail,
            )
            await self._apply_status(message, MessageStatus.FAILED)
            return False
        except Exception:
            logger.exception("Unexpected dispatch error message_id=%s", message.id)
            await self._apply_status(message, MessageStatus.FAILED)
            return False

        await self._apply_status(message, MessageStatus.SENT, provider_message_id)
        return True

    async def _apply_status(
        self,
        message: Message,
        status: MessageStatus,
        provider_message_id: str | None = None,
    ) -> None:
        next_status = MessageStatusLifecycle.transition(message.status, status)
        if next_status == message.status and not provider_message_id:
            return

        await self.messages.update_status(message, next_status, provider_message_id)
        await self.session.commit()
        await self.notifier.message_status_changed(message)

    async def _get_conversation_or_raise(self, conversation_id: UUID) -> Conversation:
        conversation = await self.conversations.get_by_id(conversation_id)
        if conversation is None:
            raise ConversationNotFoundError(conversation_id)
        return conversation
