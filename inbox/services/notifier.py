import logging
from datetime import datetime
from typing import Any

from inbox.infra.db.models import Conversation, Message
from inbox.infra.realtime.channels import CONVERSATIONS_CHANNEL, conversation_messages_channel
from inbox.infra.realtime.events import RealtimeEvent
from inbox.infra.realtime.hub import ChangePublisher

logger = logging.getLogger(__name__)


def _isoformat(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


class ChangeNotifier:
    """Publishes repository changes after commit. Publishing never fails the caller."""

    def __init__(self, realtime: ChangePublisher | None = None) -> None:
        self.realtime = realtime

    async def message_created(self, message: Message) -> None:
        await self._safe_publish(
            channels=[conversation_messages_channel(message.conversation_id)],
            event=RealtimeEvent.MESSAGE_CREATED,
            payload={
                "conversation_id": str(message.conversation_id),
                "message": self._message_payload(message),
            },
        )

    async def message_status_changed(self, message: Message) -> None:
        await self._safe_publish(
            channels=[conversation_messages_channel(message.conversation_id)],
            event=RealtimeEvent.MESSAGE_STATUS_CHANGED,
            payload={
                "conversation_id": str(message.conversation_id),
                "message": self._message_payload(message),
            },
        )

    async def conversation_updated(self, conversation: Conversation) -> None:
        await self._safe_publish(
            channels=[CONVERSATIONS_CHANNEL],
            event=RealtimeEvent.CONVERSATION_UPDATED,
            payload={"conversation": self._conversation_payload(conversation)},
        )

    async def conversation_assigned(self, conversation: Conversation) -> None:
        await self._safe_publish(
            channels=[CONVERSATIONS_CHANNEL],
            event=RealtimeEvent.CONVERSATION_ASSIGNED,
            payload={"conversation": self._conversation_payload(conversation)},
        )

    async def _safe_publish(
        self,
        channels: list[str],
        event: RealtimeEvent,
        payload: dict[str, Any],
    ) -> None:
        if self.realtime is None:
            return
        try:
            await self.realtime.publish(channels, event, payload)
        except Exception:
            logger.warning("Realtime publish failed event=%s", event.value, exc_info=True)

    @staticmethod
    def _conversation_payload(conversation: Conversation) -> dict[str, Any]:
        return {
            "id": str(conversation.id),
            "status": conversation.status.value,
            "assigned_to": conversation.assigned_to,
            "context": conversation.context.value,
            "last_message_preview": conversation.last_message_preview,
            "last_message_at": _isoformat(conversation.last_message_at),
            "unread_count": conversation.unread_count,
            "updated_at": _isoformat(conversation.updated_at),
        }

    @staticmethod
    def _message_payload(message: Message) -> dict[str, Any]:
        return {
            "id": str(message.id),
            "conversation_id": str(message.conversation_id),
            "type": message.type.value,
            "direction": message.direction.value,
            "status": message.status.value,
            "content": message.content,
            "provider_message_id": message.provider_message_id,
            "created_at": _isoformat(message.created_at),
        }
