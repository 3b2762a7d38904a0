from datetime import UTC, datetime

import pytest

from inbox.domain.enums import (
    ConversationStatus,
    DistributionMode,
    MessageDirection,
    MessageStatus,
    MessageType,
)
from inbox.domain.settings import DistributionSettings
from inbox.schemas.webhook import WebhookPayload
from inbox.services.inbound_service import InboundService
from tests.unit.fakes import (
    DummySession,
    FakeConversation,
    FakeConversationRepository,
    FakeMessageRepository,
    FakeSettingsRepository,
    RecordingPublisher,
)


def _meta_payload(*messages: dict, statuses: list[dict] | None = None) -> WebhookPayload:
    return WebhookPayload.model_validate(
        {
            "object": "whatsapp_business_account",
            "entry": [
                {
                    "id": "waba-1",
                    "changes": [
                        {
                            "field": "messages",
                            "value": {
                                "contacts": [
                                    {"wa_id": "5511999990000", "profile": {"name": "Ana"}}
                                ],
                                "messages": list(messages),
                                "statuses": statuses or [],
                            },
                        }
                    ],
                }
            ],
        }
    )


def _text(message_id: str, body: str, phone: str = "5511999990000") -> dict:
    return {
        "id": message_id,
        "from": phone,
        "timestamp": "1773133200",
        "type": "text",
        "text": {"body": body},
    }


@pytest.fixture
def fixture_state():
    conversations = FakeConversationRepository()
    messages = FakeMessageRepository()
    settings = FakeSettingsRepository()
    realtime = RecordingPublisher()
    service = InboundService(
        session=DummySession(),
        conversations=conversations,
        messages=messages,
        settings=settings,
        realtime=realtime,
    )
    return {
        "service": service,
        "conversations": conversations,
        "messages": messages,
        "settings": settings,
        "realtime": realtime,
    }


@pytest.mark.asyncio
async def test_first_message_opens_conversation(fixture_state) -> None:
    service = fixture_state["service"]

    result = await service.process_webhook(_meta_payload(_text("wamid.in1", "Oi")))

    assert (result.messages_recorded, result.duplicates) == (1, 0)
    [conversation] = fixture_state["conversations"].conversations.values()
    assert conversation.name == "Ana"
    assert conversation.phone == "5511999990000"
    assert conversation.unread_count == 1
    assert conversation.last_message_preview == "Oi"
    assert conversation.assigned_to is None

    [message] = fixture_state["messages"].messages
    assert message.direction == MessageDirection.IN
    assert message.status == MessageStatus.DELIVERED
    assert message.created_at == datetime.fromtimestamp(1773133200, UTC)
    assert fixture_state["realtime"].names() == ["message.created", "conversation.updated"]


@pytest.mark.asyncio
async def test_duplicate_provider_message_is_skipped(fixture_state) -> None:
    service = fixture_state["service"]
    payload = _meta_payload(_text("wamid.in1", "Oi"))

    await service.process_webhook(payload)
    result = await service.process_webhook(payload)

    assert (result.messages_recorded, result.duplicates) == (0, 1)
    assert len(fixture_state["messages"].messages) == 1
    [conversation] = fixture_state["conversations"].conversations.values()
    assert conversation.unread_count == 1


@pytest.mark.asyncio
async def test_existing_conversation_is_reused_and_reopened(fixture_state) -> None:
    existing = fixture_state["conversations"].add(
        FakeConversation(phone="5511999990000", status=ConversationStatus.CLOSED, unread_count=2)
    )

    recorded = await fixture_state["service"].record_inbound_message(
        phone="+55 11 99999-0000", content="Voltei"
    )

    assert recorded is not None
    assert recorded.conversation is existing
    assert not recorded.created_conversation
    assert existing.status == ConversationStatus.OPEN
    assert existing.unread_count == 3


@pytest.mark.asyncio
async def test_new_conversation_is_auto_assigned(fixture_state) -> None:
    fixture_state["settings"].distribution = DistributionSettings(
        enabled=True, mode=DistributionMode.AUTO, participants=["A", "B"]
    )
    fixture_state["conversations"].add(FakeConversation(phone="5500000000000", assigned_to="A"))

    recorded = await fixture_state["service"].record_inbound_message(
        phone="5511999990000", content="Oi"
    )

    assert recorded.assigned_to == "B"
    assert recorded.conversation.assigned_to == "B"
    assert fixture_state["realtime"].names()[-1] == "conversation.assigned"


@pytest.mark.asyncio
async def test_flat_payload_with_media(fixture_state) -> None:
    payload = WebhookPayload.model_validate(
        {
            "messages": [
                {
                    "id": "wamid.doc",
                    "from": "5511999990000",
                    "type": "document",
                    "document": {"id": "media-9", "filename": "rg.pdf"},
                }
            ]
        }
    )

    result = await fixture_state["service"].process_webhook(payload)

    assert result.messages_recorded == 1
    [message] = fixture_state["messages"].messages
    assert message.type == MessageType.DOCUMENT
    assert message.content == "[Document: rg.pdf]"
    assert message.metadata_json == {"provider_type": "document", "media_id": "media-9"}


@pytest.mark.asyncio
async def test_status_callbacks_update_outbound_messages(fixture_state) -> None:
    conversation = fixture_state["conversations"].add(FakeConversation())
    outbound = await fixture_state["messages"].create(
        conversation_id=conversation.id,
        content="Hello",
        type=MessageType.TEXT,
        direction=MessageDirection.OUT,
        status=MessageStatus.SENT,
        provider_message_id="wamid.out1",
    )

    result = await fixture_state["service"].process_webhook(
        _meta_payload(
            statuses=[
                {"id": "wamid.out1", "status": "delivered"},
                {"id": "wamid.unknown", "status": "read"},
            ]
        )
    )

    assert result.statuses_matched == 1
    assert outbound.status == MessageStatus.DELIVERED


@pytest.mark.asyncio
async def test_empty_payload_is_ignored(fixture_state) -> None:
    result = await fixture_state["service"].process_webhook(WebhookPayload.model_validate({}))

    assert (result.messages_recorded, result.duplicates, result.statuses_matched) == (0, 0, 0)
