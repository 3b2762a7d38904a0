from datetime import UTC, datetime, timedelta
from uuid import uuid4

import pytest

from inbox.domain.enums import (
    DealStatus,
    MessageDirection,
    MessageStatus,
    MessageType,
    SessionStatus,
)
from inbox.domain.exceptions import ConversationValidationError
from inbox.services.conversation_service import ConversationService
from inbox.services.errors import ConversationNotFoundError
from inbox.services.inbound_service import InboundService
from tests.unit.fakes import (
    DummySession,
    FakeConversation,
    FakeConversationRepository,
    FakeMessageRepository,
    FakeSettingsRepository,
    RecordingPublisher,
)

BASE = datetime(2026, 3, 10, 9, 0, tzinfo=UTC)


@pytest.fixture
def fixture_state():
    session = DummySession()
    conversation = FakeConversation(unread_count=4)
    conversations = FakeConversationRepository([conversation])
    messages = FakeMessageRepository()
    realtime = RecordingPublisher()
    service = ConversationService(
        session=session,
        conversations=conversations,
        messages=messages,
        settings=FakeSettingsRepository(),
        realtime=realtime,
    )
    return {
        "service": service,
        "session": session,
        "conversation": conversation,
        "conversations": conversations,
        "messages": messages,
        "realtime": realtime,
    }


async def _add_message(
    messages: FakeMessageRepository,
    conversation_id,
    minutes: int,
    direction: MessageDirection = MessageDirection.IN,
    message_type: MessageType = MessageType.TEXT,
):
    return await messages.create(
        conversation_id=conversation_id,
        content=f"at {minutes}",
        type=message_type,
        direction=direction,
        status=MessageStatus.DELIVERED,
        created_at=BASE + timedelta(minutes=minutes),
    )


@pytest.mark.asyncio
async def test_list_messages_pages_backwards(fixture_state) -> None:
    service = fixture_state["service"]
    conversation = fixture_state["conversation"]
    history = [
        await _add_message(fixture_state["messages"], conversation.id, minute)
        for minute in range(5)
    ]

    latest = await service.list_messages(conversation.id, limit=3)
    assert latest.messages == history[2:]
    assert latest.has_more

    older = await service.list_messages(
        conversation.id, before=latest.messages[0].created_at, limit=3
    )
    assert older.messages == history[:2]
    assert not older.has_more


@pytest.mark.asyncio
async def test_list_messages_for_unknown_conversation(fixture_state) -> None:
    with pytest.raises(ConversationNotFoundError):
        await fixture_state["service"].list_messages(uuid4())


@pytest.mark.asyncio
async def test_mark_as_read_resets_unread_once(fixture_state) -> None:
    service = fixture_state["service"]
    conversation = fixture_state["conversation"]

    await service.mark_as_read(conversation.id)
    await service.mark_as_read(conversation.id)

    assert conversation.unread_count == 0
    assert fixture_state["session"].commits == 1
    assert fixture_state["realtime"].names() == ["conversation.updated"]


@pytest.mark.asyncio
async def test_create_conversation_trims_fields(fixture_state) -> None:
    service = fixture_state["service"]

    conversation = await service.create_conversation(name="  Ana  ", phone=" 5511 ")

    assert conversation.name == "Ana"
    assert conversation.phone == "5511"
    assert await service.get_conversation(conversation.id) is conversation


@pytest.mark.asyncio
async def test_session_window_without_inbound_is_expired(fixture_state) -> None:
    window = await fixture_state["service"].session_window(fixture_state["conversation"].id)

    assert window.status == SessionStatus.EXPIRED
    assert window.last_inbound_at is None
    assert not window.can_send_freeform


@pytest.mark.asyncio
async def test_session_window_tracks_template_after_inbound(fixture_state) -> None:
    service = fixture_state["service"]
    messages = fixture_state["messages"]
    conversation = fixture_state["conversation"]
    await _add_message(messages, conversation.id, 0)

    window = await service.session_window(conversation.id, now=BASE + timedelta(hours=2))
    assert window.status == SessionStatus.ACTIVE
    assert window.needs_template_first

    await _add_message(
        messages,
        conversation.id,
        10,
        direction=MessageDirection.OUT,
        message_type=MessageType.TEMPLATE,
    )
    window = await service.session_window(conversation.id, now=BASE + timedelta(hours=21))
    assert window.status == SessionStatus.EXPIRING
    assert not window.needs_template_first
    assert window.hours_remaining == pytest.approx(3.0)


@pytest.mark.asyncio
async def test_created_phone_matches_later_inbound_messages(fixture_state) -> None:
    fixture_state["conversation"].phone = None
    conversation = await fixture_state["service"].create_conversation(
        name="Bruno", phone="+55 11 99999-0000"
    )
    inbound = InboundService(
        session=DummySession(),
        conversations=fixture_state["conversations"],
        messages=fixture_state["messages"],
        settings=FakeSettingsRepository(),
    )

    recorded = await inbound.record_inbound_message(phone="5511999990000", content="Oi")

    assert conversation.phone == "5511999990000"
    assert recorded is not None
    assert recorded.conversation is conversation
    assert not recorded.created_conversation


@pytest.mark.asyncio
async def test_create_rejects_phone_without_digits(fixture_state) -> None:
    with pytest.raises(ConversationValidationError) as exc_info:
        await fixture_state["service"].create_conversation(name="Ana", phone="n/a")

    assert exc_info.value.field == "phone"
    assert fixture_state["session"].commits == 0


@pytest.mark.asyncio
async def test_update_details_cleans_and_notifies(fixture_state) -> None:
    conversation = fixture_state["conversation"]
    conversation.email = "old@example.com"

    updated = await fixture_state["service"].update_details(
        conversation.id,
        {
            "phone": "(11) 98888-7777",
            "company": "  Acme  ",
            "email": "",
            "deal_status": "won",
        },
    )

    assert updated is conversation
    assert conversation.phone == "11988887777"
    assert conversation.company == "Acme"
    assert conversation.email is None
    assert conversation.deal_status == DealStatus.WON
    assert fixture_state["session"].commits == 1
    assert fixture_state["realtime"].names() == ["conversation.updated"]


@pytest.mark.asyncio
async def test_update_details_leaves_absent_fields_alone(fixture_state) -> None:
    conversation = fixture_state["conversation"]
    conversation.phone = "5511999990000"

    await fixture_state["service"].update_details(conversation.id, {"name": " Carla "})

    assert conversation.name == "Carla"
    assert conversation.phone == "5511999990000"


@pytest.mark.asyncio
async def test_update_details_without_changes_writes_nothing(fixture_state) -> None:
    conversation = fixture_state["conversation"]

    assert await fixture_state["service"].update_details(conversation.id, {}) is conversation
    assert fixture_state["session"].commits == 0
    assert fixture_state["realtime"].names() == []


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("changes", "field"),
    [
        ({"name": "   "}, "name"),
        ({"deal_status": "maybe"}, "deal_status"),
        ({"assigned_to": "A"}, "assigned_to"),
    ],
)
async def test_update_details_rejects_invalid_changes(fixture_state, changes, field) -> None:
    with pytest.raises(ConversationValidationError) as exc_info:
        await fixture_state["service"].update_details(fixture_state["conversation"].id, changes)

    assert exc_info.value.field == field
    assert fixture_state["session"].commits == 0


@pytest.mark.asyncio
async def test_update_details_for_unknown_conversation(fixture_state) -> None:
    with pytest.raises(ConversationNotFoundError):
        await fixture_state["service"].update_details(uuid4(), {"name": "Ana"})
