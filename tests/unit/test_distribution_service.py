from datetime import UTC, datetime, timedelta
from uuid import uuid4

import pytest

from inbox.domain.distribution import pick_least_loaded
from inbox.domain.enums import ConversationContext, ConversationStatus, DistributionMode
from inbox.domain.settings import DistributionSettings
from inbox.services.distribution_service import DistributionService
from inbox.services.errors import ConversationNotFoundError
from tests.unit.fakes import (
    DummySession,
    FakeConversation,
    FakeConversationRepository,
    FakeSettingsRepository,
    RecordingPublisher,
)

BASE = datetime(2026, 3, 10, 9, 0, tzinfo=UTC)


def _unassigned(count: int) -> list[FakeConversation]:
    return [FakeConversation(created_at=BASE + timedelta(minutes=index)) for index in range(count)]


def _service(
    conversations: FakeConversationRepository,
    settings: FakeSettingsRepository | None = None,
    session: DummySession | None = None,
    realtime: RecordingPublisher | None = None,
) -> DistributionService:
    return DistributionService(
        session=session or DummySession(),
        conversations=conversations,
        settings=settings or FakeSettingsRepository(),
        realtime=realtime,
    )


def test_least_loaded_picks_lowest_count() -> None:
    assert pick_least_loaded(["A", "B", "C"], {"A": 2, "B": 0, "C": 1}) == "B"


def test_least_loaded_tie_goes_to_input_order() -> None:
    assert pick_least_loaded(["A", "B"], {"A": 1, "B": 1}) == "A"


def test_least_loaded_with_no_participants() -> None:
    assert pick_least_loaded([], {"A": 0}) is None


@pytest.mark.asyncio
async def test_get_next_collaborator_uses_active_counts() -> None:
    conversations = FakeConversationRepository(
        [
            FakeConversation(assigned_to="A"),
            FakeConversation(assigned_to="A"),
            FakeConversation(assigned_to="C"),
            FakeConversation(assigned_to="B", status=ConversationStatus.CLOSED),
        ]
    )
    service = _service(conversations)

    assert await service.get_active_leads_count() == {"A": 2, "C": 1}
    assert await service.get_next_collaborator(["A", "B", "C"]) == "B"
    assert await service.get_next_collaborator([]) is None


@pytest.mark.asyncio
async def test_distribution_alternates_between_idle_agents() -> None:
    pending = _unassigned(3)
    conversations = FakeConversationRepository(pending)
    settings = FakeSettingsRepository(
        distribution=DistributionSettings(enabled=True, participants=["A", "B"])
    )
    realtime = RecordingPublisher()
    service = _service(conversations, settings, realtime=realtime)

    result = await service.distribute_unassigned_leads()

    assert (result.distributed, result.errors) == (3, 0)
    assert [conversation.assigned_to for conversation in pending] == ["A", "B", "A"]
    assert realtime.names() == ["conversation.assigned"] * 3


@pytest.mark.asyncio
async def test_distribution_requires_enabled_settings_with_participants() -> None:
    pending = _unassigned(2)
    disabled = _service(
        FakeConversationRepository(pending),
        FakeSettingsRepository(distribution=DistributionSettings(enabled=False, participants=["A"])),
    )
    empty = _service(
        FakeConversationRepository(pending),
        FakeSettingsRepository(distribution=DistributionSettings(enabled=True, participants=[])),
    )

    for service in (disabled, empty):
        result = await service.distribute_unassigned_leads()
        assert (result.distributed, result.errors) == (0, 0)
    assert all(conversation.assigned_to is None for conversation in pending)


@pytest.mark.asyncio
async def test_distribution_failure_does_not_abort_batch() -> None:
    pending = _unassigned(3)
    conversations = FakeConversationRepository(pending)
    conversations.fail_assign_for.add(pending[1].id)
    session = DummySession()
    service = _service(
        conversations,
        FakeSettingsRepository(
            distribution=DistributionSettings(enabled=True, participants=["A", "B"])
        ),
        session=session,
    )

    result = await service.distribute_unassigned_leads()

    assert (result.distributed, result.errors) == (2, 1)
    assert session.rollbacks == 1
    assert pending[0].assigned_to == "A"
    assert pending[1].assigned_to is None
    assert pending[2].assigned_to == "B"


@pytest.mark.asyncio
async def test_distribution_counts_existing_load() -> None:
    pending = _unassigned(2)
    conversations = FakeConversationRepository(
        [*pending, FakeConversation(assigned_to="A"), FakeConversation(assigned_to="A")]
    )
    service = _service(
        conversations,
        FakeSettingsRepository(
            distribution=DistributionSettings(enabled=True, participants=["A", "B"])
        ),
    )

    await service.distribute_unassigned_leads()

    assert [conversation.assigned_to for conversation in pending] == ["B", "B"]


@pytest.mark.asyncio
async def test_manual_assign_and_unassign() -> None:
    conversation = FakeConversation()
    realtime = RecordingPublisher()
    service = _service(FakeConversationRepository([conversation]), realtime=realtime)

    await service.assign(conversation.id, " agent-7 ")
    assert conversation.assigned_to == "agent-7"

    await service.assign(conversation.id, None)
    assert conversation.assigned_to is None
    assert realtime.names() == ["conversation.assigned", "conversation.assigned"]


@pytest.mark.asyncio
async def test_assign_unknown_conversation_raises() -> None:
    service = _service(FakeConversationRepository())

    with pytest.raises(ConversationNotFoundError):
        await service.assign(uuid4(), "agent-1")


@pytest.mark.asyncio
async def test_auto_assign_only_in_auto_mode() -> None:
    conversation = FakeConversation()
    conversations = FakeConversationRepository([conversation])
    settings = FakeSettingsRepository(
        distribution=DistributionSettings(enabled=True, participants=["A"])
    )
    service = _service(conversations, settings)

    assert await service.auto_assign(conversation) is None

    settings.distribution = DistributionSettings(
        enabled=True, mode=DistributionMode.AUTO, participants=["A"]
    )
    assert await service.auto_assign(conversation) == "A"
    assert conversation.assigned_to == "A"


@pytest.mark.asyncio
async def test_transfer_to_post_sales_clears_assignment() -> None:
    conversation = FakeConversation(assigned_to="A", status=ConversationStatus.CLOSED)
    service = _service(FakeConversationRepository([conversation]))

    await service.transfer_to_post_sales(conversation.id)

    assert conversation.context == ConversationContext.POST_SALES
    assert conversation.status == ConversationStatus.OPEN
    assert conversation.assigned_to is None
    assert conversation.transferred_to_post_sales_at is not None


@pytest.mark.asyncio
async def test_toggle_status_changes_load() -> None:
    conversation = FakeConversation(assigned_to="A")
    service = _service(FakeConversationRepository([conversation]))

    await service.toggle_status(conversation.id)
    assert conversation.status == ConversationStatus.CLOSED
    assert await service.get_active_leads_count() == {}

    await service.toggle_status(conversation.id)
    assert conversation.status == ConversationStatus.OPEN
    assert await service.get_active_leads_count() == {"A": 1}


@pytest.mark.asyncio
async def test_saved_settings_drop_duplicate_participants() -> None:
    settings = FakeSettingsRepository()
    service = _service(FakeConversationRepository(), settings)

    saved = await service.save_distribution_settings(
        DistributionSettings(enabled=True, participants=["A", "B", "A", ""])
    )

    assert saved.participants == ["A", "B"]
    assert (await service.get_distribution_settings()).enabled
