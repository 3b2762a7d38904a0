import pytest

from inbox.domain.enums import MessageStatus
from inbox.domain.exceptions import InvalidMessageStatusTransition
from inbox.domain.state_machine import MessageStatusLifecycle


def test_pending_moves_forward_to_sent() -> None:
    assert (
        MessageStatusLifecycle.transition(MessageStatus.PENDING, MessageStatus.SENT)
        == MessageStatus.SENT
    )


def test_delivery_progression() -> None:
    status = MessageStatus.PENDING
    for target in (MessageStatus.SENT, MessageStatus.DELIVERED, MessageStatus.READ):
        status = MessageStatusLifecycle.transition(status, target)
    assert status == MessageStatus.READ


def test_repeating_current_status_is_noop() -> None:
    assert (
        MessageStatusLifecycle.transition(MessageStatus.DELIVERED, MessageStatus.DELIVERED)
        == MessageStatus.DELIVERED
    )


def test_backwards_move_raises() -> None:
    with pytest.raises(InvalidMessageStatusTransition):
        MessageStatusLifecycle.transition(MessageStatus.READ, MessageStatus.DELIVERED)


def test_failed_is_terminal() -> None:
    with pytest.raises(InvalidMessageStatusTransition):
        MessageStatusLifecycle.transition(MessageStatus.FAILED, MessageStatus.SENT)
    assert MessageStatusLifecycle.is_terminal(MessageStatus.FAILED)
    assert MessageStatusLifecycle.is_terminal(MessageStatus.READ)
    assert not MessageStatusLifecycle.is_terminal(MessageStatus.SENT)


def test_sent_message_cannot_fail_afterwards() -> None:
    assert not MessageStatusLifecycle.can_transition(MessageStatus.SENT, MessageStatus.FAILED)


def test_scheduled_message_can_be_picked_up() -> None:
    assert MessageStatusLifecycle.can_transition(MessageStatus.SCHEDULED, MessageStatus.PENDING)
    assert MessageStatusLifecycle.can_transition(MessageStatus.SCHEDULED, MessageStatus.SENT)
    assert not MessageStatusLifecycle.can_transition(MessageStatus.SCHEDULED, MessageStatus.READ)


def test_only_failed_messages_are_retryable() -> None:
    assert MessageStatusLifecycle.is_retryable(MessageStatus.FAILED)
    assert not MessageStatusLifecycle.is_retryable(MessageStatus.PENDING)
