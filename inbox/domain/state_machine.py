from inbox.domain.enums import MessageStatus
from inbox.domain.exceptions import InvalidMessageStatusTransition


class MessageStatusLifecycle:
    """Forward-only message status: pending -> sent -> delivered -> read, pending -> failed."""

    _allowed_transitions: dict[MessageStatus, frozenset[MessageStatus]] = {
        MessageStatus.SCHEDULED: frozenset(
            {MessageStatus.PENDING, MessageStatus.SENT, MessageStatus.FAILED}
        ),
        MessageStatus.PENDING: frozenset(
            {
                MessageStatus.SENT,
                MessageStatus.DELIVERED,
                MessageStatus.READ,
                MessageStatus.FAILED,
            }
        ),
        MessageStatus.SENT: frozenset({MessageStatus.DELIVERED, MessageStatus.READ}),
        MessageStatus.DELIVERED: frozenset({MessageStatus.READ}),
        MessageStatus.READ: frozenset(),
        MessageStatus.FAILED: frozenset(),
    }

    @classmethod
    def transition(cls, current: MessageStatus, target: MessageStatus) -> MessageStatus:
        # Provider callbacks are redelivered; repeating the current status is a no-op.
        if current == target:
            return current

        if target not in cls._allowed_transitions[current]:
            raise InvalidMessageStatusTransition(current=current, target=target)
        return target

    @classmethod
    def can_transition(cls, current: MessageStatus, target: MessageStatus) -> bool:
        return current == target or target in cls._allowed_transitions[current]

    @staticmethod
    def is_terminal(status: MessageStatus) -> bool:
        return status in (MessageStatus.READ, MessageStatus.FAILED)

    @staticmethod
    def is_retryable(status: MessageStatus) -> bool:
        return status == MessageStatus.FAILED
