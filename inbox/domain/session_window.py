"""Provider session window rules.

A business may send free-form messages for 24 hours after the customer's
last message. Outside the window only approved templates are delivered.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Protocol

from inbox.domain.enums import MessageDirection, MessageType, SessionStatus

SESSION_WINDOW = timedelta(hours=24)
EXPIRING_THRESHOLD = timedelta(hours=4)


class SessionMessage(Protocol):
    direction: MessageDirection
    type: MessageType
    created_at: datetime


@dataclass(frozen=True, slots=True)
class SessionWindow:
    status: SessionStatus
    remaining: timedelta
    last_inbound_at: datetime | None
    needs_template_first: bool

    @property
    def hours_remaining(self) -> float:
        return self.remaining.total_seconds() / 3600

    @property
    def can_send_freeform(self) -> bool:
        # needs_template_first is advisory only; the block applies once expired.
        return self.status != SessionStatus.EXPIRED


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def evaluate_session_window(
    last_inbound_at: datetime | None,
    template_sent_since_inbound: bool = False,
    now: datetime | None = None,
) -> SessionWindow:
    """Compute the session state at ``now`` (wall clock when omitted).

    The result must not be cached: the same inputs move from ``active`` to
    ``expiring`` to ``expired`` as time passes.
    """
    if last_inbound_at is None:
        return SessionWindow(
            status=SessionStatus.EXPIRED,
            remaining=timedelta(0),
            last_inbound_at=None,
            needs_template_first=False,
        )

    current = _as_utc(now) if now is not None else datetime.now(UTC)
    last_inbound = _as_utc(last_inbound_at)
    remaining = SESSION_WINDOW - (current - last_inbound)

    if remaining <= timedelta(0):
        status = SessionStatus.EXPIRED
        remaining = timedelta(0)
    elif remaining <= EXPIRING_THRESHOLD:
        status = SessionStatus.EXPIRING
    else:
        status = SessionStatus.ACTIVE

    return SessionWindow(
        status=status,
        remaining=remaining,
        last_inbound_at=last_inbound,
        needs_template_first=(
            status != SessionStatus.EXPIRED and not template_sent_since_inbound
        ),
    )


def session_window_for_messages(
    messages: Iterable[SessionMessage],
    now: datetime | None = None,
) -> SessionWindow:
    history = list(messages)

    last_inbound_at: datetime | None = None
    for message in history:
        if message.direction != MessageDirection.IN:
            continue
        created_at = _as_utc(message.created_at)
        if last_inbound_at is None or created_at > last_inbound_at:
            last_inbound_at = created_at

    template_sent = last_inbound_at is not None and any(
        message.direction == MessageDirection.OUT
        and message.type == MessageType.TEMPLATE
        and _as_utc(message.created_at) >= last_inbound_at
        for message in history
    )
    return evaluate_session_window(last_inbound_at, template_sent, now=now)
