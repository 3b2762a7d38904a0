from inbox.domain.enums import MessageStatus


class InvalidMessageStatusTransition(ValueError):
    def __init__(self, current: MessageStatus, target: MessageStatus) -> None:
        super().__init__(
            f"Cannot move message status from '{current.value}' to '{target.value}'."
        )
        self.current = current
        self.target = target


class MessageValidationError(ValueError):
    """Raised before anything is persisted when a send request is malformed."""

    def __init__(self, detail: str, field: str | None = None) -> None:
        super().__init__(detail)
        self.detail = detail
        self.field = field


class ConversationValidationError(ValueError):
    """Raised when conversation details would be stored in an unusable form."""

    def __init__(self, detail: str, field: str | None = None) -> None:
        super().__init__(detail)
        self.detail = detail
        self.field = field
