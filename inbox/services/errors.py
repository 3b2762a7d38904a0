from uuid import UUID

from inbox.domain.enums import MessageStatus


class ConversationNotFoundError(LookupError):
    def __init__(self, conversation_id: UUID) -> None:
        super().__init__(f"Conversation '{conversation_id}' not found")
        self.conversation_id = conversation_id


class MessageNotFoundError(LookupError):
    def __init__(self, message_id: UUID) -> None:
        super().__init__(f"Message '{message_id}' not found")
        self.message_id = message_id


class MessageNotRetryableError(ValueError):
    def __init__(self, message_id: UUID, status: MessageStatus) -> None:
        super().__init__(
            f"Message '{message_id}' is '{status.value}'. Only failed outbound messages can be retried."
        )
        self.message_id = message_id
        self.status = status


class AssignmentPersistenceError(RuntimeError):
    def __init__(self, conversation_id: UUID, agent_id: str | None) -> None:
        super().__init__(
            f"Could not persist assignment of conversation '{conversation_id}' to '{agent_id}'"
        )
        self.conversation_id = conversation_id
        self.agent_id = agent_id
