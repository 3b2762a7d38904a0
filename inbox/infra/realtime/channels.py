from uuid import UUID

CONVERSATIONS_CHANNEL = "conversations"


def conversation_messages_channel(conversation_id: UUID) -> str:
    return f"conversation:{conversation_id}:messages"
