from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from inbox.domain.enums import MessageDirection, MessageStatus, MessageType
from inbox.schemas.conversation import ConversationResponse


class MessageResponse(BaseModel):
    id: UUID
    conversation_id: UUID
    content: str
    type: MessageType
    direction: MessageDirection
    status: MessageStatus
    sender_id: str | None = None
    media_url: str | None = None
    media_name: str | None = None
    scheduled_for: datetime | None = None
    provider_message_id: str | None = None
    metadata: dict | None = Field(default=None, alias="metadata_json")
    created_at: datetime

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


class MessagePageResponse(BaseModel):
    items: list[MessageResponse]
    has_more: bool


class SendTextRequest(BaseModel):
    content: str = Field(min_length=1, max_length=4096)
    sender_id: str | None = Field(default=None, max_length=120)


class SendMediaRequest(BaseModel):
    media_url: str = Field(min_length=1)
    media_type: MessageType
    media_name: str | None = Field(default=None, max_length=255)
    caption: str | None = Field(default=None, max_length=1024)
    size_bytes: int | None = Field(default=None, ge=0)
    view_once: bool = False
    sender_id: str | None = Field(default=None, max_length=120)


class SendTemplateRequest(BaseModel):
    template_name: str = Field(min_length=1, max_length=512)
    language: str | None = Field(default=None, max_length=16)
    body: str = ""
    variables: dict[int, str] = Field(default_factory=dict)
    sender_id: str | None = Field(default=None, max_length=120)


class InteractiveButtonRequest(BaseModel):
    id: str | None = Field(default=None, max_length=256)
    title: str


class SendInteractiveRequest(BaseModel):
    body: str = Field(min_length=1, max_length=1024)
    header: str | None = Field(default=None, max_length=60)
    buttons: list[InteractiveButtonRequest]
    sender_id: str | None = Field(default=None, max_length=120)


class ScheduleMessageRequest(BaseModel):
    content: str = Field(min_length=1, max_length=4096)
    scheduled_for: datetime
    sender_id: str | None = Field(default=None, max_length=120)


class RetryMessageRequest(BaseModel):
    sender_id: str | None = Field(default=None, max_length=120)


class DeliveryResponse(BaseModel):
    conversation: ConversationResponse
    message: MessageResponse
    dispatched: bool
