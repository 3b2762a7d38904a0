from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from inbox.domain.enums import (
    ConversationChannel,
    ConversationContext,
    ConversationStatus,
    DealStatus,
    SessionStatus,
)


class ConversationResponse(BaseModel):
    id: UUID
    name: str | None = None
    phone: str | None = None
    email: str | None = None
    company: str | None = None
    channel: ConversationChannel
    status: ConversationStatus
    assigned_to: str | None = None
    context: ConversationContext
    deal_status: DealStatus
    last_message_preview: str | None = None
    last_message_at: datetime | None = None
    unread_count: int = 0
    transferred_to_post_sales_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ConversationListResponse(BaseModel):
    items: list[ConversationResponse]


class CreateConversationRequest(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    phone: str | None = Field(default=None, max_length=32)
    email: str | None = Field(default=None, max_length=254)
    company: str | None = Field(default=None, max_length=200)
    channel: ConversationChannel = ConversationChannel.WHATSAPP
    context: ConversationContext = ConversationContext.SALES


class UpdateConversationDetailsRequest(BaseModel):
    name: str | None = Field(default=None, max_length=200)
    phone: str | None = Field(default=None, max_length=32)
    email: str | None = Field(default=None, max_length=254)
    company: str | None = Field(default=None, max_length=200)
    deal_status: DealStatus | None = None


class AssignConversationRequest(BaseModel):
    agent_id: str | None = Field(default=None, max_length=120)


class SessionWindowResponse(BaseModel):
    conversation_id: UUID
    status: SessionStatus
    hours_remaining: float
    last_inbound_at: datetime | None
    needs_template_first: bool
    can_send_freeform: bool
