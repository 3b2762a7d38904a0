from uuid import UUID

from fastapi import APIRouter, Depends, Query

from inbox.api.dependencies import (
    get_conversation_service,
    get_distribution_service,
    raise_for_service_error,
    settings,
)
from inbox.schemas.conversation import (
    AssignConversationRequest,
    ConversationListResponse,
    ConversationResponse,
    CreateConversationRequest,
    SessionWindowResponse,
    UpdateConversationDetailsRequest,
)
from inbox.services.conversation_service import ConversationService
from inbox.services.distribution_service import DistributionService
from inbox.services.errors import ConversationNotFoundError

router = APIRouter()


def _to_conversation_response(conversation) -> ConversationResponse:
    return ConversationResponse.model_validate(conversation)


@router.get("/conversations", response_model=ConversationListResponse)
async def list_conversations(
    limit: int | None = Query(default=None, ge=1, le=200),
    service: ConversationService = Depends(get_conversation_service),
) -> ConversationListResponse:
    conversations = await service.list_recent(limit or settings.inbox_conversation_limit)
    return ConversationListResponse(
        items=[_to_conversation_response(conversation) for conversation in conversations]
    )


@router.post("/conversations", response_model=ConversationResponse, status_code=201)
async def create_conversation(
    payload: CreateConversationRequest,
    service: ConversationService = Depends(get_conversation_service),
) -> ConversationResponse:
    try:
        conversation = await service.create_conversation(
            name=payload.name,
            phone=payload.phone,
            email=payload.email,
            company=payload.company,
            channel=payload.channel,
            context=payload.context,
        )
    except ValueError as exc:
        raise_for_service_error(exc)
    return _to_conversation_response(conversation)


@router.patch("/conversations/{conversation_id}", response_model=ConversationResponse)
async def update_conversation_details(
    conversation_id: UUID,
    payload: UpdateConversationDetailsRequest,
    service: ConversationService = Depends(get_conversation_service),
) -> ConversationResponse:
    try:
        conversation = await service.update_details(
            conversation_id, payload.model_dump(exclude_unset=True)
        )
    except (ConversationNotFoundError, ValueError) as exc:
        raise_for_service_error(exc)
    return _to_conversation_response(conversation)


@router.get(
    "/conversations/{conversation_id}/session-window",
    response_model=SessionWindowResponse,
)
async def get_session_window(
    conversation_id: UUID,
    service: ConversationService = Depends(get_conversation_service),
) -> SessionWindowResponse:
    try:
        window = await service.session_window(conversation_id)
    except ConversationNotFoundError as exc:
        raise_for_service_error(exc)
    return SessionWindowResponse(
        conversation_id=conversation_id,
        status=window.status,
        hours_remaining=round(window.hours_remaining, 2),
        last_inbound_at=window.last_inbound_at,
        needs_template_first=window.needs_template_first,
        can_send_freeform=window.can_send_freeform,
    )


@router.post("/conversations/{conversation_id}/read", response_model=ConversationResponse)
async def mark_conversation_read(
    conversation_id: UUID,
    service: ConversationService = Depends(get_conversation_service),
) -> ConversationResponse:
    try:
        conversation = await service.mark_as_read(conversation_id)
    except ConversationNotFoundError as exc:
        raise_for_service_error(exc)
    return _to_conversation_response(conversation)


@router.post("/conversations/{conversation_id}/assign", response_model=ConversationResponse)
async def assign_conversation(
    conversation_id: UUID,
    payload: AssignConversationRequest,
    service: DistributionService = Depends(get_distribution_service),
) -> ConversationResponse:
    try:
        conversation = await service.assign(conversation_id, payload.agent_id)
    except ConversationNotFoundError as exc:
        raise_for_service_error(exc)
    return _to_conversation_response(conversation)


@router.post(
    "/conversations/{conversation_id}/toggle-status",
    response_model=ConversationResponse,
)
async def toggle_conversation_status(
    conversation_id: UUID,
    service: DistributionService = Depends(get_distribution_service),
) -> ConversationResponse:
    try:
        conversation = await service.toggle_status(conversation_id)
    except ConversationNotFoundError as exc:
        raise_for_service_error(exc)
    return _to_conversation_response(conversation)


@router.post(
    "/conversations/{conversation_id}/transfer-post-sales",
    response_model=ConversationResponse,
)
async def transfer_to_post_sales(
    conversation_id: UUID,
    service: DistributionService = Depends(get_distribution_service),
) -> ConversationResponse:
    try:
        conversation = await service.transfer_to_post_sales(conversation_id)
    except ConversationNotFoundError as exc:
        raise_for_service_error(exc)
    return _to_conversation_response(conversation)
