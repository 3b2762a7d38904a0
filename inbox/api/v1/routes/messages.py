from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from inbox.api.dependencies import (
    get_conversation_service,
    get_delivery_service,
    raise_for_service_error,
    settings,
)
from inbox.domain.exceptions import MessageValidationError
from inbox.schemas.conversation import ConversationResponse
from inbox.schemas.message import (
    DeliveryResponse,
    MessagePageResponse,
    MessageResponse,
    RetryMessageRequest,
    ScheduleMessageRequest,
    SendInteractiveRequest,
    SendMediaRequest,
    SendTemplateRequest,
    SendTextRequest,
)
from inbox.services.conversation_service import ConversationService
from inbox.services.delivery_service import DeliveryResult, MessageDeliveryService
from inbox.services.errors import (
    ConversationNotFoundError,
    MessageNotFoundError,
    MessageNotRetryableError,
)

router = APIRouter()


def _to_delivery_response(result: DeliveryResult) -> DeliveryResponse:
    return DeliveryResponse(
        conversation=ConversationResponse.model_validate(result.conversation),
        message=MessageResponse.model_validate(result.message),
        dispatched=result.dispatched,
    )


@router.get("/conversations/{conversation_id}/messages", response_model=MessagePageResponse)
async def list_messages(
    conversation_id: UUID,
    before: datetime | None = Query(default=None),
    limit: int | None = Query(default=None, ge=1, le=200),
    service: ConversationService = Depends(get_conversation_service),
) -> MessagePageResponse:
    try:
        page = await service.list_messages(
            conversation_id,
            before=before,
            limit=limit or settings.inbox_message_page_size,
        )
    except ConversationNotFoundError as exc:
        raise_for_service_error(exc)
    return MessagePageResponse(
        items=[MessageResponse.model_validate(message) for message in page.messages],
        has_more=page.has_more,
    )


@router.post("/conversations/{conversation_id}/messages/text", response_model=DeliveryResponse)
async def send_text_message(
    conversation_id: UUID,
    payload: SendTextRequest,
    service: MessageDeliveryService = Depends(get_delivery_service),
) -> DeliveryResponse:
    try:
        result = await service.send_text(
            conversation_id, payload.content, sender_id=payload.sender_id
        )
    except (ConversationNotFoundError, MessageValidationError) as exc:
        raise_for_service_error(exc)
    return _to_delivery_response(result)


@router.post("/conversations/{conversation_id}/messages/media", response_model=DeliveryResponse)
async def send_media_message(
    conversation_id: UUID,
    payload: SendMediaRequest,
    service: MessageDeliveryService = Depends(get_delivery_service),
) -> DeliveryResponse:
    try:
        result = await service.send_media(
            conversation_id,
            media_type=payload.media_type,
            media_url=payload.media_url,
            media_name=payload.media_name,
            caption=payload.caption,
            size_bytes=payload.size_bytes,
            view_once=payload.view_once,
            sender_id=payload.sender_id,
        )
    except (ConversationNotFoundError, MessageValidationError) as exc:
        raise_for_service_error(exc)
    return _to_delivery_response(result)


@router.post(
    "/conversations/{conversation_id}/messages/template",
    response_model=DeliveryResponse,
)
async def send_template_message(
    conversation_id: UUID,
    payload: SendTemplateRequest,
    service: MessageDeliveryService = Depends(get_delivery_service),
) -> DeliveryResponse:
    try:
        result = await service.send_template(
            conversation_id,
            template_name=payload.template_name,
            language=payload.language,
            body=payload.body,
            variables=payload.variables,
            sender_id=payload.sender_id,
        )
    except (ConversationNotFoundError, MessageValidationError) as exc:
        raise_for_service_error(exc)
    return _to_delivery_response(result)


@router.post(
    "/conversations/{conversation_id}/messages/interactive",
    response_model=DeliveryResponse,
)
async def send_interactive_message(
    conversation_id: UUID,
    payload: SendInteractiveRequest,
    service: MessageDeliveryService = Depends(get_delivery_service),
) -> DeliveryResponse:
    try:
        result = await service.send_interactive(
            conversation_id,
            body=payload.body,
            buttons=[(button.id, button.title) for button in payload.buttons],
            header=payload.header,
            sender_id=payload.sender_id,
        )
    except (ConversationNotFoundError, MessageValidationError) as exc:
        raise_for_service_error(exc)
    return _to_delivery_response(result)


@router.post(
    "/conversations/{conversation_id}/messages/scheduled",
    response_model=MessageResponse,
    status_code=201,
)
async def schedule_message(
    conversation_id: UUID,
    payload: ScheduleMessageRequest,
    service: MessageDeliveryService = Depends(get_delivery_service),
) -> MessageResponse:
    try:
        message = await service.schedule_message(
            conversation_id,
            content=payload.content,
            scheduled_for=payload.scheduled_for,
            sender_id=payload.sender_id,
        )
    except (ConversationNotFoundError, MessageValidationError) as exc:
        raise_for_service_error(exc)
    return MessageResponse.model_validate(message)


@router.post("/messages/{message_id}/retry", response_model=DeliveryResponse)
async def retry_message(
    message_id: UUID,
    payload: RetryMessageRequest | None = None,
    service: MessageDeliveryService = Depends(get_delivery_service),
) -> DeliveryResponse:
    try:
        result = await service.retry_message(
            message_id, sender_id=payload.sender_id if payload is not None else None
        )
    except (
        ConversationNotFoundError,
        MessageNotFoundError,
        MessageNotRetryableError,
        MessageValidationError,
    ) as exc:
        raise_for_service_error(exc)
    return _to_delivery_response(result)
