from typing import NoReturn

import httpx
from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from inbox.core.config import get_settings
from inbox.core.db import get_db_session, get_session_factory
from inbox.domain.enums import ChannelProvider
from inbox.domain.exceptions import ConversationValidationError, MessageValidationError
from inbox.infra.channel.client import ChannelClientFactory, WhatsAppChannelClient
from inbox.services.conversation_service import ConversationService
from inbox.services.delivery_service import MessageDeliveryService
from inbox.services.distribution_service import DistributionService
from inbox.services.errors import (
    ConversationNotFoundError,
    MessageNotFoundError,
    MessageNotRetryableError,
)
from inbox.services.inbound_service import InboundService

settings = get_settings()


def _channel_factory(request: Request) -> ChannelClientFactory:
    http_client: httpx.AsyncClient | None = getattr(request.app.state, "channel_http", None)

    def build(provider: ChannelProvider) -> WhatsAppChannelClient:
        return WhatsAppChannelClient.from_settings(settings, provider, http_client=http_client)

    return build


async def get_conversation_service(
    request: Request,
    session: AsyncSession = Depends(get_db_session),
) -> ConversationService:
    realtime = getattr(request.app.state, "realtime_hub", None)
    return ConversationService(session=session, realtime=realtime)


async def get_delivery_service(
    request: Request,
    session: AsyncSession = Depends(get_db_session),
) -> MessageDeliveryService:
    realtime = getattr(request.app.state, "realtime_hub", None)
    return MessageDeliveryService(
        session=session,
        channel_factory=_channel_factory(request),
        realtime=realtime,
        default_language=settings.default_template_language,
        session_factory=get_session_factory(),
        tracker=getattr(request.app.state, "delivery_tracker", None),
    )


async def get_distribution_service(
    request: Request,
    session: AsyncSession = Depends(get_db_session),
) -> DistributionService:
    realtime = getattr(request.app.state, "realtime_hub", None)
    return DistributionService(session=session, realtime=realtime)


async def get_inbound_service(
    request: Request,
    session: AsyncSession = Depends(get_db_session),
) -> InboundService:
    realtime = getattr(request.app.state, "realtime_hub", None)
    return InboundService(session=session, realtime=realtime)


def raise_for_service_error(exc: Exception) -> NoReturn:
    if isinstance(exc, (ConversationNotFoundError, MessageNotFoundError)):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    if isinstance(exc, MessageNotRetryableError):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    if isinstance(exc, (MessageValidationError, ConversationValidationError)):
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"message": exc.detail, "field": exc.field},
        ) from exc
    if isinstance(exc, ValueError):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    raise exc
