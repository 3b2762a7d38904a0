from fastapi import APIRouter, Depends

from inbox.api.dependencies import get_conversation_service, get_distribution_service
from inbox.domain.settings import ChannelIntegration, DistributionSettings
from inbox.schemas.distribution import (
    ActiveLeadsResponse,
    ChannelIntegrationPayload,
    DistributionRunResponse,
    DistributionSettingsPayload,
)
from inbox.services.conversation_service import ConversationService
from inbox.services.distribution_service import DistributionService

router = APIRouter()


def _to_settings_payload(settings: DistributionSettings) -> DistributionSettingsPayload:
    return DistributionSettingsPayload(
        enabled=settings.enabled,
        mode=settings.mode,
        participants=list(settings.participants),
    )


@router.get("/distribution/settings", response_model=DistributionSettingsPayload)
async def get_distribution_settings(
    service: DistributionService = Depends(get_distribution_service),
) -> DistributionSettingsPayload:
    return _to_settings_payload(await service.get_distribution_settings())


@router.put("/distribution/settings", response_model=DistributionSettingsPayload)
async def save_distribution_settings(
    payload: DistributionSettingsPayload,
    service: DistributionService = Depends(get_distribution_service),
) -> DistributionSettingsPayload:
    saved = await service.save_distribution_settings(
        DistributionSettings(
            enabled=payload.enabled,
            mode=payload.mode,
            participants=payload.participants,
        )
    )
    return _to_settings_payload(saved)


@router.get("/distribution/active-leads", response_model=ActiveLeadsResponse)
async def get_active_leads(
    service: DistributionService = Depends(get_distribution_service),
) -> ActiveLeadsResponse:
    return ActiveLeadsResponse(counts=await service.get_active_leads_count())


@router.post("/distribution/run", response_model=DistributionRunResponse)
async def run_distribution(
    service: DistributionService = Depends(get_distribution_service),
) -> DistributionRunResponse:
    result = await service.distribute_unassigned_leads()
    return DistributionRunResponse(distributed=result.distributed, errors=result.errors)


@router.get("/channel-integration", response_model=ChannelIntegrationPayload)
async def get_channel_integration(
    service: ConversationService = Depends(get_conversation_service),
) -> ChannelIntegrationPayload:
    integration = await service.get_channel_integration()
    return ChannelIntegrationPayload(enabled=integration.enabled, provider=integration.provider)


@router.put("/channel-integration", response_model=ChannelIntegrationPayload)
async def save_channel_integration(
    payload: ChannelIntegrationPayload,
    service: ConversationService = Depends(get_conversation_service),
) -> ChannelIntegrationPayload:
    integration = await service.save_channel_integration(
        ChannelIntegration(enabled=payload.enabled, provider=payload.provider)
    )
    return ChannelIntegrationPayload(enabled=integration.enabled, provider=integration.provider)
