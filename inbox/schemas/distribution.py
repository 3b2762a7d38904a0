from pydantic import BaseModel, Field

from inbox.domain.enums import ChannelProvider, DistributionMode


class DistributionSettingsPayload(BaseModel):
    enabled: bool = False
    mode: DistributionMode = DistributionMode.MANUAL
    participants: list[str] = Field(default_factory=list)


class DistributionRunResponse(BaseModel):
    distributed: int
    errors: int


class ActiveLeadsResponse(BaseModel):
    counts: dict[str, int]


class ChannelIntegrationPayload(BaseModel):
    enabled: bool = False
    provider: ChannelProvider = ChannelProvider.DIALOG_360
