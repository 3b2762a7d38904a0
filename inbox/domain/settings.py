from dataclasses import dataclass, field
from typing import Any

from inbox.domain.distribution import unique_participants
from inbox.domain.enums import ChannelProvider, DistributionMode

LEAD_DISTRIBUTION_KEY = "lead_distribution"
CHANNEL_INTEGRATION_KEY = "channel_integration"


@dataclass(slots=True)
class DistributionSettings:
    enabled: bool = False
    mode: DistributionMode = DistributionMode.MANUAL
    participants: list[str] = field(default_factory=list)

    @classmethod
    def from_value(cls, value: dict[str, Any] | None) -> "DistributionSettings":
        if not value:
            return cls()
        try:
            mode = DistributionMode(value.get("mode", DistributionMode.MANUAL.value))
        except ValueError:
            mode = DistributionMode.MANUAL
        return cls(
            enabled=bool(value.get("enabled", False)),
            mode=mode,
            participants=unique_participants(
                str(participant) for participant in value.get("participants") or []
            ),
        )

    def to_value(self) -> dict[str, Any]:
        return {
            "enabled": self.enabled,
            "mode": self.mode.value,
            "participants": unique_participants(self.participants),
        }

    @property
    def is_active(self) -> bool:
        return self.enabled and bool(self.participants)


@dataclass(frozen=True, slots=True)
class ChannelIntegration:
    enabled: bool = False
    provider: ChannelProvider = ChannelProvider.DIALOG_360

    @classmethod
    def from_value(cls, value: dict[str, Any] | None) -> "ChannelIntegration":
        if not value:
            return cls()
        provider = (
            ChannelProvider.META_CLOUD
            if value.get("provider") == ChannelProvider.META_CLOUD.value
            else ChannelProvider.DIALOG_360
        )
        return cls(enabled=bool(value.get("enabled", False)), provider=provider)

    def to_value(self) -> dict[str, Any]:
        return {"enabled": self.enabled, "provider": self.provider.value}
