"""Outbound WhatsApp channel: payload variants and the provider client."""

from inbox.infra.channel.client import ChannelClient, WhatsAppChannelClient
from inbox.infra.channel.errors import ChannelDispatchError

__all__ = ["ChannelClient", "ChannelDispatchError", "WhatsAppChannelClient"]
