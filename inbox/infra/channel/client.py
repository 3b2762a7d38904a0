import logging
import re
from collections.abc import Callable
from typing import Any, Protocol

import httpx

from inbox.core.config import Settings
from inbox.domain.enums import ChannelProvider, MessageType
from inbox.infra.channel.errors import ChannelDispatchError
from inbox.infra.channel.payloads import (
    InteractivePayload,
    MediaPayload,
    OutboundPayload,
    TemplatePayload,
    TextPayload,
)

logger = logging.getLogger(__name__)

_NON_DIGITS = re.compile(r"\D")


def normalize_phone(phone: str) -> str:
    return _NON_DIGITS.sub("", phone)


class ChannelClient(Protocol):
    @property
    def is_configured(self) -> bool: ...

    async def send(self, to: str, payload: OutboundPayload) -> str | None: ...


ChannelClientFactory = Callable[[ChannelProvider], ChannelClient]


def _response_detail(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text[:500]
    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(data.get("meta"), dict) and data["meta"].get("developer_message"):
            return str(data["meta"]["developer_message"])
    return response.text[:500]


class WhatsAppChannelClient:
    """WhatsApp Business message API through 360dialog or Meta Cloud.

    Both providers accept the same Cloud API request body; they differ in the
    endpoint and the auth header only.
    """

    def __init__(
        self,
        provider: ChannelProvider,
        *,
        base_url: str = "",
        api_key: str | None = None,
        access_token: str | None = None,
        phone_number_id: str | None = None,
        graph_base_url: str = "https://graph.facebook.com",
        graph_api_version: str = "v23.0",
        timeout: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.provider = provider
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.access_token = access_token
        self.phone_number_id = phone_number_id
        self.graph_base_url = graph_base_url.rstrip("/")
        self.graph_api_version = graph_api_version
        self.timeout = timeout
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=timeout)

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        provider: ChannelProvider,
        http_client: httpx.AsyncClient | None = None,
    ) -> "WhatsAppChannelClient":
        return cls(
            provider,
            base_url=settings.whatsapp_base_url,
            api_key=settings.d360_api_key,
            access_token=settings.meta_access_token,
            phone_number_id=settings.meta_phone_number_id,
            graph_base_url=settings.meta_graph_base_url,
            graph_api_version=settings.meta_graph_api_version,
            timeout=settings.channel_timeout_seconds,
            http_client=http_client,
        )

    @property
    def is_configured(self) -> bool:
        if self.provider == ChannelProvider.META_CLOUD:
            return bool(self.access_token and self.phone_number_id)
        return bool(self.base_url and self.api_key)

    @property
    def messages_url(self) -> str:
        if self.provider == ChannelProvider.META_CLOUD:
            return (
                f"{self.graph_base_url}/{self.graph_api_version}/"
                f"{self.phone_number_id}/messages"
            )
        return f"{self.base_url}/messages"

    def _headers(self) -> dict[str, str]:
        if self.provider == ChannelProvider.META_CLOUD:
            return {
                "Authorization": f"Bearer {self.access_token}",
                "Content-Type": "application/json",
            }
        return {"D360-API-KEY": self.api_key or "", "Content-Type": "application/json"}

    async def send_text(self, to: str, body: str) -> str | None:
        return await self.send(to, TextPayload(body=body))

    async def send_template(
        self,
        to: str,
        name: str,
        language: str,
        parameters: tuple[str, ...] = (),
    ) -> str | None:
        return await self.send(
            to, TemplatePayload(name=name, language=language, parameters=parameters)
        )

    async def send_media(
        self,
        to: str,
        media_type: MessageType,
        url: str,
        caption: str | None = None,
        view_once: bool = False,
    ) -> str | None:
        return await self.send(
            to,
            MediaPayload(media_type=media_type, url=url, caption=caption, view_once=view_once),
        )

    async def send_interactive(
        self,
        to: str,
        body: str,
        buttons: list[tuple[str | None, str]],
        header: str | None = None,
    ) -> str | None:
        return await self.send(to, InteractivePayload.build(body, buttons, header=header))

    async def send(self, to: str, payload: OutboundPayload) -> str | None:
        """Post ``payload`` and return the provider message id, when one is given."""
        if not self.is_configured:
            raise ChannelDispatchError(f"{self.provider.value} credentials are not configured.")

        recipient = normalize_phone(to)
        if not recipient:
            raise ChannelDispatchError("Recipient phone number is empty.")

        try:
            response = await self._http.post(
                self.messages_url,
                json=payload.to_request(recipient),
                headers=self._headers(),
                timeout=self.timeout,
            )
        except httpx.HTTPError as exc:
            logger.error(
                "Channel request failed provider=%s type=%s: %s",
                self.provider.value,
                payload.message_type.value,
                exc,
            )
            raise ChannelDispatchError(f"Channel request failed: {exc}") from exc

        if response.is_error:
            detail = _response_detail(response)
            logger.warning(
                "Channel rejected message provider=%s status=%s detail=%s",
                self.provider.value,
                response.status_code,
                detail,
            )
            raise ChannelDispatchError(detail, status_code=response.status_code)

        return _provider_message_id(response)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()


def _provider_message_id(response: httpx.Response) -> str | None:
    try:
        data: Any = response.json()
    except ValueError:
        return None
    if not isinstance(data, dict):
        return None
    messages = data.get("messages")
    if isinstance(messages, list) and messages and isinstance(messages[0], dict):
        message_id = messages[0].get("id")
        return str(message_id) if message_id else None
    return None
