import json

import httpx
import pytest

from inbox.domain.enums import ChannelProvider, MessageType
from inbox.infra.channel.client import WhatsAppChannelClient, normalize_phone
from inbox.infra.channel.errors import ChannelDispatchError
from inbox.infra.channel.payloads import TextPayload


def _client(
    handler,
    provider: ChannelProvider = ChannelProvider.DIALOG_360,
) -> WhatsAppChannelClient:
    return WhatsAppChannelClient(
        provider,
        base_url="https://waba.example/v2/",
        api_key="d360-key",
        access_token="meta-token",
        phone_number_id="1234567890",
        graph_base_url="https://graph.example",
        graph_api_version="v23.0",
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )


def test_normalize_phone_keeps_digits_only() -> None:
    assert normalize_phone("+55 (11) 99999-0000") == "5511999990000"


@pytest.mark.asyncio
async def test_dialog360_request_shape() -> None:
    captured: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return httpx.Response(200, json={"messages": [{"id": "wamid.ABC"}]})

    client = _client(handler)
    provider_message_id = await client.send_text("+55 11 99999-0000", "Olá")

    assert provider_message_id == "wamid.ABC"
    request = captured[0]
    assert str(request.url) == "https://waba.example/v2/messages"
    assert request.headers["D360-API-KEY"] == "d360-key"
    body = json.loads(request.content)
    assert body["to"] == "5511999990000"
    assert body["text"] == {"body": "Olá"}


@pytest.mark.asyncio
async def test_meta_cloud_request_shape() -> None:
    captured: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return httpx.Response(200, json={"messages": [{"id": "wamid.META"}]})

    client = _client(handler, provider=ChannelProvider.META_CLOUD)
    provider_message_id = await client.send_media(
        "5511999990000", MessageType.IMAGE, "https://cdn.example/a.png", caption="Hi"
    )

    assert provider_message_id == "wamid.META"
    request = captured[0]
    assert str(request.url) == "https://graph.example/v23.0/1234567890/messages"
    assert request.headers["Authorization"] == "Bearer meta-token"
    assert json.loads(request.content)["image"]["caption"] == "Hi"


@pytest.mark.asyncio
async def test_non_success_response_raises_dispatch_error() -> None:
    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"error": {"message": "Recipient not on WhatsApp"}})

    client = _client(handler)

    with pytest.raises(ChannelDispatchError) as exc_info:
        await client.send(to="5511999990000", payload=TextPayload(body="hello"))

    assert exc_info.value.status_code == 400
    assert exc_info.value.detail == "Recipient not on WhatsApp"


@pytest.mark.asyncio
async def test_transport_error_raises_dispatch_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = _client(handler)

    with pytest.raises(ChannelDispatchError) as exc_info:
        await client.send_text("5511999990000", "hello")

    assert exc_info.value.status_code is None


@pytest.mark.asyncio
async def test_missing_message_id_is_not_an_error() -> None:
    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"status": "accepted"})

    client = _client(handler)

    assert await client.send_text("5511999990000", "hello") is None


@pytest.mark.asyncio
async def test_unconfigured_client_refuses_to_send() -> None:
    client = WhatsAppChannelClient(
        ChannelProvider.META_CLOUD,
        http_client=httpx.AsyncClient(
            transport=httpx.MockTransport(lambda _: httpx.Response(200))
        ),
    )

    assert not client.is_configured
    with pytest.raises(ChannelDispatchError):
        await client.send_text("5511999990000", "hello")
