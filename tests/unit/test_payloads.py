import pytest

from inbox.domain.enums import MessageType
from inbox.domain.exceptions import MessageValidationError
from inbox.infra.channel.payloads import (
    MAX_MEDIA_SIZE_BYTES,
    InteractiveButton,
    InteractivePayload,
    MediaPayload,
    TemplatePayload,
    TextPayload,
    payload_from_message,
    template_placeholders,
)


def test_blank_text_is_rejected() -> None:
    with pytest.raises(MessageValidationError):
        TextPayload(body="   ")


def test_text_request_body() -> None:
    request = TextPayload(body="Olá!").to_request("5511999990000")

    assert request == {
        "messaging_product": "whatsapp",
        "recipient_type": "individual",
        "to": "5511999990000",
        "type": "text",
        "text": {"body": "Olá!"},
    }


def test_template_placeholders_in_order_of_appearance() -> None:
    assert template_placeholders("Hi {{2}}, {{1}} and {{ 2 }} again") == [2, 1]


def test_template_requires_every_placeholder() -> None:
    with pytest.raises(MessageValidationError) as exc_info:
        TemplatePayload.from_template(
            name="welcome",
            language="pt_BR",
            body="Hello {{1}}, your order {{2}} shipped",
            variables={1: "Ana", 2: "  "},
        )

    assert exc_info.value.field == "variables"
    assert "{{2}}" in exc_info.value.detail


def test_template_renders_preview_and_components() -> None:
    payload = TemplatePayload.from_template(
        name="welcome",
        language="pt_BR",
        body="Hello {{1}}, your order {{2}} shipped",
        variables={1: "Ana", 2: "#42"},
    )

    assert payload.preview == "Hello Ana, your order #42 shipped"
    request = payload.to_request("551100")
    assert request["template"] == {
        "name": "welcome",
        "language": {"code": "pt_BR"},
        "components": [
            {
                "type": "body",
                "parameters": [
                    {"type": "text", "text": "Ana"},
                    {"type": "text", "text": "#42"},
                ],
            }
        ],
    }


def test_template_without_body_has_no_components() -> None:
    payload = TemplatePayload.from_template(name="hello_world", language="en_US")

    assert "components" not in payload.to_request("551100")["template"]
    assert payload.preview == "[Template: hello_world]"


def test_template_name_is_required() -> None:
    with pytest.raises(MessageValidationError):
        TemplatePayload.from_template(name=" ", language="pt_BR")


def test_media_type_must_be_media() -> None:
    with pytest.raises(MessageValidationError):
        MediaPayload(media_type=MessageType.TEXT, url="https://cdn.example/x.png")


def test_media_requires_url() -> None:
    with pytest.raises(MessageValidationError):
        MediaPayload(media_type=MessageType.IMAGE, url="")


def test_media_size_limit() -> None:
    MediaPayload(
        media_type=MessageType.VIDEO,
        url="https://cdn.example/clip.mp4",
        size_bytes=MAX_MEDIA_SIZE_BYTES,
    )
    with pytest.raises(MessageValidationError):
        MediaPayload(
            media_type=MessageType.VIDEO,
            url="https://cdn.example/clip.mp4",
            size_bytes=MAX_MEDIA_SIZE_BYTES + 1,
        )


def test_image_request_carries_caption_and_view_once() -> None:
    payload = MediaPayload(
        media_type=MessageType.IMAGE,
        url="https://cdn.example/a.png",
        caption="Catalog",
        view_once=True,
    )

    request = payload.to_request("551100")

    assert request["type"] == "image"
    assert request["image"] == {
        "link": "https://cdn.example/a.png",
        "caption": "Catalog",
        "view_once": True,
    }


def test_document_request_uses_filename() -> None:
    payload = MediaPayload(
        media_type=MessageType.DOCUMENT,
        url="https://cdn.example/p.pdf",
        filename="proposal.pdf",
    )

    assert payload.to_request("551100")["document"] == {
        "link": "https://cdn.example/p.pdf",
        "filename": "proposal.pdf",
    }
    assert payload.preview == "[Document: proposal.pdf]"


def test_interactive_button_limits() -> None:
    with pytest.raises(MessageValidationError):
        InteractivePayload.build("Pick one", [])
    with pytest.raises(MessageValidationError):
        InteractivePayload.build("Pick one", [(None, "a"), (None, "b"), (None, "c"), (None, "d")])
    with pytest.raises(MessageValidationError):
        InteractivePayload.build("Pick one", [(None, "x" * 21)])
    with pytest.raises(MessageValidationError):
        InteractivePayload.build("Pick one", [(None, " ")])
    with pytest.raises(MessageValidationError):
        InteractivePayload.build("Pick one", [("same", "Yes"), ("same", "No")])


def test_interactive_request_body() -> None:
    payload = InteractivePayload.build(
        "Can we call you?", [("yes", "Yes"), (None, "Later")], header="Quick question"
    )

    interactive = payload.to_request("551100")["interactive"]

    assert interactive["header"] == {"type": "text", "text": "Quick question"}
    assert interactive["action"]["buttons"] == [
        {"type": "reply", "reply": {"id": "yes", "title": "Yes"}},
        {"type": "reply", "reply": {"id": "btn_1", "title": "Later"}},
    ]


def test_payload_is_rebuilt_from_metadata() -> None:
    original = InteractivePayload(
        body="Pick one",
        buttons=(InteractiveButton(id="a", title="A"), InteractiveButton(id="b", title="B")),
    )

    rebuilt = payload_from_message(
        MessageType.INTERACTIVE, original.preview, original.to_metadata()
    )

    assert rebuilt == original


def test_template_is_rebuilt_from_metadata() -> None:
    original = TemplatePayload.from_template(
        name="follow_up", language="pt_BR", body="Oi {{1}}", variables={1: "Ana"}
    )

    rebuilt = payload_from_message(MessageType.TEMPLATE, original.preview, original.to_metadata())

    assert rebuilt == original


def test_text_without_metadata_uses_content() -> None:
    assert payload_from_message(MessageType.TEXT, "hello", None) == TextPayload(body="hello")
