"""Outbound message variants.

Each variant validates itself on construction, builds the provider request
body and round-trips through ``Message.metadata_json`` so a failed send can
be retried without the original request.
"""

import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from inbox.domain.enums import MEDIA_MESSAGE_TYPES, MessageType
from inbox.domain.exceptions import MessageValidationError

MAX_MEDIA_SIZE_BYTES = 16 * 1024 * 1024
MAX_BUTTONS = 3
MAX_BUTTON_TITLE_LENGTH = 20

_PLACEHOLDER_PATTERN = re.compile(r"\{\{\s*(\d+)\s*\}\}")


def template_placeholders(body: str) -> list[int]:
    """Placeholder indices in order of first appearance."""
    return list(dict.fromkeys(int(match) for match in _PLACEHOLDER_PATTERN.findall(body)))


def render_template(body: str, variables: Mapping[int, str]) -> str:
    def replace(match: re.Match[str]) -> str:
        value = variables.get(int(match.group(1)))
        return value if value is not None else match.group(0)

    return _PLACEHOLDER_PATTERN.sub(replace, body)


def _base_request(to: str, message_type: str) -> dict[str, Any]:
    return {
        "messaging_product": "whatsapp",
        "recipient_type": "individual",
        "to": to,
        "type": message_type,
    }


@dataclass(frozen=True, slots=True)
class TextPayload:
    body: str

    def __post_init__(self) -> None:
        if not self.body.strip():
            raise MessageValidationError("Message content cannot be empty.", field="content")

    @property
    def message_type(self) -> MessageType:
        return MessageType.TEXT

    @property
    def preview(self) -> str:
        return self.body

    def to_request(self, to: str) -> dict[str, Any]:
        request = _base_request(to, "text")
        request["text"] = {"body": self.body}
        return request

    def to_metadata(self) -> dict[str, Any]:
        return {"kind": "text"}


@dataclass(frozen=True, slots=True)
class TemplatePayload:
    name: str
    language: str
    body: str = ""
    parameters: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if not self.name.strip():
            raise MessageValidationError("Template name is required.", field="template_name")
        if not self.language.strip():
            raise MessageValidationError("Template language is required.", field="language")

    @classmethod
    def from_template(
        cls,
        name: str,
        language: str,
        body: str = "",
        variables: Mapping[int, str] | None = None,
    ) -> "TemplatePayload":
        """Resolve ``{{n}}`` placeholders of ``body`` against ``variables``.

        Every placeholder needs a non-blank value; parameters are sent in
        placeholder order.
        """
        values = dict(variables or {})
        indices = template_placeholders(body)
        missing = [index for index in indices if not (values.get(index) or "").strip()]
        if missing:
            labels = ", ".join(f"{{{{{index}}}}}" for index in missing)
            raise MessageValidationError(
                f"Template variables are missing values: {labels}.", field="variables"
            )
        return cls(
            name=name.strip(),
            language=language.strip(),
            body=body,
            parameters=tuple(values[index].strip() for index in indices),
        )

    @property
    def message_type(self) -> MessageType:
        return MessageType.TEMPLATE

    @property
    def preview(self) -> str:
        if not self.body:
            return f"[Template: {self.name}]"
        indices = template_placeholders(self.body)
        return render_template(self.body, dict(zip(indices, self.parameters)))

    def to_request(self, to: str) -> dict[str, Any]:
        template: dict[str, Any] = {"name": self.name, "language": {"code": self.language}}
        if self.parameters:
            template["components"] = [
                {
                    "type": "body",
                    "parameters": [
                        {"type": "text", "text": value} for value in self.parameters
                    ],
                }
            ]
        request = _base_request(to, "template")
        request["template"] = template
        return request

    def to_metadata(self) -> dict[str, Any]:
        return {
            "kind": "template",
            "template_name": self.name,
            "language": self.language,
            "body": self.body,
            "parameters": list(self.parameters),
        }


@dataclass(frozen=True, slots=True)
class MediaPayload:
    media_type: MessageType
    url: str
    caption: str | None = None
    filename: str | None = None
    size_bytes: int | None = None
    view_once: bool = False

    def __post_init__(self) -> None:
        if self.media_type not in MEDIA_MESSAGE_TYPES:
            raise MessageValidationError(
                f"Unsupported media type '{self.media_type.value}'.", field="media_type"
            )
        if not self.url.strip():
            raise MessageValidationError("Media URL is required.", field="media_url")
        if self.size_bytes is not None and self.size_bytes > MAX_MEDIA_SIZE_BYTES:
            raise MessageValidationError("Media files are limited to 16 MB.", field="size_bytes")

    @property
    def message_type(self) -> MessageType:
        return self.media_type

    @property
    def preview(self) -> str:
        if self.caption:
            return self.caption
        if self.media_type == MessageType.DOCUMENT and self.filename:
            return f"[Document: {self.filename}]"
        return f"[{self.media_type.value.capitalize()}]"

    def to_request(self, to: str) -> dict[str, Any]:
        media: dict[str, Any] = {"link": self.url}
        if self.media_type in (MessageType.IMAGE, MessageType.VIDEO):
            if self.caption:
                media["caption"] = self.caption
            if self.view_once:
                media["view_once"] = True
        elif self.media_type == MessageType.DOCUMENT:
            media["filename"] = self.filename or self.caption or "document"

        request = _base_request(to, self.media_type.value)
        request[self.media_type.value] = media
        return request

    def to_metadata(self) -> dict[str, Any]:
        return {
            "kind": "media",
            "media_type": self.media_type.value,
            "url": self.url,
            "caption": self.caption,
            "filename": self.filename,
            "size_bytes": self.size_bytes,
            "view_once": self.view_once,
        }


@dataclass(frozen=True, slots=True)
class InteractiveButton:
    id: str
    title: str


@dataclass(frozen=True, slots=True)
class InteractivePayload:
    body: str
    buttons: tuple[InteractiveButton, ...]
    header: str | None = None

    def __post_init__(self) -> None:
        if not self.body.strip():
            raise MessageValidationError("Interactive body is required.", field="body")
        if not self.buttons:
            raise MessageValidationError("At least one button is required.", field="buttons")
        if len(self.buttons) > MAX_BUTTONS:
            raise MessageValidationError(
                f"At most {MAX_BUTTONS} buttons are allowed.", field="buttons"
            )
        for button in self.buttons:
            if not button.title.strip():
                raise MessageValidationError("Button titles cannot be empty.", field="buttons")
            if len(button.title) > MAX_BUTTON_TITLE_LENGTH:
                raise MessageValidationError(
                    f"Button titles are limited to {MAX_BUTTON_TITLE_LENGTH} characters.",
                    field="buttons",
                )
        ids = [button.id for button in self.buttons]
        if len(set(ids)) != len(ids):
            raise MessageValidationError("Button ids must be unique.", field="buttons")

    @classmethod
    def build(
        cls,
        body: str,
        buttons: Sequence[tuple[str | None, str]],
        header: str | None = None,
    ) -> "InteractivePayload":
        """Buttons without an id get ``btn_<position>``."""
        return cls(
            body=body,
            header=header or None,
            buttons=tuple(
                InteractiveButton(id=button_id or f"btn_{index}", title=title)
                for index, (button_id, title) in enumerate(buttons)
            ),
        )

    @property
    def message_type(self) -> MessageType:
        return MessageType.INTERACTIVE

    @property
    def preview(self) -> str:
        return self.body

    def to_request(self, to: str) -> dict[str, Any]:
        interactive: dict[str, Any] = {
            "type": "button",
            "body": {"text": self.body},
            "action": {
                "buttons": [
                    {"type": "reply", "reply": {"id": button.id, "title": button.title}}
                    for button in self.buttons
                ]
            },
        }
        if self.header:
            interactive["header"] = {"type": "text", "text": self.header}

        request = _base_request(to, "interactive")
        request["interactive"] = interactive
        return request

    def to_metadata(self) -> dict[str, Any]:
        return {
            "kind": "interactive",
            "body": self.body,
            "header": self.header,
            "buttons": [{"id": button.id, "title": button.title} for button in self.buttons],
        }


OutboundPayload = TextPayload | TemplatePayload | MediaPayload | InteractivePayload


def payload_from_message(
    message_type: MessageType,
    content: str,
    metadata: Mapping[str, Any] | None,
) -> OutboundPayload:
    """Rebuild the payload a stored outbound message was sent with."""
    data = dict(metadata or {})
    kind = data.get("kind")

    if kind == "template" or message_type == MessageType.TEMPLATE:
        if "template_name" not in data:
            raise MessageValidationError("Stored template message has no template data.")
        return TemplatePayload(
            name=str(data["template_name"]),
            language=str(data.get("language") or ""),
            body=str(data.get("body") or ""),
            parameters=tuple(str(value) for value in data.get("parameters") or []),
        )
    if kind == "media" or message_type in MEDIA_MESSAGE_TYPES:
        return MediaPayload(
            media_type=MessageType(data.get("media_type", message_type.value)),
            url=str(data.get("url") or ""),
            caption=data.get("caption"),
            filename=data.get("filename"),
            size_bytes=data.get("size_bytes"),
            view_once=bool(data.get("view_once", False)),
        )
    if kind == "interactive" or message_type == MessageType.INTERACTIVE:
        return InteractivePayload(
            body=str(data.get("body") or content),
            header=data.get("header"),
            buttons=tuple(
                InteractiveButton(id=str(button["id"]), title=str(button["title"]))
                for button in data.get("buttons") or []
            ),
        )
    return TextPayload(body=content)
