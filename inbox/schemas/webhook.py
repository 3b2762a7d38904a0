from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, Field

from inbox.domain.enums import MessageType

_MEDIA_PLACEHOLDERS = {
    "image": "[Image]",
    "audio": "[Audio]",
    "video": "[Video]",
    "sticker": "[Sticker]",
    "location": "[Location]",
    "contacts": "[Contact]",
}


class _ProviderModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class WebhookProfile(_ProviderModel):
    name: str | None = None


class WebhookContact(_ProviderModel):
    wa_id: str | None = None
    profile: WebhookProfile | None = None


class WebhookText(_ProviderModel):
    body: str = ""


class WebhookMedia(_ProviderModel):
    id: str | None = None
    caption: str | None = None
    filename: str | None = None
    mime_type: str | None = None


class WebhookReply(_ProviderModel):
    id: str | None = None
    title: str | None = None


class WebhookInteractive(_ProviderModel):
    type: str | None = None
    button_reply: WebhookReply | None = None
    list_reply: WebhookReply | None = None


class WebhookButton(_ProviderModel):
    text: str | None = None
    payload: str | None = None


class WebhookReaction(_ProviderModel):
    message_id: str | None = None
    emoji: str | None = None


class WebhookMessage(_ProviderModel):
    id: str
    from_: str = Field(alias="from")
    timestamp: str | None = None
    type: str = "text"
    text: WebhookText | None = None
    image: WebhookMedia | None = None
    video: WebhookMedia | None = None
    audio: WebhookMedia | None = None
    document: WebhookMedia | None = None
    interactive: WebhookInteractive | None = None
    button: WebhookButton | None = None
    reaction: WebhookReaction | None = None

    @property
    def message_type(self) -> MessageType:
        if self.type == "button":
            return MessageType.INTERACTIVE
        try:
            return MessageType(self.type)
        except ValueError:
            return MessageType.TEXT

    @property
    def sent_at(self) -> datetime | None:
        if not self.timestamp or not self.timestamp.isdigit():
            return None
        return datetime.fromtimestamp(int(self.timestamp), UTC)

    @property
    def media(self) -> WebhookMedia | None:
        return self.image or self.video or self.audio or self.document

    def content(self) -> str:
        if self.type == "text":
            return self.text.body if self.text else ""
        if self.type == "document":
            filename = self.document.filename if self.document else None
            return f"[Document: {filename}]" if filename else "[Document]"
        if self.type in ("image", "video") and self.media and self.media.caption:
            return self.media.caption
        if self.type == "reaction":
            return (self.reaction.emoji if self.reaction else None) or "[Reaction]"
        if self.type == "interactive" and self.interactive is not None:
            reply = self.interactive.button_reply or self.interactive.list_reply
            if reply is not None and reply.title:
                return reply.title
        if self.type == "button" and self.button is not None and self.button.text:
            return self.button.text
        return _MEDIA_PLACEHOLDERS.get(self.type, f"[{self.type or 'unknown'}]")


class WebhookStatus(_ProviderModel):
    id: str
    status: str
    recipient_id: str | None = None
    timestamp: str | None = None


class WebhookValue(_ProviderModel):
    messages: list[WebhookMessage] = Field(default_factory=list)
    statuses: list[WebhookStatus] = Field(default_factory=list)
    contacts: list[WebhookContact] = Field(default_factory=list)

    def contact_for(self, phone: str) -> WebhookContact | None:
        for contact in self.contacts:
            if contact.wa_id == phone:
                return contact
        return self.contacts[0] if self.contacts else None


class WebhookChange(_ProviderModel):
    value: WebhookValue = Field(default_factory=WebhookValue)


class WebhookEntry(_ProviderModel):
    changes: list[WebhookChange] = Field(default_factory=list)


class WebhookPayload(WebhookValue):
    """Meta nests data under entry[].changes[].value; 360dialog may post it flat."""

    entry: list[WebhookEntry] = Field(default_factory=list)

    def change_values(self) -> list[WebhookValue]:
        if self.entry:
            return [change.value for entry in self.entry for change in entry.changes]
        if self.messages or self.statuses or self.contacts:
            return [self]
        return []
