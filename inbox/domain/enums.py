from enum import Enum


class ConversationStatus(str, Enum):
    OPEN = "open"
    CLOSED = "closed"


class ConversationChannel(str, Enum):
    WHATSAPP = "whatsapp"
    INTERNAL = "internal"


class ConversationContext(str, Enum):
    SALES = "sales"
    POST_SALES = "post_sales"


class DealStatus(str, Enum):
    OPEN = "open"
    WON = "won"
    LOST = "lost"


class MessageType(str, Enum):
    TEXT = "text"
    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"
    DOCUMENT = "document"
    TEMPLATE = "template"
    INTERACTIVE = "interactive"
    REACTION = "reaction"


class MessageDirection(str, Enum):
    IN = "in"
    OUT = "out"


class MessageStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    DELIVERED = "delivered"
    READ = "read"
    FAILED = "failed"
    SCHEDULED = "scheduled"


class SessionStatus(str, Enum):
    ACTIVE = "active"
    EXPIRING = "expiring"
    EXPIRED = "expired"


class DistributionMode(str, Enum):
    AUTO = "auto"
    MANUAL = "manual"


class ChannelProvider(str, Enum):
    DIALOG_360 = "360dialog"
    META_CLOUD = "meta_cloud"


MEDIA_MESSAGE_TYPES = frozenset(
    {MessageType.IMAGE, MessageType.VIDEO, MessageType.AUDIO, MessageType.DOCUMENT}
)
