import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from .errors import InvalidArgument


def now_ms() -> int:
    """Current Unix time in milliseconds."""
    return int(time.time() * 1000)


def require_text(value: Any, what: str) -> str:
    """Return value if it is a non-blank string, else raise InvalidArgument."""
    if not isinstance(value, str) or not value.strip():
        raise InvalidArgument(f"{what} must be a non-empty string")
    return value


class UserStatus(Enum):
    """Status selector shown next to a user's name.

    CUSTOM is the free-text variant; every other member is a fixed value.
    """
    AVAILABLE = "AVAILABLE"
    BUSY = "BUSY"
    AT_SCHOOL = "AT_SCHOOL"
    AT_THE_MOVIES = "AT_THE_MOVIES"
    AT_WORK = "AT_WORK"
    LOW_BATTERY = "LOW_BATTERY"
    SLEEPING = "SLEEPING"
    CUSTOM = "CUSTOM"


@dataclass(frozen=True)
class Status:
    """A user's status: a selector plus the free text carried by CUSTOM.

    Attributes:
        kind (UserStatus): Selected status
        text (str): Free text, always empty unless kind is CUSTOM
    """
    kind: UserStatus = UserStatus.AVAILABLE
    text: str = ""

    @classmethod
    def of(cls, kind: UserStatus, text: Optional[str] = None) -> "Status":
        """Build a status, dropping the text unless kind is CUSTOM."""
        if not isinstance(kind, UserStatus):
            raise InvalidArgument(f"Unknown status: {kind!r}")
        if text is not None and not isinstance(text, str):
            raise InvalidArgument("Status text must be a string")
        if kind is UserStatus.CUSTOM:
            return cls(kind, text or "")
        return cls(kind, "")

    def label(self) -> str:
        if self.kind is UserStatus.CUSTOM:
            return self.text
        return self.kind.value.replace("_", " ").lower()


class MessageType(Enum):
    TEXT = "TEXT"
    IMAGE = "IMAGE"
    FILE = "FILE"
    SYSTEM = "SYSTEM"


@dataclass(frozen=True)
class Message:
    """A chat entry appended to a direct room or group log.

    Attributes:
        sender_id (int): ID of the user who sent the message
        content (str): Message body, never empty
        sent_ts (int): Unix timestamp in milliseconds, assigned on append
        kind (MessageType): Payload kind, TEXT unless stated otherwise
    """
    sender_id: int
    content: str
    sent_ts: int
    kind: MessageType = MessageType.TEXT

    @classmethod
    def create(cls, sender_id: int, content: str, kind: MessageType = MessageType.TEXT) -> "Message":
        require_text(content, "Message content")
        return cls(sender_id=sender_id, content=content, sent_ts=now_ms(), kind=kind)

    def format(self, sender_name: str) -> str:
        """Render as ``[HH:MM] sender: content`` in local time."""
        clock = time.strftime("%H:%M", time.localtime(self.sent_ts / 1000))
        return f"[{clock}] {sender_name}: {self.content}"


@dataclass(frozen=True)
class UserProfile:
    """Read-only snapshot of a user, safe to hand out of the registry lock."""
    id: int
    username: str
    online: bool
    status: Status


class ConversationKind(Enum):
    DIRECT = "direct"
    GROUP = "group"


@dataclass(frozen=True)
class Conversation:
    """A direct room or a group, tagged so callers never inspect types.

    Attributes:
        kind (ConversationKind): DIRECT or GROUP
        id (int): Room ID for DIRECT, group ID for GROUP
        title (str): Group name, or both usernames for a direct room
    """
    kind: ConversationKind
    id: int
    title: str

    @classmethod
    def direct(cls, room_id: int, title: str) -> "Conversation":
        return cls(ConversationKind.DIRECT, room_id, title)

    @classmethod
    def group(cls, group_id: int, title: str) -> "Conversation":
        return cls(ConversationKind.GROUP, group_id, title)


@dataclass(frozen=True)
class MutationEvent:
    """Signal raised after a state-changing operation succeeded.

    Attributes:
        kind (str): What happened, e.g. ``group_created``
        payload (Dict[str, Any]): IDs and names involved, JSON serialisable
        ts (int): Unix timestamp in milliseconds
    """
    kind: str
    payload: Dict[str, Any] = field(default_factory=dict)
    ts: int = field(default_factory=now_ms)
