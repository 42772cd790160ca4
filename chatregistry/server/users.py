from dataclasses import dataclass, field
from typing import List, Optional

from .contacts import ContactList
from .errors import AlreadyExists, NotFound
from .models import Status, UserProfile, UserStatus


class UserChatRooms:
    """Reverse index of the direct rooms a user takes part in.

    Holds room IDs only; the rooms themselves live in the registry.
    """

    def __init__(self):
        self._room_ids: List[int] = []

    def add(self, room_id: int) -> bool:
        if room_id in self._room_ids:
            raise AlreadyExists(f"Chat room {room_id} already indexed")
        self._room_ids.append(room_id)
        return True

    def remove(self, room_id: int) -> bool:
        if room_id not in self._room_ids:
            raise NotFound(f"Chat room {room_id} not indexed")
        self._room_ids.remove(room_id)
        return True

    def contains(self, room_id: int) -> bool:
        return room_id in self._room_ids

    def ids(self) -> List[int]:
        return list(self._room_ids)

    def count(self) -> int:
        return len(self._room_ids)

    def is_empty(self) -> bool:
        return not self._room_ids


class UserGroupRooms:
    """Reverse index of the groups a user participates in.

    Unlike UserChatRooms this reports duplicates through the return value;
    GroupRoom turns a refused registration into IllegalState.
    """

    def __init__(self):
        self._group_ids: List[int] = []

    def add(self, group_id: int) -> bool:
        if group_id in self._group_ids:
            return False
        self._group_ids.append(group_id)
        return True

    def remove(self, group_id: int) -> bool:
        if group_id not in self._group_ids:
            return False
        self._group_ids.remove(group_id)
        return True

    def contains(self, group_id: int) -> bool:
        return group_id in self._group_ids

    def ids(self) -> List[int]:
        return list(self._group_ids)

    def count(self) -> int:
        return len(self._group_ids)

    def is_empty(self) -> bool:
        return not self._group_ids


@dataclass(eq=False)
class User:
    """Represents a registered user.

    Username uniqueness across the registry is enforced by ChatService,
    not here.

    Attributes:
        id (int): Identifier assigned by the registry, never reused
        username (str): Current display name
        online (bool): Presence flag, True on registration
        status (Status): Current status, AVAILABLE on registration
        contacts (ContactList): Users this user has added
        chat_rooms (UserChatRooms): Direct rooms this user is in
        group_rooms (UserGroupRooms): Groups this user participates in
    """
    id: int
    username: str
    online: bool = True
    status: Status = field(default_factory=Status)
    contacts: ContactList = field(init=False)
    chat_rooms: UserChatRooms = field(default_factory=UserChatRooms)
    group_rooms: UserGroupRooms = field(default_factory=UserGroupRooms)

    def __post_init__(self):
        self.contacts = ContactList(self.id)

    def set_status(self, kind: UserStatus, text: Optional[str] = None):
        """Switch status; the free text survives only for CUSTOM."""
        self.status = Status.of(kind, text)

    @property
    def status_text(self) -> str:
        return self.status.text

    def snapshot(self) -> UserProfile:
        return UserProfile(id=self.id, username=self.username, online=self.online, status=self.status)

    def __repr__(self):
        return f"User(id={self.id}, username={self.username!r}, online={self.online}, status={self.status.kind.value})"
