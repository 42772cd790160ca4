import threading
from typing import Dict, Iterable, Optional

from .rooms import ChatRoom, GroupRoom
from .users import User
from ..utils.logger import setup_logger

logger = setup_logger('chatregistry.repo')


class IdGenerator:
    """Thread-safe, strictly increasing integer identifiers."""

    def __init__(self, start: int = 1000):
        self._next = start
        self._lock = threading.Lock()

    def next_id(self) -> int:
        with self._lock:
            value = self._next
            self._next += 1
            return value


class UsersRepo:
    """In-memory table of users, indexed by ID and by username."""

    def __init__(self):
        self.users_by_id: Dict[int, User] = {}
        self.users_by_name: Dict[str, User] = {}

    def add(self, user: User):
        """Index a new user under its ID and username.

        Args:
            user (User): User object to store

        Side Effects:
            - Updates both in-memory dictionaries
            - Logs user registration
        """
        self.users_by_id[user.id] = user
        self.users_by_name[user.username] = user
        logger.info(f"New user registered: {user.username} (ID: {user.id})")

    def rename(self, user: User, new_name: str):
        """Move a user to a new username key and update the entity."""
        self.users_by_name.pop(user.username, None)
        user.username = new_name
        self.users_by_name[new_name] = user

    def get(self, user_id: int) -> Optional[User]:
        return self.users_by_id.get(user_id)

    def find_by_name(self, username: str) -> Optional[User]:
        """Find user by username (case sensitive).

        Returns:
            Optional[User]: User object if found, None otherwise
        """
        return self.users_by_name.get(username)

    def all(self) -> Iterable[User]:
        return self.users_by_id.values()


class RoomsRepo:
    """In-memory table of direct rooms."""

    def __init__(self):
        self.rooms_by_id: Dict[int, ChatRoom] = {}

    def add(self, room: ChatRoom):
        self.rooms_by_id[room.room_id] = room
        logger.info(f"New direct room created: {room.room_id} for users {room.user_ids}")

    def get(self, room_id: int) -> Optional[ChatRoom]:
        return self.rooms_by_id.get(room_id)

    def find_pair(self, a_id: int, b_id: int) -> Optional[ChatRoom]:
        """Find the room joining two users, in either order.

        Returns:
            Optional[ChatRoom]: The pair's room if one exists, None otherwise
        """
        for room in self.rooms_by_id.values():
            if room.is_between(a_id, b_id):
                return room
        return None

    def all(self) -> Iterable[ChatRoom]:
        return self.rooms_by_id.values()


class GroupsRepo:
    """In-memory table of groups."""

    def __init__(self):
        self.groups_by_id: Dict[int, GroupRoom] = {}

    def add(self, group: GroupRoom):
        self.groups_by_id[group.group_id] = group
        logger.info(f"New group created: {group.name} ({group.group_id}) by user {group.creator_id}")

    def get(self, group_id: int) -> Optional[GroupRoom]:
        return self.groups_by_id.get(group_id)

    def all(self) -> Iterable[GroupRoom]:
        return self.groups_by_id.values()
