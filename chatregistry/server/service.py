import threading
from typing import List, Optional, Tuple

from .errors import AlreadyExists, InvalidArgument, NotFound, PermissionDenied
from .hub import Hub, Observer
from .models import (
    Conversation, Message, MessageType, MutationEvent, Status, UserProfile, UserStatus, require_text,
)
from .repo import GroupsRepo, IdGenerator, RoomsRepo, UsersRepo
from .rooms import ChatRoom, GroupRoom
from .users import User
from ..utils.logger import setup_logger

logger = setup_logger('chatregistry.service')


class ChatService:
    """In-memory conversation registry.

    Owns every user, direct room and group by identifier, enforces the
    cross-entity rules (unique usernames, one direct room per pair,
    existence and permission checks) and publishes a MutationEvent after
    each successful state change.

    All table and membership updates run under one re-entrant lock.
    Events are published after the lock is released, so observers may
    call back into the service.
    """

    def __init__(self, user_ids: Optional[IdGenerator] = None, room_ids: Optional[IdGenerator] = None,
                 group_ids: Optional[IdGenerator] = None, hub: Optional[Hub] = None):
        """Initialize an empty registry.

        Args:
            user_ids (IdGenerator, optional): Source of user IDs
            room_ids (IdGenerator, optional): Source of direct room IDs
            group_ids (IdGenerator, optional): Source of group IDs
            hub (Hub, optional): Notification hub for mutation events

        Attributes:
            users: User table
            rooms: Direct room table
            groups: Group table
            hub: Observer fan-out
        """
        self.users = UsersRepo()
        self.rooms = RoomsRepo()
        self.groups = GroupsRepo()
        self.hub = hub or Hub()
        self._user_ids = user_ids or IdGenerator()
        self._room_ids = room_ids or IdGenerator()
        self._group_ids = group_ids or IdGenerator()
        self._lock = threading.RLock()

    # -------- observers --------
    def register_observer(self, observer: Observer):
        """Register a callback receiving a MutationEvent after every mutation."""
        self.hub.register(observer)

    def _notify(self, event_kind: str, **payload):
        self.hub.publish(MutationEvent(kind=event_kind, payload=payload))

    # -------- lookups (caller holds the lock) --------
    def _user(self, name: str, role: str = "User") -> User:
        user = self.users.find_by_name(name) if name is not None else None
        if user is None:
            logger.warning(f"{role} '{name}' not found")
            raise NotFound(f"{role} does not exist: {name}")
        return user

    def _room(self, room_id: int) -> ChatRoom:
        room = self.rooms.get(room_id)
        if room is None:
            logger.warning(f"Direct room {room_id} not found")
            raise NotFound(f"Chat room does not exist: {room_id}")
        return room

    def _group(self, group_id: int) -> GroupRoom:
        group = self.groups.get(group_id)
        if group is None:
            logger.warning(f"Group {group_id} not found")
            raise NotFound(f"Group does not exist: {group_id}")
        return group

    def _profiles(self, user_ids: List[int]) -> List[UserProfile]:
        return [self.users.get(uid).snapshot() for uid in user_ids]

    def _with_senders(self, messages: List[Message]) -> List[Tuple[Message, str]]:
        return [(m, self.users.get(m.sender_id).username) for m in messages]

    # -------- users --------
    def register_user(self, name: str) -> int:
        """Register a new user.

        Args:
            name (str): Desired username

        Returns:
            int: The new user's ID

        Raises:
            InvalidArgument: If name is empty
            AlreadyExists: If name is taken
        """
        require_text(name, "Username")
        with self._lock:
            if self.users.find_by_name(name) is not None:
                logger.warning(f"RegisterUser: '{name}' registration failed (name already exists)")
                raise AlreadyExists(f"User already exists: {name}")
            user = User(id=self._user_ids.next_id(), username=name)
            self.users.add(user)
        self._notify("user_registered", user_id=user.id, username=name)
        return user.id

    def get_profile(self, name: str) -> UserProfile:
        with self._lock:
            return self._user(name).snapshot()

    def get_profile_by_id(self, user_id: int) -> UserProfile:
        with self._lock:
            user = self.users.get(user_id)
            if user is None:
                raise NotFound(f"User does not exist: {user_id}")
            return user.snapshot()

    def list_users(self) -> List[UserProfile]:
        with self._lock:
            return [u.snapshot() for u in self.users.all()]

    def update_profile(self, old_name: str, new_name: Optional[str], new_status: UserStatus,
                       custom_text: Optional[str] = None) -> str:
        """Rename a user and set their status in one step.

        The custom text is kept only when new_status is CUSTOM.

        Args:
            old_name (str): Current username
            new_name (str, optional): Desired username; None or old_name keeps it
            new_status (UserStatus): Status to set
            custom_text (str, optional): Free text for CUSTOM

        Returns:
            str: The resulting username

        Raises:
            NotFound: If old_name is unknown
            InvalidArgument: If new_name is blank or the status is malformed
            AlreadyExists: If new_name belongs to another user
        """
        if new_name is not None:
            require_text(new_name, "Username")
        status = Status.of(new_status, custom_text)
        with self._lock:
            user = self._user(old_name)
            if new_name is not None and new_name != old_name:
                if self.users.find_by_name(new_name) is not None:
                    logger.warning(f"UpdateProfile: '{old_name}' cannot take '{new_name}' (name already exists)")
                    raise AlreadyExists(f"Username already taken: {new_name}")
                self.users.rename(user, new_name)
                logger.info(f"UpdateProfile: '{old_name}' renamed to '{new_name}'")
            user.status = status
            result = user.username
        self._notify("profile_updated", user_id=user.id, old_name=old_name, username=result,
                     status=new_status.value)
        return result

    def update_status(self, name: str, status: UserStatus, custom_text: Optional[str] = None):
        with self._lock:
            user = self._user(name)
            user.set_status(status, custom_text)
        self._notify("status_updated", user_id=user.id, username=name, status=status.value)

    def set_online(self, name: str, online: bool):
        if not isinstance(online, bool):
            raise InvalidArgument(f"Online flag must be a boolean, got {online!r}")
        with self._lock:
            user = self._user(name)
            user.online = online
        self._notify("presence_updated", user_id=user.id, username=name, online=online)

    # -------- contacts --------
    def add_contact(self, contact_name: str, owner_name: str) -> bool:
        """Add contact_name to owner_name's contact list.

        Raises:
            NotFound: If either user is unknown
            InvalidArgument: If both names refer to the same user
            AlreadyExists: If the contact is already listed
        """
        with self._lock:
            contact = self._user(contact_name)
            owner = self._user(owner_name)
            if contact.id == owner.id:
                raise InvalidArgument("A user cannot add themselves as a contact")
            owner.contacts.add_contact(contact.id)
            logger.info(f"AddContact: '{owner_name}' added '{contact_name}'")
        self._notify("contact_added", owner_id=owner.id, contact_id=contact.id)
        return True

    def remove_contact(self, contact_name: str, owner_name: str) -> bool:
        """Remove a contact; returns False if it was not listed."""
        with self._lock:
            contact = self._user(contact_name)
            owner = self._user(owner_name)
            removed = owner.contacts.remove_contact(contact.id)
        if removed:
            self._notify("contact_removed", owner_id=owner.id, contact_id=contact.id)
        return removed

    def list_contacts(self, owner_name: str) -> List[UserProfile]:
        with self._lock:
            return self._profiles(self._user(owner_name).contacts.list())

    # -------- direct rooms --------
    def ensure_direct_room(self, name_a: str, name_b: str) -> int:
        """Return the direct room for a pair of users, creating it on first use.

        Order of the two names does not matter; a pair never gets a
        second room.

        Returns:
            int: ID of the pair's room

        Raises:
            NotFound: If either user is unknown
            InvalidArgument: If both names refer to the same user
        """
        with self._lock:
            a = self._user(name_a)
            b = self._user(name_b)
            existing = self.rooms.find_pair(a.id, b.id)
            if existing is not None:
                logger.debug(f"EnsureDirectRoom: reusing room {existing.room_id} for '{name_a}'/'{name_b}'")
                return existing.room_id

            room = ChatRoom(self._room_ids.next_id(), a, b)
            a.chat_rooms.add(room.room_id)
            try:
                b.chat_rooms.add(room.room_id)
            except Exception:
                a.chat_rooms.remove(room.room_id)
                raise
            self.rooms.add(room)
        self._notify("direct_room_created", room_id=room.room_id, user_ids=list(room.user_ids))
        return room.room_id

    def send_direct_message(self, room_id: int, sender_name: str, content: str,
                            kind: MessageType = MessageType.TEXT) -> Message:
        """Append a message to a direct room.

        Raises:
            NotFound: If the room or sender is unknown
            PermissionDenied: If the sender is not in the room
            InvalidArgument: If content is empty
        """
        with self._lock:
            room = self._room(room_id)
            sender = self._user(sender_name, "Sender")
            if not room.has_participant(sender.id):
                logger.warning(f"SendDirectMessage: '{sender_name}' is not part of room {room_id}")
                raise PermissionDenied("Sender is not part of the chat room")
            message = room.append_message(sender.id, content, kind)
        self._notify("direct_message_sent", room_id=room_id, sender_id=sender.id, kind=kind.value)
        return message

    def list_direct_messages(self, room_id: int) -> List[Message]:
        with self._lock:
            return self._room(room_id).list_messages()

    def direct_history(self, room_id: int) -> List[Tuple[Message, str]]:
        """Messages of a direct room paired with their senders' current names."""
        with self._lock:
            return self._with_senders(self._room(room_id).list_messages())

    def list_direct_room_ids(self, name: str) -> List[int]:
        with self._lock:
            return self._user(name).chat_rooms.ids()

    def describe_direct_room(self, room_id: int) -> str:
        with self._lock:
            return str(self._room(room_id))

    # -------- groups --------
    def create_group(self, creator_name: str, name: str, description: Optional[str] = None) -> int:
        """Create a group with creator_name as its permanent admin.

        Raises:
            NotFound: If the creator is unknown
            InvalidArgument: If name is empty
        """
        with self._lock:
            creator = self._user(creator_name, "Creator")
            group = GroupRoom(self._group_ids.next_id(), creator, name, description)
            self.groups.add(group)
        self._notify("group_created", group_id=group.group_id, creator_id=creator.id, name=group.name)
        return group.group_id

    def add_group_participant(self, group_id: int, adder_name: str, target_name: str) -> bool:
        """Add target_name to a group on behalf of an admin.

        Raises:
            NotFound: If the group, adder or target is unknown
            PermissionDenied: If adder is not an admin
            AlreadyMember: If target already participates
        """
        with self._lock:
            group = self._group(group_id)
            adder = self._user(adder_name, "Adder")
            target = self._user(target_name)
            if not group.is_admin(adder):
                logger.warning(f"AddGroupParticipant: '{adder_name}' is not an admin of group {group_id}")
                raise PermissionDenied("Only admins can add participants")
            group.add_participant(target)
            logger.info(f"AddGroupParticipant: '{adder_name}' added '{target_name}' to group {group_id}")
        self._notify("group_participant_added", group_id=group_id, user_id=target.id, by=adder.id)
        return True

    def remove_group_participant(self, group_id: int, remover_name: str, target_name: str) -> bool:
        with self._lock:
            group = self._group(group_id)
            remover = self._user(remover_name, "Remover")
            target = self._user(target_name)
            group.remove_participant(remover, target)
            logger.info(f"RemoveGroupParticipant: '{remover_name}' removed '{target_name}' from group {group_id}")
        self._notify("group_participant_removed", group_id=group_id, user_id=target.id, by=remover.id)
        return True

    def promote_admin(self, group_id: int, promoter_name: str, target_name: str) -> bool:
        with self._lock:
            group = self._group(group_id)
            promoter = self._user(promoter_name, "Promoter")
            target = self._user(target_name)
            group.add_admin(promoter, target)
            logger.info(f"PromoteAdmin: '{promoter_name}' promoted '{target_name}' in group {group_id}")
        self._notify("group_admin_added", group_id=group_id, user_id=target.id, by=promoter.id)
        return True

    def demote_admin(self, group_id: int, demoter_name: str, target_name: str) -> bool:
        with self._lock:
            group = self._group(group_id)
            demoter = self._user(demoter_name, "Demoter")
            target = self._user(target_name)
            group.remove_admin(demoter, target)
            logger.info(f"DemoteAdmin: '{demoter_name}' demoted '{target_name}' in group {group_id}")
        self._notify("group_admin_removed", group_id=group_id, user_id=target.id, by=demoter.id)
        return True

    def send_group_message(self, group_id: int, sender_name: str, content: str,
                           kind: MessageType = MessageType.TEXT) -> Message:
        with self._lock:
            group = self._group(group_id)
            sender = self._user(sender_name, "Sender")
            message = group.add_message(sender, content, kind)
        self._notify("group_message_sent", group_id=group_id, sender_id=sender.id, kind=kind.value)
        return message

    def list_group_messages(self, group_id: int) -> List[Message]:
        with self._lock:
            return self._group(group_id).list_messages()

    def group_history(self, group_id: int) -> List[Tuple[Message, str]]:
        with self._lock:
            return self._with_senders(self._group(group_id).list_messages())

    def list_group_participants(self, group_id: int) -> List[UserProfile]:
        with self._lock:
            return self._profiles(self._group(group_id).participant_ids)

    def list_group_admins(self, group_id: int) -> List[UserProfile]:
        with self._lock:
            return self._profiles(self._group(group_id).admin_ids)

    def is_group_admin(self, group_id: int, name: str) -> bool:
        with self._lock:
            return self._group(group_id).is_admin(self._user(name))

    def is_group_participant(self, group_id: int, name: str) -> bool:
        with self._lock:
            return self._group(group_id).is_participant(self._user(name))

    def list_group_names(self, name: str) -> List[str]:
        with self._lock:
            return [self.groups.get(gid).name for gid in self._user(name).group_rooms.ids()]

    def describe_group(self, group_id: int) -> str:
        with self._lock:
            return str(self._group(group_id))

    # -------- conversations --------
    def list_conversations_for_user(self, name: str) -> List[Conversation]:
        """All direct rooms and groups of a user, in no guaranteed order."""
        with self._lock:
            user = self._user(name)
            conversations = []
            for room_id in user.chat_rooms.ids():
                room = self.rooms.get(room_id)
                title = " & ".join(self.users.get(uid).username for uid in room.user_ids)
                conversations.append(Conversation.direct(room_id, title))
            for group_id in user.group_rooms.ids():
                conversations.append(Conversation.group(group_id, self.groups.get(group_id).name))
            return conversations

    def render_messages(self, messages: List[Message]) -> List[str]:
        """Format messages as ``[HH:MM] sender: content`` using current usernames."""
        with self._lock:
            return [m.format(name) for m, name in self._with_senders(messages)]
