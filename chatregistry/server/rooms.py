from typing import List, Optional, Tuple

from .errors import (
    AlreadyAdmin, AlreadyMember, IllegalState, InvalidArgument, NotAMember,
    NotAnAdmin, PermissionDenied, ProtectedEntity,
)
from .models import Message, MessageType, now_ms, require_text
from .users import User
from ..utils.logger import setup_logger

logger = setup_logger('chatregistry.rooms')


class ChatRoom:
    """A direct conversation between exactly two users.

    The room does not check who sends; ChatService verifies the sender
    is one of the two participants before calling append_message.
    """

    def __init__(self, room_id: int, first: User, second: User):
        """Create a room for two distinct users.

        Args:
            room_id (int): Identifier handed out by the registry
            first (User): One participant
            second (User): The other participant

        Raises:
            InvalidArgument: If a user is missing or both are the same user
        """
        if first is None or second is None:
            raise InvalidArgument("A direct room needs two users")
        if first.id == second.id:
            raise InvalidArgument("A direct room needs two distinct users")
        self.room_id = room_id
        self.user_ids: Tuple[int, int] = (first.id, second.id)
        self.created_ts = now_ms()
        self._messages: List[Message] = []

    def has_participant(self, user_id: int) -> bool:
        return user_id in self.user_ids

    def is_between(self, a_id: int, b_id: int) -> bool:
        """True if this room joins the given pair, in either order."""
        return {a_id, b_id} == set(self.user_ids)

    def append_message(self, sender_id: int, content: str, kind: MessageType = MessageType.TEXT) -> Message:
        message = Message.create(sender_id, content, kind)
        self._messages.append(message)
        return message

    def list_messages(self) -> List[Message]:
        return list(self._messages)

    def __str__(self):
        first, second = self.user_ids
        return f"ChatRoom{{id={self.room_id}, users=({first}, {second}), messages={len(self._messages)}}}"


class GroupRoom:
    """A named multi-party conversation with creator, admins and participants.

    Invariants kept by every method:
        - the creator is always both a participant and an admin
        - every admin is a participant
        - a participant's group index (User.group_rooms) lists this group
          exactly while the user is in participant_ids

    Membership is stored as user IDs; methods take User objects so they
    can keep the users' reverse indexes in step with the group.
    """

    def __init__(self, group_id: int, creator: User, name: str, description: Optional[str] = None):
        """Create a group and register it with its creator.

        Args:
            group_id (int): Identifier handed out by the registry
            creator (User): Founding user, admin for the group's lifetime
            name (str): Display name of the group
            description (str, optional): Free text. Defaults to ""

        Raises:
            InvalidArgument: If creator or name is missing
            IllegalState: If the creator's group index refuses the group
        """
        if creator is None:
            raise InvalidArgument("Group creator must not be empty")
        require_text(name, "Group name")
        self.group_id = group_id
        self.creator_id = creator.id
        self.name = name
        self.description = description if description is not None else ""
        self.created_ts = now_ms()
        self._admin_ids: List[int] = [creator.id]
        self._participant_ids: List[int] = [creator.id]
        self._messages: List[Message] = []

        if not creator.group_rooms.add(group_id):
            raise IllegalState(f"Group {group_id} could not be registered with its creator")

    def is_admin(self, user: User) -> bool:
        return user is not None and user.id in self._admin_ids

    def is_participant(self, user: User) -> bool:
        return user is not None and user.id in self._participant_ids

    def is_creator(self, user: User) -> bool:
        return user is not None and user.id == self.creator_id

    @property
    def admin_ids(self) -> List[int]:
        return list(self._admin_ids)

    @property
    def participant_ids(self) -> List[int]:
        return list(self._participant_ids)

    def add_participant(self, user: User) -> bool:
        """Add a user to the group.

        Raises:
            InvalidArgument: If user is missing
            AlreadyMember: If the user already participates
            IllegalState: If the user's group index refuses the group
        """
        if user is None:
            raise InvalidArgument("User must not be empty")
        if self.is_participant(user):
            raise AlreadyMember(f"{user.username} is already in group {self.name}")
        if not user.group_rooms.add(self.group_id):
            raise IllegalState(f"Group {self.group_id} could not be registered with {user.username}")
        self._participant_ids.append(user.id)
        logger.debug(f"Group {self.group_id}: participant {user.id} added")
        return True

    def remove_participant(self, remover: User, target: User) -> bool:
        """Remove a participant; admins may remove anyone, everyone may leave.

        A removed admin loses admin status as part of the same step.

        Raises:
            InvalidArgument: If remover or target is missing
            PermissionDenied: If remover is neither an admin nor the target
            ProtectedEntity: If target is the creator
            NotAMember: If target does not participate
        """
        if remover is None or target is None:
            raise InvalidArgument("Remover and target must not be empty")
        if not self.is_admin(remover) and remover.id != target.id:
            raise PermissionDenied("Only admins can remove other participants")
        if self.is_creator(target):
            raise ProtectedEntity("The group creator cannot be removed")
        if not self.is_participant(target):
            raise NotAMember(f"{target.username} is not in group {self.name}")

        target.group_rooms.remove(self.group_id)
        if target.id in self._admin_ids:
            self._admin_ids.remove(target.id)
        self._participant_ids.remove(target.id)
        logger.debug(f"Group {self.group_id}: participant {target.id} removed by {remover.id}")
        return True

    def add_admin(self, promoter: User, target: User) -> bool:
        """Promote a participant to admin.

        Raises:
            PermissionDenied: If promoter is not an admin
            NotAMember: If target does not participate
            AlreadyAdmin: If target is already an admin
        """
        if promoter is None or target is None:
            raise InvalidArgument("Promoter and target must not be empty")
        if not self.is_admin(promoter):
            raise PermissionDenied("Only admins can promote participants")
        if not self.is_participant(target):
            raise NotAMember(f"{target.username} is not in group {self.name}")
        if self.is_admin(target):
            raise AlreadyAdmin(f"{target.username} is already an admin")
        self._admin_ids.append(target.id)
        return True

    def remove_admin(self, demoter: User, target: User) -> bool:
        """Revoke admin status from a participant other than the creator.

        Raises:
            PermissionDenied: If demoter is not an admin
            ProtectedEntity: If target is the creator
            NotAnAdmin: If target is not an admin
        """
        if demoter is None or target is None:
            raise InvalidArgument("Demoter and target must not be empty")
        if not self.is_admin(demoter):
            raise PermissionDenied("Only admins can demote admins")
        if self.is_creator(target):
            raise ProtectedEntity("The group creator cannot lose admin status")
        if not self.is_admin(target):
            raise NotAnAdmin(f"{target.username} is not an admin")
        self._admin_ids.remove(target.id)
        return True

    def add_message(self, sender: User, content: str, kind: MessageType = MessageType.TEXT) -> Message:
        if sender is None:
            raise InvalidArgument("Sender must not be empty")
        if not self.is_participant(sender):
            raise PermissionDenied("Only participants can post to the group")
        message = Message.create(sender.id, content, kind)
        self._messages.append(message)
        return message

    def list_messages(self) -> List[Message]:
        return list(self._messages)

    def __str__(self):
        return (f"GroupRoom{{name='{self.name}', id={self.group_id}, "
                f"participants={len(self._participant_ids)}, messages={len(self._messages)}}}")
