from typing import List, Optional

from .errors import AlreadyExists, InvalidArgument


class ContactList:
    """One user's contacts, kept as user IDs in insertion order.

    The list is one-directional: A having B as a contact says nothing
    about B's list.
    """

    def __init__(self, owner_id: int):
        """Initialize an empty contact list.

        Args:
            owner_id (int): ID of the user owning this list
        """
        self.owner_id = owner_id
        self._contact_ids: List[int] = []

    def add_contact(self, user_id: Optional[int]) -> bool:
        """Add a user to the list.

        Args:
            user_id (int): ID of the user to add

        Returns:
            bool: True once the contact was appended

        Raises:
            InvalidArgument: If user_id is missing or is the owner
            AlreadyExists: If the user is already a contact
        """
        if user_id is None:
            raise InvalidArgument("Contact must not be empty")
        if user_id == self.owner_id:
            raise InvalidArgument("A user cannot add themselves as a contact")
        if user_id in self._contact_ids:
            raise AlreadyExists(f"User {user_id} is already a contact")
        self._contact_ids.append(user_id)
        return True

    def remove_contact(self, user_id: Optional[int]) -> bool:
        """Remove a user from the list.

        Returns:
            bool: True if removed, False if the user was not a contact
        """
        if user_id is None:
            raise InvalidArgument("Contact must not be empty")
        if user_id not in self._contact_ids:
            return False
        self._contact_ids.remove(user_id)
        return True

    def has_contact(self, user_id: int) -> bool:
        return user_id in self._contact_ids

    def list(self) -> List[int]:
        return list(self._contact_ids)

    def count(self) -> int:
        return len(self._contact_ids)
