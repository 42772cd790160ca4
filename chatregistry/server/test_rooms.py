import unittest

from chatregistry.server.errors import (
    AlreadyAdmin, AlreadyMember, IllegalState, InvalidArgument, NotAMember,
    NotAnAdmin, PermissionDenied, ProtectedEntity,
)
from chatregistry.server.models import MessageType
from chatregistry.server.rooms import ChatRoom, GroupRoom
from chatregistry.server.users import User


class TestChatRoom(unittest.TestCase):
    def setUp(self):
        self.alice = User(id=1, username="Alice")
        self.bob = User(id=2, username="Bob")
        self.room = ChatRoom(1000, self.alice, self.bob)

    def test_requires_two_distinct_users(self):
        with self.assertRaises(InvalidArgument):
            ChatRoom(1001, self.alice, self.alice)
        with self.assertRaises(InvalidArgument):
            ChatRoom(1001, self.alice, None)

    def test_pair_matching_ignores_order(self):
        self.assertTrue(self.room.is_between(1, 2))
        self.assertTrue(self.room.is_between(2, 1))
        self.assertFalse(self.room.is_between(1, 3))

    def test_messages_keep_append_order(self):
        self.assertEqual(self.room.list_messages(), [])
        m1 = self.room.append_message(1, "one")
        m2 = self.room.append_message(2, "two")
        m3 = self.room.append_message(1, "three", MessageType.FILE)
        self.assertEqual(self.room.list_messages(), [m1, m2, m3])
        self.assertEqual(m3.kind, MessageType.FILE)

    def test_list_messages_is_a_copy(self):
        self.room.append_message(1, "one")
        self.room.list_messages().clear()
        self.assertEqual(len(self.room.list_messages()), 1)


class TestGroupRoom(unittest.TestCase):
    def setUp(self):
        self.admin = User(id=1, username="Admin")
        self.u1 = User(id=2, username="U1")
        self.u2 = User(id=3, username="U2")
        self.group = GroupRoom(1000, self.admin, "Dev")

    def assertConsistent(self):
        admins = set(self.group.admin_ids)
        participants = set(self.group.participant_ids)
        self.assertIn(self.admin.id, admins)
        self.assertIn(self.admin.id, participants)
        self.assertTrue(admins <= participants)
        for user in (self.admin, self.u1, self.u2):
            self.assertEqual(user.group_rooms.contains(1000), user.id in participants)

    def test_construction(self):
        self.assertEqual(self.group.description, "")
        self.assertTrue(self.group.is_admin(self.admin))
        self.assertTrue(self.group.is_participant(self.admin))
        self.assertTrue(self.admin.group_rooms.contains(1000))
        self.assertConsistent()

    def test_construction_requires_creator_and_name(self):
        with self.assertRaises(InvalidArgument):
            GroupRoom(1001, None, "Dev")
        with self.assertRaises(InvalidArgument):
            GroupRoom(1001, self.admin, None)

    def test_construction_fails_when_creator_index_refuses(self):
        self.u1.group_rooms.add(1001)
        with self.assertRaises(IllegalState):
            GroupRoom(1001, self.u1, "Ops")

    def test_add_participant(self):
        self.assertTrue(self.group.add_participant(self.u1))
        self.assertTrue(self.group.is_participant(self.u1))
        self.assertFalse(self.group.is_admin(self.u1))
        with self.assertRaises(AlreadyMember):
            self.group.add_participant(self.u1)
        self.assertConsistent()

    def test_add_participant_fails_when_index_refuses(self):
        self.u1.group_rooms.add(1000)
        with self.assertRaises(IllegalState):
            self.group.add_participant(self.u1)
        self.assertFalse(self.group.is_participant(self.u1))

    def test_admin_removes_participant(self):
        self.group.add_participant(self.u1)
        self.group.remove_participant(self.admin, self.u1)
        self.assertFalse(self.group.is_participant(self.u1))
        self.assertConsistent()

    def test_self_leave(self):
        self.group.add_participant(self.u1)
        self.group.remove_participant(self.u1, self.u1)
        self.assertFalse(self.group.is_participant(self.u1))
        self.assertConsistent()

    def test_non_admin_cannot_remove_others(self):
        self.group.add_participant(self.u1)
        self.group.add_participant(self.u2)
        with self.assertRaises(PermissionDenied):
            self.group.remove_participant(self.u1, self.u2)
        self.assertTrue(self.group.is_participant(self.u2))
        self.assertConsistent()

    def test_creator_cannot_be_removed(self):
        with self.assertRaises(ProtectedEntity):
            self.group.remove_participant(self.admin, self.admin)
        self.group.add_participant(self.u1)
        self.group.add_admin(self.admin, self.u1)
        with self.assertRaises(ProtectedEntity):
            self.group.remove_participant(self.u1, self.admin)
        self.assertConsistent()

    def test_removing_non_member(self):
        with self.assertRaises(NotAMember):
            self.group.remove_participant(self.admin, self.u1)

    def test_removing_admin_demotes(self):
        self.group.add_participant(self.u1)
        self.group.add_admin(self.admin, self.u1)
        self.group.remove_participant(self.admin, self.u1)
        self.assertFalse(self.group.is_admin(self.u1))
        self.assertConsistent()

    def test_promotion_rules(self):
        self.group.add_participant(self.u1)
        self.group.add_participant(self.u2)
        with self.assertRaises(PermissionDenied):
            self.group.add_admin(self.u1, self.u2)
        with self.assertRaises(NotAMember):
            self.group.add_admin(self.admin, User(id=9, username="Stranger"))
        self.group.add_admin(self.admin, self.u1)
        with self.assertRaises(AlreadyAdmin):
            self.group.add_admin(self.admin, self.u1)
        self.group.add_admin(self.u1, self.u2)
        self.assertTrue(self.group.is_admin(self.u2))
        self.assertConsistent()

    def test_demotion_rules(self):
        self.group.add_participant(self.u1)
        self.group.add_participant(self.u2)
        with self.assertRaises(PermissionDenied):
            self.group.remove_admin(self.u1, self.admin)
        with self.assertRaises(NotAnAdmin):
            self.group.remove_admin(self.admin, self.u1)
        self.group.add_admin(self.admin, self.u1)
        with self.assertRaises(ProtectedEntity):
            self.group.remove_admin(self.u1, self.admin)
        self.group.remove_admin(self.admin, self.u1)
        self.assertFalse(self.group.is_admin(self.u1))
        self.assertTrue(self.group.is_admin(self.admin))
        self.assertConsistent()

    def test_only_participants_post(self):
        with self.assertRaises(PermissionDenied):
            self.group.add_message(self.u1, "hello")
        self.group.add_participant(self.u1)
        m1 = self.group.add_message(self.admin, "Welcome")
        m2 = self.group.add_message(self.u1, "Thanks")
        self.assertEqual(self.group.list_messages(), [m1, m2])

    def test_str(self):
        self.assertIn("Dev", str(self.group))
        self.assertIn("participants=1", str(self.group))


if __name__ == '__main__':
    unittest.main()
