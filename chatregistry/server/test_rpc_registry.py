import asyncio
import unittest

import grpc
from google.protobuf.struct_pb2 import Struct

from chatregistry import wire
from chatregistry.server.rpc import ChatRegistryServicer, add_registry_servicer_to_server
from chatregistry.server.service import ChatService


class Aborted(Exception):
    def __init__(self, code, details):
        super().__init__(details)
        self.code = code
        self.details = details


class FakeContext:
    async def abort(self, code, details):
        raise Aborted(code, details)


class TestRPCRegistry(unittest.TestCase):
    def setUp(self):
        self.service = ChatService()
        self.servicer = ChatRegistryServicer(self.service)
        self.context = FakeContext()

    def call(self, method, **request):
        return asyncio.run(getattr(self.servicer, method)(request, self.context))

    def assertAborts(self, code, method, **request):
        with self.assertRaises(Aborted) as cm:
            self.call(method, **request)
        self.assertEqual(cm.exception.code, code)
        return cm.exception

    def test_register_and_list_users(self):
        resp = self.call("RegisterUser", username="Alice")
        self.assertEqual(resp, {"user_id": 1000})
        self.assertAborts(grpc.StatusCode.ALREADY_EXISTS, "RegisterUser", username="Alice")
        users = self.call("ListUsers")["users"]
        self.assertEqual(users[0]["username"], "Alice")
        self.assertEqual(users[0]["status"], "AVAILABLE")

    def test_direct_message_flow(self):
        self.call("RegisterUser", username="Alice")
        self.call("RegisterUser", username="Bob")
        room_id = self.call("EnsureDirectRoom", user_a="Alice", user_b="Bob")["room_id"]
        self.assertEqual(self.call("EnsureDirectRoom", user_a="Bob", user_b="Alice")["room_id"], room_id)
        self.call("SendDirectMessage", room_id=room_id, sender="Alice", content="hi")
        self.call("SendDirectMessage", room_id=room_id, sender="Bob", content="yo")
        messages = self.call("ListDirectMessages", room_id=room_id)["messages"]
        self.assertEqual([m["content"] for m in messages], ["hi", "yo"])
        self.assertEqual(messages[1]["sender"], "Bob")
        self.assertTrue(messages[0]["line"].endswith("Alice: hi"))

    def test_history_follows_renames(self):
        self.call("RegisterUser", username="Alice")
        self.call("RegisterUser", username="Bob")
        room_id = self.call("EnsureDirectRoom", user_a="Alice", user_b="Bob")["room_id"]
        self.call("SendDirectMessage", room_id=room_id, sender="Alice", content="hi")
        self.call("UpdateProfile", old_name="Alice", new_name="Alicia", status="AVAILABLE")
        message = self.call("ListDirectMessages", room_id=room_id)["messages"][0]
        self.assertEqual(message["sender"], "Alicia")
        self.assertTrue(message["line"].endswith("Alicia: hi"))

    def test_mistyped_fields_are_invalid_argument(self):
        self.assertAborts(grpc.StatusCode.INVALID_ARGUMENT, "RegisterUser", username=5)
        self.assertEqual(self.call("ListUsers")["users"], [])
        self.call("RegisterUser", username="Alice")
        self.call("RegisterUser", username="Bob")
        room_id = self.call("EnsureDirectRoom", user_a="Alice", user_b="Bob")["room_id"]
        self.assertAborts(grpc.StatusCode.INVALID_ARGUMENT, "SendDirectMessage",
                          room_id=room_id, sender="Alice", content=42)
        self.assertEqual(self.call("ListDirectMessages", room_id=room_id)["messages"], [])
        self.assertAborts(grpc.StatusCode.INVALID_ARGUMENT, "UpdateProfile",
                          old_name="Alice", new_name=["x"], status="BUSY")
        self.assertAborts(grpc.StatusCode.INVALID_ARGUMENT, "SetOnline", username="Alice", online="false")
        user = self.call("GetProfile", username="Alice")["user"]
        self.assertTrue(user["online"])
        self.assertEqual(user["status"], "AVAILABLE")
        self.call("SetOnline", username="Alice", online=False)
        self.assertFalse(self.call("GetProfile", username="Alice")["user"]["online"])

    def test_errors_map_to_status_codes(self):
        self.call("RegisterUser", username="Admin")
        self.call("RegisterUser", username="U1")
        self.call("RegisterUser", username="U2")
        group_id = self.call("CreateGroup", creator="Admin", name="Dev")["group_id"]
        self.call("AddGroupParticipant", group_id=group_id, actor="Admin", target="U1")

        self.assertAborts(grpc.StatusCode.NOT_FOUND, "ListGroupMessages", group_id=9999)
        self.assertAborts(grpc.StatusCode.ALREADY_EXISTS, "AddGroupParticipant",
                          group_id=group_id, actor="Admin", target="U1")
        self.assertAborts(grpc.StatusCode.PERMISSION_DENIED, "AddGroupParticipant",
                          group_id=group_id, actor="U1", target="U2")
        self.assertAborts(grpc.StatusCode.FAILED_PRECONDITION, "RemoveGroupParticipant",
                          group_id=group_id, actor="Admin", target="Admin")
        self.assertAborts(grpc.StatusCode.INVALID_ARGUMENT, "UpdateStatus", username="U1", status="NAPPING")
        self.assertAborts(grpc.StatusCode.INVALID_ARGUMENT, "CreateGroup", name="missing creator")

    def test_group_members_and_conversations(self):
        self.call("RegisterUser", username="Admin")
        self.call("RegisterUser", username="U1")
        group_id = self.call("CreateGroup", creator="Admin", name="Dev", description="devs")["group_id"]
        self.call("AddGroupParticipant", group_id=group_id, actor="Admin", target="U1")
        self.call("PromoteAdmin", group_id=group_id, actor="Admin", target="U1")
        members = self.call("ListGroupMembers", group_id=group_id)
        self.assertEqual([u["username"] for u in members["participants"]], ["Admin", "U1"])
        self.assertEqual([u["username"] for u in members["admins"]], ["Admin", "U1"])
        self.call("DemoteAdmin", group_id=group_id, actor="Admin", target="U1")
        conversations = self.call("ListConversations", username="U1")["conversations"]
        self.assertEqual(conversations, [{"kind": "group", "id": group_id, "title": "Dev"}])

    def test_update_profile(self):
        self.call("RegisterUser", username="Alice")
        resp = self.call("UpdateProfile", old_name="Alice", new_name="Alice2",
                         status="CUSTOM", status_text="at the gym")
        self.assertEqual(resp, {"username": "Alice2"})
        user = self.call("GetProfile", username="Alice2")["user"]
        self.assertEqual(user["status_text"], "at the gym")
        self.assertEqual(user["status_label"], "at the gym")

    def test_contacts(self):
        self.call("RegisterUser", username="Alice")
        self.call("RegisterUser", username="Bob")
        self.call("AddContact", contact="Bob", owner="Alice")
        self.assertAborts(grpc.StatusCode.ALREADY_EXISTS, "AddContact", contact="Bob", owner="Alice")
        contacts = self.call("ListContacts", owner="Alice")["contacts"]
        self.assertEqual([c["username"] for c in contacts], ["Bob"])
        self.assertEqual(self.call("RemoveContact", contact="Bob", owner="Alice"), {"removed": True})

    def test_subscribe_streams_events(self):
        async def scenario():
            stream = self.servicer.Subscribe({"username": "watcher"}, self.context)
            first = asyncio.ensure_future(stream.__anext__())
            await asyncio.sleep(0)
            self.service.register_user("Alice")
            event = await asyncio.wait_for(first, timeout=1)
            await stream.aclose()
            return event

        event = asyncio.run(scenario())
        self.assertEqual(event["kind"], "user_registered")
        self.assertEqual(event["payload"]["username"], "Alice")
        self.assertEqual(self.servicer.streams.queues, {})

    def test_handlers_registered_for_every_method(self):
        registered = []

        class FakeServer:
            def add_generic_rpc_handlers(self, handlers):
                registered.extend(handlers)

        add_registry_servicer_to_server(self.servicer, FakeServer())
        self.assertEqual(len(registered), 1)
        self.assertEqual(registered[0].service_name(), wire.SERVICE_NAME)


class TestWire(unittest.TestCase):
    def test_codec(self):
        payload = {"username": "Zoë", "room_id": 1000, "online": False, "user_ids": [1000, 1001],
                   "event": {"ts": 1700000000123, "ratio": 0.5}, "text": None}
        decoded = wire.decode(wire.encode(payload))
        self.assertEqual(decoded, payload)
        self.assertIsInstance(decoded["room_id"], int)
        self.assertIsInstance(decoded["user_ids"][1], int)
        self.assertIsInstance(decoded["event"]["ts"], int)
        self.assertIsInstance(decoded["online"], bool)

    def test_payload_is_a_protobuf_struct(self):
        data = wire.encode({"username": "Alice", "room_id": 1000})
        message = Struct.FromString(data)
        self.assertEqual(message["username"], "Alice")
        self.assertEqual(message["room_id"], 1000)
        self.assertEqual(wire.encode({}), b"")
        self.assertEqual(wire.decode(b""), {})
        self.assertEqual(wire.method_path("RegisterUser"), "/chatregistry.ChatRegistry/RegisterUser")


if __name__ == '__main__':
    unittest.main()
