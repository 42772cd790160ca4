import asyncio
import threading
import uuid
from typing import Any, Callable, Dict, Tuple

import grpc
from grpc import aio

from .. import wire
from .errors import ChatError, InvalidArgument
from .models import MessageType, MutationEvent, UserStatus
from .service import ChatService
from ..utils.logger import setup_logger

logger = setup_logger('chatregistry.rpc')


class EventStreams:
    """Per-subscriber event queues for the Subscribe stream.

    Events arrive from Hub observers, possibly on another thread, and are
    handed to each subscriber's asyncio queue on that subscriber's loop.
    """

    def __init__(self):
        """Initialize with no subscribers.

        Attributes:
            queues (Dict[str, Tuple[loop, asyncio.Queue]]): Subscriber ID to its loop and queue
            _lock (threading.Lock): Guards the queues dictionary
        """
        self.queues: Dict[str, Tuple[asyncio.AbstractEventLoop, asyncio.Queue]] = {}
        self._lock = threading.Lock()

    def register_queue(self, subscriber_id: str) -> asyncio.Queue:
        q = asyncio.Queue()
        with self._lock:
            self.queues[subscriber_id] = (asyncio.get_running_loop(), q)
        logger.info(f"Registered event stream {subscriber_id}")
        return q

    def remove_queue(self, subscriber_id: str):
        with self._lock:
            self.queues.pop(subscriber_id, None)
            remaining = len(self.queues)
        logger.info(f"Removed event stream {subscriber_id} ({remaining} remaining)")

    def broadcast(self, event: MutationEvent):
        """Hub observer: queue the event for every open stream."""
        data = wire.event_to_dict(event)
        with self._lock:
            targets = list(self.queues.values())
        for loop, q in targets:
            if loop.is_closed():
                continue
            loop.call_soon_threadsafe(q.put_nowait, data)


def _status(value: Any) -> UserStatus:
    try:
        return UserStatus(value)
    except ValueError:
        raise InvalidArgument(f"Unknown status: {value}")


def _kind(value: Any) -> MessageType:
    if value is None:
        return MessageType.TEXT
    try:
        return MessageType(value)
    except ValueError:
        raise InvalidArgument(f"Unknown message kind: {value}")


class ChatRegistryServicer:
    """gRPC front for ChatService.

    Every unary method takes and returns a dict carried on the wire as a
    protobuf Struct. A ChatError aborts the call with the error's status code;
    a request with missing or mistyped fields aborts with INVALID_ARGUMENT.
    """

    def __init__(self, service: ChatService):
        self.service = service
        self.streams = EventStreams()
        service.register_observer(self.streams.broadcast)

    async def _run(self, context: aio.ServicerContext, method: str, fn: Callable[[], Dict[str, Any]]):
        try:
            return fn()
        except ChatError as e:
            logger.error(f"{method}: {type(e).__name__}: {e}")
            await context.abort(e.code, str(e))
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            logger.error(f"{method}: malformed request: {e!r}")
            await context.abort(grpc.StatusCode.INVALID_ARGUMENT, f"Malformed request: {e}")

    @staticmethod
    def _messages(history):
        encoded = []
        for message, sender_name in history:
            entry = wire.message_to_dict(message, sender_name)
            entry["line"] = message.format(sender_name)
            encoded.append(entry)
        return encoded

    # -------- users --------
    async def RegisterUser(self, request: dict, context):
        return await self._run(context, "RegisterUser", lambda: {
            "user_id": self.service.register_user(request["username"]),
        })

    async def GetProfile(self, request: dict, context):
        return await self._run(context, "GetProfile", lambda: {
            "user": wire.profile_to_dict(self.service.get_profile(request["username"])),
        })

    async def ListUsers(self, request: dict, context):
        return await self._run(context, "ListUsers", lambda: {
            "users": [wire.profile_to_dict(p) for p in self.service.list_users()],
        })

    async def UpdateProfile(self, request: dict, context):
        return await self._run(context, "UpdateProfile", lambda: {
            "username": self.service.update_profile(
                request["old_name"], request.get("new_name"),
                _status(request["status"]), request.get("status_text"),
            ),
        })

    async def UpdateStatus(self, request: dict, context):
        def call():
            self.service.update_status(request["username"], _status(request["status"]), request.get("status_text"))
            return {"success": True}
        return await self._run(context, "UpdateStatus", call)

    async def SetOnline(self, request: dict, context):
        def call():
            self.service.set_online(request["username"], request["online"])
            return {"success": True}
        return await self._run(context, "SetOnline", call)

    # -------- contacts --------
    async def AddContact(self, request: dict, context):
        return await self._run(context, "AddContact", lambda: {
            "success": self.service.add_contact(request["contact"], request["owner"]),
        })

    async def RemoveContact(self, request: dict, context):
        return await self._run(context, "RemoveContact", lambda: {
            "removed": self.service.remove_contact(request["contact"], request["owner"]),
        })

    async def ListContacts(self, request: dict, context):
        return await self._run(context, "ListContacts", lambda: {
            "contacts": [wire.profile_to_dict(p) for p in self.service.list_contacts(request["owner"])],
        })

    # -------- direct rooms --------
    async def EnsureDirectRoom(self, request: dict, context):
        return await self._run(context, "EnsureDirectRoom", lambda: {
            "room_id": self.service.ensure_direct_room(request["user_a"], request["user_b"]),
        })

    async def SendDirectMessage(self, request: dict, context):
        def call():
            self.service.send_direct_message(
                int(request["room_id"]), request["sender"], request["content"], _kind(request.get("kind")),
            )
            return {"success": True}
        return await self._run(context, "SendDirectMessage", call)

    async def ListDirectMessages(self, request: dict, context):
        return await self._run(context, "ListDirectMessages", lambda: {
            "messages": self._messages(self.service.direct_history(int(request["room_id"]))),
        })

    # -------- groups --------
    async def CreateGroup(self, request: dict, context):
        return await self._run(context, "CreateGroup", lambda: {
            "group_id": self.service.create_group(request["creator"], request["name"], request.get("description")),
        })

    async def AddGroupParticipant(self, request: dict, context):
        return await self._run(context, "AddGroupParticipant", lambda: {
            "success": self.service.add_group_participant(int(request["group_id"]), request["actor"], request["target"]),
        })

    async def RemoveGroupParticipant(self, request: dict, context):
        return await self._run(context, "RemoveGroupParticipant", lambda: {
            "success": self.service.remove_group_participant(int(request["group_id"]), request["actor"], request["target"]),
        })

    async def PromoteAdmin(self, request: dict, context):
        return await self._run(context, "PromoteAdmin", lambda: {
            "success": self.service.promote_admin(int(request["group_id"]), request["actor"], request["target"]),
        })

    async def DemoteAdmin(self, request: dict, context):
        return await self._run(context, "DemoteAdmin", lambda: {
            "success": self.service.demote_admin(int(request["group_id"]), request["actor"], request["target"]),
        })

    async def SendGroupMessage(self, request: dict, context):
        def call():
            self.service.send_group_message(
                int(request["group_id"]), request["sender"], request["content"], _kind(request.get("kind")),
            )
            return {"success": True}
        return await self._run(context, "SendGroupMessage", call)

    async def ListGroupMessages(self, request: dict, context):
        return await self._run(context, "ListGroupMessages", lambda: {
            "messages": self._messages(self.service.group_history(int(request["group_id"]))),
        })

    async def ListGroupMembers(self, request: dict, context):
        def call():
            group_id = int(request["group_id"])
            return {
                "participants": [wire.profile_to_dict(p) for p in self.service.list_group_participants(group_id)],
                "admins": [wire.profile_to_dict(p) for p in self.service.list_group_admins(group_id)],
            }
        return await self._run(context, "ListGroupMembers", call)

    async def ListConversations(self, request: dict, context):
        return await self._run(context, "ListConversations", lambda: {
            "conversations": [
                wire.conversation_to_dict(c) for c in self.service.list_conversations_for_user(request["username"])
            ],
        })

    # -------- events --------
    async def Subscribe(self, request: dict, context):
        """Stream every mutation event raised while the caller stays connected.

        Yields:
            dict: Encoded MutationEvent
        """
        subscriber_id = uuid.uuid4().hex[:12]
        q = self.streams.register_queue(subscriber_id)
        logger.info(f"Subscribe: stream {subscriber_id} opened for {request.get('username') or 'anonymous'}")
        try:
            while True:
                yield await q.get()
        finally:
            self.streams.remove_queue(subscriber_id)


def add_registry_servicer_to_server(servicer: ChatRegistryServicer, server):
    """Register the servicer's methods under wire.SERVICE_NAME."""
    handlers = {
        method: grpc.unary_unary_rpc_method_handler(
            getattr(servicer, method),
            request_deserializer=wire.decode,
            response_serializer=wire.encode,
        )
        for method in wire.UNARY_METHODS
    }
    for method in wire.STREAM_METHODS:
        handlers[method] = grpc.unary_stream_rpc_method_handler(
            getattr(servicer, method),
            request_deserializer=wire.decode,
            response_serializer=wire.encode,
        )
    server.add_generic_rpc_handlers((grpc.method_handlers_generic_handler(wire.SERVICE_NAME, handlers),))
