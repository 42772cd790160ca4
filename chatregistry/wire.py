"""
Wire format shared by the gRPC server and client.

Every request and response is a ``google.protobuf.Struct``; handlers and
callers work with the plain dicts produced by json_format. Methods are
registered through grpc generic handlers, so no generated stubs are needed.
"""
from typing import Any, Dict

from google.protobuf import json_format
from google.protobuf.struct_pb2 import Struct

from .server.models import Conversation, Message, MutationEvent, UserProfile

SERVICE_NAME = "chatregistry.ChatRegistry"

UNARY_METHODS = (
    "RegisterUser", "GetProfile", "ListUsers",
    "EnsureDirectRoom", "SendDirectMessage", "ListDirectMessages",
    "AddContact", "RemoveContact", "ListContacts",
    "CreateGroup", "AddGroupParticipant", "RemoveGroupParticipant",
    "PromoteAdmin", "DemoteAdmin", "SendGroupMessage", "ListGroupMessages", "ListGroupMembers",
    "UpdateProfile", "UpdateStatus", "SetOnline", "ListConversations",
)
STREAM_METHODS = ("Subscribe",)


def method_path(method: str) -> str:
    return f"/{SERVICE_NAME}/{method}"


def _restore_ints(value: Any) -> Any:
    # Struct keeps every number as a double
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, dict):
        return {k: _restore_ints(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_restore_ints(v) for v in value]
    return value


def encode(payload: Dict[str, Any]) -> bytes:
    return json_format.ParseDict(payload, Struct()).SerializeToString()


def decode(data: bytes) -> Dict[str, Any]:
    return _restore_ints(json_format.MessageToDict(Struct.FromString(data)))


def profile_to_dict(profile: UserProfile) -> Dict[str, Any]:
    return {
        "id": profile.id,
        "username": profile.username,
        "online": profile.online,
        "status": profile.status.kind.value,
        "status_text": profile.status.text,
        "status_label": profile.status.label(),
    }


def message_to_dict(message: Message, sender_name: str) -> Dict[str, Any]:
    return {
        "sender_id": message.sender_id,
        "sender": sender_name,
        "content": message.content,
        "sent_ts": message.sent_ts,
        "kind": message.kind.value,
    }


def conversation_to_dict(conversation: Conversation) -> Dict[str, Any]:
    return {"kind": conversation.kind.value, "id": conversation.id, "title": conversation.title}


def event_to_dict(event: MutationEvent) -> Dict[str, Any]:
    return {"kind": event.kind, "payload": event.payload, "ts": event.ts}
