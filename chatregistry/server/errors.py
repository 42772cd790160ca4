import grpc


class ChatError(Exception):
    """Base class for every typed failure raised by the registry.

    Attributes:
        code (grpc.StatusCode): Status used when the error crosses the RPC boundary
    """
    code = grpc.StatusCode.UNKNOWN


class NotFound(ChatError):
    """Referenced user, room or group is unknown."""
    code = grpc.StatusCode.NOT_FOUND


class AlreadyExists(ChatError):
    """Duplicate username, contact or membership-index entry."""
    code = grpc.StatusCode.ALREADY_EXISTS


class AlreadyMember(ChatError):
    code = grpc.StatusCode.ALREADY_EXISTS


class NotAMember(ChatError):
    code = grpc.StatusCode.FAILED_PRECONDITION


class AlreadyAdmin(ChatError):
    code = grpc.StatusCode.ALREADY_EXISTS


class NotAnAdmin(ChatError):
    code = grpc.StatusCode.FAILED_PRECONDITION


class PermissionDenied(ChatError):
    """Actor lacks the admin, participant or self role the action needs."""
    code = grpc.StatusCode.PERMISSION_DENIED


class ProtectedEntity(ChatError):
    """Attempt to remove or demote a group's creator."""
    code = grpc.StatusCode.FAILED_PRECONDITION


class InvalidArgument(ChatError):
    """Missing, empty or self-referential input."""
    code = grpc.StatusCode.INVALID_ARGUMENT


class IllegalState(ChatError):
    """A reverse membership index refused an update it should have accepted."""
    code = grpc.StatusCode.INTERNAL
