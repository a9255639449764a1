"""
Exceptions raised inside the room coordinator and its collaborators.
"""

class CodeRoomError(Exception):
    """Base exception for the application."""
    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)

class LookupFailure(CodeRoomError):
    """Raised when the content store cannot be queried."""
    pass

class MembershipInconsistency(CodeRoomError):
    """Raised when an event names a connection/room pair that is not in the room table."""
    pass

class NotAMember(MembershipInconsistency):
    """Raised when a connection acts on a room it has not joined."""
    def __init__(self, connection_id: str, room_key: str):
        self.connection_id = connection_id
        self.room_key = room_key
        super().__init__(f"Connection {connection_id} is not a member of room {room_key}")

class TransportFailure(CodeRoomError):
    """Raised when an event cannot be delivered to a connection."""
    pass

class InvalidRoomKey(CodeRoomError):
    """Raised when a join names an empty or malformed room key."""
    pass
