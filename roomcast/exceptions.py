"""Exception types raised by roomcast."""


class RoomcastError(Exception):
    """Base class for roomcast errors."""


class ProtocolError(RoomcastError):
    """An inbound message could not be decoded or validated."""

    def __init__(self, code: str, message: str):
        super().__init__(message)
        self.code = code
        self.message = message


class UnknownConnectionError(RoomcastError):
    """Operation referenced a connection id that is not registered."""

    def __init__(self, connection_id: str):
        super().__init__(f"Unknown connection: {connection_id}")
        self.connection_id = connection_id


class AuthenticationError(RoomcastError):
    """Client failed the connect-time token check."""
