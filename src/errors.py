class RconError(Exception):
    """Base class for everything the RCON client raises."""


class RconConnectionError(RconError):
    """TCP connect failed, timed out, or the server hung up mid-request."""


class AuthenticationError(RconError):
    """The server rejected the RCON password."""


class NotAuthenticatedError(RconError):
    """A command was issued before the session authenticated."""


class CommandTimeoutError(RconError):
    """No complete response packet arrived inside the request window."""


class ProtocolDecodeError(RconError):
    """A malformed or truncated packet reached the decoder."""


class PacketEncodeError(RconError, ValueError):
    """A packet body cannot be put on the wire."""
