"""Relay exception hierarchy."""


class RelayError(Exception):
    """Base exception for all relay errors."""


class StorageError(RelayError):
    """Read or write against the state store failed."""

    def __init__(self, operation: str, message: str):
        self.operation = operation
        super().__init__(f"[{operation}] {message}")


class ProtocolError(RelayError):
    """Inbound frame could not be parsed or validated."""

    def __init__(self, message: str, msg_type: str = None):
        self.msg_type = msg_type
        super().__init__(message)
