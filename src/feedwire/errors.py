from __future__ import annotations


class AuthRejected(Exception):
    """Raised when a connection or request carries no valid session."""


class StoreError(Exception):
    """Raised by a store when a read or write against its backend fails."""


class ProtocolError(Exception):
    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message


class SessionStateError(Exception):
    pass
