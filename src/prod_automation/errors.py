from __future__ import annotations

from typing import Optional


class ActionError(Exception):
    """Base class for failures raised while running a single action."""

    label = "failed"

    def __init__(self, detail: str = ""):
        super().__init__(detail)
        self.detail = detail


class ActionNotImplemented(ActionError):
    label = "not implemented"

    def __init__(self, detail: str = "the action provider does not implement this action"):
        super().__init__(detail)


class InvalidParams(ActionError):
    label = "invalid params"


class CantConnect(ActionError):
    label = "can't connect"


class AuthenticationIssue(ActionError):
    label = "authentication issue"


class FailedCommand(ActionError):
    """A remote command signalled failure through its exit code or stderr."""

    label = "command failed"

    def __init__(self, detail: str, *, command: Optional[str] = None, stderr: Optional[str] = None):
        super().__init__(detail)
        self.command = command
        self.stderr = stderr


class FailedOther(ActionError):
    label = "failed"


class TransportError(FailedOther):
    """I/O failure inside an executor (command channel or file transfer)."""


class ConnectionFailure(Exception):
    """Base class for failures while establishing a remote session."""

    retryable = False


class ConfigFailure(ConnectionFailure):
    retryable = False


class SessionConnectionError(ConnectionFailure):
    retryable = True


class AuthenticationError(ConnectionFailure):
    retryable = False


class OtherConnectionError(ConnectionFailure):
    retryable = True
