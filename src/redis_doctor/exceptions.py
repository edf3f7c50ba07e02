"""
Exception classes for Redis diagnostics.

Failure classes and how they propagate:
- ConnectionFailedError: Fatal. Bubbles to the top-level run loop,
  which releases the connection before exiting.
- AuthenticationFailedError: Recoverable. Triggers a credential re-prompt.
- EvaluatorFailedError: Local. Downgrades one section to critical and
  is kept on that section as Section.error.
- UnsupportedCommandError: Soft. A restricted command yields an
  informational finding and a fallback value.
- MalformedSnapshotError: Comparison only. Logged and comparison skipped.

Per project patterns:
- Inherit from Exception for base exception type
- Store context data in attributes for error handling
- Include descriptive message with relevant details
"""


class ConnectionFailedError(Exception):
    """
    Raised when the Redis server cannot be reached or the identity probe fails.

    Attributes:
        address: Display address of the server (host:port)
        reason: Underlying error message
    """

    def __init__(self, address: str, reason: str) -> None:
        self.address = address
        self.reason = reason
        super().__init__(f"Failed to connect to {address}: {reason}")


class AuthenticationFailedError(ConnectionFailedError):
    """
    Raised when the server rejects the supplied credentials.

    Subclasses ConnectionFailedError so callers that do not re-prompt
    still treat it as a connection failure.
    """

    def __init__(self, address: str, reason: str) -> None:
        super().__init__(address, reason)
        self.args = (f"Authentication failed for {address}: {reason}",)


class EvaluatorFailedError(Exception):
    """
    Recorded on the critical section that replaces a failed check.

    Attributes:
        check_name: Name of the failed check (e.g., "memory")
        cause: Original exception
    """

    def __init__(self, check_name: str, cause: BaseException) -> None:
        self.check_name = check_name
        self.cause = cause
        super().__init__(f"{check_name} check failed: {cause}")


class UnsupportedCommandError(Exception):
    """
    Raised when the server refuses an introspection command.

    Managed Redis offerings commonly disable CONFIG, SLOWLOG or CLIENT.

    Attributes:
        command: The refused command (e.g., "CONFIG GET")
        reason: Server error message
    """

    def __init__(self, command: str, reason: str) -> None:
        self.command = command
        self.reason = reason
        super().__init__(f"{command} unavailable: {reason}")


class MalformedSnapshotError(Exception):
    """
    Raised when a comparison snapshot cannot be read or validated.

    Attributes:
        path: Snapshot file path
        reason: Why the snapshot was rejected
    """

    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Malformed snapshot {path}: {reason}")
