"""FTP-specific exceptions for ftptree.

Two families of errors are raised by the client:

- FTPConnectionError and its subclasses for transport-level failures
  (socket errors, TLS failures, timeouts, unexpected disconnects).
- FTPOperationError and its subclasses for commands the server rejected
  with a failure reply code.
"""


class FTPError(Exception):
    """Base exception for all FTP-related errors."""

    def __init__(self, message: str, original_error: Exception = None):
        super().__init__(message)
        self.message = message
        self.original_error = original_error

    def __str__(self) -> str:
        if self.original_error:
            return f"{self.message}: {self.original_error}"
        return self.message


class FTPConnectionError(FTPError):
    """Failed to establish or keep the FTP control connection."""

    def __init__(self, host: str, port: int, original_error: Exception = None):
        self.host = host
        self.port = port
        message = f"Connection to {host}:{port} failed"
        super().__init__(message, original_error)


class FTPTimeoutError(FTPConnectionError):
    """FTP operation timed out."""

    def __init__(self, operation: str = "Operation", timeout: float = 120):
        self.operation = operation
        self.timeout = timeout
        self.host = None
        self.port = None
        FTPError.__init__(self, f"{operation} timed out after {timeout} seconds")


class FTPProtocolError(FTPConnectionError):
    """Server sent something that is not a valid FTP reply."""

    def __init__(self, line: str):
        self.line = line
        self.host = None
        self.port = None
        FTPError.__init__(self, f"Malformed server reply: {line!r}")


class FTPNotConnectedError(FTPError):
    """Operation attempted without active FTP connection."""

    def __init__(self, operation: str = "Operation"):
        message = f"{operation} requires an active FTP connection"
        super().__init__(message)


class FTPOperationError(FTPError):
    """The server answered a command with a failure reply."""

    def __init__(
        self,
        command: str,
        reply=None,
        original_error: Exception = None,
        message: str = None
    ):
        self.command = redact_command(command)
        self.reply = reply
        if message is None:
            message = f"Command '{self.command}' failed"
        if reply is not None:
            message = f"{message}: {reply.text}"
        super().__init__(message, original_error)

    @property
    def code(self):
        """Reply code returned by the server, if any."""
        return self.reply.code if self.reply is not None else None


class FTPAuthenticationError(FTPOperationError):
    """FTP authentication (login) failed."""

    def __init__(self, username: str, reply=None, original_error: Exception = None):
        self.username = username
        message = f"Authentication failed for user '{username}'"
        super().__init__("USER " + username, reply, original_error, message)


class FTPPathError(FTPOperationError):
    """FTP path operation failed (change directory, list, etc.)."""

    def __init__(self, path: str, operation: str, reply=None, original_error: Exception = None):
        self.path = path
        self.operation = operation
        message = f"Failed to {operation} path '{path}'"
        super().__init__(f"{operation} {path}", reply, original_error, message)


class FTPPermissionError(FTPOperationError):
    """FTP permission denied for operation."""

    def __init__(self, path: str, operation: str, reply=None, original_error: Exception = None):
        self.path = path
        self.operation = operation
        message = f"Permission denied: cannot {operation} '{path}'"
        super().__init__(f"{operation} {path}", reply, original_error, message)


class FTPTransferError(FTPOperationError):
    """File transfer over the data channel did not complete."""

    def __init__(
        self,
        remote_path: str,
        direction: str,
        reply=None,
        original_error: Exception = None
    ):
        self.remote_path = remote_path
        self.direction = direction
        message = f"Failed to {direction} '{remote_path}'"
        super().__init__(f"{direction} {remote_path}", reply, original_error, message)


def redact_command(command: str) -> str:
    """Return a loggable copy of a command line."""
    verb = command[:5].upper()
    if verb in ("PASS ", "ACCT "):
        return f"{verb}****"
    return command
