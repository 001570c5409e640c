"""FTP connection management for ftptree.

Provides ConnectionState enum, FTPConnectionConfig dataclass,
and FTPConnectionManager class, which owns one FTP session and
issues one FTP command per method over an FTPTransport.
"""

import logging
import os
import socket
import ssl
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import BinaryIO, Callable, Dict, Iterator, List, Optional, Tuple

from ftptree.ftp.exceptions import (
    FTPAuthenticationError,
    FTPConnectionError,
    FTPError,
    FTPNotConnectedError,
    FTPOperationError,
    FTPPathError,
    FTPProtocolError,
    FTPTimeoutError,
    FTPTransferError,
)
from ftptree.ftp.transport import (
    DEFAULT_PORT,
    FTPTransport,
    Reply,
    TransferMode,
    parse_pwd_reply,
)
from ftptree.utils.validators import (
    validate_host,
    validate_permissions_mode,
    validate_port,
    validate_timeout,
)

logger = logging.getLogger("ftptree.connection")

# Uploads above this size may be confirmed with SIZE when the final reply is lost
LARGE_FILE_THRESHOLD = 10 * 1024 * 1024

# Callback receiving each block sent or received on the data channel
BlockCallback = Callable[[bytes], None]


class ConnectionState(Enum):
    """FTP connection state."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


@dataclass
class FTPConnectionConfig:
    """FTP connection configuration."""
    host: str
    port: int = DEFAULT_PORT
    username: str = "anonymous"
    account: str = ""
    use_tls: bool = False
    implicit_tls: bool = False
    passive_mode: bool = True
    timeout: int = 120
    encoding: str = "utf-8"
    large_file_threshold: int = LARGE_FILE_THRESHOLD
    block_size: int = 8192
    ssl_context: Optional[ssl.SSLContext] = field(default=None, repr=False, compare=False)

    def __post_init__(self):
        """Validate configuration after initialization."""
        for is_valid, error in (
            validate_host(self.host),
            validate_port(self.port),
            validate_timeout(self.timeout),
        ):
            if not is_valid:
                raise ValueError(error)
        if self.block_size <= 0:
            raise ValueError(f"Block size must be positive, got {self.block_size}")
        if self.large_file_threshold < 0:
            raise ValueError(
                f"Large file threshold must not be negative, got {self.large_file_threshold}"
            )

    @property
    def uses_tls(self) -> bool:
        """True if either TLS flavour is enabled."""
        return self.use_tls or self.implicit_tls


class FTPConnectionManager:
    """Manages one FTP session and the commands issued over it."""

    def __init__(self):
        """Initialize the connection manager."""
        self._transport: Optional[FTPTransport] = None
        self._config: Optional[FTPConnectionConfig] = None
        self._state = ConnectionState.DISCONNECTED
        self._connected_at: Optional[datetime] = None
        self._last_activity: Optional[datetime] = None
        self._error_message: Optional[str] = None
        self._welcome: Optional[str] = None
        self._passive = True
        self._current_type: Optional[TransferMode] = None

    @property
    def state(self) -> ConnectionState:
        """Current connection state."""
        return self._state

    @property
    def is_connected(self) -> bool:
        """True if currently connected."""
        return self._state == ConnectionState.CONNECTED

    @property
    def config(self) -> Optional[FTPConnectionConfig]:
        """Current connection configuration."""
        return self._config

    @property
    def connected_at(self) -> Optional[datetime]:
        """Timestamp when connection was established."""
        return self._connected_at

    @property
    def last_activity(self) -> Optional[datetime]:
        """Timestamp of last successful operation."""
        return self._last_activity

    @property
    def error_message(self) -> Optional[str]:
        """Last error message if state is ERROR."""
        return self._error_message

    @property
    def welcome(self) -> Optional[str]:
        """Welcome message sent by the server."""
        return self._welcome

    @property
    def passive_mode(self) -> bool:
        """True if data connections use passive mode."""
        return self._passive

    @property
    def transport(self) -> FTPTransport:
        """
        Get the underlying transport.

        Raises:
            FTPNotConnectedError: If not connected
        """
        if not self.is_connected or self._transport is None:
            raise FTPNotConnectedError("FTP access")
        return self._transport

    def connect(self, config: FTPConnectionConfig, password: str = "") -> None:
        """
        Establish FTP connection.

        Args:
            config: Connection configuration
            password: FTP password

        Raises:
            FTPConnectionError: If connection fails
            FTPAuthenticationError: If login fails
            FTPTimeoutError: If connection times out
        """
        if self._transport is not None:
            self.disconnect()

        self._config = config
        self._state = ConnectionState.CONNECTING
        self._error_message = None
        self._current_type = None

        try:
            self._transport = FTPTransport(
                encoding=config.encoding,
                block_size=config.block_size
            )
            welcome = self._transport.open(
                host=config.host,
                port=config.port,
                timeout=config.timeout,
                use_tls=config.use_tls,
                implicit_tls=config.implicit_tls,
                ssl_context=config.ssl_context,
            )
            self._welcome = welcome.message

            self._login(config.username, password, config.account)

            if config.uses_tls:
                self._transport.protect_data_channel()

            self._passive = config.passive_mode

            # Connection successful
            self._state = ConnectionState.CONNECTED
            self._connected_at = datetime.now()
            self._last_activity = self._connected_at
            logger.info(f"Connected to {config.host}:{config.port} as {config.username}")

        except FTPError as e:
            self._fail(str(e))
            raise
        except Exception as e:
            self._fail(str(e))
            raise FTPConnectionError(config.host, config.port, e)

    def _fail(self, message: str) -> None:
        self._state = ConnectionState.ERROR
        self._error_message = message
        if self._transport is not None:
            self._transport.close()
        self._transport = None

    def disconnect(self) -> None:
        """Close FTP connection gracefully. Safe to call more than once."""
        if self._transport is not None:
            if self._transport.is_open:
                try:
                    self._transport.command("QUIT")
                except FTPError as e:
                    # Best effort, the socket is closed below anyway
                    logger.debug(f"QUIT failed: {e}")
            self._transport.close()

        self._transport = None
        self._state = ConnectionState.DISCONNECTED
        self._connected_at = None
        self._current_type = None

    def __enter__(self) -> "FTPConnectionManager":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.disconnect()

    def _update_activity(self) -> None:
        """Update last activity timestamp."""
        self._last_activity = datetime.now()

    # Command plumbing

    @contextmanager
    def _guard(self) -> Iterator[None]:
        """Fail the session when the control connection is lost mid-command.

        After a timeout the next reply on the control channel may belong
        to the interrupted command, so the session cannot be reused.
        """
        try:
            yield
        except FTPConnectionError as e:
            if self._state == ConnectionState.CONNECTED:
                logger.error(f"Connection lost: {e}")
                self._fail(str(e))
            raise

    def _send(self, line: str) -> Reply:
        """Send a command and return the reply without checking its code."""
        with self._guard():
            reply = self.transport.command(line)
        self._update_activity()
        return reply

    def _expect(self, line: str) -> Reply:
        """Send a command, raising FTPOperationError unless it succeeds."""
        reply = self._send(line)
        if not reply.is_success:
            raise FTPOperationError(line, reply)
        return reply

    def _expect_path(self, line: str, path: str, operation: str) -> Reply:
        reply = self._send(line)
        if not reply.is_success:
            raise FTPPathError(path, operation, reply)
        return reply

    def _login(self, username: str, password: str, account: str = "") -> Reply:
        if not username:
            username = "anonymous"
        if username == "anonymous" and password in ("", "-"):
            password += "anonymous@"

        transport = self._transport
        reply = transport.command(f"USER {username}")
        if reply.is_intermediate:
            reply = transport.command(f"PASS {password}")
        if reply.code == 332 and account:
            reply = transport.command(f"ACCT {account}")
        if not reply.is_completion:
            raise FTPAuthenticationError(username, reply)
        return reply

    def _set_type(self, mode: TransferMode) -> None:
        if self._current_type != mode:
            self._expect(f"TYPE {mode.value}")
            self._current_type = mode

    # Session commands

    def login(self, username: str = "anonymous", password: str = "", account: str = "") -> str:
        """
        Log in (again) on the open connection.

        Returns:
            Server reply message

        Raises:
            FTPAuthenticationError: If the server rejects the credentials
        """
        if not self.is_connected:
            raise FTPNotConnectedError("Login")
        with self._guard():
            reply = self._login(username, password, account)
        self._update_activity()
        return reply.message

    def set_passive(self, passive: bool) -> None:
        """Turn passive mode on or off for later data connections."""
        self._passive = passive

    def noop(self) -> None:
        """Send NOOP, e.g. to keep the connection alive."""
        self._expect("NOOP")

    def pwd(self) -> str:
        """
        Get current working directory.

        Returns:
            Current directory path
        """
        return parse_pwd_reply(self._expect("PWD"))

    def chdir(self, path: str) -> None:
        """
        Change current working directory.

        Raises:
            FTPPathError: If the server refuses the change
        """
        self._expect_path(f"CWD {path}", path, "change directory to")

    def cdup(self) -> None:
        """Change to the parent directory."""
        self._expect_path("CDUP", "..", "change directory to")

    def mkdir(self, path: str) -> str:
        """
        Create a directory.

        Returns:
            Path of the new directory as reported by the server
        """
        reply = self._expect_path(f"MKD {path}", path, "create")
        if reply.code == 257:
            return parse_pwd_reply(reply) or path
        return path

    def rmdir(self, path: str) -> None:
        """Remove an empty directory."""
        self._expect_path(f"RMD {path}", path, "remove directory")

    def delete(self, path: str) -> None:
        """Delete a file."""
        self._expect_path(f"DELE {path}", path, "delete")

    def rename(self, old_path: str, new_path: str) -> None:
        """Rename a file or directory (RNFR/RNTO)."""
        reply = self._send(f"RNFR {old_path}")
        if not reply.is_intermediate:
            raise FTPPathError(old_path, "rename", reply)
        self._expect_path(f"RNTO {new_path}", old_path, "rename")

    def chmod(self, mode: int, path: str) -> None:
        """
        Set permissions with SITE CHMOD.

        Args:
            mode: Permission bits, e.g. 0o644
            path: Remote path
        """
        is_valid, error = validate_permissions_mode(mode)
        if not is_valid:
            raise ValueError(error)
        self._expect_path(f"SITE CHMOD {mode:o} {path}", path, "chmod")

    def chown(self, owner: str, path: str) -> None:
        """Change the owner with SITE CHOWN (server extension)."""
        self._expect_path(f"SITE CHOWN {owner} {path}", path, "chown")

    def chgrp(self, group: str, path: str) -> None:
        """Change the group with SITE CHGRP (server extension)."""
        self._expect_path(f"SITE CHGRP {group} {path}", path, "chgrp")

    def size(self, path: str) -> int:
        """
        Get the size of a remote file in bytes.

        Raises:
            FTPPathError: If the server cannot report a size
        """
        # Several servers refuse SIZE in ASCII mode
        self._set_type(TransferMode.BINARY)
        reply = self._expect_path(f"SIZE {path}", path, "get size of")
        return _parse_size(reply)

    def modified_time(self, path: str) -> datetime:
        """
        Get the last modification time of a remote file (MDTM).

        Returns:
            Timezone-aware UTC datetime
        """
        reply = self._expect_path(f"MDTM {path}", path, "get modification time of")
        value = reply.message.strip()
        try:
            stamp = datetime.strptime(value[:14], "%Y%m%d%H%M%S")
        except ValueError:
            raise FTPProtocolError(reply.text)
        return stamp.replace(tzinfo=timezone.utc)

    def systype(self) -> str:
        """Return the system type identifier of the server (SYST)."""
        message = self._expect("SYST").message.strip()
        return message.split()[0] if message else ""

    def help(self) -> List[str]:
        """Return the server's HELP reply lines."""
        return self._expect("HELP").lines

    def site(self, command: str) -> str:
        """Send a SITE command, returning the reply message."""
        return self._expect(f"SITE {command}").message

    def exec_command(self, command: str) -> str:
        """Request execution of a command on the server (SITE EXEC)."""
        return self._expect(f"SITE EXEC {command}").message

    def alloc(self, size: int) -> str:
        """Allocate space for a file to be uploaded (ALLO)."""
        return self._expect(f"ALLO {int(size)}").message

    def raw(self, command: str) -> List[str]:
        """
        Send an arbitrary command.

        Returns:
            The reply lines, whatever the reply code
        """
        return self._send(command).lines

    # Data channel

    @contextmanager
    def _data_channel(
        self,
        command: str,
        rest: Optional[int] = None,
        unwrap: bool = False
    ) -> Iterator[socket.socket]:
        transport = self.transport
        conn, _ = transport.open_data_connection(command, passive=self._passive, rest=rest)
        try:
            yield conn
        finally:
            transport.close_data_connection(conn, unwrap=unwrap)

    def _recv(self, conn: socket.socket) -> bytes:
        try:
            return conn.recv(self._config.block_size)
        except socket.timeout:
            raise FTPTimeoutError("Data transfer", self._config.timeout)
        except OSError as e:
            raise FTPConnectionError(self._config.host, self._config.port, e)

    def _sendall(self, conn: socket.socket, data: bytes) -> None:
        try:
            conn.sendall(data)
        except socket.timeout:
            raise FTPTimeoutError("Data transfer", self._config.timeout)
        except OSError as e:
            raise FTPConnectionError(self._config.host, self._config.port, e)

    def _finish_transfer(self, command: str) -> Reply:
        """Read the final reply of a transfer; it must be 2xx."""
        reply = self.transport.read_reply()
        self._update_activity()
        if not reply.is_completion:
            raise FTPOperationError(command, reply)
        return reply

    def _retrieve_lines(self, command: str) -> List[str]:
        self._set_type(TransferMode.TEXT)
        encoding = self._config.encoding
        data = bytearray()

        with self._guard():
            with self._data_channel(command) as conn:
                while True:
                    block = self._recv(conn)
                    if not block:
                        break
                    data.extend(block)

            self._finish_transfer(command)
        text = bytes(data).decode(encoding, "surrogateescape")
        return [line.rstrip("\r") for line in text.split("\n") if line.rstrip("\r")]

    def nlist(self, path: str = "") -> List[str]:
        """
        List names in a directory (NLST).

        Args:
            path: Directory path (current directory if empty)

        Returns:
            Names as returned by the server
        """
        return self._retrieve_lines(f"NLST {path}" if path else "NLST")

    def rawlist(self, path: str = "") -> List[str]:
        """
        List a directory in the server's long format (LIST).

        Returns:
            Raw listing lines
        """
        return self._retrieve_lines(f"LIST {path}" if path else "LIST")

    def mlsd(self, path: str = "") -> List[Tuple[str, Dict[str, str]]]:
        """
        List a directory in machine-readable form (MLSD).

        Returns:
            List of (name, facts) tuples, fact names lowercased
        """
        entries = []
        for line in self._retrieve_lines(f"MLSD {path}" if path else "MLSD"):
            facts_found, _, name = line.partition(" ")
            facts = {}
            for fact in facts_found[:-1].split(";"):
                key, _, value = fact.partition("=")
                if key:
                    facts[key.lower()] = value
            entries.append((name, facts))
        return entries

    def get(
        self,
        stream: BinaryIO,
        remote_path: str,
        mode: TransferMode = TransferMode.BINARY,
        resume_pos: int = 0,
        callback: Optional[BlockCallback] = None
    ) -> int:
        """
        Download a remote file into a binary stream.

        Args:
            stream: Writable binary stream
            remote_path: Remote file path
            mode: BINARY, or TEXT to convert CRLF line ends to LF
            resume_pos: Offset to resume from (REST)
            callback: Called with each block written to the stream

        Returns:
            Number of bytes written to the stream

        Raises:
            FTPTransferError: If the server does not confirm the transfer
        """
        self._set_type(mode)
        command = f"RETR {remote_path}"
        written = 0
        pending = b""

        try:
            with self._guard():
                with self._data_channel(command, rest=resume_pos or None) as conn:
                    while True:
                        block = self._recv(conn)
                        if not block:
                            break
                        if mode == TransferMode.TEXT:
                            block = pending + block
                            pending = b""
                            if block.endswith(b"\r"):
                                pending = b"\r"
                                block = block[:-1]
                            block = block.replace(b"\r\n", b"\n")
                        if block:
                            stream.write(block)
                            written += len(block)
                            if callback:
                                callback(block)
                if pending:
                    stream.write(pending)
                    written += len(pending)

                self._finish_transfer(command)
        except FTPOperationError as e:
            raise FTPTransferError(remote_path, "download", e.reply, e)

        return written

    def put(
        self,
        stream: BinaryIO,
        remote_path: str,
        mode: TransferMode = TransferMode.BINARY,
        start_pos: int = 0,
        callback: Optional[BlockCallback] = None
    ) -> int:
        """
        Upload a binary stream to a remote file (STOR).

        The transfer only counts as successful once the data connection
        is closed and the server confirms with a 2xx reply. For streams
        larger than the configured large-file threshold, a confirmation
        that never arrives is tolerated when SIZE on the remote file
        matches the local size.

        Args:
            stream: Readable binary stream
            remote_path: Remote file path
            mode: BINARY, or TEXT to send LF line ends as CRLF
            start_pos: Offset in both files to restart from (REST)
            callback: Called with each block sent

        Returns:
            Number of bytes sent

        Raises:
            FTPTransferError: If the server rejects or does not confirm the transfer
        """
        local_size = _stream_size(stream)
        if start_pos:
            stream.seek(start_pos)
        return self._store("STOR", stream, remote_path, mode, start_pos, callback, local_size)

    def append(
        self,
        stream: BinaryIO,
        remote_path: str,
        mode: TransferMode = TransferMode.BINARY,
        callback: Optional[BlockCallback] = None
    ) -> int:
        """Append a binary stream to a remote file (APPE)."""
        return self._store("APPE", stream, remote_path, mode, 0, callback, None)

    def _store(
        self,
        verb: str,
        stream: BinaryIO,
        remote_path: str,
        mode: TransferMode,
        start_pos: int,
        callback: Optional[BlockCallback],
        local_size: Optional[int]
    ) -> int:
        self._set_type(mode)
        command = f"{verb} {remote_path}"
        sent = 0

        with self._guard():
            try:
                with self._data_channel(command, rest=start_pos or None, unwrap=True) as conn:
                    for block in self._outgoing_blocks(stream, mode):
                        self._sendall(conn, block)
                        sent += len(block)
                        if callback:
                            callback(block)
            except FTPOperationError as e:
                raise FTPTransferError(remote_path, "upload", e.reply, e)

            try:
                reply = self.transport.read_reply()
            except FTPTimeoutError:
                if self._upload_landed(remote_path, local_size):
                    return sent
                raise

        self._update_activity()
        if not reply.is_completion:
            raise FTPTransferError(remote_path, "upload", reply)
        return sent

    def _outgoing_blocks(self, stream: BinaryIO, mode: TransferMode) -> Iterator[bytes]:
        if mode == TransferMode.TEXT:
            while True:
                line = stream.readline()
                if not line:
                    break
                if line.endswith(b"\n") and not line.endswith(b"\r\n"):
                    line = line[:-1] + b"\r\n"
                yield line
        else:
            while True:
                block = stream.read(self._config.block_size)
                if not block:
                    break
                yield block

    def _upload_landed(self, remote_path: str, local_size: Optional[int]) -> bool:
        """Check a large upload whose confirmation never arrived."""
        threshold = self._config.large_file_threshold
        if local_size is None or local_size <= threshold:
            return False

        logger.warning(
            f"No confirmation after uploading {remote_path} ({local_size} bytes), "
            f"checking remote size"
        )
        try:
            self._command_after_lost_reply("TYPE I")
            self._current_type = TransferMode.BINARY
            reply = self._command_after_lost_reply(f"SIZE {remote_path}")
            remote_size = _parse_size(reply)
        except FTPOperationError as e:
            logger.warning(f"Could not verify {remote_path}: {e}")
            return False

        if remote_size == local_size:
            logger.info(f"Upload of {remote_path} verified by size")
            return True
        return False

    def _command_after_lost_reply(self, line: str) -> Reply:
        """Send a command, skipping a late transfer confirmation if one arrives first."""
        transport = self.transport
        transport.send_line(line)
        reply = transport.read_reply()
        if reply.code in (226, 250):
            reply = transport.read_reply()
        self._update_activity()
        if not reply.is_success:
            raise FTPOperationError(line, reply)
        return reply


def _parse_size(reply: Reply) -> int:
    value = reply.message.strip()
    try:
        return int(value.split()[0])
    except (ValueError, IndexError):
        raise FTPProtocolError(reply.text)


def _stream_size(stream: BinaryIO) -> Optional[int]:
    """Total size of a seekable stream, or None."""
    try:
        position = stream.tell()
        stream.seek(0, os.SEEK_END)
        size = stream.tell()
        stream.seek(position)
    except (AttributeError, OSError, ValueError):
        return None
    return size
