"""FTP control and data channel transport for ftptree.

Provides the Reply and TransferMode types and the FTPTransport class,
which owns the control socket (plain TCP, explicit or implicit TLS),
reads multi-line replies and negotiates passive or active data
connections.
"""

import logging
import re
import socket
import ssl
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Set, Tuple

from ftptree.ftp.exceptions import (
    FTPConnectionError,
    FTPNotConnectedError,
    FTPOperationError,
    FTPProtocolError,
    FTPTimeoutError,
    redact_command,
)

logger = logging.getLogger("ftptree.transport")

CRLF = "\r\n"
DEFAULT_PORT = 21
MAX_LINE = 8192

_PASV_RE = re.compile(r"(\d+),(\d+),(\d+),(\d+),(\d+),(\d+)", re.ASCII)


class TransferMode(Enum):
    """Representation type used on the data channel."""
    BINARY = "I"
    TEXT = "A"


@dataclass
class Reply:
    """A complete (possibly multi-line) server reply."""
    code: int
    lines: List[str] = field(default_factory=list)

    @property
    def text(self) -> str:
        """Raw reply text, one server line per line."""
        return "\n".join(self.lines)

    @property
    def message(self) -> str:
        """Reply text with the code prefix stripped from each line."""
        prefix = str(self.code)
        stripped = []
        for line in self.lines:
            if line.startswith(prefix) and line[3:4] in (" ", "-", ""):
                line = line[4:]
            stripped.append(line)
        return "\n".join(stripped)

    @property
    def is_preliminary(self) -> bool:
        return 100 <= self.code < 200

    @property
    def is_completion(self) -> bool:
        return 200 <= self.code < 300

    @property
    def is_intermediate(self) -> bool:
        return 300 <= self.code < 400

    @property
    def is_success(self) -> bool:
        """True for 2xx and 3xx replies."""
        return 200 <= self.code < 400


def parse_reply_code(line: str) -> int:
    """
    Extract the reply code from the first line of a reply.

    Raises:
        FTPProtocolError: If the line does not start with a valid code
    """
    if len(line) < 3 or not line[:3].isdigit() or line[0] not in "12345":
        raise FTPProtocolError(line)
    if line[3:4] not in ("", " ", "-"):
        raise FTPProtocolError(line)
    return int(line[:3])


def parse_pasv_reply(reply: Reply) -> Tuple[str, int]:
    """Parse a '227 Entering Passive Mode (h1,h2,h3,h4,p1,p2)' reply."""
    match = _PASV_RE.search(reply.text)
    if not match:
        raise FTPProtocolError(reply.text)
    numbers = match.groups()
    host = ".".join(numbers[:4])
    port = (int(numbers[4]) << 8) + int(numbers[5])
    return host, port


def parse_epsv_reply(reply: Reply, peer_host: str) -> Tuple[str, int]:
    """Parse a '229 Entering Extended Passive Mode (|||port|)' reply."""
    text = reply.text
    left = text.find("(")
    right = text.find(")", left + 1)
    if left < 0 or right < 0 or text[left + 1] != text[right - 1]:
        raise FTPProtocolError(text)
    parts = text[left + 1:right].split(text[left + 1])
    if len(parts) != 5 or not parts[3].isdigit():
        raise FTPProtocolError(text)
    return peer_host, int(parts[3])


def parse_pwd_reply(reply: Reply) -> str:
    """
    Extract the quoted directory name from a 257 reply.

    Embedded quotes are doubled ("") per RFC 959.
    """
    text = reply.lines[0] if reply.lines else ""
    if text[3:5] != ' "':
        # Not RFC 959 compliant, but some UNIX servers answer this way
        return text[4:].strip()
    dirname = []
    i = 5
    while i < len(text):
        char = text[i]
        i += 1
        if char == '"':
            if i >= len(text) or text[i] != '"':
                break
            i += 1
        dirname.append(char)
    return "".join(dirname)


class FTPTransport:
    """Control connection plus the data connections it negotiates."""

    def __init__(self, encoding: str = "utf-8", block_size: int = 8192):
        """
        Initialize the transport.

        Args:
            encoding: Character encoding of the control channel
            block_size: Socket read size
        """
        self.encoding = encoding
        self.block_size = block_size
        self.trust_server_pasv_address = False

        self._host: Optional[str] = None
        self._port: Optional[int] = None
        self._timeout: Optional[float] = None
        self._sock: Optional[socket.socket] = None
        self._buffer = b""
        self._ssl_context: Optional[ssl.SSLContext] = None
        self._tls = False
        self._protect_data = False
        self._data_sockets: Set[socket.socket] = set()

    @property
    def is_open(self) -> bool:
        """True while the control socket is open."""
        return self._sock is not None

    @property
    def host(self) -> Optional[str]:
        return self._host

    @property
    def port(self) -> Optional[int]:
        return self._port

    @property
    def timeout(self) -> Optional[float]:
        return self._timeout

    @property
    def is_tls(self) -> bool:
        """True if the control channel is TLS protected."""
        return self._tls

    @property
    def data_protected(self) -> bool:
        """True if data connections are TLS protected (PROT P)."""
        return self._protect_data

    @property
    def open_data_sockets(self) -> int:
        """Number of data sockets currently open."""
        return len(self._data_sockets)

    def open(
        self,
        host: str,
        port: int = DEFAULT_PORT,
        timeout: float = 120,
        use_tls: bool = False,
        implicit_tls: bool = False,
        ssl_context: Optional[ssl.SSLContext] = None,
    ) -> Reply:
        """
        Open the control connection and read the welcome reply.

        Args:
            host: Server host name or address
            port: Server port
            timeout: Socket timeout in seconds
            use_tls: Negotiate explicit FTPS (AUTH TLS) after connecting
            implicit_tls: Wrap the socket in TLS before the welcome reply
            ssl_context: Optional SSL context (default context otherwise)

        Returns:
            The server's welcome reply

        Raises:
            FTPConnectionError: If the socket or TLS setup fails
            FTPTimeoutError: If the connection times out
        """
        if self._sock is not None:
            self.close()

        self._host = host
        self._port = port
        self._timeout = timeout

        try:
            self._sock = socket.create_connection((host, port), timeout=timeout)
        except socket.timeout:
            raise FTPTimeoutError("Connection", timeout)
        except OSError as e:
            raise FTPConnectionError(host, port, e)

        logger.debug(f"Control connection opened to {host}:{port}")

        try:
            if use_tls or implicit_tls:
                self._ssl_context = ssl_context or ssl.create_default_context()
            if implicit_tls:
                self._start_tls()

            welcome = self.read_reply()
            if not welcome.is_completion:
                raise FTPConnectionError(host, port, FTPOperationError("CONNECT", welcome))

            if use_tls and not implicit_tls:
                reply = self.command("AUTH TLS")
                if reply.code != 234:
                    raise FTPConnectionError(host, port, FTPOperationError("AUTH TLS", reply))
                self._start_tls()
        except Exception:
            self.close()
            raise

        return welcome

    def _start_tls(self) -> None:
        """Wrap the control socket in TLS."""
        try:
            self._sock = self._ssl_context.wrap_socket(
                self._sock,
                server_hostname=self._host
            )
        except socket.timeout:
            raise FTPTimeoutError("TLS handshake", self._timeout)
        except (ssl.SSLError, OSError) as e:
            raise FTPConnectionError(self._host, self._port, e)
        self._tls = True
        logger.debug("Control channel is now TLS protected")

    def protect_data_channel(self) -> None:
        """
        Switch data connections to TLS (PBSZ 0 + PROT P).

        Raises:
            FTPOperationError: If the server refuses protection
        """
        if not self._tls:
            raise FTPConnectionError(
                self._host, self._port,
                ValueError("data protection requires a TLS control channel")
            )
        for line in ("PBSZ 0", "PROT P"):
            reply = self.command(line)
            if not reply.is_completion:
                raise FTPOperationError(line, reply)
        self._protect_data = True

    def close(self) -> None:
        """Close every data socket and the control socket. Idempotent."""
        for data_sock in list(self._data_sockets):
            _close_quietly(data_sock)
        self._data_sockets.clear()

        if self._sock is not None:
            _close_quietly(self._sock)
            logger.debug(f"Control connection to {self._host}:{self._port} closed")

        self._sock = None
        self._buffer = b""
        self._tls = False
        self._protect_data = False

    def _require_socket(self) -> socket.socket:
        if self._sock is None:
            raise FTPNotConnectedError("Sending commands")
        return self._sock

    def send_line(self, line: str) -> None:
        """
        Send one command line terminated by CRLF.

        Raises:
            ValueError: If the line contains CR or LF characters
        """
        if "\r" in line or "\n" in line:
            raise ValueError("Command lines must not contain CR or LF")
        sock = self._require_socket()
        logger.debug(f"> {redact_command(line)}")
        try:
            sock.sendall((line + CRLF).encode(self.encoding, "surrogateescape"))
        except socket.timeout:
            raise FTPTimeoutError(f"Sending '{redact_command(line)}'", self._timeout)
        except OSError as e:
            raise FTPConnectionError(self._host, self._port, e)

    def _read_line(self) -> str:
        """Read one line from the control channel, without its terminator."""
        sock = self._require_socket()
        while True:
            index = self._buffer.find(b"\n")
            if index >= 0:
                raw = self._buffer[:index + 1]
                self._buffer = self._buffer[index + 1:]
                break
            if len(self._buffer) > MAX_LINE:
                raise FTPProtocolError(self._buffer[:80].decode(self.encoding, "replace"))
            try:
                chunk = sock.recv(self.block_size)
            except socket.timeout:
                raise FTPTimeoutError("Reading server reply", self._timeout)
            except OSError as e:
                raise FTPConnectionError(self._host, self._port, e)
            if not chunk:
                raise FTPConnectionError(
                    self._host, self._port,
                    EOFError("connection closed by server")
                )
            self._buffer += chunk

        return raw.decode(self.encoding, "surrogateescape").rstrip("\r\n")

    def read_reply(self) -> Reply:
        """
        Read a complete reply, following multi-line continuations.

        Raises:
            FTPConnectionError: On disconnect
            FTPTimeoutError: If the server does not answer in time
            FTPProtocolError: If the reply has no valid code
        """
        first = self._read_line()
        code = parse_reply_code(first)
        lines = [first]

        if first[3:4] == "-":
            while True:
                line = self._read_line()
                lines.append(line)
                if line[:3] == first[:3] and line[3:4] != "-":
                    break

        reply = Reply(code, lines)
        logger.debug(f"< {reply.text}")
        return reply

    def command(self, line: str) -> Reply:
        """Send a command and read its reply (no code checking)."""
        self.send_line(line)
        return self.read_reply()

    def open_data_connection(
        self,
        command: str,
        passive: bool = True,
        rest: Optional[int] = None
    ) -> Tuple[socket.socket, Reply]:
        """
        Negotiate a data connection and issue a transfer command.

        Args:
            command: Transfer command (RETR, STOR, LIST, ...)
            passive: Use passive mode (default) or active mode
            rest: Optional restart offset sent as REST

        Returns:
            Tuple of (data socket, preliminary reply)

        Raises:
            FTPOperationError: If the server refuses the command
            FTPConnectionError: If the data connection cannot be made
        """
        self._require_socket()

        if passive:
            host, port = self._negotiate_passive()
            try:
                conn = socket.create_connection((host, port), timeout=self._timeout)
            except socket.timeout:
                raise FTPTimeoutError("Data connection", self._timeout)
            except OSError as e:
                raise FTPConnectionError(host, port, e)
            try:
                reply = self._start_transfer(command, rest)
            except Exception:
                conn.close()
                raise
        else:
            listener = self._open_listener()
            try:
                reply = self._start_transfer(command, rest)
                try:
                    conn, _ = listener.accept()
                except socket.timeout:
                    raise FTPTimeoutError("Waiting for data connection", self._timeout)
                except OSError as e:
                    raise FTPConnectionError(self._host, self._port, e)
                conn.settimeout(self._timeout)
            finally:
                listener.close()

        if self._protect_data:
            try:
                conn = self._ssl_context.wrap_socket(
                    conn,
                    server_hostname=self._host,
                    session=getattr(self._sock, "session", None)
                )
            except (ssl.SSLError, OSError) as e:
                conn.close()
                raise FTPConnectionError(self._host, self._port, e)

        self._data_sockets.add(conn)
        return conn, reply

    def close_data_connection(self, conn: socket.socket, unwrap: bool = False) -> None:
        """
        Close a data socket opened by open_data_connection.

        Args:
            conn: Data socket
            unwrap: Send a TLS close_notify first (after uploads)
        """
        self._data_sockets.discard(conn)
        if unwrap and isinstance(conn, ssl.SSLSocket):
            try:
                conn.unwrap()
            except (ssl.SSLError, OSError):
                pass
        _close_quietly(conn)

    def _start_transfer(self, command: str, rest: Optional[int]) -> Reply:
        if rest is not None:
            reply = self.command(f"REST {rest}")
            if not reply.is_intermediate:
                raise FTPOperationError(f"REST {rest}", reply)

        reply = self.command(command)
        if reply.is_completion:
            # Some servers send a 2xx before the 1xx mark
            reply = self.read_reply()
        if not reply.is_preliminary:
            raise FTPOperationError(command, reply)
        return reply

    def _negotiate_passive(self) -> Tuple[str, int]:
        peer_host = self._sock.getpeername()[0]

        if self._sock.family == socket.AF_INET:
            reply = self.command("PASV")
            if reply.code != 227:
                raise FTPOperationError("PASV", reply)
            host, port = parse_pasv_reply(reply)
            if not self.trust_server_pasv_address:
                host = peer_host
        else:
            reply = self.command("EPSV")
            if reply.code != 229:
                raise FTPOperationError("EPSV", reply)
            host, port = parse_epsv_reply(reply, peer_host)

        return host, port

    def _open_listener(self) -> socket.socket:
        family = self._sock.family
        local_host = self._sock.getsockname()[0]

        try:
            listener = socket.socket(family, socket.SOCK_STREAM)
            listener.bind((local_host, 0))
            listener.listen(1)
            listener.settimeout(self._timeout)
        except OSError as e:
            raise FTPConnectionError(local_host, 0, e)

        port = listener.getsockname()[1]
        if family == socket.AF_INET:
            fields = local_host.split(".") + [str(port >> 8), str(port & 0xFF)]
            line = "PORT " + ",".join(fields)
        else:
            line = f"EPRT |2|{local_host}|{port}|"

        try:
            reply = self.command(line)
            if not reply.is_completion:
                raise FTPOperationError(line, reply)
        except Exception:
            listener.close()
            raise

        return listener


def _close_quietly(sock: socket.socket) -> None:
    try:
        sock.close()
    except OSError:
        pass
