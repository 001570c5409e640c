"""ftptree: FTP and FTPS client with recursive directory operations."""

from ftptree.client import FtpClient
from ftptree.ftp.connection import ConnectionState, FTPConnectionConfig, FTPConnectionManager
from ftptree.ftp.exceptions import (
    FTPAuthenticationError,
    FTPConnectionError,
    FTPError,
    FTPNotConnectedError,
    FTPOperationError,
    FTPPathError,
    FTPPermissionError,
    FTPProtocolError,
    FTPTimeoutError,
    FTPTransferError,
)
from ftptree.ftp.listing import DirectoryEntry, EntryType, parse_line, parse_raw_list
from ftptree.ftp.scanner import ListingOrder
from ftptree.ftp.transfer import TransferProgress, TransferResult
from ftptree.ftp.transport import Reply, TransferMode

__version__ = "1.0.0"

__all__ = [
    "FtpClient",
    "ConnectionState",
    "FTPConnectionConfig",
    "FTPConnectionManager",
    "FTPAuthenticationError",
    "FTPConnectionError",
    "FTPError",
    "FTPNotConnectedError",
    "FTPOperationError",
    "FTPPathError",
    "FTPPermissionError",
    "FTPProtocolError",
    "FTPTimeoutError",
    "FTPTransferError",
    "DirectoryEntry",
    "EntryType",
    "parse_line",
    "parse_raw_list",
    "ListingOrder",
    "TransferProgress",
    "TransferResult",
    "Reply",
    "TransferMode",
]
