"""FTP protocol module for ftptree.

This module handles all FTP-related functionality:
- FTPTransport: Control and data channel sockets, TLS, reply reading
- FTPConnectionManager: One command per method with state tracking
- Listing: UNIX long listing parser
- DirectoryScanner: Recursive listings, sizes and counts
- RemoteTree: Recursive mkdir and delete
- TreeTransfer: File, content and tree transfers
- Exceptions: FTP-specific error types
"""
