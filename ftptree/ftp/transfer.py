"""File and tree transfers for ftptree.

Handles uploading and downloading single files, in-memory content
and whole directory trees.
"""

import io
import logging
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Union

from ftptree.ftp.connection import FTPConnectionManager
from ftptree.ftp.exceptions import FTPNotConnectedError, FTPOperationError, FTPPathError
from ftptree.ftp.listing import join_remote
from ftptree.ftp.scanner import DirectoryScanner
from ftptree.ftp.transport import TransferMode
from ftptree.utils.validators import validate_file_path, validate_local_directory

logger = logging.getLogger("ftptree.transfer")

UPLOAD = "upload"
DOWNLOAD = "download"


@dataclass
class TransferProgress:
    """Progress information for a file transfer."""
    remote_path: str
    file_name: str
    bytes_done: int
    bytes_total: int

    @property
    def percent(self) -> float:
        """Transfer progress as percentage (0-100)."""
        if self.bytes_total == 0:
            return 0.0
        return (self.bytes_done / self.bytes_total) * 100.0


@dataclass
class TransferResult:
    """Result of transferring a single file within a tree."""
    local_path: str
    remote_path: str
    direction: str
    success: bool
    error_message: Optional[str] = None
    bytes_transferred: int = 0
    duration_seconds: float = 0.0


# Type alias for progress callback
ProgressCallback = Callable[[TransferProgress], None]

PathLike = Union[str, Path]


class TreeTransfer:
    """Moves files and directory trees between local disk and the server."""

    def __init__(self, connection: FTPConnectionManager, scanner: DirectoryScanner):
        """
        Initialize the transfer helper.

        Args:
            connection: Active FTP connection manager
            scanner: Scanner sharing the same connection
        """
        self._connection = connection
        self._scanner = scanner
        self._cancelled = threading.Event()

    @property
    def is_cancelled(self) -> bool:
        """True if the current tree transfer was cancelled."""
        return self._cancelled.is_set()

    def cancel(self) -> None:
        """Stop the current tree transfer before its next file."""
        self._cancelled.set()

    def reset_cancel(self) -> None:
        """Reset cancellation flag for new operation."""
        self._cancelled.clear()

    def _require_connection(self, operation: str) -> FTPConnectionManager:
        if not self._connection.is_connected:
            raise FTPNotConnectedError(operation)
        return self._connection

    def _progress_callback(
        self,
        remote_path: str,
        file_name: str,
        total: int,
        on_progress: Optional[ProgressCallback]
    ) -> Optional[Callable[[bytes], None]]:
        if on_progress is None:
            return None

        done = 0

        def callback(block: bytes) -> None:
            nonlocal done
            done += len(block)
            on_progress(TransferProgress(
                remote_path=remote_path,
                file_name=file_name,
                bytes_done=done,
                bytes_total=total
            ))

        return callback

    # Single files

    def put_file(
        self,
        local_path: PathLike,
        remote_path: Optional[str] = None,
        mode: TransferMode = TransferMode.BINARY,
        on_progress: Optional[ProgressCallback] = None
    ) -> int:
        """
        Upload a local file.

        Args:
            local_path: Local file to upload
            remote_path: Target path (local file name by default)
            mode: Transfer mode
            on_progress: Optional callback for progress updates

        Returns:
            Number of bytes sent

        Raises:
            FileNotFoundError: If the local file does not exist
            FTPTransferError: If the upload fails
        """
        connection = self._require_connection("Upload")
        is_valid, error = validate_file_path(local_path)
        if not is_valid:
            raise FileNotFoundError(error)

        local_path = Path(local_path)
        remote_path = remote_path or local_path.name
        callback = self._progress_callback(
            remote_path, local_path.name, local_path.stat().st_size, on_progress
        )

        with open(local_path, "rb") as f:
            sent = connection.put(f, remote_path, mode, callback=callback)

        logger.info(f"Uploaded {local_path} to {remote_path} ({sent} bytes)")
        return sent

    def get_file(
        self,
        remote_path: str,
        local_path: PathLike,
        mode: TransferMode = TransferMode.BINARY,
        on_progress: Optional[ProgressCallback] = None
    ) -> int:
        """
        Download a remote file to disk.

        Args:
            remote_path: Remote file to download
            local_path: Local destination, replaced only when the download succeeds
            mode: Transfer mode
            on_progress: Optional callback for progress updates

        Returns:
            Number of bytes written

        Raises:
            FTPTransferError: If the download fails
        """
        connection = self._require_connection("Download")
        local_path = Path(local_path)

        total = 0
        if on_progress is not None:
            try:
                total = connection.size(remote_path)
            except FTPOperationError:
                logger.debug(f"Size of {remote_path} unknown, progress has no total")
        callback = self._progress_callback(remote_path, local_path.name, total, on_progress)

        # The destination is only replaced once the server confirms the download
        partial = local_path.with_name(local_path.name + ".part")
        try:
            with open(partial, "wb") as f:
                written = connection.get(f, remote_path, mode, callback=callback)
            partial.replace(local_path)
        except Exception:
            partial.unlink(missing_ok=True)
            raise

        logger.info(f"Downloaded {remote_path} to {local_path} ({written} bytes)")
        return written

    def put_bytes(
        self,
        remote_path: str,
        content: Union[bytes, str],
        mode: TransferMode = TransferMode.BINARY
    ) -> int:
        """
        Upload in-memory content to a remote file.

        Text content is encoded with the connection's encoding.

        Returns:
            Number of bytes sent
        """
        connection = self._require_connection("Upload")
        if isinstance(content, str):
            content = content.encode(connection.config.encoding)

        return connection.put(io.BytesIO(content), remote_path, mode)

    def get_bytes(
        self,
        remote_path: str,
        mode: TransferMode = TransferMode.BINARY,
        resume_pos: int = 0
    ) -> bytes:
        """
        Download a remote file into memory.

        Args:
            remote_path: Remote file to download
            mode: Transfer mode
            resume_pos: Offset to start reading from

        Returns:
            File content
        """
        connection = self._require_connection("Download")
        buffer = io.BytesIO()
        connection.get(buffer, remote_path, mode, resume_pos=resume_pos)
        return buffer.getvalue()

    # Trees

    def _transfer(
        self,
        direction: str,
        local_path: Path,
        remote_path: str,
        mode: TransferMode,
        on_progress: Optional[ProgressCallback]
    ) -> TransferResult:
        start_time = time.time()
        try:
            if direction == UPLOAD:
                count = self.put_file(local_path, remote_path, mode, on_progress)
            else:
                count = self.get_file(remote_path, local_path, mode, on_progress)
        except (FTPOperationError, OSError) as e:
            logger.error(f"Failed to {direction} {remote_path}: {e}")
            return TransferResult(
                local_path=str(local_path),
                remote_path=remote_path,
                direction=direction,
                success=False,
                error_message=str(e),
                duration_seconds=time.time() - start_time
            )

        return TransferResult(
            local_path=str(local_path),
            remote_path=remote_path,
            direction=direction,
            success=True,
            bytes_transferred=count,
            duration_seconds=time.time() - start_time
        )

    def put_all(
        self,
        source_dir: PathLike,
        target_dir: str,
        mode: TransferMode = TransferMode.BINARY,
        on_progress: Optional[ProgressCallback] = None,
        on_file_complete: Optional[Callable[[TransferResult], None]] = None
    ) -> List[TransferResult]:
        """
        Upload a local directory tree.

        Missing remote directories are created before their contents
        are sent. Symlinked directories are skipped. Continues on
        individual file failures.

        Args:
            source_dir: Local directory to upload
            target_dir: Remote directory receiving its contents
            mode: Transfer mode for every file
            on_progress: Optional callback for progress updates
            on_file_complete: Optional callback when each file completes

        Returns:
            List of TransferResult, one per file attempted

        Raises:
            FileNotFoundError: If source_dir is not a local directory
        """
        connection = self._require_connection("Tree upload")
        is_valid, error = validate_local_directory(source_dir)
        if not is_valid:
            raise FileNotFoundError(error)

        self.reset_cancel()
        results: List[TransferResult] = []

        if not self._scanner.is_dir(target_dir):
            connection.mkdir(target_dir)

        pending = [(Path(source_dir), target_dir)]
        while pending:
            local_dir, remote_dir = pending.pop()
            for child in sorted(local_dir.iterdir()):
                remote_child = join_remote(remote_dir, child.name)

                if child.is_dir():
                    if child.is_symlink():
                        logger.warning(f"Skipping symlinked directory {child}")
                        continue
                    if not self._scanner.is_dir(remote_child):
                        connection.mkdir(remote_child)
                    pending.append((child, remote_child))
                    continue

                if self._cancelled.is_set():
                    logger.info("Tree upload cancelled")
                    return results

                result = self._transfer(UPLOAD, child, remote_child, mode, on_progress)
                results.append(result)
                if on_file_complete:
                    on_file_complete(result)

        return results

    def get_all(
        self,
        source_dir: str,
        target_dir: PathLike,
        mode: TransferMode = TransferMode.BINARY,
        on_progress: Optional[ProgressCallback] = None,
        on_file_complete: Optional[Callable[[TransferResult], None]] = None
    ) -> List[TransferResult]:
        """
        Download a remote directory tree.

        Local directories are created as needed. A directory reached a
        second time through a link is skipped. Continues on individual
        file failures.

        Args:
            source_dir: Remote directory to download
            target_dir: Local directory receiving its contents
            mode: Transfer mode for every file
            on_progress: Optional callback for progress updates
            on_file_complete: Optional callback when each file completes

        Returns:
            List of TransferResult, one per file attempted

        Raises:
            FTPPathError: If source_dir is not a remote directory
        """
        self._require_connection("Tree download")
        source_real = self._scanner.real_path(source_dir)
        if source_real is None:
            raise FTPPathError(source_dir, DOWNLOAD)

        self.reset_cancel()
        results: List[TransferResult] = []

        target = Path(target_dir)
        target.mkdir(parents=True, exist_ok=True)

        # Server-side paths already walked, so linked directories are entered once
        visited = {source_real}
        pending = [(source_dir, target)]
        while pending:
            remote_dir, local_dir = pending.pop()
            for name in self._scanner.nlist(remote_dir):
                remote_child = join_remote(remote_dir, name)
                local_child = local_dir / name

                real = self._scanner.real_path(remote_child)
                if real is not None:
                    if real in visited:
                        logger.warning(f"Skipping {remote_child}, already downloaded as {real}")
                        continue
                    visited.add(real)
                    local_child.mkdir(exist_ok=True)
                    pending.append((remote_child, local_child))
                    continue

                if self._cancelled.is_set():
                    logger.info("Tree download cancelled")
                    return results

                result = self._transfer(DOWNLOAD, local_child, remote_child, mode, on_progress)
                results.append(result)
                if on_file_complete:
                    on_file_complete(result)

        return results

    def get_batch_summary(self, results: List[TransferResult]) -> dict:
        """
        Get summary statistics for a tree transfer.

        Args:
            results: List of transfer results

        Returns:
            Dictionary with summary statistics
        """
        successful = [r for r in results if r.success]
        failed = [r for r in results if not r.success]
        total_bytes = sum(r.bytes_transferred for r in results)
        total_time = sum(r.duration_seconds for r in results)

        return {
            "total": len(results),
            "successful": len(successful),
            "failed": len(failed),
            "bytes_transferred": total_bytes,
            "duration_seconds": total_time,
            "failures": [(r.remote_path, r.error_message) for r in failed]
        }
