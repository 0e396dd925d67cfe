"""Temporary recording file management for VoiceScribe."""

import os
import tempfile
import time
from pathlib import Path
from typing import List, Optional

from voicescribe.utils.exceptions import TempFileError
from voicescribe.utils.logger import setup_logger

logger = setup_logger(__name__)

RECORDING_PREFIX = "voicescribe-recording-"


class FileManager:
    """Allocates, removes and sweeps temporary recording files."""

    def __init__(self, base_directory: Optional[str] = None):
        """Initialize file manager.

        Args:
            base_directory: Directory for recording files (None uses the
                system temp directory)
        """
        if base_directory:
            self.base_directory = Path(base_directory).expanduser()
        else:
            self.base_directory = Path(tempfile.gettempdir())

    def allocate(self, extension: str, prefix: str = RECORDING_PREFIX) -> Path:
        """Create an empty temp file for the encoder to overwrite.

        Args:
            extension: File extension without the dot (e.g. "wav")
            prefix: File name prefix

        Returns:
            Path of the created file

        Raises:
            TempFileError: If the directory or file cannot be created
        """
        try:
            self.base_directory.mkdir(parents=True, exist_ok=True)
            fd, name = tempfile.mkstemp(
                prefix=prefix, suffix=f".{extension}", dir=self.base_directory
            )
            os.close(fd)
        except OSError as e:
            raise TempFileError(
                f"Could not create a temporary recording file in "
                f"{self.base_directory}: {e}"
            ) from e

        logger.debug(f"Allocated recording file: {name}")
        return Path(name)

    def read(self, file_path: Path) -> bytes:
        """Read a recording file.

        Raises:
            TempFileError: If the file exists but cannot be read
        """
        try:
            return file_path.read_bytes()
        except OSError as e:
            raise TempFileError(f"Could not read recording file {file_path}: {e}") from e

    def discard(self, file_path: Optional[Path]) -> bool:
        """Remove a file if it exists.

        Returns:
            True if a file was removed, False otherwise.
        """
        if file_path is None:
            return False
        try:
            file_path.unlink()
            logger.debug(f"🗑️ Removed file: {file_path.name}")
            return True
        except FileNotFoundError:
            return False
        except OSError as e:
            logger.warning(f"⚠️ Failed to remove {file_path.name}: {e}")
            return False

    def cleanup_old_files(
        self,
        retention_hours: float = 24.0,
        file_pattern: str = f"{RECORDING_PREFIX}*",
    ) -> int:
        """Remove leftover recordings older than the retention window.

        Recordings are deleted right after being read, so anything matching
        the pattern here was left behind by a process that did not exit
        cleanly.

        Args:
            retention_hours: Age in hours after which files are removed
            file_pattern: File pattern to match

        Returns:
            Number of files removed
        """
        if not self.base_directory.exists():
            return 0

        cutoff_time = time.time() - retention_hours * 3600
        files_removed = 0

        for file_path in self.list_files(file_pattern):
            try:
                if file_path.stat().st_mtime >= cutoff_time:
                    continue
            except FileNotFoundError:
                continue
            if self.discard(file_path):
                files_removed += 1

        if files_removed > 0:
            logger.info(
                f"🧹 Cleaned up {files_removed} stale recordings from {self.base_directory}"  # noqa: E501
            )
        return files_removed

    def list_files(self, file_pattern: str = f"{RECORDING_PREFIX}*") -> List[Path]:
        """List recording files in the base directory, oldest first."""
        if not self.base_directory.exists():
            return []
        files = [f for f in self.base_directory.glob(file_pattern) if f.is_file()]
        files.sort(key=lambda f: f.stat().st_mtime)
        return files
