"""
File utility functions for the stock video assembler.
"""

import time
from pathlib import Path
from typing import Dict, Iterable, Optional, Union

from ..logging_config import get_logger

logger = get_logger(__name__)

_SIZE_UNITS = ("Bytes", "KB", "MB", "GB", "TB")


def ensure_directory(path: Union[str, Path]) -> Path:
    """
    Ensure a directory exists, creating it if necessary.

    Args:
        path: Directory path to create

    Returns:
        Path object for the directory
    """
    path = Path(path)
    path.mkdir(parents=True, exist_ok=True)
    logger.debug("Directory ensured", path=str(path))
    return path


def get_file_size(file_path: Union[str, Path]) -> int:
    """
    Get file size in bytes.

    Raises:
        FileNotFoundError: If the file does not exist
    """
    file_path = Path(file_path)

    if not file_path.exists():
        raise FileNotFoundError(f"File not found: {file_path}")

    return file_path.stat().st_size


def format_file_size(size_bytes: int) -> str:
    """Format a byte count as a human readable string (e.g. ``1.5 MB``)."""
    if size_bytes <= 0:
        return "0 Bytes"
    index = 0
    value = float(size_bytes)
    while value >= 1024 and index < len(_SIZE_UNITS) - 1:
        value /= 1024
        index += 1
    value = round(value, 2)
    if value.is_integer():
        value = int(value)
    return f"{value} {_SIZE_UNITS[index]}"


def remove_files(file_paths: Iterable[Union[str, Path, None]]) -> int:
    """
    Delete files best-effort.

    Missing files are ignored; any other error is logged and skipped.

    Returns:
        Number of files actually removed
    """
    removed = 0
    for file_path in file_paths:
        if file_path is None:
            continue
        path = Path(file_path)
        try:
            path.unlink()
            removed += 1
            logger.debug("Temporary file removed", file=str(path))
        except FileNotFoundError:
            continue
        except OSError as exc:
            logger.warning("Failed to remove temporary file", file=str(path), error=str(exc))
    return removed


def cleanup_directory(directory: Union[str, Path], max_age_seconds: float, now: Optional[float] = None) -> int:
    """
    Delete files in a directory whose modification time is older than max_age_seconds.

    Returns:
        Number of deleted files
    """
    directory = Path(directory)
    if not directory.exists():
        return 0

    now = time.time() if now is None else now
    deleted = 0

    for entry in directory.iterdir():
        if not entry.is_file():
            continue
        try:
            age = now - entry.stat().st_mtime
            if age > max_age_seconds:
                entry.unlink()
                deleted += 1
                logger.info("Old file deleted", file=entry.name)
        except FileNotFoundError:
            continue
        except OSError as exc:
            logger.warning("Failed to process file during cleanup", file=entry.name, error=str(exc))

    if deleted:
        logger.info("Directory cleanup finished", directory=str(directory), deleted=deleted)
    return deleted


def get_directory_size(directory: Union[str, Path]) -> int:
    """Get the total size in bytes of all files below a directory."""
    directory = Path(directory)
    if not directory.exists():
        return 0

    total = 0
    for entry in directory.rglob("*"):
        try:
            if entry.is_file():
                total += entry.stat().st_size
        except FileNotFoundError:
            continue
    return total


def check_disk_usage(temp_dir: Union[str, Path], output_dir: Union[str, Path]) -> Dict[str, Dict[str, object]]:
    """Report the disk usage of the staging and output directories."""
    temp_size = get_directory_size(temp_dir)
    output_size = get_directory_size(output_dir)
    usage = {
        "temp": {"size": temp_size, "formatted": format_file_size(temp_size)},
        "output": {"size": output_size, "formatted": format_file_size(output_size)},
        "total": {"size": temp_size + output_size, "formatted": format_file_size(temp_size + output_size)},
    }
    logger.info("Disk usage", temp=usage["temp"]["formatted"], output=usage["output"]["formatted"])
    return usage


def cleanup_temp_files(settings) -> int:
    """Periodic cleanup: stale staging files and expired outputs."""
    deleted = cleanup_directory(settings.temp_dir, settings.temp_retention_minutes * 60)
    deleted += cleanup_directory(settings.output_dir, settings.output_retention_hours * 60 * 60)
    logger.info("Temporary file cleanup completed", deleted=deleted)
    return deleted


def emergency_cleanup(settings) -> int:
    """Free disk space: drop every staging file and outputs older than one hour."""
    logger.warning("Emergency cleanup started")
    deleted = cleanup_directory(settings.temp_dir, 0)
    deleted += cleanup_directory(settings.output_dir, 60 * 60)
    logger.info("Emergency cleanup completed", deleted=deleted)
    return deleted
